"""roomhub: pool personally-hosted LLM endpoints into rooms behind one OpenAI-compatible API."""

__version__ = "0.1.0"
