"""
roomhub.schemas
~~~~~~~~~~~~~~~
Pydantic schemas and models for the API.
"""
from roomhub.schemas.api_response import ErrorResponse, HealthResponse, SuccessResponse
from roomhub.schemas.events import HubEvent, decode_sse, encode_sse
from roomhub.schemas.openai import ChatCompletionRequest, ModelCard, ModelListResponse
from roomhub.schemas.participant import (
    GenerationConfig,
    LlmMetrics,
    MachineSpecs,
    ParticipantInfo,
    ParticipantStatus,
    create_participant,
    merge_config,
)
from roomhub.schemas.room import RoomInfo, RoomPublic, RoomSummary

__all__ = [
    "ChatCompletionRequest",
    "ErrorResponse",
    "GenerationConfig",
    "HealthResponse",
    "HubEvent",
    "LlmMetrics",
    "MachineSpecs",
    "ModelCard",
    "ModelListResponse",
    "ParticipantInfo",
    "ParticipantStatus",
    "RoomInfo",
    "RoomPublic",
    "RoomSummary",
    "SuccessResponse",
    "create_participant",
    "decode_sse",
    "encode_sse",
    "merge_config",
]
