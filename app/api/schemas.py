"""
API Layer Schemas - request/response contracts for the HTTP boundary

Field names on the wire are camelCase; Python attributes are snake_case.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Any


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ConversationCreate(ApiModel):
    """Request model for starting a conversation"""
    owner_id: Optional[str] = Field(default=None, alias="ownerId")


class ConversationCreated(ApiModel):
    conversation_id: str = Field(alias="conversationId")
    message: str


class MessageRequest(ApiModel):
    """User utterance; emptiness is checked by the assistant"""
    message: Optional[str] = None


class MessageResponse(ApiModel):
    response: str
    conversation_id: str = Field(alias="conversationId")
    query_type: str = Field(alias="queryType")
    external_data_used: List[str] = Field(default_factory=list, alias="externalDataUsed")
    timestamp: str


class PreferencesUpdate(ApiModel):
    """Caller-supplied preference overrides, shallow-merged"""
    preferences: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(ApiModel):
    error: str
    message: str
