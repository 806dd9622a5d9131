from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator

from app.models.principal import PrincipalKind


class ParticipantRef(BaseModel):
    user_id: str
    user_type: PrincipalKind


class ConversationCreateRequest(BaseModel):
    title: Optional[str] = None
    participants: List[ParticipantRef]
    initial_message: Optional[str] = None

    @field_validator("participants")
    @classmethod
    def at_least_one(cls, value: List[ParticipantRef]) -> List[ParticipantRef]:
        if not value:
            raise ValueError("At least one participant is required")
        return value

    @field_validator("initial_message")
    @classmethod
    def trim_initial(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if len(value) > 1000:
            raise ValueError("Message must be between 1 and 1000 characters")
        return value or None


class MessageCreateRequest(BaseModel):
    content: str

    @field_validator("content")
    @classmethod
    def content_length(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Message content is required")
        if len(value) > 1000:
            raise ValueError("Message must be between 1 and 1000 characters")
        return value


class UserSummary(BaseModel):
    id: str
    name: str
    user_type: PrincipalKind


class ParticipantOut(BaseModel):
    id: str
    user: Optional[UserSummary]
    joined_at: datetime
    left_at: Optional[datetime] = None
    last_read_at: Optional[datetime] = None


class MessageOut(BaseModel):
    id: str
    conversation_id: str
    content: str
    sender: Optional[UserSummary]
    created_at: datetime


class ConversationOut(BaseModel):
    id: str
    title: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    participants: List[ParticipantOut]
    last_message: Optional[MessageOut] = None
    message_count: int = 0


class ConversationDetail(ConversationOut):
    messages: List[MessageOut]


class ReadReceiptOut(BaseModel):
    conversation_id: str
    last_read_at: datetime
