from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from escalation_desk.schemas.chat import ChatMessage, ChatSummary

TicketStatus = Literal["open", "in_progress", "resolved"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EscalationTicket(BaseModel):
    model_config = ConfigDict(frozen=True)

    ticket_id: str
    session_id: str
    user_id: str | None = None
    phone_number: str | None = None
    reason: str
    attempts: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=_utcnow)
    chat_history: list[ChatMessage] = Field(default_factory=list)
    status: TicketStatus = "open"
    assigned_agent: str | None = None
    summary: ChatSummary | None = None

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class TicketCreateRequest(BaseModel):
    ticket_id: str = Field(min_length=1, max_length=128)
    session_id: str = Field(min_length=1, max_length=128)
    user_id: str | None = None
    phone_number: str | None = None
    reason: str = Field(min_length=1, max_length=256)
    attempts: int = Field(default=0, ge=0)
    created_at: datetime | None = None
    chat_history: list[ChatMessage] = Field(default_factory=list)


class TicketUpdateRequest(BaseModel):
    status: TicketStatus | None = None
    assigned_agent: str | None = None
    reason: str | None = Field(default=None, min_length=1, max_length=256)
    chat_history: list[ChatMessage] | None = None
    session_id: str | None = Field(default=None, min_length=1)
    user_id: str | None = None
    phone_number: str | None = None
    attempts: int | None = Field(default=None, ge=0)


class TranscriptSyncRequest(BaseModel):
    chat_history: list[ChatMessage]
    session_id: str | None = Field(default=None, min_length=1)
    user_id: str | None = None
    reason: str | None = None
    attempts: int | None = Field(default=None, ge=0)


class TicketResponse(BaseModel):
    success: bool = True
    ticket: EscalationTicket
    message: str


class TicketListResponse(BaseModel):
    success: bool = True
    tickets: list[EscalationTicket]
    count: int


class TicketDeleteResponse(BaseModel):
    success: bool = True
    message: str
