from typing import Literal

from pydantic import BaseModel, Field

from escalation_desk.schemas.chat import ChatMessage


class EvaluateFeedbackRequest(BaseModel):
    session_id: str = Field(min_length=1, max_length=128)
    reason: str = Field(min_length=1, max_length=256)
    user_id: str | None = None
    chat_history: list[ChatMessage] = Field(default_factory=list)
    unsatisfied_count: int | None = Field(default=None, ge=0)


class EvaluateFeedbackResponse(BaseModel):
    escalate: bool
    message: str
    attempts_remaining: int = 0
    total_attempts: int = 0
    ticket_id: str | None = None
    estimated_wait_time: int | None = None
    agent_available: bool | None = None
    callback_number: str | None = None


class SessionStatusResponse(BaseModel):
    session_id: str
    attempts: int
    attempts_remaining: int
    escalation_threshold: int
    can_escalate: bool


class ResetSessionResponse(BaseModel):
    success: bool = True
    message: str


class CallbackRequest(BaseModel):
    phone_number: str = Field(min_length=1, max_length=64)
    customer_name: str | None = None
    urgency: Literal["low", "medium", "high"] = "medium"


class CallbackResponse(BaseModel):
    success: bool
    ticket_id: str
    call_id: str | None = None
    status: Literal["initiated", "connecting", "connected", "failed"]
    estimated_connect_seconds: int = 0
    agent_id: str | None = None
    message: str
