from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Satisfaction = Literal["helpful", "unhelpful"]
Sentiment = Literal["positive", "neutral", "negative"]

# The chat widget has shipped three spellings of the same rating over time.
_SATISFACTION_ALIASES = {
    "helpful": "helpful",
    "satisfied": "helpful",
    "1": "helpful",
    "unhelpful": "unhelpful",
    "unsatisfied": "unhelpful",
    "0": "unhelpful",
}


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    timestamp: datetime
    satisfaction: Satisfaction | None = None

    @field_validator("satisfaction", mode="before")
    @classmethod
    def normalize_satisfaction(cls, value: object) -> str | None:
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            value = int(value)
        key = str(value).strip().lower()
        if key not in _SATISFACTION_ALIASES:
            raise ValueError(f"Unknown satisfaction rating: {value!r}")
        return _SATISFACTION_ALIASES[key]

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_unhelpful(self) -> bool:
        return self.satisfaction == "unhelpful"


class ChatSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    summary: str
    key_issues: list[str] = Field(default_factory=list)
    customer_sentiment: Sentiment = "neutral"
    escalation_triggers: list[str] = Field(default_factory=list)
    message_count: int = 0
    duration: str = "0 minutes"
