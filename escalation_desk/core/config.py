from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_env: str = "development"
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:8000,http://127.0.0.1:8000"

    ticket_store_backend: Literal["memory", "database"] = "memory"
    database_url: str = "sqlite:///./escalation_desk.db"
    seed_demo_ticket: bool = False

    escalation_threshold: int = 3
    ticket_id_prefix: str = "TLK"
    escalation_reason_default: str = "Customer satisfaction threshold reached"

    call_provider: Literal["simulated", "twilio"] = "simulated"
    call_centre_number: str = "+27102100000"
    simulated_agent_availability: float = 0.7
    simulated_call_failure_rate: float = 0.02
    simulated_random_seed: int | None = None

    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_phone_number: str | None = None
    twilio_api_base_url: str = "https://api.twilio.com/2010-04-01"
    twilio_status_callback_url: str | None = None
    twilio_validate_signatures: bool = True
    twilio_request_timeout_seconds: float = 10.0
    twilio_estimated_connect_seconds: int = 15

    @field_validator("simulated_agent_availability", "simulated_call_failure_rate")
    @classmethod
    def clamp_probability(cls, value: float) -> float:
        return min(max(value, 0.0), 1.0)

    @field_validator("ticket_id_prefix")
    @classmethod
    def normalize_prefix(cls, value: str) -> str:
        return value.strip().upper() or "TLK"

    @property
    def cors_origins_list(self) -> list[str]:
        if self.app_env == "production":
            return [item.strip() for item in self.cors_origins.split(",") if item.strip()]
        dev_defaults = ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:8000", "http://127.0.0.1:8000"]
        custom = [item.strip() for item in self.cors_origins.split(",") if item.strip()]
        return sorted(set(dev_defaults + custom))

    def validate_production_safety(self) -> None:
        if self.app_env != "production":
            return
        if "*" in self.cors_origins:
            raise ValueError("Unsafe CORS wildcard for production")
        if self.call_provider == "twilio" and not (
            self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number
        ):
            raise ValueError("Twilio call provider selected without account credentials")
        if not self.twilio_validate_signatures:
            raise ValueError("Twilio signature validation must stay enabled in production")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
