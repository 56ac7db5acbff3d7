from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from escalation_desk.schemas.chat import ChatMessage

BASE_ENV = {
    "APP_ENV": "development",
    "LOG_LEVEL": "WARNING",
    "TICKET_STORE_BACKEND": "memory",
    "SEED_DEMO_TICKET": "false",
    "CALL_PROVIDER": "simulated",
    "SIMULATED_AGENT_AVAILABILITY": "1.0",
    "SIMULATED_CALL_FAILURE_RATE": "0.0",
    "SIMULATED_RANDOM_SEED": "7",
    "TWILIO_VALIDATE_SIGNATURES": "false",
    "TWILIO_AUTH_TOKEN": "test-token",
}


@pytest.fixture()
def app_env(monkeypatch):
    for key, value in BASE_ENV.items():
        monkeypatch.setenv(key, value)

    from escalation_desk.core.config import get_settings

    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


@pytest.fixture()
def client(app_env):
    from escalation_desk.main import create_app

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


def make_transcript(*turns: tuple[str, str | None], start: datetime | None = None, step_seconds: int = 60):
    """Builds alternating bot/customer messages one `step_seconds` apart."""
    start = start or datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    return [
        ChatMessage(text=text, timestamp=start + timedelta(seconds=index * step_seconds), satisfaction=rating)
        for index, (text, rating) in enumerate(turns)
    ]


def as_payload(messages: list[ChatMessage]) -> list[dict]:
    return [message.model_dump(mode="json") for message in messages]
