from datetime import datetime, timedelta, timezone

from sqlalchemy import Engine

from escalation_desk.core.errors import TicketNotFoundError
from escalation_desk.db.models import Base
from escalation_desk.schemas.chat import ChatMessage
from escalation_desk.schemas.ticket import EscalationTicket
from escalation_desk.services.ticket_store import TicketStore

DEMO_TICKET_ID = "TLK-TEST-12345"


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)


def demo_ticket(now: datetime | None = None) -> EscalationTicket:
    now = now or datetime.now(timezone.utc)
    lines = [
        ("Hello! I'm your Telkom virtual assistant. How can I help you today?", 300, None),
        ("I need help with my fiber connection", 240, None),
        ("I can help you with fiber connection issues. Let me check our available solutions...", 180, "unhelpful"),
        ("That didn't help, I still have no internet", 120, None),
        ("Let me provide you with technical troubleshooting steps...", 60, "unhelpful"),
    ]
    return EscalationTicket(
        ticket_id=DEMO_TICKET_ID,
        session_id="session-test-67890",
        user_id="user-telkom-12345",
        reason="Customer satisfaction threshold reached",
        attempts=3,
        created_at=now,
        chat_history=[
            ChatMessage(text=text, timestamp=now - timedelta(seconds=age), satisfaction=rating)
            for text, age, rating in lines
        ],
    )


def seed_demo_ticket(store: TicketStore) -> bool:
    """Store the demo ticket unless it already exists; returns whether it was written."""
    try:
        store.get(DEMO_TICKET_ID)
    except TicketNotFoundError:
        store.create(demo_ticket())
        return True
    return False
