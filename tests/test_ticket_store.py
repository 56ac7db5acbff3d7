from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest
from conftest import make_transcript
from sqlalchemy.orm import Session

from escalation_desk.core.errors import InvalidRequestError, TicketNotFoundError
from escalation_desk.db.init_db import DEMO_TICKET_ID, init_db, seed_demo_ticket
from escalation_desk.db.session import build_engine, build_session_factory
from escalation_desk.schemas.ticket import EscalationTicket
from escalation_desk.services.ticket_store import InMemoryTicketStore, SqlTicketStore


@pytest.fixture(params=["memory", "database"])
def store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryTicketStore()
        return
    engine = build_engine(f"sqlite:///{tmp_path / 'tickets.db'}")
    init_db(engine)
    yield SqlTicketStore(build_session_factory(engine))
    engine.dispose()


def _ticket(ticket_id: str = "TLK-1", created_at: datetime | None = None, **overrides) -> EscalationTicket:
    fields = {
        "ticket_id": ticket_id,
        "session_id": "s1",
        "reason": "Customer satisfaction threshold reached",
        "attempts": 3,
        "created_at": created_at or datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc),
        "chat_history": make_transcript(("Welcome", None), ("My bill is wrong", None)),
    }
    fields.update(overrides)
    return EscalationTicket(**fields)


def test_create_computes_summary_and_defaults_to_open(store):
    created = store.create(_ticket())

    assert created.status == "open"
    assert created.summary is not None
    assert created.summary.key_issues == ["billing"]
    assert created.summary.message_count == 2
    assert store.get("TLK-1") == created


def test_create_with_existing_id_overwrites(store):
    store.create(_ticket(reason="first"))

    store.create(_ticket(reason="second"))

    assert store.get("TLK-1").reason == "second"
    assert len(store.list_tickets()) == 1


def test_list_is_newest_first(store):
    base = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    store.create(_ticket("old", created_at=base))
    store.create(_ticket("new", created_at=base + timedelta(hours=2)))
    store.create(_ticket("mid", created_at=base + timedelta(hours=1)))

    assert [ticket.ticket_id for ticket in store.list_tickets()] == ["new", "mid", "old"]


def test_update_overwrites_only_supplied_fields(store):
    store.create(_ticket())

    updated = store.update("TLK-1", {"status": "in_progress", "assigned_agent": "AGENT-7", "user_id": None})

    assert updated.status == "in_progress"
    assert updated.assigned_agent == "AGENT-7"
    assert updated.reason == "Customer satisfaction threshold reached"
    assert updated.attempts == 3
    assert updated.chat_history == store.get("TLK-1").chat_history


def test_update_with_chat_history_recomputes_summary(store):
    store.create(_ticket())
    new_history = make_transcript(
        ("Welcome", None),
        ("My fiber connection is slow", None),
        ("Try restarting the router", "unhelpful"),
    )

    updated = store.update("TLK-1", {"chat_history": new_history})

    assert updated.summary.key_issues == ["fiber"]
    assert updated.summary.message_count == 3
    assert updated.summary.escalation_triggers == ["Try restarting the router"]
    assert store.get("TLK-1").summary == updated.summary


def test_update_accepts_raw_message_dicts(store):
    store.create(_ticket())

    updated = store.update(
        "TLK-1",
        {"chat_history": [{"text": "hello", "timestamp": "2024-05-01T09:00:00Z", "satisfaction": "unsatisfied"}]},
    )

    assert updated.chat_history[0].satisfaction == "unhelpful"
    assert updated.summary.message_count == 1


def test_update_unknown_ticket_raises_and_creates_nothing(store):
    with pytest.raises(TicketNotFoundError):
        store.update("missing", {"status": "resolved"})

    assert store.list_tickets() == []


def test_update_rejects_invalid_status_and_unknown_fields(store):
    store.create(_ticket())

    with pytest.raises(InvalidRequestError):
        store.update("TLK-1", {"status": "closed"})
    with pytest.raises(InvalidRequestError):
        store.update("TLK-1", {"ticket_id": "other"})

    assert store.get("TLK-1").status == "open"


def test_delete(store):
    store.create(_ticket())

    assert store.delete("TLK-1") is True
    assert store.delete("TLK-1") is False
    with pytest.raises(TicketNotFoundError):
        store.get("TLK-1")


def test_count_by_status(store):
    store.create(_ticket("a"))
    store.create(_ticket("b"))
    store.update("b", {"status": "resolved"})

    assert store.count_by_status() == {"open": 1, "in_progress": 0, "resolved": 1}


def test_concurrent_updates_keep_summary_consistent(store):
    store.create(_ticket())
    histories = [
        make_transcript(("Welcome", None), *[(f"customer turn {n}", None) for n in range(size)])
        for size in range(1, 9)
    ]

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda history: store.update("TLK-1", {"chat_history": history}), histories))

    final = store.get("TLK-1")
    assert final.summary.message_count == len(final.chat_history)


def test_seed_demo_ticket(store):
    seed_demo_ticket(store)

    ticket = store.get(DEMO_TICKET_ID)
    assert ticket.summary.key_issues == ["fiber", "service"]
    assert len(ticket.summary.escalation_triggers) == 2
    assert ticket.summary.customer_sentiment == "negative"
    assert ticket.summary.duration == "4 minutes"


def test_seed_demo_ticket_keeps_existing_edits(store):
    assert seed_demo_ticket(store) is True
    store.update(DEMO_TICKET_ID, {"status": "in_progress", "assigned_agent": "AGENT-2"})

    assert seed_demo_ticket(store) is False

    ticket = store.get(DEMO_TICKET_ID)
    assert ticket.status == "in_progress"
    assert ticket.assigned_agent == "AGENT-2"


def test_failed_delete_rolls_back(tmp_path, monkeypatch):
    engine = build_engine(f"sqlite:///{tmp_path / 'tickets.db'}")
    init_db(engine)
    store = SqlTicketStore(build_session_factory(engine))
    store.create(_ticket())

    def _fail_commit(self):
        raise RuntimeError("commit failed")

    monkeypatch.setattr(Session, "commit", _fail_commit)
    with pytest.raises(RuntimeError):
        store.delete("TLK-1")
    monkeypatch.undo()

    assert store.get("TLK-1").ticket_id == "TLK-1"
    engine.dispose()
