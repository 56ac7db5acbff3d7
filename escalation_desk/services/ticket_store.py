import logging
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Mapping
from datetime import datetime, timezone

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from escalation_desk.core.errors import InvalidRequestError, TicketNotFoundError
from escalation_desk.core.locks import KeyedLock
from escalation_desk.db.models import EscalationTicketRecord
from escalation_desk.schemas.chat import ChatMessage, ChatSummary
from escalation_desk.schemas.ticket import EscalationTicket
from escalation_desk.services.chat_summarizer import summarize_chat_history

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {"status", "assigned_agent", "chat_history", "session_id", "user_id", "phone_number", "attempts", "reason"}
)


class TicketStore(ABC):
    """
    Keyed collection of escalation tickets.

    Writes to one ticket id are serialized; different ids proceed in parallel. Summaries
    are computed before the lock is taken and stored in the same write as the history
    they describe.
    """

    def __init__(self) -> None:
        self._locks = KeyedLock()

    def create(self, ticket: EscalationTicket) -> EscalationTicket:
        ticket = ticket.model_copy(update={"summary": summarize_chat_history(ticket.chat_history)})
        with self._locks.hold(ticket.ticket_id):
            existing = self._load(ticket.ticket_id)
            if existing is not None:
                logger.info("Overwriting existing ticket on create", extra={"ticket_id": ticket.ticket_id})
            self._save(ticket)

        logger.info(
            "Ticket stored",
            extra={
                "ticket_id": ticket.ticket_id,
                "session_id": ticket.session_id,
                "chat_history_length": len(ticket.chat_history),
            },
        )
        return ticket

    def get(self, ticket_id: str) -> EscalationTicket:
        ticket = self._load(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(ticket_id)
        return ticket

    def list_tickets(self) -> list[EscalationTicket]:
        return sorted(self._all(), key=lambda ticket: ticket.created_at, reverse=True)

    def update(self, ticket_id: str, fields: Mapping[str, object]) -> EscalationTicket:
        changes = {key: value for key, value in fields.items() if value is not None}
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidRequestError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        if "chat_history" in changes:
            history = _coerce_history(changes["chat_history"])
            changes["chat_history"] = history
            changes["summary"] = summarize_chat_history(history)

        with self._locks.hold(ticket_id):
            current = self._load(ticket_id)
            if current is None:
                raise TicketNotFoundError(ticket_id)
            try:
                updated = EscalationTicket.model_validate({**current.model_dump(), **changes})
            except ValidationError as exc:
                raise InvalidRequestError(str(exc)) from exc
            self._save(updated)

        logger.info(
            "Ticket updated",
            extra={"ticket_id": ticket_id, "fields": ",".join(sorted(changes)), "status": updated.status},
        )
        return updated

    def delete(self, ticket_id: str) -> bool:
        with self._locks.hold(ticket_id):
            removed = self._remove(ticket_id)
        if removed:
            logger.info("Ticket deleted", extra={"ticket_id": ticket_id})
        return removed

    def count_by_status(self) -> dict[str, int]:
        counts = Counter(ticket.status for ticket in self._all())
        return {status: counts.get(status, 0) for status in ("open", "in_progress", "resolved")}

    @abstractmethod
    def _load(self, ticket_id: str) -> EscalationTicket | None: ...

    @abstractmethod
    def _save(self, ticket: EscalationTicket) -> None: ...

    @abstractmethod
    def _remove(self, ticket_id: str) -> bool: ...

    @abstractmethod
    def _all(self) -> list[EscalationTicket]: ...


class InMemoryTicketStore(TicketStore):
    """Volatile store; contents are lost on restart."""

    def __init__(self) -> None:
        super().__init__()
        self._tickets: dict[str, EscalationTicket] = {}

    def _load(self, ticket_id: str) -> EscalationTicket | None:
        return self._tickets.get(ticket_id)

    def _save(self, ticket: EscalationTicket) -> None:
        self._tickets[ticket.ticket_id] = ticket

    def _remove(self, ticket_id: str) -> bool:
        return self._tickets.pop(ticket_id, None) is not None

    def _all(self) -> list[EscalationTicket]:
        return list(self._tickets.values())


class SqlTicketStore(TicketStore):
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        super().__init__()
        self.session_factory = session_factory

    def _load(self, ticket_id: str) -> EscalationTicket | None:
        db = self.session_factory()
        try:
            record = db.get(EscalationTicketRecord, ticket_id)
            return _from_record(record) if record is not None else None
        finally:
            db.close()

    def _save(self, ticket: EscalationTicket) -> None:
        db = self.session_factory()
        try:
            record = db.get(EscalationTicketRecord, ticket.ticket_id)
            if record is None:
                record = EscalationTicketRecord(ticket_id=ticket.ticket_id)
                db.add(record)
            _apply_to_record(record, ticket)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _remove(self, ticket_id: str) -> bool:
        db = self.session_factory()
        try:
            record = db.get(EscalationTicketRecord, ticket_id)
            if record is None:
                return False
            db.delete(record)
            db.commit()
            return True
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _all(self) -> list[EscalationTicket]:
        db = self.session_factory()
        try:
            records = db.scalars(
                select(EscalationTicketRecord).order_by(EscalationTicketRecord.created_at.desc())
            ).all()
            return [_from_record(record) for record in records]
        finally:
            db.close()


def _coerce_history(value: object) -> list[ChatMessage]:
    if not isinstance(value, (list, tuple)):
        raise InvalidRequestError("chat_history must be a list of messages")
    try:
        return [item if isinstance(item, ChatMessage) else ChatMessage.model_validate(item) for item in value]
    except ValidationError as exc:
        raise InvalidRequestError(str(exc)) from exc


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _apply_to_record(record: EscalationTicketRecord, ticket: EscalationTicket) -> None:
    record.session_id = ticket.session_id
    record.user_id = ticket.user_id
    record.phone_number = ticket.phone_number
    record.reason = ticket.reason
    record.attempts = ticket.attempts
    record.status = ticket.status
    record.assigned_agent = ticket.assigned_agent
    record.chat_history_json = [message.model_dump(mode="json") for message in ticket.chat_history]
    record.summary_json = ticket.summary.model_dump(mode="json") if ticket.summary else None
    record.created_at = ticket.created_at
    record.updated_at = datetime.now(timezone.utc)


def _from_record(record: EscalationTicketRecord) -> EscalationTicket:
    return EscalationTicket(
        ticket_id=record.ticket_id,
        session_id=record.session_id,
        user_id=record.user_id,
        phone_number=record.phone_number,
        reason=record.reason,
        attempts=record.attempts,
        created_at=_as_utc(record.created_at),
        chat_history=[ChatMessage.model_validate(item) for item in record.chat_history_json or []],
        status=record.status,
        assigned_agent=record.assigned_agent,
        summary=ChatSummary.model_validate(record.summary_json) if record.summary_json else None,
    )
