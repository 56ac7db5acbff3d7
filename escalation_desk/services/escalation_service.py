import logging
import secrets
import string
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TypedDict

from langgraph.graph import END, START, StateGraph

from escalation_desk.core.errors import (
    CallPlacementError,
    InvalidRequestError,
    TicketNotFoundError,
)
from escalation_desk.core.locks import KeyedLock
from escalation_desk.integrations.call_centre import CallCentre, CallContext
from escalation_desk.schemas.chat import ChatMessage
from escalation_desk.schemas.ticket import EscalationTicket
from escalation_desk.services.attempt_tracker import SessionAttemptTracker, SessionStatus
from escalation_desk.services.phone_numbers import mask_phone_number, normalize_phone_number
from escalation_desk.services.ticket_store import TicketStore

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase

PHONE_PROMPT = (
    "To connect you with a human agent, please enter your phone number so we can call you immediately. "
    "Example: +27123456789 or 0123456789"
)


class FeedbackState(TypedDict, total=False):
    session_id: str
    reason: str
    user_id: str | None
    transcript: list[ChatMessage]
    observed_unhelpful: int
    escalate: bool
    attempts_remaining: int
    total_attempts: int
    ticket_id: str | None
    agent_available: bool | None
    estimated_wait_time: int | None
    callback_number: str | None
    message: str


@dataclass
class FeedbackOutcome:
    escalate: bool
    message: str
    attempts_remaining: int
    total_attempts: int
    ticket_id: str | None = None
    estimated_wait_time: int | None = None
    agent_available: bool | None = None
    callback_number: str | None = None


@dataclass
class CallbackOutcome:
    success: bool
    ticket_id: str
    call_id: str | None
    status: str
    estimated_connect_seconds: int
    agent_id: str | None
    message: str


def count_unhelpful(transcript: Sequence[ChatMessage]) -> int:
    return sum(1 for message in transcript if message.is_unhelpful)


class EscalationOrchestrator:
    """
    Turns per-message satisfaction feedback into escalation decisions and tickets.

    Ticket creation always completes before the call centre is contacted, and nothing the
    call centre reports changes ticket status; agents move tickets through the admin API.
    Unhelpful marks that already triggered an escalation do not count towards the next one.
    """

    def __init__(
        self,
        tracker: SessionAttemptTracker,
        tickets: TicketStore,
        call_centre: CallCentre,
        call_centre_number: str,
        ticket_id_prefix: str = "TLK",
        default_reason: str = "Customer satisfaction threshold reached",
    ) -> None:
        self.tracker = tracker
        self.tickets = tickets
        self.call_centre = call_centre
        self.call_centre_number = call_centre_number
        self.ticket_id_prefix = ticket_id_prefix
        self.default_reason = default_reason
        self._consumed_unhelpful: dict[str, int] = {}
        self._session_locks = KeyedLock()
        self.graph = self._build_graph()

    def _build_graph(self):
        graph = StateGraph(FeedbackState)
        graph.add_node("record", self._record)
        graph.add_node("hold", self._hold)
        graph.add_node("open_ticket", self._open_ticket)
        graph.add_node("check_availability", self._check_availability)

        graph.add_edge(START, "record")
        graph.add_conditional_edges(
            "record",
            self._route_after_record,
            {"hold": "hold", "open_ticket": "open_ticket"},
        )
        graph.add_edge("hold", END)
        graph.add_edge("open_ticket", "check_availability")
        graph.add_edge("check_availability", END)

        return graph.compile()

    def evaluate_feedback(
        self,
        session_id: str,
        reason: str,
        transcript: Sequence[ChatMessage],
        user_id: str | None = None,
        unsatisfied_count: int | None = None,
    ) -> FeedbackOutcome:
        if not session_id or not session_id.strip():
            raise InvalidRequestError("Missing required field: session_id")
        if not reason or not reason.strip():
            raise InvalidRequestError("Missing required field: reason")

        history = list(transcript)
        observed = max(count_unhelpful(history), unsatisfied_count or 0)
        state = self.graph.invoke(
            {
                "session_id": session_id,
                "reason": reason,
                "user_id": user_id,
                "transcript": history,
                "observed_unhelpful": observed,
            }
        )
        return FeedbackOutcome(
            escalate=bool(state.get("escalate", False)),
            message=state.get("message", ""),
            attempts_remaining=int(state.get("attempts_remaining", 0)),
            total_attempts=int(state.get("total_attempts", 0)),
            ticket_id=state.get("ticket_id"),
            estimated_wait_time=state.get("estimated_wait_time"),
            agent_available=state.get("agent_available"),
            callback_number=state.get("callback_number"),
        )

    def session_status(self, session_id: str) -> SessionStatus:
        return self.tracker.query(session_id)

    def reset_session(self, session_id: str) -> None:
        with self._session_locks.hold(session_id):
            self.tracker.reset(session_id)
            self._consumed_unhelpful.pop(session_id, None)
        logger.info("Session attempts reset", extra={"session_id": session_id})

    def request_callback(
        self,
        ticket_id: str,
        phone_number: str,
        customer_name: str | None = None,
        urgency: str = "medium",
    ) -> CallbackOutcome:
        destination = normalize_phone_number(phone_number)
        ticket = self.tickets.update(ticket_id, {"phone_number": destination})

        context = CallContext(
            session_id=ticket.session_id,
            ticket_id=ticket.ticket_id,
            issue=ticket.reason,
            urgency=urgency,
            customer_name=customer_name,
            key_issues=list(ticket.summary.key_issues) if ticket.summary else [],
        )
        try:
            result = self.call_centre.place_call(destination, context)
        except CallPlacementError as exc:
            logger.warning(
                "Call placement failed; ticket kept open for manual follow-up: %s",
                exc,
                extra={"ticket_id": ticket_id, "destination": mask_phone_number(destination)},
            )
            return CallbackOutcome(
                success=False,
                ticket_id=ticket_id,
                call_id=None,
                status="failed",
                estimated_connect_seconds=0,
                agent_id=None,
                message=(
                    "Failed to initiate call. Please try again or contact us directly at "
                    f"{self.call_centre_number}"
                ),
            )

        return CallbackOutcome(
            success=result.success,
            ticket_id=ticket_id,
            call_id=result.call_id,
            status=result.status,
            estimated_connect_seconds=result.estimated_connect_seconds,
            agent_id=result.agent_id,
            message=result.message,
        )

    def sync_transcript(
        self,
        ticket_id: str,
        transcript: Sequence[ChatMessage],
        session_id: str | None = None,
        user_id: str | None = None,
        attempts: int | None = None,
        reason: str | None = None,
    ) -> EscalationTicket:
        """Replace a ticket's transcript with the client's copy, creating the ticket if it is unknown."""
        history = list(transcript)
        try:
            return self.tickets.update(
                ticket_id,
                {"chat_history": history, "session_id": session_id, "user_id": user_id, "attempts": attempts},
            )
        except TicketNotFoundError:
            if not session_id:
                raise InvalidRequestError("session_id is required to create a ticket from a synced transcript")
            logger.info("Creating ticket from synced transcript", extra={"ticket_id": ticket_id})
            return self.tickets.create(
                EscalationTicket(
                    ticket_id=ticket_id,
                    session_id=session_id,
                    user_id=user_id,
                    reason=reason or self.default_reason,
                    attempts=attempts or count_unhelpful(history),
                    chat_history=history,
                )
            )

    def new_ticket_id(self) -> str:
        suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
        return f"{self.ticket_id_prefix}-{int(time.time() * 1000)}-{suffix}"

    def _record(self, state: FeedbackState) -> FeedbackState:
        session_id = state["session_id"]
        observed = state["observed_unhelpful"]
        with self._session_locks.hold(session_id):
            # Marks spent on an earlier escalation stay in the transcript; only newer ones count.
            fresh = max(observed - self._consumed_unhelpful.get(session_id, 0), 0)
            evaluation = self.tracker.record_and_evaluate(session_id, fresh)
            if evaluation.escalate:
                self._consumed_unhelpful[session_id] = observed
        return {
            "escalate": evaluation.escalate,
            "attempts_remaining": evaluation.attempts_remaining,
            "total_attempts": evaluation.total_attempts,
        }

    def _hold(self, state: FeedbackState) -> FeedbackState:
        remaining = state["attempts_remaining"]
        return {
            "message": (
                "We're sorry the assistant hasn't fully resolved your issue. "
                f"You have {remaining} more attempt(s) before we connect you with a human agent."
            )
        }

    def _open_ticket(self, state: FeedbackState) -> FeedbackState:
        ticket = self.tickets.create(
            EscalationTicket(
                ticket_id=self.new_ticket_id(),
                session_id=state["session_id"],
                user_id=state.get("user_id"),
                reason=state["reason"],
                attempts=state["total_attempts"],
                chat_history=state["transcript"],
            )
        )
        logger.info(
            "Escalation ticket opened",
            extra={
                "ticket_id": ticket.ticket_id,
                "session_id": ticket.session_id,
                "attempts": ticket.attempts,
                "key_issues": ",".join(ticket.summary.key_issues) if ticket.summary else "",
            },
        )
        return {"ticket_id": ticket.ticket_id}

    def _check_availability(self, state: FeedbackState) -> FeedbackState:
        message = f"We're connecting you with a human agent who can better assist you. {PHONE_PROMPT}"
        try:
            availability = self.call_centre.check_availability()
        except CallPlacementError as exc:
            logger.warning(
                "Call centre availability unknown: %s", exc, extra={"ticket_id": state["ticket_id"]}
            )
            return {
                "agent_available": False,
                "estimated_wait_time": None,
                "callback_number": self.call_centre_number,
                "message": message,
            }
        return {
            "agent_available": availability.agent_available,
            "estimated_wait_time": availability.estimated_wait_minutes,
            "callback_number": availability.callback_number,
            "message": message,
        }

    @staticmethod
    def _route_after_record(state: FeedbackState) -> str:
        if state.get("escalate"):
            return "open_ticket"
        return "hold"
