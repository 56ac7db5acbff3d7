from fastapi import Request

from escalation_desk.services.attempt_tracker import SessionAttemptTracker
from escalation_desk.services.escalation_service import EscalationOrchestrator
from escalation_desk.services.ticket_store import TicketStore


def get_orchestrator(request: Request) -> EscalationOrchestrator:
    return request.app.state.orchestrator


def get_ticket_store(request: Request) -> TicketStore:
    return request.app.state.ticket_store


def get_tracker(request: Request) -> SessionAttemptTracker:
    return request.app.state.tracker
