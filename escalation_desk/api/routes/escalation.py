from fastapi import APIRouter, Depends, HTTPException

from escalation_desk.api.deps import get_orchestrator
from escalation_desk.core.errors import InvalidRequestError, TicketNotFoundError
from escalation_desk.schemas.escalation import (
    CallbackRequest,
    CallbackResponse,
    EvaluateFeedbackRequest,
    EvaluateFeedbackResponse,
    ResetSessionResponse,
    SessionStatusResponse,
)
from escalation_desk.services.escalation_service import EscalationOrchestrator

router = APIRouter(prefix="/v1/escalations", tags=["escalation"])


@router.post("/evaluate", response_model=EvaluateFeedbackResponse)
def evaluate_feedback(
    payload: EvaluateFeedbackRequest,
    orchestrator: EscalationOrchestrator = Depends(get_orchestrator),
) -> EvaluateFeedbackResponse:
    try:
        outcome = orchestrator.evaluate_feedback(
            session_id=payload.session_id,
            reason=payload.reason,
            transcript=payload.chat_history,
            user_id=payload.user_id,
            unsatisfied_count=payload.unsatisfied_count,
        )
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return EvaluateFeedbackResponse(
        escalate=outcome.escalate,
        message=outcome.message,
        attempts_remaining=outcome.attempts_remaining,
        total_attempts=outcome.total_attempts,
        ticket_id=outcome.ticket_id,
        estimated_wait_time=outcome.estimated_wait_time,
        agent_available=outcome.agent_available,
        callback_number=outcome.callback_number,
    )


@router.get("/sessions/{session_id}", response_model=SessionStatusResponse)
def get_session_status(
    session_id: str,
    orchestrator: EscalationOrchestrator = Depends(get_orchestrator),
) -> SessionStatusResponse:
    status = orchestrator.session_status(session_id)
    return SessionStatusResponse(
        session_id=session_id,
        attempts=status.attempts,
        attempts_remaining=status.attempts_remaining,
        escalation_threshold=orchestrator.tracker.threshold,
        can_escalate=status.can_escalate,
    )


@router.delete("/sessions/{session_id}", response_model=ResetSessionResponse)
def reset_session(
    session_id: str,
    orchestrator: EscalationOrchestrator = Depends(get_orchestrator),
) -> ResetSessionResponse:
    orchestrator.reset_session(session_id)
    return ResetSessionResponse(message=f"Session {session_id} attempts reset")


@router.post("/tickets/{ticket_id}/callback", response_model=CallbackResponse)
def request_callback(
    ticket_id: str,
    payload: CallbackRequest,
    orchestrator: EscalationOrchestrator = Depends(get_orchestrator),
) -> CallbackResponse:
    try:
        outcome = orchestrator.request_callback(
            ticket_id=ticket_id,
            phone_number=payload.phone_number,
            customer_name=payload.customer_name,
            urgency=payload.urgency,
        )
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Ticket not found") from exc

    return CallbackResponse(
        success=outcome.success,
        ticket_id=outcome.ticket_id,
        call_id=outcome.call_id,
        status=outcome.status,
        estimated_connect_seconds=outcome.estimated_connect_seconds,
        agent_id=outcome.agent_id,
        message=outcome.message,
    )
