from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from escalation_desk.api.deps import get_orchestrator, get_ticket_store
from escalation_desk.core.errors import InvalidRequestError, TicketNotFoundError
from escalation_desk.schemas.ticket import (
    EscalationTicket,
    TicketCreateRequest,
    TicketDeleteResponse,
    TicketListResponse,
    TicketResponse,
    TicketUpdateRequest,
    TranscriptSyncRequest,
)
from escalation_desk.services.escalation_service import EscalationOrchestrator
from escalation_desk.services.ticket_store import TicketStore

router = APIRouter(prefix="/v1/admin/tickets", tags=["tickets"])


@router.get("", response_model=TicketListResponse)
def list_tickets(store: TicketStore = Depends(get_ticket_store)) -> TicketListResponse:
    tickets = store.list_tickets()
    return TicketListResponse(tickets=tickets, count=len(tickets))


@router.post("", response_model=TicketResponse)
def create_ticket(payload: TicketCreateRequest, store: TicketStore = Depends(get_ticket_store)) -> TicketResponse:
    ticket = store.create(
        EscalationTicket(
            ticket_id=payload.ticket_id,
            session_id=payload.session_id,
            user_id=payload.user_id,
            phone_number=payload.phone_number,
            reason=payload.reason,
            attempts=payload.attempts,
            created_at=payload.created_at or datetime.now(timezone.utc),
            chat_history=payload.chat_history,
        )
    )
    return TicketResponse(ticket=ticket, message="Ticket created successfully")


@router.get("/{ticket_id}", response_model=TicketResponse)
def get_ticket(ticket_id: str, store: TicketStore = Depends(get_ticket_store)) -> TicketResponse:
    try:
        ticket = store.get(ticket_id)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Ticket not found") from exc
    return TicketResponse(ticket=ticket, message="Ticket found")


@router.patch("/{ticket_id}", response_model=TicketResponse)
def update_ticket(
    ticket_id: str,
    payload: TicketUpdateRequest,
    store: TicketStore = Depends(get_ticket_store),
) -> TicketResponse:
    fields = {name: getattr(payload, name) for name in payload.model_fields_set}
    try:
        ticket = store.update(ticket_id, fields)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Ticket not found") from exc
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return TicketResponse(ticket=ticket, message="Ticket updated successfully")


@router.delete("/{ticket_id}", response_model=TicketDeleteResponse)
def delete_ticket(ticket_id: str, store: TicketStore = Depends(get_ticket_store)) -> TicketDeleteResponse:
    if not store.delete(ticket_id):
        raise HTTPException(status_code=404, detail="Ticket not found")
    return TicketDeleteResponse(message="Ticket deleted successfully")


@router.post("/{ticket_id}/sync", response_model=TicketResponse)
def sync_transcript(
    ticket_id: str,
    payload: TranscriptSyncRequest,
    orchestrator: EscalationOrchestrator = Depends(get_orchestrator),
) -> TicketResponse:
    try:
        ticket = orchestrator.sync_transcript(
            ticket_id=ticket_id,
            transcript=payload.chat_history,
            session_id=payload.session_id,
            user_id=payload.user_id,
            attempts=payload.attempts,
            reason=payload.reason,
        )
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return TicketResponse(ticket=ticket, message="Chat history synced successfully")
