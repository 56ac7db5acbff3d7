from fastapi import APIRouter, Depends

from escalation_desk.api.deps import get_ticket_store, get_tracker
from escalation_desk.core.config import get_settings
from escalation_desk.schemas.common import HealthResponse, MetricsResponse
from escalation_desk.services.attempt_tracker import SessionAttemptTracker
from escalation_desk.services.ticket_store import TicketStore

router = APIRouter(prefix="/v1", tags=["health"])


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    settings = get_settings()
    return HealthResponse(
        status="ok",
        app_env=settings.app_env,
        ticket_store_backend=settings.ticket_store_backend,
        call_provider=settings.call_provider,
    )


@router.get("/metrics", response_model=MetricsResponse)
def metrics(
    store: TicketStore = Depends(get_ticket_store),
    tracker: SessionAttemptTracker = Depends(get_tracker),
) -> MetricsResponse:
    by_status = store.count_by_status()
    return MetricsResponse(
        tracked_sessions=tracker.tracked_sessions(),
        tickets_total=sum(by_status.values()),
        tickets_open=by_status["open"],
        tickets_in_progress=by_status["in_progress"],
        tickets_resolved=by_status["resolved"],
    )
