import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from escalation_desk.api.routes import call_centre, escalation, health, tickets
from escalation_desk.core.config import Settings, get_settings
from escalation_desk.core.logging import configure_logging
from escalation_desk.core.middleware import RequestContextMiddleware
from escalation_desk.db.init_db import init_db, seed_demo_ticket
from escalation_desk.db.session import build_engine, build_session_factory
from escalation_desk.integrations.call_centre import build_call_centre
from escalation_desk.services.attempt_tracker import SessionAttemptTracker
from escalation_desk.services.escalation_service import EscalationOrchestrator
from escalation_desk.services.ticket_store import InMemoryTicketStore, SqlTicketStore, TicketStore

logger = logging.getLogger(__name__)


def _build_ticket_store(app: FastAPI, settings: Settings) -> TicketStore:
    if settings.ticket_store_backend == "database":
        engine = build_engine(settings.database_url)
        init_db(engine)
        app.state.engine = engine
        return SqlTicketStore(build_session_factory(engine))
    app.state.engine = None
    return InMemoryTicketStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        yield
    finally:
        if app.state.engine is not None:
            app.state.engine.dispose()


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)
    settings.validate_production_safety()

    app = FastAPI(title="Escalation Desk API", version="0.1.0", lifespan=lifespan)

    tracker = SessionAttemptTracker(threshold=settings.escalation_threshold)
    ticket_store = _build_ticket_store(app, settings)
    if settings.seed_demo_ticket:
        seed_demo_ticket(ticket_store)

    app.state.tracker = tracker
    app.state.ticket_store = ticket_store
    app.state.orchestrator = EscalationOrchestrator(
        tracker=tracker,
        tickets=ticket_store,
        call_centre=build_call_centre(settings),
        call_centre_number=settings.call_centre_number,
        ticket_id_prefix=settings.ticket_id_prefix,
        default_reason=settings.escalation_reason_default,
    )
    logger.info(
        "Escalation desk configured",
        extra={"ticket_store": settings.ticket_store_backend, "call_provider": settings.call_provider},
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    app.include_router(health.router)
    app.include_router(escalation.router)
    app.include_router(tickets.router)
    app.include_router(call_centre.router)

    @app.get("/", tags=["root"])
    def root() -> dict:
        return {
            "name": "Escalation Desk API",
            "status": "ok",
            "health": "/v1/health",
            "docs": "/docs",
        }

    return app


app = create_app()
