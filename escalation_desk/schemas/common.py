from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    app_env: str
    ticket_store_backend: str
    call_provider: str


class MetricsResponse(BaseModel):
    tracked_sessions: int
    tickets_total: int
    tickets_open: int
    tickets_in_progress: int
    tickets_resolved: int
