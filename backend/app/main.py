"""Main FastAPI application for the BrainPal backend."""
from fastapi import FastAPI, Request

from app.api.routes.admin import router as admin_router
from app.api.routes.analysis import router as analysis_router
from app.api.routes.billing import router as billing_router
from app.api.routes.reminders import router as reminders_router
from app.api.routes.task import router as task_router
from app.api.routes.users import router as users_router
from app.api.routes.voice import router as voice_router
from app.core.config import settings
from app.core.errors import register_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import RequestIDMiddleware
from app.observability.client import init_opik
from app.observability.tracing import trace

configure_logging(log_level=settings.log_level)

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(RequestIDMiddleware)
register_exception_handlers(app)
app.include_router(analysis_router)
app.include_router(task_router)
app.include_router(reminders_router)
app.include_router(billing_router)
app.include_router(users_router)
app.include_router(voice_router)
app.include_router(admin_router)


@app.on_event("startup")
async def startup_observability() -> None:
    """Initialize observability backends after the event loop starts."""
    init_opik()


@app.get("/health", tags=["health"], summary="Readiness probe")
async def health_check(request: Request) -> dict[str, str]:
    """Return a simple status payload so automation can probe the API."""
    with trace("http.health_check", metadata={"route": "/health"}, request_id=request.state.request_id):
        return {"status": "ok"}
