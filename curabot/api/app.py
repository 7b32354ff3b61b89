"""FastAPI application factory for CuraBot.

Creates the app with CORS, the error envelope, and every route module
registered under /api.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from curabot.automation.client import AutomationClient
from curabot.billing.payments import PaymentsService
from curabot.config import Settings, get_settings
from curabot.errors import CurabotError
from curabot.patients.voice import VoiceAgentClient
from curabot.storage.db import close_db, configure_engine, engine_configured

logger = logging.getLogger(__name__)


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "Invalid request: " + "; ".join(parts) if parts else "Invalid request"


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CurabotError)
    async def curabot_error(request: Request, exc: CurabotError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse({"error": _validation_message(exc)}, status_code=400)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse({"error": "Internal server error"}, status_code=500)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    The database engine is configured at startup from ``settings`` unless
    one was configured already (tests do this before building the app).
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not engine_configured():
            configure_engine(settings.general.db_url)
        yield
        await close_db()

    app = FastAPI(
        title="CuraBot API",
        description="Medication reminders and visual automation projects for caregivers",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.general.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.automation_client = AutomationClient(settings.automation)
    app.state.voice_client = VoiceAgentClient(settings.voice)
    app.state.payments = PaymentsService(settings.stripe)
    _register_error_handlers(app)

    from curabot.api.routes.billing import router as billing_router
    from curabot.api.routes.call_logs import router as call_logs_router
    from curabot.api.routes.patients import router as patients_router
    from curabot.api.routes.projects import router as projects_router
    from curabot.api.routes.screenshots import router as screenshots_router
    from curabot.api.routes.userdata import router as userdata_router

    app.include_router(projects_router, prefix="/api")
    app.include_router(patients_router, prefix="/api")
    app.include_router(call_logs_router, prefix="/api")
    app.include_router(billing_router, prefix="/api")
    app.include_router(userdata_router, prefix="/api")
    app.include_router(screenshots_router, prefix="/api")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    logger.info("FastAPI app created with all routes registered")
    return app
