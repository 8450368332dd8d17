"""
FastAPI application entry point.
"""
import traceback
from contextlib import asynccontextmanager
from typing import Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from blackgpt.api.routes import audit, health, signals, users
from blackgpt.api.schemas import ErrorBody, ErrorResponse
from blackgpt.core.correlation_aggregator import CorrelationAggregator
from blackgpt.core.exceptions import BlackGPTError, CorrelationError
from blackgpt.core.provenance_validator import ProvenanceValidator
from blackgpt.core.summarizer import Summarizer, build_summarizer
from blackgpt.data.base_connector import BaseConnector
from blackgpt.data.registry import build_connectors
from blackgpt.models.base import init_db
from blackgpt.utils.logging import configure_logging, get_logger
from config.settings import Settings, get_settings

logger = get_logger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    404: {"model": ErrorResponse, "description": "Signal not found"},
    409: {"model": ErrorResponse, "description": "Conflict or invalid transition"},
    502: {"model": ErrorResponse, "description": "Correlation failed"},
    503: {"model": ErrorResponse, "description": "Store unavailable"},
}

def _error_response(status_code: int, category: str, message: str, **extra) -> JSONResponse:
    body = ErrorResponse(error=ErrorBody(category=category, message=message, **extra))
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True, exclude_none=True))

def _describe_validation_error(exc: RequestValidationError) -> str:
    reasons = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        reasons.append(f"{location}: {err.get('msg')}" if location else err.get("msg", "invalid input"))
    return "; ".join(reasons) or "Invalid request"

def register_exception_handlers(app: FastAPI, settings: Settings):
    @app.exception_handler(BlackGPTError)
    async def handle_blackgpt_error(request: Request, exc: BlackGPTError):
        job_id = exc.job_id if isinstance(exc, CorrelationError) else None
        return _error_response(exc.status_code, exc.category, exc.message, job_id=job_id)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return _error_response(400, "validation_error", _describe_validation_error(exc))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.error("Unhandled error", path=request.url.path, error=str(exc), exc_info=exc)
        if settings.is_development:
            return _error_response(
                500, "internal_error", str(exc) or exc.__class__.__name__,
                traceback=traceback.format_exception(type(exc), exc, exc.__traceback__)
            )
        return _error_response(500, "internal_error", "Internal server error")

def create_app(settings: Optional[Settings] = None,
               connectors: Optional[Sequence[BaseConnector]] = None,
               summarizer: Optional[Summarizer] = None) -> FastAPI:
    """
    Build the API. Connectors and summarizer default to the configured ones;
    tests pass their own.
    """
    settings = settings or get_settings()
    configure_logging(settings.ENV, settings.LOG_LEVEL)

    if connectors is None:
        connectors = build_connectors(settings)
    if summarizer is None:
        summarizer = build_summarizer(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db()
        logger.info(
            "BLACK GPT API started",
            env=settings.ENV,
            demo_mode=settings.DEMO_MODE,
            connectors=[c.name for c in app.state.aggregator.connectors],
            summarizer=app.state.aggregator.summarizer.__class__.__name__ if app.state.aggregator.summarizer else None
        )
        yield

    app = FastAPI(
        title="BLACK GPT API",
        description="Signal intake, provenance validation and public-source correlation",
        version="1.0.0",
        lifespan=lifespan
    )

    app.state.settings = settings
    app.state.validator = ProvenanceValidator()
    app.state.aggregator = CorrelationAggregator(
        connectors, summarizer, default_timeout=settings.CONNECTOR_TIMEOUT_SECONDS
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app, settings)

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(signals.router, prefix="/signals", tags=["Signals"], responses=ERROR_RESPONSES)
    app.include_router(audit.router, prefix="/audit", tags=["Audit"], responses=ERROR_RESPONSES)
    app.include_router(users.router, prefix="/users", tags=["Users"])

    @app.get("/")
    def root():
        """API info."""
        return {
            "name": "BLACK GPT API",
            "version": app.version,
            "demoMode": settings.DEMO_MODE,
            "endpoints": {
                "signals": "/signals",
                "audit": "/audit/{signalId}",
                "users": "/users/me",
                "health": "/health",
                "metrics": "/metrics",
            },
        }

    return app

app = create_app()
