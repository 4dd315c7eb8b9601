"""FastAPI application entry point.

Tournament Ledger API - agent registration, scoring and prize settlement.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request, status

from tournament_ledger import __version__
from tournament_ledger.config import Settings, get_settings
from tournament_ledger.logging_config import configure_logging, get_logger
from tournament_ledger.services.auth import StaticAdminAuthority
from tournament_ledger.services.wallet import WalletService
from tournament_ledger.tournament.api import router as tournament_router
from tournament_ledger.tournament.engine import TournamentLedger
from tournament_ledger.utils.errors import ErrorCode, LedgerError
from tournament_ledger.utils.json_utils import ORJSONResponse
from tournament_ledger.utils.redis_client import close_redis

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the resumed tournament on startup, release Redis on shutdown."""
    logger.info("application_starting", tournament=app.state.ledger.get_state().to_dict())
    yield
    close_redis()
    logger.info("application_stopped")


# LedgerError code -> HTTP status (default 400)
ERROR_STATUS = {
    ErrorCode.AGENT_NOT_FOUND.value: status.HTTP_404_NOT_FOUND,
    ErrorCode.NOT_AUTHORIZED.value: status.HTTP_403_FORBIDDEN,
    ErrorCode.DUPLICATE_AGENT.value: status.HTTP_409_CONFLICT,
    ErrorCode.TRANSFER_FAILED.value: status.HTTP_502_BAD_GATEWAY,
}


def get_request_id(request: Request) -> str:
    """Get request ID from headers."""
    return request.headers.get("X-Request-ID", str(uuid.uuid4()))


def create_error_response(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    trace_id: str | None = None,
) -> dict[str, Any]:
    """Create standardized error response."""
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        },
        "traceId": trace_id,
    }


async def ledger_error_handler(request: Request, exc: LedgerError) -> ORJSONResponse:
    """Handle ledger operation errors."""
    trace_id = get_request_id(request)
    status_code = ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST)

    logger.warning("ledger_error", code=exc.code, message=exc.message, trace_id=trace_id)

    return ORJSONResponse(
        status_code=status_code,
        content=create_error_response(
            code=exc.code,
            message=exc.message,
            details=exc.details,
            trace_id=trace_id,
        ),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> ORJSONResponse:
    """Handle HTTP exceptions."""
    trace_id = get_request_id(request)

    return ORJSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            code="HTTP_ERROR",
            message=str(exc.detail),
            trace_id=trace_id,
        ),
        headers=getattr(exc, "headers", None),
    )


def create_app(
    ledger: Optional[TournamentLedger] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Build the application.

    Args:
        ledger: Pre-built ledger (tests); built from settings when omitted
        settings: Settings override; defaults to get_settings()
    """
    settings = settings or get_settings()

    if ledger is None:
        configure_logging(
            log_level=settings.log_level,
            json_logs=settings.app_env == "production",
            app_env=settings.app_env,
        )
        ledger = TournamentLedger.from_settings(
            settings,
            authority=StaticAdminAuthority.from_settings(settings),
            wallet=WalletService(),
        )

    app = FastAPI(
        title="Tournament Ledger API",
        version=__version__,
        description="Agent tournament registration, scoring and prize settlement",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    app.state.ledger = ledger

    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)

    @app.get("/health", tags=["Health"], summary="Health check endpoint")
    async def health_check() -> dict[str, Any]:
        """Application health plus a tournament summary."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
            "tournament": app.state.ledger.get_state().to_dict(),
        }

    app.include_router(tournament_router)

    logger.info("application_created", app_env=settings.app_env)
    return app


# =============================================================================
# Development / Production Server
# =============================================================================


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    # Single worker: the ledger lock is process-local
    uvicorn.run(
        "tournament_ledger.main:create_app",
        factory=True,
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_debug,
        log_level=settings.log_level.lower(),
    )
