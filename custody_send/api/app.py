"""custody-send API - FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from custody_send import __version__
from custody_send.api.routes import router
from custody_send.classify import OutcomeKind, classify
from custody_send.config import get_settings
from custody_send.errors import ConfigurationError, TransferError, ValidationError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    settings = get_settings()
    logger.info(
        "Starting custody-send API | rpc=%s mint=%s",
        settings.solana_rpc_url,
        settings.token_mint_address or "<unset>",
    )
    yield
    # Shutdown
    logger.info("Shutting down custody-send API")


async def _validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": exc.message, "code": OutcomeKind.INVALID_INPUT},
    )


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request body", "code": OutcomeKind.INVALID_INPUT},
    )


async def _configuration_error_handler(
    request: Request, exc: ConfigurationError
) -> JSONResponse:
    logger.error("Configuration error | path=%s error=%s", request.url.path, exc.message)
    setting = exc.details.get("setting", "TOKEN_MINT_ADDRESS")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": exc.message,
            "message": f"Set {setting} to a valid mint address.",
            "code": OutcomeKind.CONFIG_ERROR,
        },
    )


async def _transfer_error_handler(request: Request, exc: TransferError) -> JSONResponse:
    logger.error(
        "Request failed | path=%s kind=%s error=%s",
        request.url.path,
        type(exc).__name__,
        exc.message,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Request failed", "message": exc.message, "code": classify(exc)},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="custody-send API",
        description="Unsigned token transfers and balances for custodial wallets",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_exception_handler(ValidationError, _validation_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(ConfigurationError, _configuration_error_handler)
    app.add_exception_handler(TransferError, _transfer_error_handler)

    # CORS middleware
    settings = get_settings()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {
            "service": "custody-send",
            "version": __version__,
            "status": "ok",
        }

    return app


app = create_app()
