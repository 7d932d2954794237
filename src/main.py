"""
Credential Service

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.deps import get_request_id
from src.api.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware
from src.api.v1 import router as api_v1_router
from src.config import get_settings
from src.database import close_db, init_db
from src.kernel.errors import APIError, Unauthenticated
from src.logging_config import configure_logging, get_logger
from src.schemas.common import HealthResponse

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Configure logging, create tables on startup and release the pool on shutdown."""
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info(
        "Starting %s v%s (tokens %s, revoke on password change: %s)",
        settings.project_name,
        settings.version,
        settings.algorithm,
        settings.revoke_tokens_on_password_change,
    )
    await init_db()

    yield

    await close_db()
    logger.info("%s stopped", settings.project_name)


app = FastAPI(
    title=settings.project_name,
    description="""
    Credential Service

    Password signup and login, email ownership verification and password
    reset, gated by signed bearer tokens.

    ## Token purposes

    - **access**: sent as `Authorization: Bearer <token>` on gated endpoints
    - **email_verify**: redeemed once at `GET /auth/verify?token=`
    - **password_reset**: redeemed at `POST /auth/reset-password`
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# add_middleware stacks innermost-first: CORS added last wraps everything
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_headers(request: Request) -> dict:
    headers = {}
    req_id = get_request_id(request)
    if req_id:
        headers[REQUEST_ID_HEADER] = req_id
    return headers


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    """Render service errors as {"detail", "code"} with their HTTP status."""
    headers = _error_headers(request)
    if isinstance(exc, Unauthenticated):
        headers["WWW-Authenticate"] = "Bearer"
    content = {"detail": exc.message, "code": exc.code}
    req_id = get_request_id(request)
    if req_id and exc.status_code >= 500:
        content["request_id"] = req_id
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
):
    """Report invalid fields by name only; submitted values (passwords, tokens) are not echoed."""
    errors = [
        {"field": ".".join(str(loc) for loc in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    content = {"detail": "Validation error", "code": "VALIDATION_ERROR", "errors": errors}
    req_id = get_request_id(request)
    if req_id:
        content["request_id"] = req_id
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=content,
        headers=_error_headers(request),
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
):
    """Handle unexpected exceptions; the process keeps serving."""
    logger.exception("Unhandled exception: %s", type(exc).__name__)
    content = {
        "detail": "Internal server error",
        "code": "INTERNAL_ERROR",
        "request_id": get_request_id(request),
    }
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
        headers=_error_headers(request),
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Check application health."""
    return HealthResponse(status="ok", version=settings.version)


app.include_router(
    api_v1_router,
    prefix=settings.api_v1_prefix,
)


# Main entry point for development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
