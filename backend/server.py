from fastapi import FastAPI, APIRouter, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware
import time
import uuid
from pathlib import Path
from contextlib import asynccontextmanager
from datetime import datetime, timezone

# Load environment variables first
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Import configuration
from config import get_settings, get_cors_config, validate_environment

# Import logging and error tracking
from logging_config import setup_logging, get_logger, set_request_context, clear_request_context, get_request_id
from sentry_integration import init_sentry, capture_exception

from middleware.internal_auth import is_internal_auth_configured
from reconciliation.errors import InvalidInputError, MatchingEngineError, summarize_validation_errors
from reconciliation.endpoints.reconciliation_api import router as reconciliation_router
from utils.api_errors import ErrorCode, error_code_for_status, error_response

# Get settings
settings = get_settings()

# Configure structured logging
# Use JSON format in production, plain text in development
setup_logging(
    level=settings.LOG_LEVEL,
    json_format=settings.is_production,
    service_name="reconciliation"
)
logger = get_logger(__name__)

# Initialize Sentry error tracking
if settings.SENTRY_DSN:
    init_sentry(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        release=settings.API_VERSION,
        traces_sample_rate=0.1 if settings.is_production else 0.0,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    logger.info("=" * 60)
    logger.info("Starting Reconciliation Matching API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug Mode: {settings.debug_enabled}")
    logger.info("=" * 60)

    # Validate environment
    env_status = validate_environment()
    if not env_status["valid"]:
        for error in env_status["errors"]:
            logger.error(f"Configuration Error: {error}")
        if settings.is_production:
            raise RuntimeError("Cannot start in production with invalid configuration")

    for warning in env_status.get("warnings", []):
        logger.warning(f"Configuration Warning: {warning}")

    logger.info("Reconciliation Matching API started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Reconciliation Matching API...")


# Create the main app
app = FastAPI(
    title=settings.API_TITLE,
    description="""
    Matches bank-statement transactions against book (ledger) transactions.

    ## Features

    ### Reconciliation (/api/reconciliation)
    - Exact matches on amount and reference
    - Amount and date matches within a configurable window
    - Fuzzy description matches with an optional amount tolerance
    - User-defined matching rules
    - One-to-one assignment by descending confidence
    - Reasons, confidence levels and insights for every run

    ### Health (/api, /api/health/live)
    - Liveness and configuration checks
    """,
    version=settings.API_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug_enabled else None,
    redoc_url="/api/redoc" if settings.debug_enabled else None,
)

# Create a router with the /api prefix
api_router = APIRouter(prefix="/api")


# ==================== HEALTH CHECK ENDPOINTS ====================

@api_router.get("/", tags=["Health"])
async def root():
    """Basic health check - returns 200 if service is running"""
    return {
        "message": "Reconciliation Matching API",
        "status": "healthy",
        "version": settings.API_VERSION,
        "environment": settings.ENVIRONMENT,
    }


@api_router.get("/health", tags=["Health"])
async def health_check():
    """
    Detailed health check for load balancers and uptime monitors.

    Returns:
    - 200: Service can authenticate callers and run matches
    - 503: Internal authentication is not configured
    """
    env_status = validate_environment()
    auth_configured = is_internal_auth_configured()

    health_status = {
        "status": "healthy" if auth_configured else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.API_VERSION,
        "environment": settings.ENVIRONMENT,
        "checks": {
            "internal_auth": {"status": "configured" if auth_configured else "not_configured"},
            "configuration": {
                "status": "valid" if env_status["valid"] else "invalid",
                "warnings": len(env_status.get("warnings", [])),
                "errors": len(env_status.get("errors", [])),
            },
        },
    }

    if not auth_configured:
        raise HTTPException(status_code=503, detail="Internal authentication not configured")

    return health_status


@api_router.get("/health/live", tags=["Health"])
async def liveness_check():
    """
    Kubernetes liveness probe.
    Returns 200 if the process is running (doesn't check dependencies).
    """
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}


@api_router.get("/config/status", tags=["Health"])
async def config_status():
    """
    Configuration status check (non-sensitive).
    Useful for debugging deployment issues.
    """
    env_status = validate_environment()

    return {
        "environment": settings.ENVIRONMENT,
        "debug": settings.debug_enabled,
        "cors_origins_count": len(settings.cors_origins_list),
        "configuration_valid": env_status["valid"],
        "warnings": env_status.get("warnings", []),
        "variables": env_status.get("variables", {}),
        # Don't expose actual errors in production
        "errors": env_status.get("errors", []) if not settings.is_production else ["Hidden in production"]
    }


# Include all routers
api_router.include_router(reconciliation_router)

# Include the main router in the app
app.include_router(api_router)

# ==================== MIDDLEWARE ====================

# CORS middleware with production-safe configuration
cors_config = get_cors_config()
app.add_middleware(
    CORSMiddleware,
    **cors_config
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Tag each request with an ID and log it with timing information"""
    start_time = time.time()

    request_id = request.headers.get("X-Request-ID") or f"req-{uuid.uuid4().hex[:16]}"
    set_request_context(request_id=request_id, service_name=request.headers.get("X-Service-Name"))

    if settings.debug_enabled:
        logger.debug(f"[{request_id}] {request.method} {request.url.path}")

    try:
        response = await call_next(request)

        # Calculate processing time
        process_time = time.time() - start_time

        # Add headers
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))

        # Log response
        if settings.debug_enabled or response.status_code >= 400:
            logger.info(f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} ({process_time:.3f}s)")

        return response
    except Exception as e:
        logger.error(f"[{request_id}] Request failed: {str(e)}")
        raise
    finally:
        clear_request_context()


# ==================== EXCEPTION HANDLERS ====================

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Wrap HTTP errors (auth, limits, unknown routes) in the error envelope"""
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(error_code_for_status(exc.status_code), message),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are a client error, reported as 400"""
    return JSONResponse(
        status_code=400,
        content=error_response(
            ErrorCode.BAD_REQUEST,
            "Invalid request body",
            {"errors": summarize_validation_errors(list(exc.errors()))}
        ),
    )


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    logger.info(f"Rejected reconciliation input: {exc.message}")
    return JSONResponse(
        status_code=400,
        content=error_response(ErrorCode.BAD_REQUEST, exc.message, exc.details),
    )


@app.exception_handler(MatchingEngineError)
async def matching_engine_error_handler(request: Request, exc: MatchingEngineError):
    logger.error(f"Matching engine error: {exc.message}", exc_info=exc)
    capture_exception(exc, request_id=get_request_id(), **exc.details)
    return JSONResponse(
        status_code=500,
        content=error_response(ErrorCode.INTERNAL_SERVER_ERROR, exc.message, exc.details),
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=exc)
    capture_exception(exc, request_id=get_request_id())

    # Don't expose internal errors in production
    message = "Internal server error" if settings.is_production else f"{type(exc).__name__}: {exc}"
    return JSONResponse(
        status_code=500,
        content=error_response(ErrorCode.INTERNAL_SERVER_ERROR, message),
    )
