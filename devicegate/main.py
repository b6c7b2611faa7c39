import logging

from fastapi import FastAPI
from fastapi import Request as FastAPIRequest
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from devicegate.api import api_router
from devicegate.core.config import get_settings
from devicegate.core.errors import InvalidState, NotFound, StoreUnavailable, ValidationError
from devicegate.core.rate_limit import limiter, rate_limit_exceeded_handler

settings = get_settings()

# Module loggers (tracker, unblock workflow) report state transitions at INFO
logging.getLogger("devicegate").setLevel(logging.INFO)

CORS_ALLOW_METHODS = ["GET", "POST", "OPTIONS"]
STORE_RETRY_AFTER_SECONDS = 5

app = FastAPI(
    title="devicegate API",
    description="Device-bound registration and login lockout service",
    version="0.1.0",
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
    openapi_url=None if settings.is_production else "/openapi.json",
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

logger = logging.getLogger(__name__)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: FastAPIRequest, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": exc.message})


@app.exception_handler(InvalidState)
async def invalid_state_handler(request: FastAPIRequest, exc: InvalidState) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": exc.message})


@app.exception_handler(NotFound)
async def not_found_handler(request: FastAPIRequest, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(
    request: FastAPIRequest, exc: StoreUnavailable
) -> JSONResponse:
    logger.error("Device store unavailable on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=503,
        content={"detail": "Service temporarily unavailable. Please try again."},
        headers={"Retry-After": str(STORE_RETRY_AFTER_SECONDS)},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: FastAPIRequest, exc: Exception) -> JSONResponse:
    """Catch unhandled exceptions and return a generic 500 response."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    content = {"detail": "Internal server error"}
    if not settings.is_production:
        content["debug"] = str(exc)
    return JSONResponse(status_code=500, content=content)


# CORS
if settings.cors_origins.strip() == "*":
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    origins = [origin.strip() for origin in settings.cors_origins.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=CORS_ALLOW_METHODS,
        allow_headers=["Authorization", "Content-Type"],
    )

app.include_router(api_router, prefix="/api")


@app.get("/health")
def health_check():
    return {"status": "ok"}
