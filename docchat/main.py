# docchat/main.py
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import os
import time
import uuid

from docchat.api.routes import router
from docchat.errors import DocChatError
from docchat.observability.logger import setup_logging, get_logger
from docchat.observability.metrics import metrics_tracker
from docchat.observability.posthog_client import posthog_client

# Initialize logging FIRST
setup_logging()
logger = get_logger(__name__)

VERSION = "1.0.0"

# Initialize FastAPI app
app = FastAPI(
    title="Document Chat API",
    description="Hybrid keyword + semantic retrieval chat over system and user documents",
    version=VERSION,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every HTTP request with latency and record request metrics.
    """

    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    logger.info(
        "request_started",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None
        }
    )

    start_time = time.time()

    try:

        response = await call_next(request)

    except Exception as e:

        latency = time.time() - start_time

        metrics_tracker.record_failure()

        logger.error(
            "request_failed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "latency_seconds": round(latency, 3),
                "error": str(e),
                "error_type": type(e).__name__
            },
            exc_info=True
        )

        raise

    latency = time.time() - start_time

    if response.status_code >= 500:
        metrics_tracker.record_failure()
    else:
        metrics_tracker.record_success(latency)

    response.headers["X-Request-ID"] = request_id

    logger.info(
        "request_completed",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "latency_seconds": round(latency, 3)
        }
    )

    return response


# Include API routes
app.include_router(router)


@app.on_event("startup")
async def startup_event():

    logger.info("application_startup", extra={"version": VERSION})

    if not os.getenv("OPENAI_API_KEY"):

        logger.warning(
            "missing_api_key",
            extra={
                "warning_detail":
                "OPENAI_API_KEY not set. Embedding and chat calls will fail."
            }
        )


@app.on_event("shutdown")
async def shutdown_event():

    posthog_client.shutdown()

    logger.info("application_shutdown")


@app.exception_handler(DocChatError)
async def docchat_exception_handler(request: Request, exc: DocChatError):

    request_id = getattr(request.state, "request_id", "unknown")

    log = logger.error if exc.status_code >= 500 else logger.warning

    log(
        "request_rejected",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "status_code": exc.status_code,
            "error": str(exc),
            "error_type": type(exc).__name__
        },
        exc_info=exc.status_code >= 500
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.public_message,
            "request_id": request_id,
            "error_type": type(exc).__name__
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):

    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "unhandled_exception",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "error": str(exc),
            "error_type": type(exc).__name__
        },
        exc_info=True
    )

    posthog_client.track_error(
        distinct_id=request_id,
        error_type=type(exc).__name__,
        error_message=str(exc),
        endpoint=request.url.path,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "An internal error occurred. Please try again.",
            "request_id": request_id,
            "error_type": type(exc).__name__
        }
    )


@app.get("/")
async def root():

    return {
        "message": "Document Chat API",
        "version": VERSION,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics"
    }
