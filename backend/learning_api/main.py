# Load environment variables FIRST before any other imports
from dotenv import load_dotenv
load_dotenv()

import os
import logging
import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from learning_api.database import init_db
from learning_api.routers import ai, problems
from learning_api.services.generation_errors import (
    GenerationError,
    InputError,
    ModelEndpointError,
    NotFoundError,
    ProblemValidationError,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize Sentry for error monitoring
sentry_dsn = os.getenv("SENTRY_DSN")
if sentry_dsn:
    sentry_sdk.init(
        dsn=sentry_dsn,
        traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
        environment=os.getenv("ENVIRONMENT", "development"),
    )

# Create database tables
init_db()

# OpenAPI tag metadata for organized documentation
tags_metadata = [
    {
        "name": "problems",
        "description": "Multiple-choice problem generation (JSON and streaming) and generation logs.",
    },
    {
        "name": "ai",
        "description": "AI tutor questions and chat, OpenAI status.",
    },
]

app = FastAPI(
    title="Learning API",
    description="""
## Learning API

Generates grade-appropriate multiple-choice problem sets with OpenAI and
keeps an audit log of every generation attempt.

### Features
- **Problem Generation** - Validated problem sets in one call or as server-sent events
- **Generation Logs** - Per-user and global usage statistics
- **AI Tutor** - Single questions and chat with history
    """,
    version="1.0.0",
    openapi_tags=tags_metadata,
)

# CORS middleware for the web frontend
ALLOWED_ORIGINS = [
    "http://localhost:3000",  # Frontend dev server
    "http://localhost:5173",  # Vite dev server
]

# Allow additional origins from environment (for preview deploys)
extra_origins = os.getenv("CORS_ALLOWED_ORIGINS", "")
if extra_origins:
    ALLOWED_ORIGINS.extend([o.strip() for o in extra_origins.split(",") if o.strip()])

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "Accept"],
)


# =============================================================================
# Error handlers
# =============================================================================

ENDPOINT_ERROR_STATUS = {
    "unauthorized": 502,  # Our key was rejected upstream; not the caller's fault
    "rate_limited": 429,
    "timeout": 504,
}


def error_status(error: GenerationError) -> int:
    """HTTP status for a domain error."""
    if isinstance(error, InputError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, ProblemValidationError):
        return 422
    if isinstance(error, ModelEndpointError):
        return ENDPOINT_ERROR_STATUS.get(error.kind, 502)
    return 500


@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError):
    return JSONResponse(
        status_code=error_status(exc),
        content={"success": False, "error": exc.to_dict()},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Malformed bodies and query params share the input_error shape
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg', 'invalid value')}" if location else "Invalid request"
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": InputError(message).to_dict()},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s: %s", request.url.path, exc, exc_info=True)
    sentry_sdk.capture_exception(exc)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {"kind": "internal_error", "message": "Internal server error", "retryable": False},
        },
    )


# Include routers
app.include_router(problems.router)  # Problem generation and logs
app.include_router(ai.router)  # Tutor ask/chat and OpenAI status


@app.get("/")
def root():
    return {
        "message": "Learning API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    return {"status": "healthy"}
