"""
Exam Preview Service - FastAPI Application Entry Point.

This is the main application module that:
1. Initializes the FastAPI app with CORS middleware
2. Sets up structured JSON logging
3. Implements request ID middleware (X-Request-ID header)
4. Renders workflow errors (PreviewError) as JSON responses
5. Registers all API route handlers
6. Provides health check endpoint

The application follows a modular architecture:
- routes/: API endpoint handlers
- models/: SQLAlchemy ORM models
- services/: Business logic (store, marking calculator, preview workflow, editor)
- logging_config.py: Structured logging configuration
- database.py: Database connection management
"""

import time
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import DATABASE_URL
from app.errors import InvalidArgument, PreviewError
from app.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from app.routes import exam_preview
from app.database import create_tables

# ──────────────────────────────────────────────────────────────
# Initialize structured logging BEFORE anything else
# ──────────────────────────────────────────────────────────────
setup_logging()
logger = get_logger("http")

# Auto-create tables for SQLite local development
if DATABASE_URL.startswith("sqlite"):
    logger.info("Using SQLite, creating tables directly")
    create_tables()

# ──────────────────────────────────────────────────────────────
# Create FastAPI application
# ──────────────────────────────────────────────────────────────
app = FastAPI(
    title="Exam Preview Service",
    description=(
        "Preview, marking-scheme review and finalization of multiple-choice exams. "
        "Finalized exams are locked and submitted for approval."
    ),
    version="1.0.0",
    docs_url="/docs",        # Swagger UI at /docs
    redoc_url="/redoc"       # ReDoc at /redoc
)

# ──────────────────────────────────────────────────────────────
# CORS Middleware
#
# Allows the React frontend to call the backend.
# In production, restrict origins to the actual frontend domain.
# ──────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"]
)


# ──────────────────────────────────────────────────────────────
# Request ID Middleware
#
# Generates a unique UUID per incoming request and:
# 1. Stores it in a context variable (available to all log entries)
# 2. Returns it in the X-Request-ID response header
# 3. Logs request start/end with latency measurement
# ──────────────────────────────────────────────────────────────
@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Attach a request ID to the context, the response and the access log."""
    req_id = generate_request_id()
    request_id_var.set(req_id)

    start_time = time.time()

    log_with_context(logger, "INFO",
        f"Request started: {request.method} {request.url.path}",
        context={"request_id": req_id},
        extra_data={
            "ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", ""),
            "query_params": dict(request.query_params)
        })

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    response.headers["X-Request-ID"] = req_id

    log_with_context(logger, "INFO",
        f"Request completed: {request.method} {request.url.path} → {response.status_code}",
        context={"request_id": req_id},
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "status_code": response.status_code
        })

    return response


# ──────────────────────────────────────────────────────────────
# Workflow error handler
#
# NotFound 404, Forbidden 403, InvalidTransition/Locked 409,
# InvalidArgument 400 (also request validation failures),
# StoreUnavailable 503.
# ──────────────────────────────────────────────────────────────
@app.exception_handler(PreviewError)
async def preview_error_handler(request: Request, exc: PreviewError):
    level = "ERROR" if exc.status_code >= 500 else "WARNING"
    log_with_context(logger, level,
        f"{exc.code}: {exc.detail}",
        context={"path": request.url.path},
        extra_data={"status_code": exc.status_code})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "detail": exc.detail})


def _describe_validation_errors(errors) -> str:
    """'body.points: Input should be a valid decimal; ...' from pydantic error dicts."""
    return "; ".join(
        "{}: {}".format(".".join(str(part) for part in err.get("loc", ())), err.get("msg", "invalid"))
        for err in errors
    ) or "Invalid request"


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Render malformed path, query or body input as InvalidArgument."""
    return await preview_error_handler(request, InvalidArgument(_describe_validation_errors(exc.errors())))


# ──────────────────────────────────────────────────────────────
# Register API routes
# ──────────────────────────────────────────────────────────────
app.include_router(exam_preview.router, tags=["Exam Preview"])


# ──────────────────────────────────────────────────────────────
# Health check endpoint
# ──────────────────────────────────────────────────────────────
@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint for Docker health checks and monitoring."""
    return {"status": "healthy", "service": "exam-preview-backend", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": "Exam Preview Service",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "preview": "GET /api/exams/{id}/preview",
            "marking_stats": "GET /api/exams/{id}/marking-stats",
            "start_preview": "POST /api/exams/{id}/preview/start",
            "complete_preview": "POST /api/exams/{id}/preview/complete",
            "finalize": "POST /api/exams/{id}/finalize",
            "update_marking": "PUT /api/exams/{id}/questions/{index}/marking",
            "audit_logs": "GET /api/exams/{id}/audit-logs"
        }
    }
