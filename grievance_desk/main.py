"""Grievance Desk: Main FastAPI Application.

Anonymous grievance reporting for educational institutions. Complaint content
and filer identity live in separate stores, linked only by an encrypted
reference keyed by an unguessable tracking ID.
"""

import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api import api_router, ws_router
from .core import GrievanceError, close_db, get_settings, init_db
from .schemas import error_body

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info(f"Starting {settings.app_name} {settings.app_version} ({settings.environment})")

    # Production schemas are managed by migrations
    if settings.environment != "production":
        await init_db()
    yield
    # Shutdown
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    ## Grievance Desk API

    Anonymous complaint filing, tracking and triage for colleges.

    ### Key Features

    - **Identity Decoupling**: Complaints never store who filed them. A tracking ID is the filer's only handle.
    - **Sealed Identity Store**: The filer link is encrypted in a separate database.
    - **Logged Disclosure**: Only full admins can reveal a filer, with a stated reason, and every attempt is logged.
    - **Anonymous Chat**: Students talk to staff in rooms named after the tracking ID.
    - **Multi-Tenancy**: Every query is scoped to the caller's organization.

    ### Authentication

    All endpoints require a valid JWT token in the `Authorization: Bearer <token>` header.
    The chat socket at `/ws/chat` takes the token as the `token` query parameter.
    """,
    openapi_url=f"{settings.api_prefix}/openapi.json",
    docs_url=f"{settings.api_prefix}/docs",
    redoc_url=f"{settings.api_prefix}/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH", "HEAD"],
    allow_headers=["*"],
    max_age=86400,
)


# =============================================================================
# ERROR ENVELOPES
# =============================================================================


@app.exception_handler(GrievanceError)
async def grievance_error_handler(request: Request, exc: GrievanceError):
    """Domain errors carry their own status. Server-side details stay in the logs."""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
        message = exc.public_message
    else:
        message = exc.message
    return JSONResponse(status_code=exc.status_code, content=error_body(message))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Invalid request", errors),
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc}\n"
        f"{traceback.format_exc()}"
    )
    message = "An unexpected error occurred"
    if settings.debug and settings.environment != "production":
        message = f"{message}: {str(exc)[:200]}"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(message),
    )


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"success": True, "status": "healthy", "version": settings.app_version}


# Include API routes
app.include_router(api_router, prefix=settings.api_prefix)
app.include_router(ws_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "grievance_desk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
