"""
Main FastAPI application entry point.
Responsibilities: App setup, router registration, error envelopes, startup/shutdown hooks.
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .routes import chat, documents, system
from .db.migrations import run_sql_migrations
from .openai_client import has_openai_key
from .logging_config import logger

# -------------------------------------------------
# App setup
# -------------------------------------------------

app = FastAPI(title="Docs Chat", version="1.0.0")

# Register routers
app.include_router(documents.router)
app.include_router(chat.router)
app.include_router(system.router)


# -------------------------------------------------
# Error envelopes: every failure is {"error": message}
# -------------------------------------------------

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Invalid request", path=request.url.path, errors=exc.errors())
    return JSONResponse({"error": "Invalid request body"}, status_code=400)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", exc_info=exc, path=request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


@app.on_event("startup")
async def startup_event():
    """Initialize the database schema on startup."""
    try:
        logger.info("Running database migrations...")
        run_sql_migrations()
        logger.info("Database migrations completed")
    except Exception as e:
        logger.error("Startup initialization error", exc_info=e)
        # Continue anyway - /api/health reports the database state

    if not has_openai_key():
        logger.warning("OPENAI_API_KEY is not set, running in demo mode")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Application shutting down")
