"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from encore import __version__
from encore.api.finance import router as finance_router
from encore.config import settings
from encore.database import engine
from encore.errors import AppError, InternalError, ValidationError, error_response
from encore.logging import setup_server_logging
from encore.models import Base

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and make sure the schema exists."""
    setup_server_logging()
    Base.metadata.create_all(bind=engine)
    logger.info("Encore finance API %s started", __version__)
    yield
    logger.info("Encore finance API stopped")


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.http_status, content=error_response(exc))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = ", ".join(".".join(str(p) for p in err["loc"][1:]) for err in exc.errors())
    error = ValidationError(f"Invalid request: {fields}" if fields else "Invalid request")
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, error.message)
    return JSONResponse(status_code=error.http_status, content=error_response(error))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    error = InternalError()
    return JSONResponse(status_code=error.http_status, content=error_response(error))


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(
        title=settings.api_title,
        description="Financial transactions, status cascades and anomaly detection",
        version=settings.api_version,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(finance_router)

    @app.get("/health")
    def health_check() -> dict:
        """Health check endpoint for monitoring."""
        return {"status": "ok"}

    return app


app = create_app()


def main():
    """Run the API server with uvicorn."""
    import argparse

    parser = argparse.ArgumentParser(description="Encore finance API")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args = parser.parse_args()

    uvicorn.run("encore.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
