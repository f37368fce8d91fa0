"""FastAPI application for the todo REST backend."""

import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from .auth import get_auth_service
from .database import get_db
from .routes import auth_router, todos_router
from .schemas import failure
from .settings import get_settings


logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Opens the database and drops expired Apple login states on startup.
    """
    logger.info("Starting todo-sync API")

    db = get_db()
    logger.info(f"Database initialized at {db.db_path}")

    cleaned = get_auth_service().cleanup_expired_states()
    if cleaned > 0:
        logger.info(f"Cleaned up {cleaned} expired login states")

    yield

    logger.info("Shutting down todo-sync API")


def health_payload() -> dict:
    return {
        "status": "healthy",
        "service": "todo-sync-api",
        "version": __version__,
    }


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="todo-sync API",
        description="Todo REST backend with email and Apple sign-in",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    api = APIRouter(prefix=API_PREFIX)

    @api.get("/health")
    async def api_health():
        return health_payload()

    api.include_router(auth_router)
    api.include_router(todos_router)
    app.include_router(api)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return health_payload()

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=failure(str(exc.detail), error=str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        return JSONResponse(status_code=422, content=failure("Validation failed", error=errors))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content=failure("Internal server error"))

    return app


app = create_app()


def run(host: str = "127.0.0.1", port: int = 8080, reload: bool = False) -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    configure_logging(get_settings().log_level)
    uvicorn.run(
        "todo_sync.server.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=get_settings().log_level.lower(),
    )


if __name__ == "__main__":
    settings = get_settings()
    run(settings.host, settings.port)
