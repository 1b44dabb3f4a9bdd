import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .core.config import Settings, get_settings
from .core.db import Database
from .core.errors import DispatchError, JobAccessDenied, NotFound, PayloadError
from .core.logging import configure_logging
from .api.routes_research import router as research_router
from .api.routes_ingest import router as ingest_router
from .api.routes_content import router as content_router
from .api.routes_usage import router as usage_router

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": message, **extra})


def _cors_origins(settings: Settings) -> list[str]:
    # - In prod, FRONTEND_ORIGIN is required and we never fall back to "*".
    # - In non-prod, "*" unless FRONTEND_ORIGIN narrows it.
    configured = [o.strip() for o in (settings.FRONTEND_ORIGIN or "").split(",") if o.strip()]
    if settings.ENV.lower() == "prod":
        if not configured:
            raise RuntimeError(
                "FRONTEND_ORIGIN must be set in production - refusing to start with wide-open CORS."
            )
        return configured
    if settings.CORS_ALLOW_ALL_ORIGINS or not configured:
        return ["*"]
    return configured


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            where = ".".join(str(p) for p in first.get("loc", ()) if p != "body") or "body"
            message = f"{where}: {first.get('msg')}"
        else:
            message = "invalid request"
        return _error(400, message)

    @app.exception_handler(PayloadError)
    async def payload_error(request: Request, exc: PayloadError):
        return _error(400, str(exc))

    @app.exception_handler(NotFound)
    async def not_found(request: Request, exc: NotFound):
        return _error(404, str(exc))

    @app.exception_handler(JobAccessDenied)
    async def job_access_denied(request: Request, exc: JobAccessDenied):
        # Job ids are guessable; by default a foreign job looks like a missing one
        if request.app.state.settings.HIDE_FOREIGN_JOBS:
            return _error(404, "Job not found")
        return _error(403, "Forbidden")

    @app.exception_handler(DispatchError)
    async def dispatch_error(request: Request, exc: DispatchError):
        return _error(502, exc.detail, jobId=exc.job_id)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception(
            "Unhandled error",
            extra={"step": request.url.path, "status_code": 500},
        )
        return _error(500, "server_error")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = Database(settings.DATABASE_URL)
        if settings.AUTO_CREATE_SCHEMA:
            db.create_all()
        app.state.db = db
        logger.info("Database ready", extra={"step": "startup"})
        try:
            yield
        finally:
            db.dispose()

    app = FastAPI(title="BlogCluster Pro API", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(settings),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        allow_credentials=False,
    )

    _register_exception_handlers(app)

    app.include_router(research_router, prefix=settings.API_PREFIX)
    app.include_router(ingest_router, prefix=settings.API_PREFIX)
    app.include_router(content_router, prefix=settings.API_PREFIX)
    app.include_router(usage_router, prefix=settings.API_PREFIX)

    @app.get(f"{settings.API_PREFIX}/health", tags=["health"])
    def health():
        return {"ok": True, "env": settings.ENV}

    return app


app = create_app()
