import uuid
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .config import settings
from .db import engine, SessionLocal
from .models import Base
from .logging_setup import setup_logging, log_event, request_id_var
from .routes import scheduled_posts, cron, facebook, facebook_pages, user_settings, generation, media
from .services.scheduler import PostScheduler

import logging
logger = logging.getLogger(__name__)


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    msg = str(first.get("msg") or "Invalid request")
    if msg.startswith("Value error, "):
        return msg[len("Value error, "):]
    loc = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{loc}: {msg}" if loc else msg


def create_app() -> FastAPI:
    setup_logging()

    app = FastAPI(title="SocialDesk")
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")
    app.state.scheduler = PostScheduler(SessionLocal)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        req_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        token = request_id_var.set(req_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers["X-Request-ID"] = req_id
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _validation_message(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"error": str(exc) or "Internal server error"})

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "scheduler": "running" if app.state.scheduler.is_running() else "stopped",
            "now": datetime.now(timezone.utc).isoformat(),
        }

    app.include_router(scheduled_posts.router)
    app.include_router(scheduled_posts.debug_router)
    app.include_router(cron.router)
    app.include_router(facebook.router)
    app.include_router(facebook_pages.router)
    app.include_router(user_settings.router)
    app.include_router(generation.router)
    app.include_router(media.router)

    @app.on_event("startup")
    def on_startup():
        Base.metadata.create_all(bind=engine)
        if settings.scheduler_enabled:
            app.state.scheduler.start()
        log_event("app_started", scheduler_enabled=settings.scheduler_enabled)

    @app.on_event("shutdown")
    def on_shutdown():
        app.state.scheduler.stop()

    return app


app = create_app()
