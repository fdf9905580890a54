"""
Main FastAPI application (entrypoint).

Responsibilities:
- Wire API routers (public booking + admin)
- Register centralized exception handlers
- Provide middleware: request-id logging, CORS
- Add health / readiness endpoints
- Build the BookingContainer on startup and close it on shutdown
Notes:
- Tables are created on startup only for the SQL store in development; use Alembic in production.
- Tests pass a ready container to create_app(); startup then leaves it alone.
"""
import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import routes_admin, routes_user
from config.settings import settings
from core.container import BookingContainer
from core.exception_handlers import register_exception_handlers
from core.logging import configure_logging, request_logging_middleware
from core.response import error, ok
from stores.sql import SqlBookingStore

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def create_app(container: Optional[BookingContainer] = None) -> FastAPI:
    app = FastAPI(title=settings.API_TITLE, version=settings.API_VERSION)
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(routes_user.router, prefix="", tags=["booking"])
    app.include_router(routes_admin.router, prefix="/admin", tags=["admin"])

    register_exception_handlers(app)

    # Adds X-Request-ID header and logs every request
    app.middleware("http")(request_logging_middleware)

    @app.get("/health")
    async def health():
        """Simple health endpoint used by load balancers and orchestrators."""
        return ok({"status": "ok"})

    @app.get("/ready")
    async def ready(request: Request):
        """Readiness: the booking store answers."""
        current = request.app.state.container
        try:
            if current is None:
                raise RuntimeError("container not initialised")
            await current.store.ping()
            return ok({"ready": True})
        except Exception as e:
            logger.warning("Readiness check failed: %s", e)
            return JSONResponse(status_code=503, content=error("store_unreachable", "Booking store unavailable"))

    @app.on_event("startup")
    async def on_startup():
        if app.state.container is not None:
            return
        app.state.container = BookingContainer.build(settings)
        store = app.state.container.store
        if isinstance(store, SqlBookingStore) and settings.DEBUG:
            try:
                await store.database.create_all()
            except Exception as e:
                # Missing DB during local dev is not fatal; /ready reports it
                logger.warning("DB initialization failed on startup (ok for local dev): %s", e)
        logger.info("Booking API started (store=%s, queue=%s)", type(store).__name__, settings.USE_QUEUE)

    @app.on_event("shutdown")
    async def on_shutdown():
        if app.state.container is not None:
            await app.state.container.close()

    return app


app = create_app()

if __name__ == "__main__":
    # Run with: python main.py for local dev. For production use uvicorn/gunicorn with workers.
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
