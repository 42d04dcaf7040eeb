"""
main.py — FastAPI Application Factory
=====================================
AI Story Chain: multiplayer collaborative storytelling backend.

Builds the app and wires the room registry, broadcast hub and content
provider into one RoomService shared by the REST routes and the websocket
gateway. Tests call `create_app(settings, content_provider)` to swap in their
own configuration and a stub provider.

Usage:
    # Development mode (hot-reload)
    uvicorn storychain.main:app --reload

    # Or directly
    python -m storychain.main
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from storychain.apps.rooms.registry import RoomRegistry
from storychain.apps.rooms.router import router as rooms_router
from storychain.apps.rooms.service import RoomService
from storychain.apps.ws.router import router as ws_router
from storychain.apps.ws.service import BroadcastHub
from storychain.core.config import Settings, get_settings
from storychain.core.errors import register_error_handlers
from storychain.services.content_provider import ContentProvider, GeminiContentProvider

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ═══════════════════════════════════════════════════
    # STARTUP
    # ═══════════════════════════════════════════════════
    settings: Settings = app.state.settings
    logger.info(f"🚀 Starting {settings.APP_NAME} v{settings.VERSION}")
    logger.info(f"📍 Environment: {settings.ENV}")
    if settings.GEMINI_API_KEY:
        logger.info("✅ GEMINI_API_KEY configured")
    else:
        logger.warning("⚠️  GEMINI_API_KEY not set - generated content will use fallback text")

    yield

    # ═══════════════════════════════════════════════════
    # SHUTDOWN
    # ═══════════════════════════════════════════════════
    await app.state.room_service.shutdown()
    logger.info("👋 Shutting down gracefully...")


def create_app(settings: Settings | None = None, content_provider: ContentProvider | None = None) -> FastAPI:
    """
    FastAPI application factory.

    Args:
        settings: defaults to `get_settings()`
        content_provider: defaults to a GeminiContentProvider built from settings

    Returns:
        FastAPI: configured instance; `app.state` carries settings, registry,
        hub and room_service
    """
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        description="Turn-based collaborative storytelling with automated plot twists",
        debug=settings.DEBUG,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    # ═══════════════════════════════════════════════════
    # Shared state
    # ═══════════════════════════════════════════════════
    registry = RoomRegistry(code_length=settings.ROOM_CODE_LENGTH)
    hub = BroadcastHub(send_timeout=settings.BROADCAST_SEND_TIMEOUT)
    provider = content_provider or GeminiContentProvider(settings)

    app.state.settings = settings
    app.state.registry = registry
    app.state.hub = hub
    app.state.room_service = RoomService(registry, hub, provider, settings)

    # ═══════════════════════════════════════════════════
    # Middleware
    # ═══════════════════════════════════════════════════
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_CREDENTIALS,
        allow_methods=settings.CORS_METHODS,
        allow_headers=settings.CORS_HEADERS,
    )

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        response.headers["X-Process-Time"] = f"{time.time() - start_time:.4f}s"
        return response

    register_error_handlers(app)

    # ═══════════════════════════════════════════════════
    # System endpoints
    # ═══════════════════════════════════════════════════
    @app.get("/health", tags=["system"])
    def health_check():
        """Liveness plus a few counters for monitoring."""
        return {
            "status": "ok",
            "app": settings.APP_NAME,
            "version": settings.VERSION,
            "environment": settings.ENV,
            "rooms": len(registry),
            "subscriptions": hub.stats(),
        }

    @app.get("/", tags=["system"])
    def root():
        return {
            "message": f"{settings.APP_NAME} API",
            "version": settings.VERSION,
            "docs": "/docs" if settings.DEBUG else "disabled",
            "websocket": "/ws",
        }

    app.include_router(rooms_router)
    app.include_router(ws_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    print("=" * 60)
    print(f"📖 {settings.APP_NAME}")
    print("=" * 60)
    print(f"📡 Starting server at http://{settings.HOST}:{settings.PORT}")
    print(f"🔌 WebSocket: ws://{settings.HOST}:{settings.PORT}/ws")
    print("=" * 60)

    uvicorn.run(
        "storychain.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
