import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from signage.api import media, players
from signage.config import Settings
from signage.db import ensure_schema, make_engine, make_session_factory
from signage.services.manifest_store import ManifestStore
from signage.services.realtime import LiveSyncBus
from signage.services.registry import PlayerRegistry
from signage.services.storage import MediaStorage

logger = logging.getLogger(__name__)

PUBLIC_PREFIXES = ("/docs", "/openapi.json", "/redoc", "/uploads", "/healthz", "/ws/")


def _configure_logging(settings: Settings) -> None:
    if settings.quiet_access_log:
        # Keep warning/error lines, suppress normal access noise.
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    if settings.quiet_websocket_log:
        # Displays drop and reconnect all the time; the transport layer logs each one.
        logging.getLogger("websockets").setLevel(logging.CRITICAL)
        logging.getLogger("uvicorn.protocols.websockets").setLevel(logging.CRITICAL)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    _configure_logging(settings)

    engine = make_engine(settings.database_url)
    ensure_schema(engine)
    registry = PlayerRegistry(make_session_factory(engine))
    storage = MediaStorage(settings.upload_dir, settings.max_image_bytes, settings.max_video_bytes)
    storage.ensure()
    bus = LiveSyncBus(settings.event_prefix)
    store = ManifestStore(settings.data_dir, storage, registry, bus)
    store.ensure()

    app = FastAPI(title="signage-manifest")
    app.state.settings = settings
    app.state.engine = engine
    app.state.registry = registry
    app.state.storage = storage
    app.state.bus = bus
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root():
        return {
            "ok": True,
            "service": "signage-manifest",
            "time_utc": datetime.now(timezone.utc).isoformat(),
            "docs": "/docs",
        }

    @app.get("/healthz")
    def healthz():
        return {"ok": True, "server_port": settings.server_port}

    @app.websocket("/ws/players/{player_id}")
    async def ws_player_updates(websocket: WebSocket, player_id: str):
        await websocket.accept()
        await bus.subscribe(player_id, websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            await bus.unsubscribe(player_id, websocket)

    @app.middleware("http")
    async def api_key_middleware(request: Request, call_next):
        if not settings.api_key:
            return await call_next(request)
        path = request.url.path
        if path == "/" or path.startswith(PUBLIC_PREFIXES):
            return await call_next(request)
        if request.headers.get("X-API-Key") != settings.api_key:
            return JSONResponse({"detail": "Unauthorized"}, status_code=401)
        return await call_next(request)

    app.include_router(players.router)
    app.include_router(media.router)

    app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")
    return app


def run() -> None:
    import uvicorn

    settings = Settings.from_env()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.server_port)


if __name__ == "__main__":
    run()
