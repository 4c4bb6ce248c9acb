import asyncio
import base64

from signage.config import Settings
from signage.db import ensure_schema, make_engine, make_session_factory
from signage.schemas.media import MediaType
from signage.services.manifest_store import ManifestStore
from signage.services.realtime import LiveSyncBus
from signage.services.registry import PlayerRegistry
from signage.services.storage import MediaStorage

PLACEHOLDER_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR4nGNgYAAAAAMAASsJTYQAAAAASUVORK5CYII="
)


async def seed(settings: Settings | None = None) -> ManifestStore:
    settings = settings or Settings.from_env()
    engine = make_engine(settings.database_url)
    ensure_schema(engine)
    registry = PlayerRegistry(make_session_factory(engine))
    storage = MediaStorage(settings.upload_dir, settings.max_image_bytes, settings.max_video_bytes)
    storage.ensure()
    store = ManifestStore(settings.data_dir, storage, registry, LiveSyncBus(settings.event_prefix))
    store.ensure()

    registry.upsert_player("lobby", "Lobby Display")
    storage.write_file("lobby-placeholder.png", PLACEHOLDER_PNG)
    await store.add_item("lobby", MediaType.image, "lobby-placeholder.png", display_duration=10)
    await store.add_item("lobby", MediaType.url, "https://example.com/status")
    await store.add_item("lobby", MediaType.embedded_report, "sales-report", page_name="Overview", display_duration=30)
    return store


if __name__ == "__main__":
    asyncio.run(seed())
