import pytest
from fastapi.testclient import TestClient

from signage.config import Settings
from signage.db import ensure_schema, make_engine, make_session_factory
from signage.main import create_app
from signage.services.manifest_store import ManifestStore
from signage.services.realtime import LiveSyncBus
from signage.services.registry import PlayerRegistry
from signage.services.storage import MediaStorage


class RecordingClient:
    """Stands in for a display's websocket."""

    def __init__(self) -> None:
        self.messages: list[str] = []

    async def send_text(self, message: str) -> None:
        self.messages.append(message)


class BrokenClient:
    async def send_text(self, message: str) -> None:
        raise ConnectionResetError("display went away")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_dir=str(tmp_path / "data"),
        upload_dir=str(tmp_path / "uploads"),
        database_url=f"sqlite:///{tmp_path / 'players.db'}",
        max_image_bytes=1024,
        max_video_bytes=4096,
    )


@pytest.fixture
def registry(settings):
    engine = make_engine(settings.database_url)
    ensure_schema(engine)
    yield PlayerRegistry(make_session_factory(engine))
    engine.dispose()


@pytest.fixture
def storage(settings):
    media_storage = MediaStorage(settings.upload_dir, settings.max_image_bytes, settings.max_video_bytes)
    media_storage.ensure()
    return media_storage


@pytest.fixture
def bus():
    return LiveSyncBus("mediaUpdate")


@pytest.fixture
def store(settings, storage, registry, bus):
    manifest_store = ManifestStore(settings.data_dir, storage, registry, bus)
    manifest_store.ensure()
    return manifest_store


@pytest.fixture
def app(settings):
    application = create_app(settings)
    yield application
    application.state.engine.dispose()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def display():
    return RecordingClient()


@pytest.fixture
def broken_display():
    return BrokenClient()
