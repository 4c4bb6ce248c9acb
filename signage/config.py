import os
from dataclasses import dataclass, field

DEFAULT_DISPLAY_DURATION_SEC = 15


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


@dataclass
class Settings:
    data_dir: str = "data"
    upload_dir: str = "uploads"
    database_url: str = ""
    api_key: str = ""
    server_port: int = 3000
    event_prefix: str = "mediaUpdate"
    max_image_bytes: int = 15 * 1024 * 1024
    max_video_bytes: int = 250 * 1024 * 1024
    quiet_access_log: bool = True
    quiet_websocket_log: bool = True
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    def __post_init__(self) -> None:
        if not self.database_url:
            self.database_url = f"sqlite:///{os.path.join(self.data_dir, 'players.db')}"

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("SIGNAGE_CORS_ORIGINS", "*")
        return cls(
            data_dir=os.getenv("SIGNAGE_DATA_DIR", "data"),
            upload_dir=os.getenv("SIGNAGE_UPLOAD_DIR", "uploads"),
            database_url=os.getenv("SIGNAGE_DATABASE_URL", "").strip(),
            api_key=os.getenv("SIGNAGE_API_KEY", "").strip(),
            server_port=_env_int("SIGNAGE_SERVER_PORT", 3000),
            event_prefix=os.getenv("SIGNAGE_EVENT_PREFIX", "mediaUpdate").strip() or "mediaUpdate",
            max_image_bytes=_env_int("SIGNAGE_MAX_IMAGE_BYTES", 15 * 1024 * 1024),
            max_video_bytes=_env_int("SIGNAGE_MAX_VIDEO_BYTES", 250 * 1024 * 1024),
            quiet_access_log=_env_flag("SIGNAGE_QUIET_ACCESS_LOG", "1"),
            quiet_websocket_log=_env_flag("SIGNAGE_QUIET_WEBSOCKET_LOG", "1"),
            cors_origins=[item.strip() for item in origins.split(",") if item.strip()] or ["*"],
        )
