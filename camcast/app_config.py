from pydantic import BaseModel

from camcast.shared.config import config


class AppEnvironConfig(BaseModel):
    # When enabled, broadcast records live in process memory instead of MongoDB.
    DEMO_MODE: bool = config.get_bool("DEMO_MODE", True)

    API_HOST: str = config.get("API_HOST", "127.0.0.1").strip()
    API_PORT: int = config.get_int("API_PORT", 8000)
    API_WORKERS: int = config.get_int("API_WORKERS", 1)
    API_CORS_ORIGINS: list[str] = [
        origin.strip() for origin in config.get("API_CORS_ORIGINS", "*").split(",") if origin.strip()
    ]
    DEBUG: bool = config.get_bool("DEBUG", False)
    LOG_LEVEL: str = config.get("LOG_LEVEL", "INFO").strip()

    LOGFIRE_ENABLE: bool = config.get_bool("LOGFIRE_ENABLE", False)
    LOGFIRE_TOKEN: str | None = (config.get("LOGFIRE_TOKEN") or "").strip() or None

    # MongoDB store
    CAMCAST_MONGO_LABEL: str = config.get("CAMCAST_MONGO_LABEL", "camcast").strip()
    CAMCAST_DATABASE: str = config.get("CAMCAST_DATABASE", "camcast").strip()

    # Capture device
    CAMERA_PROBE_MAX_INDEX: int = config.get_int("CAMERA_PROBE_MAX_INDEX", 4)

    # Thumbnail pipeline
    THUMBNAIL_JPEG_QUALITY: int = config.get_int("THUMBNAIL_JPEG_QUALITY", 70)
    THUMBNAIL_MAX_WIDTH: int = config.get_int("THUMBNAIL_MAX_WIDTH", 320)
    THUMBNAIL_MAX_HEIGHT: int = config.get_int("THUMBNAIL_MAX_HEIGHT", 180)
    THUMBNAIL_MAX_BYTES: int = config.get_int("THUMBNAIL_MAX_BYTES", 65536)
    THUMBNAIL_FRAME_WAIT_SECONDS: float = config.get_float("THUMBNAIL_FRAME_WAIT_SECONDS", 2.0)

    # Live mirror
    MIRROR_RESUBSCRIBE_DELAY_SECONDS: float = config.get_float(
        "MIRROR_RESUBSCRIBE_DELAY_SECONDS", 1.0
    )


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
