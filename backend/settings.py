import os
from pathlib import Path

# Basic settings helper to read environment configuration.

BACKEND_DIR = Path(__file__).resolve().parent


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


def _as_float(val: str | None, default: float) -> float:
    if val is None or val.strip() == "":
        return default
    try:
        return float(val)
    except ValueError:
        return default


def _as_int(val: str | None, default: int) -> int:
    if val is None or val.strip() == "":
        return default
    try:
        return int(val)
    except ValueError:
        return default


class Settings:
    def __init__(self) -> None:
        self.MEDIA_ROOT: str = os.getenv("MEDIA_ROOT", "media")
        self.PUBLIC_MEDIA_BASE_URL: str = os.getenv("PUBLIC_MEDIA_BASE_URL", "/media").rstrip("/")
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", f"sqlite:///{BACKEND_DIR / 'app.db'}")

        # Fonts
        self.FONTS_DIR: str = os.getenv("FONTS_DIR", str(BACKEND_DIR / "data" / "fonts"))
        self.FONT_CACHE_DIR: str = os.getenv("FONT_CACHE_DIR", str(BACKEND_DIR / "data" / "font_cache"))
        self.FONT_READY_TIMEOUT_SEC: float = _as_float(os.getenv("FONT_READY_TIMEOUT_SEC"), 10.0)
        self.FONT_POLL_INTERVAL_SEC: float = _as_float(os.getenv("FONT_POLL_INTERVAL_SEC"), 0.1)
        self.FONT_DOWNLOAD_TIMEOUT: float = _as_float(os.getenv("FONT_DOWNLOAD_TIMEOUT"), 10.0)

        # Editor
        self.HISTORY_LIMIT: int = _as_int(os.getenv("HISTORY_LIMIT"), 50)
        self.EDITOR_IDLE_TIMEOUT_SEC: float = _as_float(os.getenv("EDITOR_IDLE_TIMEOUT_SEC"), 3600.0)
        self.SNAP_GRID_SIZE: float = _as_float(os.getenv("SNAP_GRID_SIZE"), 5.0)

        # Submissions / rendering
        self.WATERMARK_TEXT: str = os.getenv("WATERMARK_TEXT", "cardstudio")
        self.MAX_PHOTO_BYTES: int = _as_int(os.getenv("MAX_PHOTO_BYTES"), 5 * 1024 * 1024)
        self.DEBUG_RENDER: bool = _as_bool(os.getenv("DEBUG_RENDER"), False)


settings = Settings()
