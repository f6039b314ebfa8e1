from __future__ import annotations

import os
from dataclasses import dataclass


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    instagram_app_id: str = ""
    instagram_secret: str = ""
    app_url: str = ""
    api_key: str = ""
    redis_url: str | None = None
    db_path: str = "app.db"
    scope: str = "user_profile,user_media"
    graph_api_version: str = "v19.0"
    media_api_version: str = "v11.0"
    http_timeout: float = 20.0

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            instagram_app_id=os.getenv("INSTAGRAM_APP_ID", "").strip(),
            instagram_secret=os.getenv("INSTAGRAM_SECRET", "").strip(),
            app_url=os.getenv("APP_URL", "").strip(),
            api_key=os.getenv("API_KEY", "").strip(),
            redis_url=os.getenv("REDIS_URL", "").strip() or None,
            db_path=os.getenv("DB_PATH", "app.db"),
            scope=os.getenv("INSTAGRAM_SCOPE", "user_profile,user_media").strip() or "user_profile,user_media",
            graph_api_version=os.getenv("GRAPH_API_VERSION", "v19.0").strip() or "v19.0",
            media_api_version=os.getenv("MEDIA_API_VERSION", "v11.0").strip() or "v11.0",
            http_timeout=_float_env("HTTP_TIMEOUT", 20.0),
        )
