from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

MEDIA_FIELDS = ("id", "media_url", "timestamp", "thumbnail_url", "caption", "permalink")


@dataclass(frozen=True)
class Credential:
    access_token: str
    username: str
    user_id: int

    def to_dict(self) -> dict[str, Any]:
        return {"access_token": self.access_token, "username": self.username, "user_id": self.user_id}

    @classmethod
    def from_dict(cls, data: Any) -> "Credential":
        if not isinstance(data, dict):
            raise ValueError("credential record must be an object")
        access_token = data.get("access_token")
        username = data.get("username")
        user_id = data.get("user_id")
        if not isinstance(access_token, str) or not isinstance(username, str):
            raise ValueError("credential record is missing access_token or username")
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            raise ValueError("credential record has a non-integer user_id")
        return cls(access_token=access_token, username=username, user_id=user_id)

    def __repr__(self) -> str:
        return f"Credential(username={self.username!r}, user_id={self.user_id!r})"


@dataclass(frozen=True)
class MediaItem:
    id: str
    media_url: str = ""
    timestamp: str = ""
    thumbnail_url: str = ""
    caption: str = ""
    permalink: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "MediaItem":
        if not isinstance(data, dict):
            raise ValueError("media item must be an object")
        media_id = data.get("id")
        if media_id is None:
            raise ValueError("media item is missing id")
        values: dict[str, str] = {}
        for name in MEDIA_FIELDS[1:]:
            value = data.get(name)
            values[name] = "" if value is None else str(value)
        return cls(id=str(media_id), **values)

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


class Base(DeclarativeBase):
    pass


class CredentialRecord(Base):
    __tablename__ = "credentials"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
