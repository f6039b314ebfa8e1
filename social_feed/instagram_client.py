from __future__ import annotations

import logging
from typing import Any

import httpx

from social_feed.config import Settings
from social_feed.errors import FetchError
from social_feed.models import MEDIA_FIELDS, Credential, MediaItem

logger = logging.getLogger("social-feed")

GRAPH_BASE = "https://graph.instagram.com"
FEED_PAGE_SIZE = 12


def request_json(
    method: str,
    url: str,
    *,
    timeout: float,
    transport: httpx.BaseTransport | None = None,
    params: dict[str, Any] | None = None,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Issue one request and return its JSON object body.

    Raises ``httpx.HTTPError`` on transport failure or a non-2xx status and
    ``ValueError`` when the body is not a JSON object.
    """
    with httpx.Client(transport=transport, timeout=timeout) as client:
        response = client.request(method, url, params=params, data=data)
        response.raise_for_status()
        body = response.json()
    if not isinstance(body, dict):
        raise ValueError("response body is not a JSON object")
    return body


def describe_failure(exc: Exception) -> tuple[int | None, str]:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code, exc.response.text[:500]
    return None, str(exc)


def latest_media(items: list[MediaItem], limit: int = FEED_PAGE_SIZE) -> list[MediaItem]:
    return items[:limit]


class InstagramFeedClient:
    def __init__(self, settings: Settings, transport: httpx.BaseTransport | None = None) -> None:
        self._settings = settings
        self._transport = transport

    def media_url(self, user_id: int) -> str:
        return f"{GRAPH_BASE}/{self._settings.media_api_version}/{user_id}/media"

    def fetch_media(self, credential: Credential) -> list[MediaItem]:
        params = {"access_token": credential.access_token, "fields": ",".join(MEDIA_FIELDS)}
        try:
            body = request_json(
                "GET",
                self.media_url(credential.user_id),
                params=params,
                timeout=self._settings.http_timeout,
                transport=self._transport,
            )
            data = body.get("data")
            if not isinstance(data, list):
                raise ValueError("media response has no data list")
            items = [MediaItem.from_dict(entry) for entry in data]
        except (httpx.HTTPError, ValueError) as exc:
            status_code, detail = describe_failure(exc)
            logger.warning(
                "media_fetch_fail username=%s status_code=%s response=%s",
                credential.username,
                status_code,
                detail,
            )
            raise FetchError(f"media listing failed for {credential.username}") from exc
        logger.info("media_fetch_success username=%s count=%s", credential.username, len(items))
        return items
