"""Instagram OAuth token exchange.

The exchange is three sequential remote calls: the authorization code is traded
for a short-lived token, that token for a long-lived one, and the long-lived
token is then used to look up the account's username. Each call either returns
a parsed result or raises :class:`ExchangeError` naming the failed step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, TypeVar
from urllib.parse import urlencode, urlsplit

import httpx

from social_feed.config import Settings
from social_feed.errors import ConfigError, ExchangeError
from social_feed.instagram_client import GRAPH_BASE, describe_failure, request_json

logger = logging.getLogger("social-feed")

AUTHORIZE_URL = "https://api.instagram.com/oauth/authorize"
SHORT_LIVED_TOKEN_URL = "https://api.instagram.com/oauth/access_token"
LONG_LIVED_TOKEN_URL = f"{GRAPH_BASE}/access_token"
CALLBACK_PATH = "/instagram/auth/callback"

STEP_SHORT_LIVED = "short_lived_token"
STEP_LONG_LIVED = "long_lived_token"
STEP_IDENTITY = "identity"

T = TypeVar("T")


@dataclass(frozen=True)
class ShortLivedToken:
    access_token: str
    user_id: int


@dataclass(frozen=True)
class LongLivedToken:
    access_token: str
    token_type: str
    expires_in: int


@dataclass(frozen=True)
class InstagramUser:
    username: str


def callback_url(app_url: str) -> str:
    parts = urlsplit(app_url.strip())
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        raise ConfigError(f"app url is not an absolute http(s) url: {app_url!r}")
    return f"{app_url.strip().rstrip('/')}{CALLBACK_PATH}"


def _require_str(body: dict[str, Any], name: str) -> str:
    value = body.get(name)
    if not isinstance(value, str) or not value:
        raise ValueError(f"response is missing {name}")
    return value


def _require_int(body: dict[str, Any], name: str) -> int:
    value = body.get(name)
    if isinstance(value, bool):
        raise ValueError(f"response has a non-integer {name}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    raise ValueError(f"response is missing {name}")


class InstagramOAuthClient:
    def __init__(self, settings: Settings, transport: httpx.BaseTransport | None = None) -> None:
        self._settings = settings
        self._transport = transport

    def redirect_uri(self) -> str:
        return callback_url(self._settings.app_url)

    def authorization_url(self) -> str:
        query = urlencode(
            {
                "client_id": self._settings.instagram_app_id,
                "redirect_uri": self.redirect_uri(),
                "scope": self._settings.scope,
                "response_type": "code",
            }
        )
        return f"{AUTHORIZE_URL}?{query}"

    def _call(
        self,
        step: str,
        parse: Callable[[dict[str, Any]], T],
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> T:
        try:
            body = request_json(
                method,
                url,
                params=params,
                data=data,
                timeout=self._settings.http_timeout,
                transport=self._transport,
            )
            result = parse(body)
        except (httpx.HTTPError, ValueError, TypeError) as exc:
            status_code, detail = describe_failure(exc)
            logger.warning("token_exchange_fail step=%s status_code=%s response=%s", step, status_code, detail)
            raise ExchangeError(step, exc) from exc
        logger.info("token_exchange_success step=%s", step)
        return result

    def exchange_code(self, code: str, redirect_uri: str | None = None) -> ShortLivedToken:
        data = {
            "client_id": self._settings.instagram_app_id,
            "client_secret": self._settings.instagram_secret,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri or self.redirect_uri(),
            "code": code,
        }
        return self._call(
            STEP_SHORT_LIVED,
            lambda body: ShortLivedToken(
                access_token=_require_str(body, "access_token"),
                user_id=_require_int(body, "user_id"),
            ),
            "POST",
            SHORT_LIVED_TOKEN_URL,
            data=data,
        )

    def exchange_long_lived(self, short_lived_token: str) -> LongLivedToken:
        params = {
            "grant_type": "ig_exchange_token",
            "client_secret": self._settings.instagram_secret,
            "access_token": short_lived_token,
        }
        return self._call(
            STEP_LONG_LIVED,
            lambda body: LongLivedToken(
                access_token=_require_str(body, "access_token"),
                token_type=str(body.get("token_type") or ""),
                expires_in=int(body.get("expires_in") or 0),
            ),
            "GET",
            LONG_LIVED_TOKEN_URL,
            params=params,
        )

    def fetch_identity(self, long_lived_token: str) -> InstagramUser:
        params = {"fields": "username", "access_token": long_lived_token}
        return self._call(
            STEP_IDENTITY,
            lambda body: InstagramUser(username=_require_str(body, "username")),
            "GET",
            f"{GRAPH_BASE}/{self._settings.graph_api_version}/me",
            params=params,
        )
