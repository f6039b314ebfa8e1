from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from social_feed.config import Settings
from social_feed.db import SqlCredentialStore

Responder = Callable[[httpx.Request], httpx.Response]


class FakeInstagram:
    """Routes provider requests to canned JSON responses and records them."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str, str], Responder] = {}
        self.respond_json("POST", "api.instagram.com", "/oauth/access_token", {"access_token": "s1", "user_id": 42})
        self.respond_json(
            "GET",
            "graph.instagram.com",
            "/access_token",
            {"access_token": "l1", "token_type": "bearer", "expires_in": 5183944},
        )
        self.respond_json("GET", "graph.instagram.com", "/v19.0/me", {"username": "alice", "id": "42"})

    def respond(self, method: str, host: str, path: str, responder: Responder) -> None:
        self.routes[(method, host, path)] = responder

    def respond_json(self, method: str, host: str, path: str, body: Any, status_code: int = 200) -> None:
        self.respond(method, host, path, lambda request: httpx.Response(status_code, json=body))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self.routes.get((request.method, request.url.host, request.url.path))
        if responder is None:
            return httpx.Response(404, json={"error": {"message": "unknown route"}})
        return responder(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path == path]


def _media_items(count: int) -> list[dict[str, Any]]:
    return [
        {
            "id": f"media_{index}",
            "media_url": f"https://cdn.example.com/{index}.jpg",
            "timestamp": f"2024-01-{index + 1:02d}T10:00:00+0000",
            "caption": f"post {index}",
            "permalink": f"https://www.instagram.com/p/{index}/",
        }
        for index in range(count)
    ]


@pytest.fixture
def media_items() -> Callable[[int], list[dict[str, Any]]]:
    return _media_items


@pytest.fixture
def settings() -> Settings:
    return Settings(
        instagram_app_id="app-123",
        instagram_secret="secret-xyz",
        app_url="https://feed.example.com",
        api_key="test-key",
    )


@pytest.fixture
def store(tmp_path) -> SqlCredentialStore:
    sql_store = SqlCredentialStore.from_path(str(tmp_path / "test_app.db"))
    sql_store.init_db()
    return sql_store


@pytest.fixture
def provider() -> FakeInstagram:
    return FakeInstagram()
