from __future__ import annotations

import json
import logging
from typing import Any, Iterable

import redis

from social_feed.errors import NotFoundError, StoreError
from social_feed.models import Credential

logger = logging.getLogger("social-feed")

KEY_PREFIX = "credential_"


def credential_key(username: str) -> str:
    return f"{KEY_PREFIX}{username}"


def username_from_key(key: str | bytes) -> str | None:
    if isinstance(key, bytes):
        key = key.decode("utf-8")
    if not key.startswith(KEY_PREFIX):
        return None
    return key[len(KEY_PREFIX):]


def dump_credential(credential: Credential) -> str:
    try:
        return json.dumps(credential.to_dict())
    except (TypeError, ValueError) as exc:
        raise StoreError(f"credential serialization failed: {exc}") from exc


def load_credential(raw: str | bytes) -> Credential:
    try:
        return Credential.from_dict(json.loads(raw))
    except (TypeError, ValueError) as exc:
        raise StoreError(f"credential deserialization failed: {exc}") from exc


class CredentialStore:
    """Username-keyed credential persistence with no expiry.

    Writes are plain overwrites: the last writer for a username wins.
    """

    def put(self, username: str, credential: Credential) -> None:
        raise NotImplementedError

    def get(self, username: str) -> Credential:
        raise NotImplementedError

    def list_usernames(self) -> set[str]:
        raise NotImplementedError

    def ping(self) -> None:
        raise NotImplementedError


def usernames_from_keys(keys: Iterable[str | bytes]) -> set[str]:
    usernames = set()
    for key in keys:
        username = username_from_key(key)
        if username:
            usernames.add(username)
    return usernames


class RedisCredentialStore(CredentialStore):
    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCredentialStore":
        try:
            client = redis.Redis.from_url(url)
        except ValueError as exc:
            raise StoreError(f"redis url parse failed: {exc}") from exc
        return cls(client)

    def put(self, username: str, credential: Credential) -> None:
        key = credential_key(username)
        value = dump_credential(credential)
        try:
            self._client.set(key, value)
        except redis.RedisError as exc:
            logger.warning("store_write_fail backend=redis username=%s error=%s", username, exc)
            raise StoreError(f"redis set failed: {exc}") from exc
        logger.info("store_write_success backend=redis username=%s", username)

    def get(self, username: str) -> Credential:
        try:
            raw = self._client.get(credential_key(username))
        except redis.RedisError as exc:
            logger.warning("store_read_fail backend=redis username=%s error=%s", username, exc)
            raise StoreError(f"redis get failed: {exc}") from exc
        if raw is None:
            raise NotFoundError(f"no credential for {username}")
        return load_credential(raw)

    def list_usernames(self) -> set[str]:
        try:
            return usernames_from_keys(self._client.scan_iter(match=f"{KEY_PREFIX}*"))
        except redis.RedisError as exc:
            raise StoreError(f"redis scan failed: {exc}") from exc

    def ping(self) -> None:
        try:
            self._client.ping()
        except redis.RedisError as exc:
            raise StoreError(f"redis ping failed: {exc}") from exc
