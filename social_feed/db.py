from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from social_feed.errors import NotFoundError, StoreError
from social_feed.models import Base, Credential, CredentialRecord
from social_feed.store import (
    KEY_PREFIX,
    CredentialStore,
    credential_key,
    dump_credential,
    load_credential,
    usernames_from_keys,
)

logger = logging.getLogger("social-feed")


class SqlCredentialStore(CredentialStore):
    """Credential store backed by a single key/value table."""

    def __init__(self, url: str) -> None:
        self._engine = create_engine(url)
        self._sessions = sessionmaker(bind=self._engine, expire_on_commit=False)

    @classmethod
    def from_path(cls, db_path: str) -> "SqlCredentialStore":
        return cls(f"sqlite:///{db_path}")

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            logger.exception("db_session_fail")
            raise
        finally:
            session.close()

    def init_db(self) -> None:
        try:
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise StoreError(f"schema creation failed: {exc}") from exc
        logger.info("db_write_success event=init_db")

    def put(self, username: str, credential: Credential) -> None:
        key = credential_key(username)
        value = dump_credential(credential)
        try:
            with self.get_session() as session:
                session.merge(CredentialRecord(key=key, value=value))
        except SQLAlchemyError as exc:
            raise StoreError(f"credential write failed: {exc}") from exc
        logger.info("store_write_success backend=sql username=%s", username)

    def get(self, username: str) -> Credential:
        try:
            with self.get_session() as session:
                record = session.get(CredentialRecord, credential_key(username))
                raw = None if record is None else record.value
        except SQLAlchemyError as exc:
            raise StoreError(f"credential read failed: {exc}") from exc
        if raw is None:
            raise NotFoundError(f"no credential for {username}")
        return load_credential(raw)

    def list_usernames(self) -> set[str]:
        try:
            with self.get_session() as session:
                keys = session.execute(
                    select(CredentialRecord.key).where(CredentialRecord.key.startswith(KEY_PREFIX, autoescape=True))
                ).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreError(f"credential scan failed: {exc}") from exc
        return usernames_from_keys(keys)

    def ping(self) -> None:
        # create_all opens a connection, so this doubles as the reachability check.
        self.init_db()
