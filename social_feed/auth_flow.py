"""Instagram account connection flow.

No state is kept between issuing the authorization URL and receiving the
callback; the provider's exact redirect-URI match is what ties the two
requests together. Each callback is driven through its own :class:`AuthFlow`.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from urllib.parse import quote, urlencode

from social_feed.errors import CallbackError, ConfigError, ExchangeError, StoreError
from social_feed.instagram_oauth import InstagramOAuthClient
from social_feed.models import Credential
from social_feed.store import CredentialStore

logger = logging.getLogger("social-feed")


class FlowState(str, enum.Enum):
    IDLE = "idle"
    AUTH_URL_ISSUED = "auth_url_issued"
    CALLBACK_RECEIVED = "callback_received"
    TOKEN_EXCHANGED = "token_exchanged"
    IDENTITY_RESOLVED = "identity_resolved"
    CREDENTIAL_PERSISTED = "credential_persisted"
    FAILED = "failed"


TERMINAL_STATES = frozenset({FlowState.CREDENTIAL_PERSISTED, FlowState.FAILED})

FAILED_CONFIG = "config"
FAILED_CALLBACK = "callback"
FAILED_EXCHANGE = "exchange"
FAILED_PERSIST = "persist"


def feed_path(username: str) -> str:
    return f"/instagram/feed/{quote(username, safe='')}"


@dataclass
class AuthFlow:
    state: FlowState = FlowState.IDLE
    failed_step: str | None = None
    history: list[FlowState] = field(default_factory=list)

    def advance(self, state: FlowState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"auth flow already finished in state {self.state.value}")
        self.history.append(self.state)
        self.state = state
        logger.info("auth_flow_transition from=%s to=%s", self.history[-1].value, state.value)

    def fail(self, step: str) -> None:
        self.advance(FlowState.FAILED)
        self.failed_step = step


class AuthFlowOrchestrator:
    def __init__(self, oauth: InstagramOAuthClient, store: CredentialStore, api_key: str = "") -> None:
        self._oauth = oauth
        self._store = store
        self._api_key = api_key

    def start(self) -> str:
        url = self._oauth.authorization_url()
        logger.info("auth_url_issued")
        return url

    def feed_redirect(self, username: str) -> str:
        path = feed_path(username)
        if not self._api_key:
            return path
        return f"{path}?{urlencode({'api_key': self._api_key})}"

    def handle_callback(self, codes: list[str], flow: AuthFlow | None = None) -> str:
        """Run the code exchange for one callback and return the feed redirect.

        ``codes`` is every ``code`` value from the callback query string.
        Nothing is written to the store unless all three remote calls succeed.
        """
        flow = flow or AuthFlow(state=FlowState.AUTH_URL_ISSUED)

        try:
            redirect_uri = self._oauth.redirect_uri()
        except ConfigError:
            flow.fail(FAILED_CONFIG)
            logger.exception("auth_callback_fail reason=config")
            raise

        if len(codes) != 1 or not codes[0]:
            flow.fail(FAILED_CALLBACK)
            logger.warning("auth_callback_fail reason=code_count count=%s", len(codes))
            raise CallbackError(f"expected exactly one code, got {len(codes)}")
        flow.advance(FlowState.CALLBACK_RECEIVED)

        try:
            short_lived = self._oauth.exchange_code(codes[0], redirect_uri)
            long_lived = self._oauth.exchange_long_lived(short_lived.access_token)
            flow.advance(FlowState.TOKEN_EXCHANGED)
            user = self._oauth.fetch_identity(long_lived.access_token)
        except ExchangeError:
            flow.fail(FAILED_EXCHANGE)
            raise
        flow.advance(FlowState.IDENTITY_RESOLVED)

        credential = Credential(
            access_token=long_lived.access_token,
            username=user.username,
            user_id=short_lived.user_id,
        )
        try:
            self._store.put(credential.username, credential)
        except StoreError:
            flow.fail(FAILED_PERSIST)
            raise
        flow.advance(FlowState.CREDENTIAL_PERSISTED)
        logger.info("auth_flow_success username=%s user_id=%s", credential.username, credential.user_id)
        return self.feed_redirect(credential.username)


__all__ = [
    "AuthFlow",
    "AuthFlowOrchestrator",
    "FlowState",
    "feed_path",
]
