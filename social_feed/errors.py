from __future__ import annotations


class SocialFeedError(Exception):
    """Base class for failures local to a single request."""


class ConfigError(SocialFeedError):
    pass


class CallbackError(SocialFeedError):
    pass


class ExchangeError(SocialFeedError):
    """One step of the OAuth token exchange failed.

    ``step`` names the remote call (``short_lived_token``, ``long_lived_token``
    or ``identity``) and ``cause`` carries the underlying reason.
    """

    def __init__(self, step: str, cause: object) -> None:
        super().__init__(f"{step}: {cause}")
        self.step = step
        self.cause = cause


class StoreError(SocialFeedError):
    pass


class NotFoundError(SocialFeedError):
    pass


class FetchError(SocialFeedError):
    pass
