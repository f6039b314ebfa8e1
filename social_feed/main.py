from __future__ import annotations

import logging
import secrets
import time

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from social_feed.auth_flow import AuthFlowOrchestrator
from social_feed.config import Settings
from social_feed.db import SqlCredentialStore
from social_feed.instagram_client import InstagramFeedClient
from social_feed.instagram_oauth import CALLBACK_PATH, InstagramOAuthClient
from social_feed.routes import router
from social_feed.store import CredentialStore, RedisCredentialStore

logger = logging.getLogger("social-feed")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
# httpx logs full request URLs at INFO, including client_secret and access_token query params.
logging.getLogger("httpx").setLevel(logging.WARNING)

# The provider does not forward extra query params to the callback.
UNGATED_PATHS = frozenset({CALLBACK_PATH})


def build_store(settings: Settings) -> CredentialStore:
    if settings.redis_url:
        return RedisCredentialStore.from_url(settings.redis_url)
    return SqlCredentialStore.from_path(settings.db_path)


def create_app(
    settings: Settings | None = None,
    store: CredentialStore | None = None,
    transport: httpx.BaseTransport | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    store = store or build_store(settings)

    app = FastAPI(title="Social Feed")
    app.state.settings = settings
    app.state.store = store
    app.state.orchestrator = AuthFlowOrchestrator(
        InstagramOAuthClient(settings, transport=transport),
        store,
        api_key=settings.api_key,
    )
    app.state.feed_client = InstagramFeedClient(settings, transport=transport)

    @app.on_event("startup")
    def startup() -> None:
        store.ping()
        logger.info("startup_complete store=%s", type(store).__name__)

    @app.middleware("http")
    async def require_api_key(request: Request, call_next) -> Response:
        if request.url.path in UNGATED_PATHS:
            return await call_next(request)
        provided = request.query_params.get("api_key") or ""
        expected = settings.api_key
        if not expected or not secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
            logger.warning("api_key_rejected path=%s", request.url.path)
            return JSONResponse(content={"detail": "Unauthorized"}, status_code=401)
        return await call_next(request)

    @app.middleware("http")
    async def log_requests(request: Request, call_next) -> Response:
        start_time = time.perf_counter()
        response_status = 500
        try:
            response = await call_next(request)
            response_status = response.status_code
            return response
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "request method=%s path=%s status=%s duration_ms=%.2f",
                request.method,
                request.url.path,
                response_status,
                duration_ms,
            )

    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.include_router(router)
    return app


app = create_app()
