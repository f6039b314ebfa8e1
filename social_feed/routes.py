from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from social_feed.auth_flow import AuthFlowOrchestrator
from social_feed.errors import ConfigError, NotFoundError, SocialFeedError
from social_feed.instagram_client import InstagramFeedClient, latest_media
from social_feed.store import CredentialStore

logger = logging.getLogger("social-feed")

router = APIRouter()
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))


def _orchestrator(request: Request) -> AuthFlowOrchestrator:
    return request.app.state.orchestrator


def _store(request: Request) -> CredentialStore:
    return request.app.state.store


def _feed_client(request: Request) -> InstagramFeedClient:
    return request.app.state.feed_client


def _internal_error() -> HTTPException:
    return HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/", response_class=HTMLResponse)
def home(request: Request):
    orchestrator = _orchestrator(request)
    try:
        usernames = sorted(_store(request).list_usernames())
        auth_url = orchestrator.start()
    except SocialFeedError:
        logger.exception("home_render_fail")
        raise _internal_error()
    accounts = [{"username": name, "feed_url": orchestrator.feed_redirect(name)} for name in usernames]
    return templates.TemplateResponse(
        request,
        "home.html",
        {"auth_url": auth_url, "accounts": accounts},
    )


@router.get("/ping")
def ping() -> dict[str, str]:
    return {"message": "pong"}


@router.get("/instagram/auth")
def instagram_auth(request: Request) -> JSONResponse:
    try:
        url = _orchestrator(request).start()
    except ConfigError:
        logger.exception("auth_url_fail")
        raise _internal_error()
    return JSONResponse(content={"url": url})


@router.get("/instagram/auth/callback")
def instagram_auth_callback(request: Request) -> RedirectResponse:
    codes = request.query_params.getlist("code")
    try:
        location = _orchestrator(request).handle_callback(codes)
    except SocialFeedError as exc:
        logger.warning("auth_callback_aborted error_type=%s", type(exc).__name__)
        raise _internal_error()
    return RedirectResponse(url=location, status_code=302)


@router.get("/instagram/feed/{username}")
def instagram_feed(username: str, request: Request) -> JSONResponse:
    if not username or username != username.strip():
        logger.warning("feed_fail reason=invalid_username")
        raise HTTPException(status_code=400, detail="invalid username")
    try:
        credential = _store(request).get(username)
        items = _feed_client(request).fetch_media(credential)
    except NotFoundError:
        logger.warning("feed_fail reason=credential_missing username=%s", username)
        raise _internal_error()
    except SocialFeedError as exc:
        logger.warning("feed_fail username=%s error_type=%s", username, type(exc).__name__)
        raise _internal_error()
    return JSONResponse(content={"data": [item.to_dict() for item in latest_media(items)]})


__all__ = ["router"]
