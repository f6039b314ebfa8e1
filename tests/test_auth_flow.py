import logging
from dataclasses import replace

import pytest

from social_feed.auth_flow import AuthFlow, AuthFlowOrchestrator, FlowState
from social_feed.errors import CallbackError, ConfigError, ExchangeError, NotFoundError, StoreError
from social_feed.instagram_oauth import InstagramOAuthClient
from social_feed.models import Credential


def _orchestrator(settings, store, provider, api_key: str = "") -> AuthFlowOrchestrator:
    return AuthFlowOrchestrator(InstagramOAuthClient(settings, transport=provider.transport), store, api_key=api_key)


def test_successful_callback_persists_credential(settings, store, provider) -> None:
    flow = AuthFlow(state=FlowState.AUTH_URL_ISSUED)
    location = _orchestrator(settings, store, provider).handle_callback(["the-code"], flow)

    assert location == "/instagram/feed/alice"
    assert store.get("alice") == Credential(access_token="l1", username="alice", user_id=42)
    assert flow.state == FlowState.CREDENTIAL_PERSISTED
    assert flow.history == [
        FlowState.AUTH_URL_ISSUED,
        FlowState.CALLBACK_RECEIVED,
        FlowState.TOKEN_EXCHANGED,
        FlowState.IDENTITY_RESOLVED,
    ]


def test_redirect_carries_api_key(settings, store, provider) -> None:
    location = _orchestrator(settings, store, provider, api_key="k&1").handle_callback(["code"])
    assert location == "/instagram/feed/alice?api_key=k%261"


@pytest.mark.parametrize("codes", [[], ["a", "b"], ["a", "a", "a"], [""]])
def test_bad_code_count_fails_without_write(settings, store, provider, codes) -> None:
    flow = AuthFlow(state=FlowState.AUTH_URL_ISSUED)
    with pytest.raises(CallbackError):
        _orchestrator(settings, store, provider).handle_callback(codes, flow)

    assert flow.state == FlowState.FAILED
    assert flow.failed_step == "callback"
    assert provider.requests == []
    assert store.list_usernames() == set()


@pytest.mark.parametrize(
    "method, host, path",
    [
        ("POST", "api.instagram.com", "/oauth/access_token"),
        ("GET", "graph.instagram.com", "/access_token"),
        ("GET", "graph.instagram.com", "/v19.0/me"),
    ],
)
def test_exchange_failure_leaves_store_untouched(settings, store, provider, method, host, path) -> None:
    store.put("alice", Credential(access_token="previous", username="alice", user_id=42))
    provider.respond_json(method, host, path, {"error": {"message": "nope"}}, status_code=400)
    flow = AuthFlow(state=FlowState.AUTH_URL_ISSUED)

    with pytest.raises(ExchangeError):
        _orchestrator(settings, store, provider).handle_callback(["code"], flow)

    assert flow.failed_step == "exchange"
    assert store.get("alice").access_token == "previous"


def test_exchange_failure_for_new_account_writes_nothing(settings, store, provider) -> None:
    provider.respond_json("GET", "graph.instagram.com", "/v19.0/me", {}, status_code=500)
    with pytest.raises(ExchangeError):
        _orchestrator(settings, store, provider).handle_callback(["code"])
    with pytest.raises(NotFoundError):
        store.get("alice")


def test_exchange_short_circuits(settings, store, provider) -> None:
    provider.respond_json("POST", "api.instagram.com", "/oauth/access_token", {}, status_code=400)
    with pytest.raises(ExchangeError):
        _orchestrator(settings, store, provider).handle_callback(["code"])
    assert [request.url.path for request in provider.requests] == ["/oauth/access_token"]


def test_store_failure_marks_persist_step(settings, provider, monkeypatch, store) -> None:
    def broken_put(username, credential):
        raise StoreError("disk full")

    monkeypatch.setattr(store, "put", broken_put)
    flow = AuthFlow(state=FlowState.AUTH_URL_ISSUED)
    with pytest.raises(StoreError):
        _orchestrator(settings, store, provider).handle_callback(["code"], flow)
    assert flow.failed_step == "persist"


def test_reauthorization_overwrites(settings, store, provider) -> None:
    orchestrator = _orchestrator(settings, store, provider)
    orchestrator.handle_callback(["first"])
    provider.respond_json("GET", "graph.instagram.com", "/access_token", {"access_token": "l2"})
    orchestrator.handle_callback(["second"])

    assert store.get("alice") == Credential(access_token="l2", username="alice", user_id=42)
    assert store.list_usernames() == {"alice"}


def test_distinct_accounts_are_listed(settings, store, provider) -> None:
    orchestrator = _orchestrator(settings, store, provider)
    names = ["alice", "bob", "carol"]
    for index, name in enumerate(names):
        provider.respond_json("POST", "api.instagram.com", "/oauth/access_token", {"access_token": f"s{index}", "user_id": index})
        provider.respond_json("GET", "graph.instagram.com", "/v19.0/me", {"username": name})
        orchestrator.handle_callback([f"code-{index}"])

    assert store.list_usernames() == set(names)
    for index, name in enumerate(names):
        assert store.get(name).user_id == index


def test_finished_flow_cannot_advance() -> None:
    flow = AuthFlow()
    flow.fail("callback")
    with pytest.raises(RuntimeError):
        flow.advance(FlowState.CALLBACK_RECEIVED)


def test_start_holds_no_state(settings, store, provider, caplog) -> None:
    caplog.set_level(logging.INFO)
    orchestrator = _orchestrator(settings, store, provider)
    first = orchestrator.start()
    second = orchestrator.start()
    assert first == second
    assert vars(orchestrator).keys() == {"_oauth", "_store", "_api_key"}
    assert provider.requests == []
    assert [record.getMessage() for record in caplog.records].count("auth_url_issued") == 2
    assert not any("auth_flow_transition" in record.getMessage() for record in caplog.records)


def test_malformed_app_url_fails_before_callback(settings, store, provider) -> None:
    settings = replace(settings, app_url="not a url")
    flow = AuthFlow(state=FlowState.AUTH_URL_ISSUED)
    with pytest.raises(ConfigError):
        _orchestrator(settings, store, provider).handle_callback(["code"], flow)

    assert flow.failed_step == "config"
    assert flow.history == [FlowState.AUTH_URL_ISSUED]
    assert provider.requests == []
    assert store.list_usernames() == set()


def test_exchange_receives_resolved_redirect_uri(settings, store, provider) -> None:
    _orchestrator(settings, store, provider).handle_callback(["code"])
    (request,) = provider.requests_to("/oauth/access_token")
    assert "redirect_uri=https%3A%2F%2Ffeed.example.com%2Finstagram%2Fauth%2Fcallback" in request.content.decode("utf-8")
