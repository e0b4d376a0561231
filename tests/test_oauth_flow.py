from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from smart_display.exceptions import AuthError, ConfigurationError, ValidationError
from smart_display.integrations.google_calendar import (
    CredentialStore,
    GoogleAuthorizationFlow,
    GoogleOAuthClient,
    OAuthFlowRegistry,
    OAuthResult,
    TokenRefresher,
)

TOKEN_URL = "https://oauth.test/token"
REDIRECT = "http://localhost:8000/api/google-calendar/callback"


def make_client(handler, client_id="client-id", client_secret="client-secret"):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleOAuthClient(client_id, client_secret, http, token_url=TOKEN_URL)


def token_handler(requests):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        form = parse_qs(request.content.decode())
        if form.get("code") == ["bad"]:
            return httpx.Response(400, json={"error": "invalid_grant"})
        return httpx.Response(200, json={
            "access_token": "access-1",
            "refresh_token": "refresh-1",
            "expires_in": 3599,
            "scope": "https://www.googleapis.com/auth/calendar.readonly",
            "token_type": "Bearer",
        })
    return handler


class MonotonicClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_authorization_url_parameters():
    client = make_client(token_handler([]))
    url = client.get_authorization_url(REDIRECT, state="abc")
    query = parse_qs(urlsplit(url).query)

    assert query["response_type"] == ["code"]
    assert query["access_type"] == ["offline"]
    assert query["prompt"] == ["consent"]
    assert query["scope"] == ["https://www.googleapis.com/auth/calendar.readonly"]
    assert query["redirect_uri"] == [REDIRECT]
    assert query["state"] == ["abc"]


def test_authorization_url_requires_client_id():
    client = make_client(token_handler([]), client_id=None)
    with pytest.raises(ConfigurationError):
        client.get_authorization_url(REDIRECT)


@pytest.mark.asyncio
async def test_exchange_code_sends_secret_server_side():
    requests = []
    client = make_client(token_handler(requests))

    tokens = await client.exchange_code("good", REDIRECT)

    assert tokens.access_token == "access-1"
    assert tokens.refresh_token == "refresh-1"
    form = parse_qs(requests[0].content.decode())
    assert form["grant_type"] == ["authorization_code"]
    assert form["client_secret"] == ["client-secret"]
    assert form["redirect_uri"] == [REDIRECT]


@pytest.mark.asyncio
async def test_rejected_exchange_is_auth_error():
    client = make_client(token_handler([]))
    with pytest.raises(AuthError):
        await client.exchange_code("bad", REDIRECT)


@pytest.mark.asyncio
async def test_registry_resolves_waiting_initiator():
    registry = OAuthFlowRegistry(ttl=60)
    flow = registry.begin("user-1", REDIRECT)

    registry.complete(flow.state, OAuthResult(status="success", message="ok"))
    result = await registry.wait(flow.state, "user-1", timeout=1)

    assert result.status == "success"
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_registry_wait_times_out_as_pending():
    registry = OAuthFlowRegistry(ttl=60)
    flow = registry.begin("user-1", REDIRECT)

    result = await registry.wait(flow.state, "user-1", timeout=0.01)
    assert result.status == "pending"
    # still waiting for the redirect
    assert registry.get(flow.state) is flow


@pytest.mark.asyncio
async def test_registry_rejects_foreign_and_expired_state():
    clock = MonotonicClock()
    registry = OAuthFlowRegistry(ttl=60, clock=clock)
    flow = registry.begin("user-1", REDIRECT)

    with pytest.raises(ValidationError):
        await registry.wait(flow.state, "user-2", timeout=0.01)
    with pytest.raises(ValidationError):
        registry.get("unknown-state")

    clock.now += 61
    with pytest.raises(ValidationError):
        registry.get(flow.state)


@pytest.mark.asyncio
async def test_callback_stores_credential_and_completes_flow(session_maker, clock):
    store = CredentialStore(session_maker)
    registry = OAuthFlowRegistry(ttl=60)
    authorization = GoogleAuthorizationFlow(make_client(token_handler([])), store, registry, REDIRECT, clock=clock)

    started = authorization.start("user-1")
    assert "state=" in started["auth_url"]

    result = await authorization.handle_callback(started["state"], code="good")
    assert result.status == "success"

    credential = await store.get("user-1")
    assert credential.access_token == "access-1"
    assert (await registry.wait(started["state"], "user-1", timeout=1)).status == "success"


@pytest.mark.asyncio
async def test_callback_with_provider_error(session_maker, clock):
    store = CredentialStore(session_maker)
    registry = OAuthFlowRegistry(ttl=60)
    authorization = GoogleAuthorizationFlow(make_client(token_handler([])), store, registry, REDIRECT, clock=clock)
    started = authorization.start("user-1")

    result = await authorization.handle_callback(started["state"], error="access_denied")

    assert result.status == "error"
    assert "access_denied" in result.message
    assert await store.get("user-1") is None


@pytest.mark.asyncio
async def test_failed_exchange_reports_error_result(session_maker, clock):
    store = CredentialStore(session_maker)
    registry = OAuthFlowRegistry(ttl=60)
    authorization = GoogleAuthorizationFlow(make_client(token_handler([])), store, registry, REDIRECT, clock=clock)
    started = authorization.start("user-1")

    result = await authorization.handle_callback(started["state"], code="bad")

    assert result.status == "error"
    assert await store.get("user-1") is None


@pytest.mark.asyncio
async def test_stored_exchange_is_served_without_refresh(session_maker, clock):
    requests = []
    oauth_client = make_client(token_handler(requests))
    store = CredentialStore(session_maker)
    authorization = GoogleAuthorizationFlow(oauth_client, store, OAuthFlowRegistry(ttl=60), REDIRECT, clock=clock)
    started = authorization.start("user-1")
    await authorization.handle_callback(started["state"], code="good")

    clock.advance(minutes=30)
    refresher = TokenRefresher(store, oauth_client, "user-1", clock=clock)

    assert await refresher.get_valid_access_token() == "access-1"
    assert await refresher.get_valid_access_token() == "access-1"
    assert len(requests) == 1
    assert parse_qs(requests[0].content.decode())["grant_type"] == ["authorization_code"]
