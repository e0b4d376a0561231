from datetime import timedelta

import pytest

from smart_display.exceptions import AuthError, ConfigurationError
from smart_display.integrations.google_calendar import CredentialStore, OAuthTokens, TokenRefresher


class FakeOAuthClient:
    def __init__(self, result=None):
        self.result = result
        self.calls = []

    async def refresh(self, refresh_token):
        self.calls.append(refresh_token)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


async def _store_credential(store, clock, expires_in=3600, refresh_token="refresh-1"):
    tokens = OAuthTokens(access_token="access-1", expires_in=expires_in, refresh_token=refresh_token)
    await store.save("user-1", tokens, clock())


@pytest.mark.asyncio
async def test_valid_token_returned_without_network(session_maker, clock):
    store = CredentialStore(session_maker)
    await _store_credential(store, clock)
    oauth = FakeOAuthClient()
    refresher = TokenRefresher(store, oauth, "user-1", clock=clock)

    clock.advance(minutes=59)
    assert await refresher.get_valid_access_token() == "access-1"
    assert oauth.calls == []


@pytest.mark.asyncio
async def test_expired_token_refreshed_once_and_persisted(session_maker, clock):
    store = CredentialStore(session_maker)
    await _store_credential(store, clock)
    oauth = FakeOAuthClient(OAuthTokens(access_token="access-2", expires_in=1800))
    refresher = TokenRefresher(store, oauth, "user-1", clock=clock)

    clock.advance(hours=1)  # now == expires_at counts as expired
    assert await refresher.get_valid_access_token() == "access-2"
    assert oauth.calls == ["refresh-1"]

    credential = await store.get("user-1")
    assert credential.access_token == "access-2"
    assert credential.expires_at == clock() + timedelta(seconds=1800)
    assert credential.refresh_token == "refresh-1"

    # the fresh token is now served from storage
    assert await refresher.get_valid_access_token() == "access-2"
    assert len(oauth.calls) == 1


@pytest.mark.asyncio
async def test_missing_credential_is_configuration_error(session_maker, clock):
    refresher = TokenRefresher(CredentialStore(session_maker), FakeOAuthClient(), "nobody", clock=clock)
    with pytest.raises(ConfigurationError):
        await refresher.get_valid_access_token()


@pytest.mark.asyncio
async def test_expired_without_refresh_token_is_configuration_error(session_maker, clock):
    store = CredentialStore(session_maker)
    await _store_credential(store, clock, refresh_token=None)
    oauth = FakeOAuthClient()
    clock.advance(hours=2)

    with pytest.raises(ConfigurationError):
        await TokenRefresher(store, oauth, "user-1", clock=clock).get_valid_access_token()
    assert oauth.calls == []


@pytest.mark.asyncio
async def test_failed_refresh_leaves_credential_untouched(session_maker, clock):
    store = CredentialStore(session_maker)
    await _store_credential(store, clock)
    before = await store.get("user-1")
    oauth = FakeOAuthClient(AuthError("rejected"))
    clock.advance(hours=2)

    with pytest.raises(AuthError):
        await TokenRefresher(store, oauth, "user-1", clock=clock).get_valid_access_token()

    after = await store.get("user-1")
    assert len(oauth.calls) == 1
    assert after.access_token == before.access_token
    assert after.expires_at == before.expires_at


@pytest.mark.asyncio
async def test_save_keeps_refresh_token_when_absent(session_maker, clock):
    store = CredentialStore(session_maker)
    await _store_credential(store, clock)
    await store.save("user-1", OAuthTokens(access_token="access-3", expires_in=60), clock())

    credential = await store.get("user-1")
    assert credential.access_token == "access-3"
    assert credential.refresh_token == "refresh-1"

    assert await store.delete("user-1") is True
    assert await store.get("user-1") is None
