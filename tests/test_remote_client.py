"""
Tests for the remote API client and token cache.

The remote directory and the token issuer are small aiohttp applications
served on a local port.
"""

import asyncio
import time
from contextlib import asynccontextmanager

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from homesync.config import AuthConfig, RemoteApiConfig
from homesync.errors import ConfigurationError
from homesync.models import AuthToken, RemoteError, now_ms
from homesync.remote.client import RemoteAPIClient, valid_url
from homesync.remote.tokens import TokenCache


DEVICES = [
    {"id": 1, "uuid": "light-1", "name": "Desk Lamp", "type": "Lightbulb", "characteristics": {"on": True}},
]


def remote_app(state: dict) -> web.Application:
    """Fake remote directory plus token issuer on one server."""

    async def list_devices(request):
        state["auth_headers"].append(request.headers.get("authorization"))
        if state.get("delay"):
            await asyncio.sleep(state["delay"])
        if state.get("status", 200) != 200:
            return web.json_response({"error": "nope"}, status=state["status"])
        return web.json_response(DEVICES)

    async def patch_device(request):
        body = await request.json()
        state["patches"].append((request.match_info["id"], body))
        return web.json_response({**DEVICES[0], **body})

    async def issue_token(request):
        state["token_posts"] += 1
        state["token_bodies"].append(await request.json())
        await asyncio.sleep(0.05)
        if state.get("issuer_status", 200) != 200:
            return web.json_response({"error": "denied"}, status=state["issuer_status"])
        if "token_text" in state:
            return web.Response(text=state["token_text"], content_type="application/json")
        return web.json_response({
            "access_token": f"token-{state['token_posts']}",
            "token_type": "Bearer",
            "expires_in": state.get("expires_in", 3600),
            "scope": "read:devices",
        })

    app = web.Application()
    app.router.add_get("/", list_devices)
    app.router.add_patch("/{id}", patch_device)
    app.router.add_post("/oauth/token", issue_token)
    return app


def new_state(**overrides) -> dict:
    state = {"auth_headers": [], "patches": [], "token_posts": 0, "token_bodies": []}
    state.update(overrides)
    return state


@asynccontextmanager
async def serve(state: dict):
    server = TestServer(remote_app(state))
    await server.start_server()
    try:
        yield str(server.make_url("/"))
    finally:
        await server.close()


def auth_config(issuer: str) -> AuthConfig:
    return AuthConfig(
        enabled=True,
        issuer=issuer,
        audience="https://devices.example.com",
        client_id="client",
        client_secret="secret",
    )


class TestUrlValidation:
    """Tests for base URL checks."""

    @pytest.mark.parametrize("url", [
        "http://192.168.1.201:5000/pins",
        "https://devices.example.com/api/",
        "devices.example.com",
        "http://localhost:8080/",
    ])
    def test_valid(self, url):
        assert valid_url(url)

    @pytest.mark.parametrize("url", ["", None, "not a url", "ftp://example.com", "http://exa mple.com"])
    def test_invalid(self, url):
        assert not valid_url(url)

    def test_long_invalid_hostname_fails_fast(self):
        started = time.monotonic()
        assert not valid_url("http://" + "a" * 5000 + "!")
        assert not valid_url("http://" + "ab-" * 2000 + ".c_m")
        assert time.monotonic() - started < 1.0

    def test_malformed_url_fails_at_construction(self):
        with pytest.raises(ConfigurationError) as exc:
            RemoteAPIClient(RemoteApiConfig(url="http:://broken"))
        assert exc.value.setting == "remote.url"

    def test_malformed_issuer_fails_when_auth_enabled(self):
        with pytest.raises(ConfigurationError):
            RemoteAPIClient(RemoteApiConfig(url="http://127.0.0.1:1/"), auth_config("nonsense"))

    def test_disabling_cert_checks_is_logged(self, caplog):
        RemoteAPIClient(RemoteApiConfig(url="https://devices.example.com/", reject_invalid_cert=False))
        assert "TLS certificate validation is DISABLED" in caplog.text


class TestCall:
    """Tests for plain remote calls."""

    @pytest.mark.asyncio
    async def test_get_directory(self):
        state = new_state()
        async with serve(state) as url:
            client = RemoteAPIClient(RemoteApiConfig(url=url))
            try:
                result = await client.call("GET", "")
            finally:
                await client.close()

        assert result == DEVICES
        assert state["auth_headers"] == [None]

    @pytest.mark.asyncio
    async def test_patch_sends_json_body(self):
        state = new_state()
        async with serve(state) as url:
            client = RemoteAPIClient(RemoteApiConfig(url=url.rstrip("/")))
            try:
                result = await client.call("PATCH", 1, {"id": 1, "on": False})
            finally:
                await client.close()

        assert state["patches"] == [("1", {"id": 1, "on": False})]
        assert result["on"] is False

    @pytest.mark.asyncio
    async def test_non_2xx_is_sentinel(self):
        state = new_state(status=503)
        async with serve(state) as url:
            client = RemoteAPIClient(RemoteApiConfig(url=url))
            try:
                result = await client.call("GET", "")
            finally:
                await client.close()

        assert result == RemoteError("503")

    @pytest.mark.asyncio
    async def test_timeout_is_sentinel(self):
        state = new_state(delay=1)
        async with serve(state) as url:
            client = RemoteAPIClient(RemoteApiConfig(url=url, timeout_seconds=0.2))
            try:
                result = await client.call("GET", "")
            finally:
                await client.close()

        assert result == RemoteError("timeout")

    @pytest.mark.asyncio
    async def test_connection_refused_is_sentinel(self):
        client = RemoteAPIClient(RemoteApiConfig(url="http://127.0.0.1:1/", timeout_seconds=2))
        try:
            result = await client.call("GET", "")
        finally:
            await client.close()

        assert isinstance(result, RemoteError)


class TestTokens:
    """Tests for the access token lifecycle."""

    @pytest.mark.asyncio
    async def test_token_fetched_and_sent(self):
        state = new_state()
        async with serve(state) as url:
            client = RemoteAPIClient(RemoteApiConfig(url=url), auth_config(url))
            try:
                result = await client.call("GET", "")
            finally:
                await client.close()

        assert result == DEVICES
        assert state["token_posts"] == 1
        assert state["token_bodies"][0] == {
            "client_id": "client",
            "client_secret": "secret",
            "audience": "https://devices.example.com",
            "grant_type": "client_credentials",
        }
        assert state["auth_headers"] == ["Bearer token-1"]
        assert client.tokens.token.valid

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_collapse(self):
        state = new_state()
        async with serve(state) as url:
            client = RemoteAPIClient(RemoteApiConfig(url=url), auth_config(url))
            try:
                results = await asyncio.gather(*[client.call("GET", "") for _ in range(5)])
            finally:
                await client.close()

        assert all(r == DEVICES for r in results)
        assert state["token_posts"] == 1
        assert state["auth_headers"] == ["Bearer token-1"] * 5

    @pytest.mark.asyncio
    async def test_valid_token_is_reused(self):
        state = new_state()
        async with serve(state) as url:
            client = RemoteAPIClient(RemoteApiConfig(url=url), auth_config(url))
            try:
                await client.call("GET", "")
                await client.call("GET", "")
            finally:
                await client.close()

        assert state["token_posts"] == 1

    @pytest.mark.asyncio
    async def test_token_inside_safety_margin_is_refreshed(self):
        state = new_state(expires_in=30)
        async with serve(state) as url:
            client = RemoteAPIClient(RemoteApiConfig(url=url), auth_config(url))
            try:
                await client.call("GET", "")
                assert not client.tokens.token.valid
                await client.call("GET", "")
            finally:
                await client.close()

        assert state["token_posts"] == 2

    @pytest.mark.asyncio
    async def test_no_remote_call_without_token(self):
        state = new_state(issuer_status=401)
        async with serve(state) as url:
            client = RemoteAPIClient(RemoteApiConfig(url=url), auth_config(url))
            try:
                result = await client.call("GET", "")
            finally:
                await client.close()

        assert isinstance(result, RemoteError)
        assert state["auth_headers"] == []

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_prior_fields(self):
        state = new_state()
        async with serve(state) as url:
            client = RemoteAPIClient(RemoteApiConfig(url=url), auth_config(url))
            try:
                first = await client.fetch_token()
                expires = first.expires_at_epoch_ms

                state["issuer_status"] = 500
                second = await client.fetch_token()
            finally:
                await client.close()

        assert not second.valid
        assert second.access_token == "token-1"
        assert second.token_type == "Bearer"
        assert second.expires_at_epoch_ms == expires
        assert second.scope == "read:devices"

    @pytest.mark.asyncio
    async def test_non_finite_expiry_is_a_failed_refresh(self):
        # 1e400 decodes to float infinity
        state = new_state(token_text='{"access_token": "x", "token_type": "Bearer", "expires_in": 1e400}')
        async with serve(state) as url:
            client = RemoteAPIClient(RemoteApiConfig(url=url), auth_config(url))
            try:
                result = await client.call("GET", "")
            finally:
                await client.close()

        assert isinstance(result, RemoteError)
        assert not client.tokens.token.valid
        assert state["auth_headers"] == []


class TestTokenCache:
    """Tests for refresh coalescing in isolation."""

    @pytest.mark.asyncio
    async def test_single_inflight_refresh(self):
        cache = TokenCache()
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.05)
            token = AuthToken("abc", "Bearer", now_ms() + 3_600_000, "", fetched=True)
            cache.store(token)
            return token

        tokens = await asyncio.gather(*[cache.ensure_valid(fetch) for _ in range(10)])

        assert calls == 1
        assert all(t.access_token == "abc" for t in tokens)
        assert not cache.refreshing

    @pytest.mark.asyncio
    async def test_failed_refresh_retried_on_next_call(self):
        cache = TokenCache()
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            cache.invalidate()
            return cache.token

        first = await cache.ensure_valid(fetch)
        second = await cache.ensure_valid(fetch)

        assert not first.valid
        assert not second.valid
        assert calls == 2

    def test_expired_token_is_not_valid(self):
        token = AuthToken("abc", "Bearer", now_ms() - 1, "", fetched=True)
        assert not token.valid

    def test_token_within_margin_is_not_valid(self):
        token = AuthToken("abc", "Bearer", now_ms() + 59_000, "", fetched=True)
        assert not token.valid
        token = AuthToken("abc", "Bearer", now_ms() + 120_000, "", fetched=True)
        assert token.valid
