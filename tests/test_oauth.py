import json
import logging
import pytest
import respx
import httpx
from httpx import Response
from pydantic import ValidationError
from raindrop_client.config import ClientConfig
from raindrop_client.errors import AuthorizationCodeError, StatusCodeError, TokenExchangeError
from raindrop_client.oauth import (
    TokenManager,
    extract_authorization_code,
    handle_authorization_redirect,
)

AUTH_HOST = "https://raindrop.io"
REDIRECT_URI = "http://localhost:8080/oauth"
TOKEN_RESPONSE = {"access_token": "tok1", "refresh_token": "ref1", "expires_in": 3600, "token_type": "Bearer"}


@pytest.fixture
def config():
    return ClientConfig(client_id="cid", client_secret="secret", redirect_uri=REDIRECT_URI)


@pytest.fixture
def manager(config):
    return TokenManager(config)


def test_authorization_url(manager):
    url = httpx.URL(manager.authorization_url())
    assert url.scheme == "https"
    assert url.host == "raindrop.io"
    assert url.path == "/oauth/authorize"
    assert url.params["client_id"] == "cid"
    assert url.params["redirect_uri"] == REDIRECT_URI


def test_authorization_url_is_deterministic(manager):
    assert manager.authorization_url() == manager.authorization_url()


def test_config_is_immutable(config):
    with pytest.raises(ValidationError):
        config.client_id = "other"


def test_extract_code():
    assert extract_authorization_code({"code": "abc123"}, 200) == "abc123"


def test_extract_code_user_denied():
    with pytest.raises(AuthorizationCodeError) as excinfo:
        extract_authorization_code({"error": "access_denied"}, 200)
    assert excinfo.value.reason == "access_denied"
    assert "access_denied" in str(excinfo.value)


def test_extract_code_malformed_redirect():
    with pytest.raises(AuthorizationCodeError) as excinfo:
        extract_authorization_code({}, 502)
    assert excinfo.value.status_code == 502
    assert "502" in str(excinfo.value)


def test_extract_code_prefers_code_over_error():
    assert extract_authorization_code({"code": "abc123", "error": "ignored"}, 200) == "abc123"


def test_handle_redirect_returns_code_and_page():
    redirect = handle_authorization_redirect({"code": "abc123"}, 200)
    assert redirect.code == "abc123"
    assert redirect.error is None
    assert redirect.html == "<h1>You've been authorized</h1><p>abc123</p>"


def test_handle_redirect_escapes_html():
    redirect = handle_authorization_redirect({"code": "<b>x</b>"}, 200)
    assert "<b>" not in redirect.html
    assert redirect.code == "<b>x</b>"


def test_handle_redirect_error_page():
    redirect = handle_authorization_redirect({"error": "access_denied"}, 200)
    assert redirect.code is None
    assert redirect.error == "access_denied"
    assert "access_denied" in redirect.html


@pytest.mark.asyncio
async def test_exchange_code(manager):
    async with respx.mock(base_url=AUTH_HOST) as respx_mock:
        route = respx_mock.post("/oauth/access_token").mock(return_value=Response(200, json=TOKEN_RESPONSE))

        token = await manager.exchange_code("xyz")
        assert token.access_token == "tok1"
        assert token.refresh_token == "ref1"
        assert token.expires_in == 3600
        assert token.authorization_header() == {"Authorization": "Bearer tok1"}

        request = route.calls.last.request
        assert "Authorization" not in request.headers
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content) == {
            "code": "xyz",
            "client_id": "cid",
            "client_secret": "secret",
            "redirect_uri": REDIRECT_URI,
            "grant_type": "authorization_code",
        }


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [200, 400])
async def test_exchange_code_rejected(manager, status):
    rejected = {"result": False, "status": 400, "errorMessage": "Incorrect redirect_uri"}
    async with respx.mock(base_url=AUTH_HOST) as respx_mock:
        respx_mock.post("/oauth/access_token").mock(return_value=Response(status, json=rejected))
        with pytest.raises(TokenExchangeError) as excinfo:
            await manager.exchange_code("xyz")
        assert "Incorrect redirect_uri" in str(excinfo.value)
        assert excinfo.value.status_code == 400


@pytest.mark.asyncio
async def test_exchange_code_without_token(manager):
    async with respx.mock(base_url=AUTH_HOST) as respx_mock:
        respx_mock.post("/oauth/access_token").mock(return_value=Response(200, json={"error": "invalid_grant"}))
        with pytest.raises(TokenExchangeError) as excinfo:
            await manager.exchange_code("expired")
        assert excinfo.value.error == "invalid_grant"


@pytest.mark.asyncio
async def test_exchange_code_server_error(manager):
    async with respx.mock(base_url=AUTH_HOST) as respx_mock:
        respx_mock.post("/oauth/access_token").mock(return_value=Response(503))
        with pytest.raises(StatusCodeError) as excinfo:
            await manager.exchange_code("xyz")
        assert excinfo.value.status_code == 503


@pytest.mark.asyncio
async def test_refresh(manager):
    async with respx.mock(base_url=AUTH_HOST) as respx_mock:
        route = respx_mock.post("/oauth/access_token").mock(
            return_value=Response(200, json={"access_token": "tok2", "expires_in": 1209599})
        )
        token = await manager.refresh("ref1")
        assert token.access_token == "tok2"

        request = route.calls.last.request
        assert "Authorization" not in request.headers
        assert json.loads(request.content) == {
            "client_id": "cid",
            "client_secret": "secret",
            "grant_type": "refresh_token",
            "refresh_token": "ref1",
        }


@pytest.mark.asyncio
async def test_refresh_with_legacy_grant_type_warns(caplog):
    legacy = ClientConfig(
        client_id="cid",
        client_secret="secret",
        redirect_uri=REDIRECT_URI,
        refresh_grant_type="authorization_code",
    )
    manager = TokenManager(legacy)
    caplog.set_level(logging.WARNING, logger="raindrop_client")
    async with respx.mock(base_url=AUTH_HOST) as respx_mock:
        route = respx_mock.post("/oauth/access_token").mock(return_value=Response(200, json=TOKEN_RESPONSE))
        await manager.refresh("ref1")
        assert json.loads(route.calls.last.request.content)["grant_type"] == "authorization_code"
    assert "grant_type" in caplog.text


@pytest.mark.asyncio
async def test_network_error_propagates(manager):
    async with respx.mock(base_url=AUTH_HOST) as respx_mock:
        respx_mock.post("/oauth/access_token").side_effect = httpx.ConnectError("Network")
        with pytest.raises(httpx.ConnectError):
            await manager.exchange_code("xyz")


@pytest.mark.asyncio
async def test_shared_client_is_not_closed(config):
    client = httpx.AsyncClient()
    async with TokenManager(config, client=client):
        pass
    assert not client.is_closed
    await client.aclose()
