"""
OAuth Client Tests (Unit)
=========================

WHAT: Unit tests for the Shopify token exchange and Google login exchange against
      an httpx MockTransport.
WHY: Every provider failure must surface as DependencyError so callbacks fail
     closed instead of recording half an install or login.

REFERENCES:
- backend/datasync/services/shopify_oauth_client.py
- backend/datasync/services/google_login_client.py
"""

import asyncio
import json
from unittest.mock import patch

import httpx
import pytest

from datasync.errors import DependencyError
from datasync.services.google_login_client import fetch_login_email
from datasync.services.shopify_oauth_client import exchange_code_for_token

_RealAsyncClient = httpx.AsyncClient


def _mock_transport(handler):
    """Patch httpx.AsyncClient so every client built by the code under test uses `handler`."""
    transport = httpx.MockTransport(handler)
    return patch(
        "httpx.AsyncClient",
        side_effect=lambda **kwargs: _RealAsyncClient(transport=transport, **kwargs),
    )


def _exchange_shopify():
    return asyncio.run(exchange_code_for_token(
        "acme.myshopify.com", "code-1", client_id="cid", client_secret="csecret", timeout=5,
    ))


def _fetch_google():
    return asyncio.run(fetch_login_email(
        "code-1", client_id="cid", client_secret="csecret", redirect_uri="https://x/cb", timeout=5,
    ))


# ============================================================================
# Shopify
# ============================================================================

def test_shopify_exchange_posts_code_and_returns_token() -> None:
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"access_token": "shpat_x", "scope": "read_orders"})

    with _mock_transport(handler):
        token = _exchange_shopify()

    assert token["access_token"] == "shpat_x"
    assert seen["url"] == "https://acme.myshopify.com/admin/oauth/access_token"
    assert seen["body"] == {"client_id": "cid", "client_secret": "csecret", "code": "code-1"}


@pytest.mark.parametrize("response", [
    httpx.Response(400, json={"error": "invalid_request"}),
    httpx.Response(200, json={"scope": "read_orders"}),
    httpx.Response(200, text="not json"),
])
def test_shopify_exchange_failures_are_dependency_errors(response) -> None:
    with _mock_transport(lambda request: response):
        with pytest.raises(DependencyError) as exc_info:
            _exchange_shopify()

    assert exc_info.value.step == "exchange_code"
    assert exc_info.value.resource == "acme.myshopify.com"


def test_shopify_exchange_timeout() -> None:
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with _mock_transport(handler):
        with pytest.raises(DependencyError) as exc_info:
            _exchange_shopify()

    assert "timed out" in exc_info.value.message


# ============================================================================
# Google
# ============================================================================

def _google_handler(userinfo, token_status=200):
    def handler(request):
        if request.url.host == "oauth2.googleapis.com":
            return httpx.Response(token_status, json={"access_token": "ya29.token"})
        assert request.headers["Authorization"] == "Bearer ya29.token"
        return httpx.Response(200, json=userinfo)
    return handler


def test_google_login_returns_verified_email() -> None:
    with _mock_transport(_google_handler({"email": "person@example.com", "email_verified": True})):
        assert _fetch_google() == "person@example.com"


@pytest.mark.parametrize("userinfo", [
    {"email": "person@example.com", "email_verified": False},
    {"email_verified": True},
])
def test_google_login_requires_verified_email(userinfo) -> None:
    with _mock_transport(_google_handler(userinfo)):
        with pytest.raises(DependencyError):
            _fetch_google()


def test_google_login_rejected_code() -> None:
    with _mock_transport(_google_handler({}, token_status=400)):
        with pytest.raises(DependencyError) as exc_info:
            _fetch_google()

    assert exc_info.value.step == "login_exchange"
