"""Shopify OAuth helpers.

WHAT:
    Shop domain normalisation, authorize URL construction and the
    authorization-code-for-token exchange.

REFERENCES:
    - Shopify OAuth: https://shopify.dev/docs/apps/auth/oauth
    - datasync/routers/shopify_oauth.py (caller)
"""

import logging
import re
from typing import Any, Dict
from urllib.parse import urlencode, urlparse

import httpx

from ..errors import DependencyError

logger = logging.getLogger(__name__)

# OAuth scopes requested during install
# REFERENCES: https://shopify.dev/docs/api/usage/access-scopes
SHOPIFY_SCOPES = [
    "read_orders",
    "read_customers",
    "read_products",
    "read_analytics",
]

_SHOP_DOMAIN_PATTERN = re.compile(r'^[a-z0-9][a-z0-9\-]{1,98}[a-z0-9]\.myshopify\.com$')


def normalize_shop_domain(shop_input: str) -> str:
    """Normalize shop domain to myshopify.com format.

    Examples:
        'myshop' -> 'myshop.myshopify.com'
        'myshop.myshopify.com' -> 'myshop.myshopify.com'
        'https://myshop.myshopify.com/admin' -> 'myshop.myshopify.com'
    """
    shop = (shop_input or "").strip().lower()

    if shop.startswith('http://') or shop.startswith('https://'):
        parsed = urlparse(shop)
        shop = parsed.netloc or parsed.path.split('/')[0]

    shop = shop.split('/')[0]

    if shop and not shop.endswith('.myshopify.com'):
        shop = f"{shop}.myshopify.com"

    return shop


def validate_shop_domain(shop_domain: str) -> bool:
    """Check domain format matches {store-name}.myshopify.com."""
    return bool(_SHOP_DOMAIN_PATTERN.match((shop_domain or "").lower()))


def build_authorize_url(shop_domain: str, state: str, *, client_id: str, redirect_uri: str) -> str:
    params = {
        "client_id": client_id,
        "scope": ",".join(SHOPIFY_SCOPES),  # Shopify uses comma-separated scopes
        "redirect_uri": redirect_uri,
        "state": state,
    }
    return f"https://{shop_domain}/admin/oauth/authorize?{urlencode(params)}"


async def exchange_code_for_token(
    shop_domain: str,
    code: str,
    *,
    client_id: str,
    client_secret: str,
    timeout: float = 30.0,
) -> Dict[str, Any]:
    """POST the authorization code to the shop's token endpoint.

    Returns:
        Token response, e.g. {"access_token": "shpat_...", "scope": "read_orders,..."}

    Raises:
        DependencyError: Non-2xx response, timeout, network error or no access_token
    """
    url = f"https://{shop_domain}/admin/oauth/access_token"
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(
                url,
                json={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "code": code,
                },
            )
            response.raise_for_status()
            token_data = response.json()
    except httpx.TimeoutException as e:
        logger.error("[SHOPIFY_OAUTH] Token exchange timed out for %s", shop_domain)
        raise DependencyError("Token exchange timed out", step="exchange_code", resource=shop_domain) from e
    except httpx.HTTPStatusError as e:
        logger.error("[SHOPIFY_OAUTH] Token exchange failed for %s: HTTP %s", shop_domain, e.response.status_code)
        raise DependencyError("Token exchange failed", step="exchange_code", resource=shop_domain) from e
    except (httpx.HTTPError, ValueError) as e:
        logger.error("[SHOPIFY_OAUTH] Token exchange failed for %s: %s", shop_domain, type(e).__name__)
        raise DependencyError("Token exchange failed", step="exchange_code", resource=shop_domain) from e

    if not isinstance(token_data, dict) or not token_data.get("access_token"):
        logger.error("[SHOPIFY_OAUTH] Missing access token in response for %s", shop_domain)
        raise DependencyError("Token exchange returned no access token", step="exchange_code", resource=shop_domain)

    logger.info("[SHOPIFY_OAUTH] Token exchange successful for %s (scopes: %s)", shop_domain, token_data.get("scope", ""))
    return token_data
