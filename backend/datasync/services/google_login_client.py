"""Google identity login helpers.

WHAT:
    Builds the Google consent URL, exchanges the code for tokens and reads
    the verified email from the userinfo endpoint.
WHY:
    Login only needs an email to hand to the identity directory; no Google
    API access is requested beyond openid/email/profile.

REFERENCES:
    - https://developers.google.com/identity/protocols/oauth2/web-server
"""

import logging
from urllib.parse import urlencode

import httpx

from ..errors import DependencyError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
GOOGLE_SCOPES = ["openid", "email", "profile"]


def build_login_url(state: str, *, client_id: str, redirect_uri: str) -> str:
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(GOOGLE_SCOPES),
        "state": state,
        "prompt": "select_account",
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def fetch_login_email(
    code: str,
    *,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    timeout: float = 30.0,
) -> str:
    """Exchange `code` and return the account's verified email.

    Raises:
        DependencyError: Google rejected the code, timed out, or returned no verified email
    """
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            token_response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "redirect_uri": redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
            token_response.raise_for_status()
            access_token = token_response.json().get("access_token")
            if not access_token:
                raise DependencyError("Google returned no access token", step="login_exchange")

            userinfo_response = await client.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            userinfo_response.raise_for_status()
            userinfo = userinfo_response.json()
    except httpx.HTTPError as e:
        logger.error("[GOOGLE_LOGIN] Login exchange failed: %s", type(e).__name__)
        raise DependencyError("Google login exchange failed", step="login_exchange") from e

    email = userinfo.get("email")
    if not email or userinfo.get("email_verified") is False:
        logger.error("[GOOGLE_LOGIN] No verified email in userinfo response")
        raise DependencyError("Google account has no verified email", step="login_userinfo")

    return email
