"""Dependency providers and settings management."""

from functools import lru_cache
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, status
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.orm import Session

from . import state
from .database import get_db
from .models import User
from .security import decode_token


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"
    ENVIRONMENT: str = "development"

    # Session cookie. SameSite=None is required so the cookie survives the
    # redirect back from Shopify, which in turn requires Secure.
    COOKIE_SECURE: bool = True
    COOKIE_DOMAIN: Optional[str] = None

    # Redis (OAuth nonce store)
    REDIS_URL: str = "redis://localhost:6379/0"
    OAUTH_STATE_TTL_SECONDS: int = 600  # 10 minutes

    # Google Cloud
    GCP_PROJECT: Optional[str] = None
    BIGQUERY_LOCATION: str = "US"  # Storage location, not client location
    INGEST_SERVICE_ACCOUNT: str = "ingest-sa@datapilot.iam.gserviceaccount.com"
    DATASET_MANAGED_BY_LABEL: str = "datapilot"
    EXTERNAL_CALL_TIMEOUT_SECONDS: float = 30.0

    # Shopify OAuth app
    SHOPIFY_CLIENT_ID: Optional[str] = None
    SHOPIFY_CLIENT_SECRET: Optional[str] = None
    SHOPIFY_REDIRECT_URI: Optional[str] = None

    # Google identity login
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CLIENT_SECRET: Optional[str] = None
    GOOGLE_REDIRECT_URI: str = "http://localhost:8080/auth/google/callback"

    SENTRY_DSN: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]


def get_current_user(
    db: Session = Depends(get_db),
    access_token: Optional[str] = Cookie(default=None, alias="access_token"),
) -> User:
    """Resolve the current user from the `access_token` cookie.

    The cookie value is expected to be in the form: "Bearer <jwt>".
    """
    if not access_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    # Remove optional "Bearer " prefix
    if access_token.startswith("Bearer "):
        token = access_token[len("Bearer ") :]
    else:
        token = access_token

    try:
        payload = decode_token(token)
    except Exception:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    user = (
        db.query(User)
        .filter(User.email == subject)
        .first()
    )
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


# =============================================================================
# PROVIDER HANDLES
# =============================================================================
# WHAT: Expose the handles built once in state.init_providers()
# WHY: Routers never construct clients themselves; tests override these

def _require_providers() -> state.Providers:
    if state.providers is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Provisioning backends are not initialized",
        )
    return state.providers


def get_dataset_provider():
    """BigQuery dataset provider shared by all requests."""
    return _require_providers().datasets


def get_secret_store():
    """Secret Manager store shared by all requests."""
    return _require_providers().secrets


def get_redis_client():
    """Redis client backing the OAuth nonce store."""
    return _require_providers().redis_client


def get_provisioner(
    datasets=Depends(get_dataset_provider),
    settings: Settings = Depends(get_settings),
):
    from .services.connector_provisioner import ConnectorProvisioner

    return ConnectorProvisioner(
        datasets,
        ingest_member=settings.INGEST_SERVICE_ACCOUNT,
        location=settings.BIGQUERY_LOCATION,
        managed_by=settings.DATASET_MANAGED_BY_LABEL,
    )


def get_credential_vault(secrets_store=Depends(get_secret_store)):
    from .services.credential_vault import CredentialVault

    return CredentialVault(secrets_store)


def get_nonce_store(
    redis_client=Depends(get_redis_client),
    settings: Settings = Depends(get_settings),
):
    from .services.oauth_state import OAuthNonceStore

    return OAuthNonceStore(redis_client, ttl_seconds=settings.OAUTH_STATE_TTL_SECONDS)
