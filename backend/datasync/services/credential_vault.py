"""Credential vault for third-party access tokens.

WHAT:
    Writes a Shopify access token into Secret Manager under a name derived
    from (workspace, shop) and returns the secret's resource name.

WHY:
    - Keeps raw tokens out of the relational store and out of logs.
    - The stored reference is enough for ingest jobs to fetch the token later.

REFERENCES:
    - datasync/services/secret_manager.py (provider adapter)
    - datasync/routers/shopify_oauth.py (caller)
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol

from ..errors import CredentialExists, DependencyError

logger = logging.getLogger(__name__)

SECRET_ID_PREFIX = "shopify"
SECRET_ID_MAX_LENGTH = 255  # Secret Manager limit
_DISALLOWED_SECRET_CHARS = re.compile(r"[^A-Za-z0-9_-]")


class SecretStore(Protocol):
    def create_container(self, secret_id: str, *, labels: dict) -> str: ...

    def add_version(self, container_name: str, payload: bytes) -> str: ...

    def has_version(self, container_name: str) -> bool: ...

    def container_name(self, secret_id: str) -> str: ...


def secret_id_for(workspace_id: str, shop: str) -> str:
    """Deterministic secret id for a (workspace, shop) pair.

    Example:
        secret_id_for("6f1c...", "acme.myshopify.com")
        -> "shopify-6f1c...-acme-myshopify-com"
    """
    raw = f"{SECRET_ID_PREFIX}-{workspace_id}-{shop}"
    return _DISALLOWED_SECRET_CHARS.sub("-", raw)[:SECRET_ID_MAX_LENGTH]


class CredentialVault:
    def __init__(self, secrets: SecretStore):
        self.secrets = secrets

    def reference_for(self, workspace_id: str, shop: str) -> str:
        """Reference an existing credential would have, without touching the token."""
        return self.secrets.container_name(secret_id_for(workspace_id, shop))

    def _has_version(self, name: str) -> bool:
        try:
            return self.secrets.has_version(name)
        except DependencyError as e:
            e.step = e.step or "list_secret_versions"
            e.resource = e.resource or name
            logger.error("[CREDENTIAL_VAULT] Failed to inspect secret %s: %s", name, e.message)
            raise

    def store(self, workspace_id: str, shop: str, token: Any) -> str:
        """Persist `token` as the first and only version of a new secret.

        Parameters:
            workspace_id: Owning workspace
            shop: Normalized shop domain
            token: Token response from the provider (dict or string)

        Returns:
            Secret resource name, e.g. projects/p/secrets/shopify-...

        Raises:
            CredentialExists: A secret for this pair already exists
            DependencyError: Secret Manager failed
        """
        secret_id = secret_id_for(str(workspace_id), shop)
        payload = token if isinstance(token, str) else json.dumps(token)

        try:
            name = self.secrets.create_container(
                secret_id,
                labels={"managed_by": "datapilot", "type": "shopify-token"},
            )
        except CredentialExists:
            name = self.secrets.container_name(secret_id)
            if self._has_version(name):
                logger.info("[CREDENTIAL_VAULT] Secret %s already holds a token", secret_id)
                raise
            # An earlier attempt created the container but never wrote the
            # token; this token becomes its first version.
            logger.warning("[CREDENTIAL_VAULT] Secret %s exists without a version; completing it", secret_id)
        except DependencyError as e:
            e.step = e.step or "create_secret"
            e.resource = e.resource or secret_id
            logger.error("[CREDENTIAL_VAULT] Failed to create secret %s: %s", secret_id, e.message)
            raise

        try:
            self.secrets.add_version(name, payload.encode("utf-8"))
        except DependencyError as e:
            e.step = e.step or "add_secret_version"
            e.resource = e.resource or name
            logger.error("[CREDENTIAL_VAULT] Failed to write token version to %s: %s", name, e.message)
            raise

        logger.info("[CREDENTIAL_VAULT] Stored credential for shop %s in %s", shop, name)
        return name
