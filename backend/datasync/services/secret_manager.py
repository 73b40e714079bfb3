"""Secret Manager adapter.

WHAT: create_container / add_version / has_version / container_name over
      google-cloud-secret-manager, with a bounded timeout on every call.
WHY: CredentialVault stays testable against a fake; only this module
     knows about the GCP client and its exception types.
"""

import logging

from google.api_core import exceptions as gcp_exceptions
from google.cloud import secretmanager

from ..errors import CredentialExists, DependencyError

logger = logging.getLogger(__name__)


class SecretManagerStore:
    def __init__(self, project: str, timeout: float = 30.0, client=None):
        self.project = project
        self.timeout = timeout
        self.client = client or secretmanager.SecretManagerServiceClient()

    @property
    def parent(self) -> str:
        return f"projects/{self.project}"

    def container_name(self, secret_id: str) -> str:
        return f"{self.parent}/secrets/{secret_id}"

    def create_container(self, secret_id: str, *, labels: dict) -> str:
        try:
            secret = self.client.create_secret(
                request={
                    "parent": self.parent,
                    "secret_id": secret_id,
                    "secret": {"replication": {"automatic": {}}, "labels": labels},
                },
                timeout=self.timeout,
            )
        except gcp_exceptions.AlreadyExists as e:
            raise CredentialExists(secret_id) from e
        except gcp_exceptions.GoogleAPIError as e:
            raise DependencyError(f"Secret Manager create_secret failed: {e}", step="create_secret", resource=secret_id) from e
        return secret.name

    def add_version(self, container_name: str, payload: bytes) -> str:
        try:
            version = self.client.add_secret_version(
                request={"parent": container_name, "payload": {"data": payload}},
                timeout=self.timeout,
            )
        except gcp_exceptions.GoogleAPIError as e:
            # Never include the payload in the message
            raise DependencyError(
                f"Secret Manager add_secret_version failed: {type(e).__name__}",
                step="add_secret_version",
                resource=container_name,
            ) from e
        return version.name

    def has_version(self, container_name: str) -> bool:
        """True when the secret holds at least one enabled version."""
        try:
            pager = self.client.list_secret_versions(
                request={"parent": container_name, "filter": "state:ENABLED", "page_size": 1},
                timeout=self.timeout,
            )
            return next(iter(pager), None) is not None
        except gcp_exceptions.GoogleAPIError as e:
            raise DependencyError(
                f"Secret Manager list_secret_versions failed: {e}",
                step="list_secret_versions",
                resource=container_name,
            ) from e
