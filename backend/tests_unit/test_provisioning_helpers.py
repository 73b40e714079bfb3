"""
Provisioning Helper Tests (Unit)
================================

WHAT: Unit tests for pure helpers used while attaching connectors and installing stores.
WHY: Dataset names, secret ids and access-list merging are contracts with downstream
     ingest jobs; they must stay deterministic.

REFERENCES:
- backend/datasync/services/connector_provisioner.py
- backend/datasync/services/credential_vault.py
- backend/datasync/services/shopify_oauth_client.py
"""

import json

import pytest

from datasync.errors import CredentialExists, DependencyError, InvalidConnector
from datasync.models import ConnectorTypeEnum
from datasync.services.connector_provisioner import (
    AccessGrant,
    add_grant_if_absent,
    dataset_id_for,
    parse_connector_type,
)
from datasync.services.credential_vault import CredentialVault, secret_id_for
from datasync.services.shopify_oauth_client import (
    build_authorize_url,
    normalize_shop_domain,
    validate_shop_domain,
)

INGEST = AccessGrant(role="WRITER", entity_type="userByEmail", entity_id="ingest-sa@p.iam.gserviceaccount.com")
OWNERS = AccessGrant(role="OWNER", entity_type="specialGroup", entity_id="projectOwners")
READER = AccessGrant(role="READER", entity_type="userByEmail", entity_id="analyst@example.com")


# ============================================================================
# Connector helpers
# ============================================================================

@pytest.mark.parametrize("raw,expected", [
    ("shopify", ConnectorTypeEnum.shopify),
    ("META", ConnectorTypeEnum.meta),
    (" google ", ConnectorTypeEnum.google),
])
def test_parse_connector_type_accepts_known(raw, expected) -> None:
    assert parse_connector_type(raw) is expected


@pytest.mark.parametrize("raw", ["tiktok", "", None, "shopify2"])
def test_parse_connector_type_rejects_unknown(raw) -> None:
    with pytest.raises(InvalidConnector):
        parse_connector_type(raw)


def test_dataset_id_for() -> None:
    assert dataset_id_for("ws_3fa9c1", ConnectorTypeEnum.shopify) == "ws_3fa9c1__shopify"


def test_add_grant_if_absent_appends_and_preserves_existing() -> None:
    entries, changed = add_grant_if_absent([OWNERS, READER], INGEST)

    assert changed is True
    assert entries == (OWNERS, READER, INGEST)


def test_add_grant_if_absent_is_noop_when_present() -> None:
    existing = AccessGrant(role=INGEST.role, entity_type=INGEST.entity_type, entity_id=INGEST.entity_id, raw=object())

    entries, changed = add_grant_if_absent([OWNERS, existing], INGEST)

    assert changed is False
    assert entries == (OWNERS, existing)
    assert entries[1].raw is existing.raw


def test_add_grant_if_absent_treats_other_role_as_distinct() -> None:
    reader_same_member = AccessGrant(role="READER", entity_type=INGEST.entity_type, entity_id=INGEST.entity_id)

    entries, changed = add_grant_if_absent([reader_same_member], INGEST)

    assert changed is True
    assert len(entries) == 2


# ============================================================================
# Credential vault
# ============================================================================

class RecordingSecrets:
    def __init__(self):
        self.created = {}
        self.versions = {}

    def container_name(self, secret_id):
        return f"projects/p/secrets/{secret_id}"

    def create_container(self, secret_id, *, labels):
        name = self.container_name(secret_id)
        if name in self.created:
            raise CredentialExists(secret_id)
        self.created[name] = labels
        return name

    def add_version(self, container_name, payload):
        self.versions.setdefault(container_name, []).append(payload)
        return f"{container_name}/versions/1"

    def has_version(self, container_name):
        return bool(self.versions.get(container_name))


def test_secret_id_for_replaces_disallowed_chars() -> None:
    assert secret_id_for("ws_abc", "acme.myshopify.com") == "shopify-ws_abc-acme-myshopify-com"


def test_secret_id_for_is_bounded() -> None:
    assert len(secret_id_for("w" * 300, "acme.myshopify.com")) == 255


def test_vault_store_serializes_token_response() -> None:
    secrets_store = RecordingSecrets()
    vault = CredentialVault(secrets_store)

    name = vault.store("ws_abc", "acme.myshopify.com", {"access_token": "shpat_x"})

    assert name == "projects/p/secrets/shopify-ws_abc-acme-myshopify-com"
    assert json.loads(secrets_store.versions[name][0]) == {"access_token": "shpat_x"}
    assert vault.reference_for("ws_abc", "acme.myshopify.com") == name


def test_vault_store_twice_raises_credential_exists() -> None:
    vault = CredentialVault(RecordingSecrets())
    vault.store("ws_abc", "acme.myshopify.com", "token-1")

    with pytest.raises(CredentialExists):
        vault.store("ws_abc", "acme.myshopify.com", "token-2")


def test_vault_store_tags_dependency_errors() -> None:
    class FailingVersions(RecordingSecrets):
        def add_version(self, container_name, payload):
            raise DependencyError("add failed")

    with pytest.raises(DependencyError) as exc_info:
        CredentialVault(FailingVersions()).store("ws_abc", "acme.myshopify.com", "token")

    assert exc_info.value.step == "add_secret_version"
    assert exc_info.value.resource == "projects/p/secrets/shopify-ws_abc-acme-myshopify-com"
    assert "token" not in exc_info.value.message


def test_vault_store_writes_first_version_into_empty_existing_secret() -> None:
    secrets_store = RecordingSecrets()
    name = secrets_store.create_container("shopify-ws_abc-acme-myshopify-com", labels={})

    stored = CredentialVault(secrets_store).store("ws_abc", "acme.myshopify.com", "token-1")

    assert stored == name
    assert secrets_store.versions[name] == [b"token-1"]


def test_vault_store_tags_version_lookup_errors() -> None:
    class FailingLookup(RecordingSecrets):
        def has_version(self, container_name):
            raise DependencyError("list failed")

    secrets_store = FailingLookup()
    secrets_store.create_container("shopify-ws_abc-acme-myshopify-com", labels={})

    with pytest.raises(DependencyError) as exc_info:
        CredentialVault(secrets_store).store("ws_abc", "acme.myshopify.com", "token")

    assert exc_info.value.step == "list_secret_versions"
    assert secrets_store.versions == {}


# ============================================================================
# Shopify helpers
# ============================================================================

@pytest.mark.parametrize("raw", [
    "acme",
    "ACME.myshopify.com",
    "https://acme.myshopify.com/admin",
    "  acme.myshopify.com  ",
])
def test_normalize_shop_domain(raw) -> None:
    assert normalize_shop_domain(raw) == "acme.myshopify.com"


@pytest.mark.parametrize("domain,valid", [
    ("acme.myshopify.com", True),
    ("my-store-1.myshopify.com", True),
    ("-acme.myshopify.com", False),
    ("acme.example.com", False),
    ("a.myshopify.com", False),
])
def test_validate_shop_domain(domain, valid) -> None:
    assert validate_shop_domain(domain) is valid


def test_build_authorize_url_carries_state() -> None:
    url = build_authorize_url("acme.myshopify.com", "n0nce:ws_abc", client_id="cid", redirect_uri="https://x/cb")

    assert url.startswith("https://acme.myshopify.com/admin/oauth/authorize?")
    assert "state=n0nce%3Aws_abc" in url
    assert "scope=read_orders%2Cread_customers" in url
