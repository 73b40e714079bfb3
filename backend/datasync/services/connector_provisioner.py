"""Connector Provisioner - attach a connector to a workspace.

WHAT:
    Validates the connector type, provisions the connector's BigQuery dataset,
    grants the ingest service account write access, and records the
    attachment.

WHY:
    Downstream loaders write into one isolated dataset per
    (workspace, connector). The dataset name is derived from the workspace
    short id so it can be located without a lookup.

STEPS:
    1. parse_connector_type     -> InvalidConnector (no side effects yet)
    2. existing attachment?     -> AlreadyAttached (no side effects yet)
    3. ensure_dataset           create-if-absent, safe to repeat
    4. grant_ingest_access      read entries, add grant if absent, write once
    5. insert attachment row    unique constraint settles concurrent attaches

FAILURE POLICY:
    A provider failure at step 3 or 4, or a store failure at step 5, is
    reported as DependencyError and nothing already done is undone. Every step
    is idempotent, so calling attach() again resumes from wherever it stopped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import AlreadyAttached, DependencyError, InvalidConnector
from ..models import ConnectorTypeEnum, Workspace, WorkspaceConnector

logger = logging.getLogger(__name__)

# BigQuery dataset-level WRITER maps to roles/bigquery.dataEditor
INGEST_ROLE = "WRITER"
INGEST_ENTITY_TYPE = "userByEmail"
DATASET_LABEL_TYPE = "connector"


@dataclass(frozen=True)
class AccessGrant:
    """One entry of a dataset access list.

    `raw` carries the provider's own entry object so entries this service did
    not create are written back untouched.
    """

    role: Optional[str]
    entity_type: str
    entity_id: Any
    raw: Any = field(default=None, compare=False, hash=False, repr=False)

    def same_principal(self, other: "AccessGrant") -> bool:
        return (
            self.role == other.role
            and self.entity_type == other.entity_type
            and self.entity_id == other.entity_id
        )


class DatasetProvider(Protocol):
    def exists(self, dataset_id: str) -> bool: ...

    def create(self, dataset_id: str, *, location: str, labels: dict) -> None: ...

    def get_access(self, dataset_id: str) -> Sequence[AccessGrant]: ...

    def set_access(self, dataset_id: str, entries: Sequence[AccessGrant]) -> None: ...


def parse_connector_type(value: str) -> ConnectorTypeEnum:
    """Map a path segment to a connector type, rejecting anything unlisted."""
    try:
        return ConnectorTypeEnum((value or "").strip().lower())
    except ValueError:
        raise InvalidConnector(value)


def dataset_id_for(short_id: str, connector_type: ConnectorTypeEnum) -> str:
    """Dataset id for a (workspace, connector) pair, e.g. 'ws_3fa9c1__shopify'."""
    return f"{short_id}__{connector_type.value}"


def add_grant_if_absent(
    entries: Sequence[AccessGrant], grant: AccessGrant
) -> Tuple[Tuple[AccessGrant, ...], bool]:
    """Return (entries', changed).

    entries' is `entries` with `grant` appended, unless an equivalent grant is
    already present, in which case it is `entries` unchanged. Existing
    principals are never dropped or reordered.
    """
    current = tuple(entries)
    if any(existing.same_principal(grant) for existing in current):
        return current, False
    return current + (grant,), True


class ConnectorProvisioner:
    """Attach connectors to workspaces.

    Usage:
        provisioner = ConnectorProvisioner(datasets, ingest_member="ingest-sa@...")
        attachment = provisioner.attach(db, workspace, "shopify")
    """

    def __init__(
        self,
        datasets: DatasetProvider,
        *,
        ingest_member: str,
        location: str = "US",
        managed_by: str = "datapilot",
    ):
        self.datasets = datasets
        self.ingest_grant = AccessGrant(
            role=INGEST_ROLE,
            entity_type=INGEST_ENTITY_TYPE,
            entity_id=ingest_member,
        )
        self.location = location
        self.labels = {"managed_by": managed_by, "type": DATASET_LABEL_TYPE}

    # ------------------------------------------------------------------
    # Individual steps (each idempotent)
    # ------------------------------------------------------------------

    def ensure_dataset(self, dataset_id: str) -> bool:
        """Create the dataset if it does not exist. Returns True if created."""
        try:
            if self.datasets.exists(dataset_id):
                logger.info("[PROVISIONER] Dataset %s already exists", dataset_id)
                return False
            self.datasets.create(dataset_id, location=self.location, labels=dict(self.labels))
        except DependencyError as e:
            e.step = e.step or "ensure_dataset"
            e.resource = e.resource or dataset_id
            logger.error("[PROVISIONER] ensure_dataset failed for %s: %s", dataset_id, e.message)
            raise

        logger.info("[PROVISIONER] Created dataset %s (location=%s)", dataset_id, self.location)
        return True

    def grant_ingest_access(self, dataset_id: str) -> bool:
        """Add the ingest identity to the dataset access list. Returns True if written."""
        try:
            current = self.datasets.get_access(dataset_id)
            updated, changed = add_grant_if_absent(current, self.ingest_grant)
            if not changed:
                logger.info("[PROVISIONER] Ingest grant already present on %s", dataset_id)
                return False
            self.datasets.set_access(dataset_id, updated)
        except DependencyError as e:
            e.step = e.step or "grant_ingest_access"
            e.resource = e.resource or dataset_id
            logger.error("[PROVISIONER] grant_ingest_access failed for %s: %s", dataset_id, e.message)
            raise

        logger.info(
            "[PROVISIONER] Granted %s %s on %s",
            self.ingest_grant.entity_id, self.ingest_grant.role, dataset_id,
        )
        return True

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def find_attachment(
        self, db: Session, workspace: Workspace, connector_type: ConnectorTypeEnum
    ) -> Optional[WorkspaceConnector]:
        return (
            db.query(WorkspaceConnector)
            .filter(
                WorkspaceConnector.workspace_id == workspace.id,
                WorkspaceConnector.connector_type == connector_type,
            )
            .first()
        )

    def attach(self, db: Session, workspace: Workspace, connector_type: str) -> WorkspaceConnector:
        """Attach `connector_type` to `workspace`.

        The caller must already have checked ownership of `workspace`.

        Raises:
            InvalidConnector: Unknown connector type (before any provider call)
            AlreadyAttached: Pair already attached, or lost an insert race
            DependencyError: Provider or store failure mid-provisioning
        """
        connector = parse_connector_type(connector_type)
        short_id = workspace.short_id
        workspace_id = workspace.id

        if self.find_attachment(db, workspace, connector) is not None:
            logger.info("[PROVISIONER] %s already attached to %s", connector.value, short_id)
            raise AlreadyAttached(short_id, connector.value)

        dataset_id = dataset_id_for(short_id, connector)
        self.ensure_dataset(dataset_id)
        self.grant_ingest_access(dataset_id)

        attachment = WorkspaceConnector(
            workspace_id=workspace_id,
            connector_type=connector,
            dataset_id=dataset_id,
        )
        db.add(attachment)
        try:
            db.commit()
        except IntegrityError:
            # Another request attached the same pair between our pre-check
            # and insert. Its dataset and grant are the same as ours.
            db.rollback()
            logger.info("[PROVISIONER] Lost attach race for %s on %s", connector.value, short_id)
            raise AlreadyAttached(short_id, connector.value)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                "[PROVISIONER] Failed to record attachment %s (dataset left provisioned): %s",
                dataset_id, e,
            )
            raise DependencyError(
                "failed to record connector attachment",
                step="record_attachment",
                resource=dataset_id,
            ) from e

        db.refresh(attachment)
        logger.info("[PROVISIONER] Attached %s to %s -> %s", connector.value, short_id, dataset_id)
        return attachment
