"""
Provisioning Exceptions
=======================

Custom exception types for workspace, connector and credential provisioning.

WHY THIS FILE EXISTS
--------------------
Provisioning touches three kinds of collaborators (the relational store,
BigQuery, Secret Manager) plus a third-party OAuth server. Each failure mode
maps to a distinct HTTP outcome:

    ValidationError     -> 400 (bad input, detected before any side effect)
    StateDecodeError    -> 400 (OAuth round-trip state malformed or unknown)
    AuthorizationError  -> 403/404 (not found and not owned are the same error)
    ConflictError       -> 409 or a silent no-op, depending on the caller
    DependencyError     -> 500 (external provider failed mid-operation)
    RegistryExhausted   -> 500 (short-id space collided too many times)
    DirectoryError      -> 500 (user store unreachable)

RELATED FILES
-------------
- datasync/services/: raise these exceptions
- datasync/routers/: translate them into HTTPException responses
"""

from typing import Optional


class DataSyncError(Exception):
    """
    Base exception for all provisioning errors.

    USAGE:
        try:
            provisioner.attach(db, workspace, "shopify")
        except DataSyncError as e:
            return {"error": e.message}
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DataSyncError):
    """Request input rejected before any side effect."""


class InvalidConnector(ValidationError):
    """Connector type is not one of the supported connectors."""

    def __init__(self, connector_type: str):
        super().__init__(f"invalid connector: {connector_type}")
        self.connector_type = connector_type


class StateDecodeError(ValidationError):
    """OAuth round-trip state could not be decoded or was never issued."""


class AuthorizationError(DataSyncError):
    """
    Requester does not own the referenced workspace.

    WHAT:
        Raised both when the workspace does not exist and when it exists under
        another owner.

    WHY:
        Callers must not be able to tell the two apart, so the message is fixed.
    """

    MESSAGE = "workspace not found"

    def __init__(self):
        super().__init__(self.MESSAGE)


class ConflictError(DataSyncError):
    """Resource already exists."""


class AlreadyAttached(ConflictError):
    """Connector already attached to the workspace."""

    def __init__(self, workspace_short_id: str, connector_type: str):
        super().__init__(f"connector {connector_type} already attached to {workspace_short_id}")
        self.workspace_short_id = workspace_short_id
        self.connector_type = connector_type


class CredentialExists(ConflictError):
    """Secret container for the (workspace, shop) pair already exists."""

    def __init__(self, secret_id: str):
        super().__init__(f"credential already stored: {secret_id}")
        self.secret_id = secret_id


class DependencyError(DataSyncError):
    """
    External provider failed, timed out or denied the call.

    ATTRIBUTES:
        step: Provisioning step that failed (e.g. "ensure_dataset")
        resource: Resource identifier the step operated on

    RECOVERY:
        Already completed steps are left in place. Every step is idempotent,
        so the caller retries the whole operation.
    """

    def __init__(self, message: str, step: Optional[str] = None, resource: Optional[str] = None):
        super().__init__(message)
        self.step = step
        self.resource = resource


class RegistryExhausted(DataSyncError):
    """Short identifier generation collided on every allowed attempt."""

    def __init__(self, attempts: int):
        super().__init__(f"could not allocate a unique workspace id after {attempts} attempts")
        self.attempts = attempts


class DirectoryError(DataSyncError):
    """User directory (relational store) unreachable."""
