"""Authorization guard for workspace-scoped operations."""

import logging

from sqlalchemy.orm import Session

from ..errors import AuthorizationError
from ..models import User, Workspace
from . import workspace_registry

logger = logging.getLogger(__name__)


def require_ownership(db: Session, requester: User, workspace_ref: str) -> Workspace:
    """Return the workspace if `requester` owns it.

    `workspace_ref` is either a short id (``ws_…``) or the workspace UUID.
    A missing workspace and one owned by someone else raise the same
    AuthorizationError. The check runs against the store on every call.
    """
    ref = (workspace_ref or "").strip()

    if workspace_registry.is_short_id(ref):
        workspace = workspace_registry.find_owned(db, ref, requester)
    else:
        workspace = workspace_registry.find_owned_by_id(db, ref, requester)

    if workspace is None:
        logger.info("[AUTHZ] Denied user %s access to workspace ref %r", requester.id, ref)
        raise AuthorizationError()

    return workspace
