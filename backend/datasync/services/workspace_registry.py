"""Workspace Registry - workspace creation and owner-scoped lookup.

WHAT: Allocates workspaces with collision-safe short identifiers and looks
      them up only ever together with their owner.
WHY: short_id prefixes every dataset a workspace provisions, so it must be
     globally unique and immutable. Lookups that filter on owner in the same
     query never reveal that another tenant's workspace exists.

Allocation is a small state machine:

    generating -> inserted
               -> conflict-retry -> generating
               -> exhausted (after MAX_SHORT_ID_ATTEMPTS)

The unique index on workspaces.short_id is the only collision arbiter. No
in-process lock is taken; other instances allocate concurrently.
"""

import logging
import secrets
import uuid
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import RegistryExhausted
from ..models import User, Workspace

logger = logging.getLogger(__name__)

SHORT_ID_PREFIX = "ws_"
SHORT_ID_BYTES = 3  # 6 hex chars, ~16.7M ids
MAX_SHORT_ID_ATTEMPTS = 10
DEFAULT_WORKSPACE_NAME = "Untitled Workspace"


def generate_short_id() -> str:
    """Return a fresh candidate short id, e.g. 'ws_3fa9c1'."""
    return SHORT_ID_PREFIX + secrets.token_hex(SHORT_ID_BYTES)


def is_short_id(ref: str) -> bool:
    return bool(ref) and ref.startswith(SHORT_ID_PREFIX)


def _short_id_taken(db: Session, short_id: str) -> bool:
    return db.query(Workspace.id).filter(Workspace.short_id == short_id).first() is not None


def create(db: Session, owner: User, name: Optional[str] = None) -> Workspace:
    """Create a workspace owned by `owner`.

    Parameters:
        db: Database session
        owner: Identity that will own the workspace (immutable)
        name: Display name; blank falls back to "Untitled Workspace"

    Returns:
        Workspace: The committed workspace

    Raises:
        RegistryExhausted: Every attempt collided with an existing short id
    """
    name = (name or "").strip() or DEFAULT_WORKSPACE_NAME
    owner_id = owner.id

    for attempt in range(1, MAX_SHORT_ID_ATTEMPTS + 1):
        short_id = generate_short_id()
        workspace = Workspace(short_id=short_id, name=name, owner_user_id=owner_id)
        db.add(workspace)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            if not _short_id_taken(db, short_id):
                # Not a collision (e.g. missing owner); retrying cannot help
                logger.error("[WORKSPACES] Workspace insert failed for user %s", owner_id)
                raise
            logger.warning(
                "[WORKSPACES] Short id collision on %s (attempt %d/%d)",
                short_id, attempt, MAX_SHORT_ID_ATTEMPTS,
            )
            continue

        db.refresh(workspace)
        logger.info("[WORKSPACES] Created workspace %s for user %s", workspace.short_id, owner_id)
        return workspace

    logger.error(
        "[WORKSPACES] Short id space exhausted after %d attempts for user %s",
        MAX_SHORT_ID_ATTEMPTS, owner_id,
    )
    raise RegistryExhausted(MAX_SHORT_ID_ATTEMPTS)


def find_owned(db: Session, short_id: str, owner: User) -> Optional[Workspace]:
    """Look up a workspace by short id AND owner in one query."""
    return (
        db.query(Workspace)
        .filter(
            Workspace.short_id == short_id,
            Workspace.owner_user_id == owner.id,
        )
        .first()
    )


def find_owned_by_id(db: Session, workspace_id, owner: User) -> Optional[Workspace]:
    """Look up a workspace by UUID AND owner in one query.

    An unparsable id is a plain miss, never a distinct error.
    """
    if not isinstance(workspace_id, uuid.UUID):
        try:
            workspace_id = uuid.UUID(str(workspace_id))
        except (ValueError, TypeError):
            return None

    return (
        db.query(Workspace)
        .filter(
            Workspace.id == workspace_id,
            Workspace.owner_user_id == owner.id,
        )
        .first()
    )


def list_owned(db: Session, owner: User) -> List[Workspace]:
    return (
        db.query(Workspace)
        .filter(Workspace.owner_user_id == owner.id)
        .order_by(Workspace.created_at)
        .all()
    )
