"""Identity directory - resolve a login email to a stable user record.

WHAT: Upsert keyed on email. First login creates the user, every later
      login returns the same row.
WHY: The session cookie carries the email; provisioning needs a stable
     internal id to scope workspace ownership.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import DirectoryError
from ..models import User

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def resolve(db: Session, email: str) -> User:
    """Return the user for `email`, creating it on first sight.

    Two concurrent first logins for the same email both try to insert; the
    unique constraint on users.email lets exactly one win and the loser
    re-reads the winner's row.

    Raises:
        ValueError: If email is empty
        DirectoryError: If the store is unreachable
    """
    email = normalize_email(email)
    if not email:
        raise ValueError("email is required")

    try:
        user = db.query(User).filter(User.email == email).first()
        if user is None:
            user = User(email=email, last_login_at=datetime.utcnow())
            db.add(user)
            try:
                db.commit()
                logger.info("[IDENTITY] Created user %s", user.id)
            except IntegrityError:
                db.rollback()
                user = db.query(User).filter(User.email == email).one()
                logger.info("[IDENTITY] Concurrent first login resolved to user %s", user.id)
        else:
            user.last_login_at = datetime.utcnow()
            db.commit()
        db.refresh(user)
        return user
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[IDENTITY] User store unavailable: %s", e)
        raise DirectoryError("user directory unavailable") from e
