"""
Sentry Error Tracking
=====================

Centralized error tracking for provisioning failures.

Related files:
- datasync/main.py: Initializes Sentry on app startup
- datasync/routers/auth.py: Sets user context after login
- datasync/routers/*.py: Unhandled errors auto-captured

Environment Variables:
- SENTRY_DSN: Sentry project DSN (Sentry stays off when unset)
- ENVIRONMENT: Environment name (production, staging, development)
"""

from __future__ import annotations

import os
import logging
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)

_initialized = False


def init_sentry(dsn: Optional[str] = None, environment: Optional[str] = None) -> bool:
    """
    Initialize Sentry SDK for FastAPI.

    Returns:
        True if Sentry was initialized, False when no DSN is configured.
    """
    global _initialized

    dsn = dsn or os.environ.get("SENTRY_DSN")
    if not dsn:
        logger.info("[SENTRY] SENTRY_DSN not set - error tracking disabled")
        return False

    environment = environment or os.environ.get("ENVIRONMENT", "development")

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(
                level=logging.INFO,        # Capture INFO+ as breadcrumbs
                event_level=logging.ERROR,  # Send ERROR+ as events
            ),
        ],
        traces_sample_rate=0.1,
        # Tokens and emails are never attached implicitly
        send_default_pii=False,
        release=os.environ.get("RELEASE_VERSION"),
    )
    _initialized = True
    logger.info(f"[SENTRY] Initialized for {environment} environment")
    return True


def set_user_context(user_id: str, email: Optional[str] = None) -> None:
    """Attach the authenticated user to subsequent Sentry events."""
    if not _initialized:
        return
    sentry_sdk.set_user({"id": user_id, "email": email})


def clear_user_context() -> None:
    if not _initialized:
        return
    sentry_sdk.set_user(None)


def capture_exception(exception: Exception, extra: Optional[dict] = None) -> None:
    """
    Report a handled exception.

    Example:
        except DependencyError as e:
            capture_exception(e, extra={"step": e.step, "resource": e.resource})
    """
    if not _initialized:
        logger.error(f"Exception (Sentry disabled): {exception}")
        return

    with sentry_sdk.new_scope() as scope:
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exception)
