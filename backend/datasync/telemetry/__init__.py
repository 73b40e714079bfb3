"""
Telemetry Module
================

Error tracking for the provisioning API.

Components:
- sentry.py: Error tracking (Sentry)

Usage:
    from datasync.telemetry import init_sentry

    init_sentry()  # once, on app startup
"""

from datasync.telemetry.sentry import (
    init_sentry,
    set_user_context,
    clear_user_context,
    capture_exception,
)


__all__ = [
    "init_sentry",
    "set_user_context",
    "clear_user_context",
    "capture_exception",
]
