"""
Application State
=================

Process-wide provider handles that persist across requests.

WHY this exists:
- BigQuery, Secret Manager and Redis clients hold connection pools and
  credentials; building one per request is wasteful
- Handles are constructed explicitly, once, at startup (main.py lifespan)
  and handed to routers through FastAPI dependencies (deps.py)
- Nothing here is mutated per request; correctness never depends on
  in-process state because multiple instances may run

WHAT it stores:
- providers.datasets: BigQueryDatasets (dataset exists/create/access)
- providers.secrets: SecretManagerStore (secret containers/versions)
- providers.redis_client: Redis client for OAuth nonces
"""

import logging
from dataclasses import dataclass
from typing import Optional

from redis import Redis

logger = logging.getLogger(__name__)


@dataclass
class Providers:
    datasets: object
    secrets: object
    redis_client: Redis


providers: Optional[Providers] = None


def init_providers(settings) -> Providers:
    """Construct provider handles once. Safe to call again; returns existing handles."""
    global providers
    if providers is not None:
        return providers

    from datasync.services.bigquery_datasets import BigQueryDatasets
    from datasync.services.secret_manager import SecretManagerStore

    if not settings.GCP_PROJECT:
        raise RuntimeError("GCP_PROJECT is not set. Secret and dataset provisioning need a project id.")

    # Bounded like every other external call; an unreachable Redis must not hang a request
    redis_client = Redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
    )

    providers = Providers(
        datasets=BigQueryDatasets(
            project=settings.GCP_PROJECT,
            timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
        ),
        secrets=SecretManagerStore(
            project=settings.GCP_PROJECT,
            timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
        ),
        redis_client=redis_client,
    )
    logger.info("[STATE] Provider handles initialized for project %s", settings.GCP_PROJECT)
    return providers


def shutdown_providers() -> None:
    """Release provider handles on application shutdown."""
    global providers
    if providers is None:
        return
    try:
        providers.redis_client.close()
    finally:
        providers = None
        logger.info("[STATE] Provider handles released")
