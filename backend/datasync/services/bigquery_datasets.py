"""BigQuery dataset adapter.

WHAT: exists / create / get_access / set_access over google-cloud-bigquery.
WHY: ConnectorProvisioner works on AccessGrant values and a small protocol;
     this module is the only place that touches the BigQuery client.

Every call passes an explicit timeout. Timeouts and API errors surface as
DependencyError so the caller can retry the whole (idempotent) attach.
"""

import logging
from typing import List, Sequence

from google.api_core import exceptions as gcp_exceptions
from google.cloud import bigquery

from ..errors import DependencyError
from .connector_provisioner import AccessGrant

logger = logging.getLogger(__name__)

_TIMEOUT_ERRORS = (TimeoutError, gcp_exceptions.RetryError, gcp_exceptions.DeadlineExceeded)


class BigQueryDatasets:
    def __init__(self, project: str, timeout: float = 30.0, client=None):
        self.project = project
        self.timeout = timeout
        self.client = client or bigquery.Client(project=project)

    def _ref(self, dataset_id: str) -> str:
        return f"{self.project}.{dataset_id}"

    def _fail(self, step: str, dataset_id: str, exc: Exception) -> DependencyError:
        if isinstance(exc, _TIMEOUT_ERRORS):
            message = f"BigQuery {step} timed out after {self.timeout}s"
        else:
            message = f"BigQuery {step} failed: {exc}"
        return DependencyError(message, step=step, resource=dataset_id)

    def exists(self, dataset_id: str) -> bool:
        try:
            self.client.get_dataset(self._ref(dataset_id), timeout=self.timeout)
            return True
        except gcp_exceptions.NotFound:
            return False
        except (gcp_exceptions.GoogleAPIError, *_TIMEOUT_ERRORS) as e:
            raise self._fail("get_dataset", dataset_id, e) from e

    def create(self, dataset_id: str, *, location: str, labels: dict) -> None:
        dataset = bigquery.Dataset(self._ref(dataset_id))
        dataset.location = location
        dataset.labels = labels
        try:
            # exists_ok: a concurrent attach that created it first is success
            self.client.create_dataset(dataset, exists_ok=True, timeout=self.timeout)
        except (gcp_exceptions.GoogleAPIError, *_TIMEOUT_ERRORS) as e:
            raise self._fail("create_dataset", dataset_id, e) from e

    def get_access(self, dataset_id: str) -> List[AccessGrant]:
        try:
            dataset = self.client.get_dataset(self._ref(dataset_id), timeout=self.timeout)
        except (gcp_exceptions.GoogleAPIError, *_TIMEOUT_ERRORS) as e:
            raise self._fail("get_access", dataset_id, e) from e

        return [
            AccessGrant(
                role=entry.role,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                raw=entry,
            )
            for entry in dataset.access_entries
        ]

    def set_access(self, dataset_id: str, entries: Sequence[AccessGrant]) -> None:
        access_entries = [
            grant.raw
            if grant.raw is not None
            else bigquery.AccessEntry(
                role=grant.role,
                entity_type=grant.entity_type,
                entity_id=grant.entity_id,
            )
            for grant in entries
        ]
        try:
            dataset = self.client.get_dataset(self._ref(dataset_id), timeout=self.timeout)
            dataset.access_entries = access_entries
            self.client.update_dataset(dataset, ["access_entries"], timeout=self.timeout)
        except (gcp_exceptions.GoogleAPIError, *_TIMEOUT_ERRORS) as e:
            raise self._fail("set_access", dataset_id, e) from e
