"""
Data export job contract.

The export is an external collaborator of the lifecycle: permanent deletion runs it
synchronously, with a timeout, before committing; soft deletion submits it to run in
the background during the grace period.
"""
import logging
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Iterable, List, Optional

from steward.exceptions import ExportFailedError, ExportTimeoutError
from steward.models import ExportFormat

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    success: bool
    export_url: Optional[str] = None
    error: Optional[str] = None


class DataExportJob(ABC):
    """Bundles an organization's data into a downloadable artifact."""

    def __init__(self, max_workers: int = 2):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='steward-export')

    @abstractmethod
    def export(self, organization_id: str, export_format: ExportFormat,
               categories: Iterable[str]) -> ExportResult:
        """Produce the export. Returns an unsuccessful result rather than raising for expected failures."""

    def run(self, organization_id: str, export_format: ExportFormat, categories: Iterable[str],
            timeout: float) -> ExportResult:
        """
        Run the export and wait at most `timeout` seconds for it.

        Raises:
            ExportTimeoutError: the export did not finish in time.
            ExportFailedError: the export raised or reported failure.
        """
        categories = list(categories)
        future = self._executor.submit(self.export, organization_id, ExportFormat(export_format), categories)
        try:
            result = future.result(timeout=timeout)
        except FutureTimeoutError as e:
            future.cancel()
            logger.warning("Export of organization %s timed out after %ss", organization_id, timeout)
            raise ExportTimeoutError() from e
        except Exception as e:
            logger.warning("Export of organization %s failed: %s", organization_id, e)
            raise ExportFailedError() from e
        if not result.success:
            logger.warning("Export of organization %s failed: %s", organization_id, result.error)
            raise ExportFailedError()
        return result

    def submit(self, organization_id: str, export_format: ExportFormat, categories: Iterable[str]) -> Future:
        """Start the export in the background and return its future."""
        future = self._executor.submit(self.export, organization_id, ExportFormat(export_format), list(categories))
        future.add_done_callback(lambda f: self._log_outcome(organization_id, f))
        return future

    @staticmethod
    def _log_outcome(organization_id: str, future: Future):
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.warning("Background export of organization %s raised: %s", organization_id, error)
        elif not future.result().success:
            logger.warning("Background export of organization %s failed: %s", organization_id, future.result().error)

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)


def normalize_categories(categories: Optional[Iterable[str]], default: List[str]) -> List[str]:
    return list(categories) if categories else list(default)
