from abc import ABC, abstractmethod
import json
import logging
from pathlib import Path

from healthcheck.clock import parse_timestamp
from healthcheck.config import Settings
from healthcheck.errors import ProviderAuthError, ProviderError, ProviderTimeout, ProviderUnavailable
from healthcheck.retry import RetryExhaustedError, run_with_retries
from healthcheck.schemas import ENTITY_KINDS, SESSIONS, FetchFilter


logger = logging.getLogger(__name__)

RawRecord = dict[str, object]


class DataProvider(ABC):
    """Source of raw records for one backup platform.

    Implementations own connection handling, retries and timeouts. Failures
    surface as ProviderUnavailable, ProviderAuthError or ProviderTimeout.
    """

    @abstractmethod
    def fetch(self, entity_kind: str, fetch_filter: FetchFilter) -> list[RawRecord]:
        raise NotImplementedError


_ERROR_TYPES: dict[str, type[ProviderError]] = {
    "auth": ProviderAuthError,
    "timeout": ProviderTimeout,
    "unavailable": ProviderUnavailable,
}


class SnapshotProvider(DataProvider):
    """Reads `<entity_kind>.json` documents exported by a platform adapter."""

    def __init__(self, snapshot_dir: str | Path, *, max_retries: int = 2, backoff_seconds: float = 1.0) -> None:
        self.snapshot_dir = Path(snapshot_dir)
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds

    def fetch(self, entity_kind: str, fetch_filter: FetchFilter) -> list[RawRecord]:
        if entity_kind not in ENTITY_KINDS:
            raise ProviderUnavailable(entity_kind, "unknown entity kind")

        path = self.snapshot_dir / f"{entity_kind}.json"
        if not path.exists():
            raise ProviderUnavailable(entity_kind, f"snapshot not found: {path}")

        try:
            document = run_with_retries(
                lambda: self._read(path),
                max_retries=self.max_retries,
                backoff_seconds=self.backoff_seconds,
                should_retry=self._is_retryable,
            )
        except RetryExhaustedError as exc:
            if isinstance(exc.__cause__, json.JSONDecodeError):
                raise ProviderUnavailable(entity_kind, f"invalid snapshot {path}: {exc}") from exc
            raise ProviderUnavailable(entity_kind, f"unreadable snapshot {path}: {exc}") from exc

        records = self._records(entity_kind, document)
        if entity_kind == SESSIONS and fetch_filter.since is not None:
            records = [record for record in records if self._is_since(record, fetch_filter)]

        logger.debug("snapshot loaded", extra={"entity_kind": entity_kind, "records": len(records)})
        return records

    def _read(self, path: Path) -> object:
        with path.open("r", encoding="utf-8") as infile:
            return json.load(infile)

    def _is_retryable(self, exc: Exception) -> bool:
        # Decode errors and vanished files do not recover on retry.
        return isinstance(exc, OSError) and not isinstance(exc, FileNotFoundError)

    def _records(self, entity_kind: str, document: object) -> list[RawRecord]:
        if isinstance(document, dict):
            error = document.get("error")
            if error is not None:
                error_type = _ERROR_TYPES.get(str(error).lower(), ProviderUnavailable)
                raise error_type(entity_kind, str(document.get("message") or error))
            return [document]

        if isinstance(document, list):
            return list(document)

        raise ProviderUnavailable(entity_kind, "snapshot must hold an object or a list of objects")

    def _is_since(self, record: RawRecord, fetch_filter: FetchFilter) -> bool:
        # Non-mapping entries and sessions without a readable creation time
        # are left to the normalizer.
        if not isinstance(record, dict):
            return True
        created = parse_timestamp(record.get("CreationTime"))
        return created is None or created >= fetch_filter.since


def build_provider(settings: Settings) -> DataProvider:
    return SnapshotProvider(
        settings.snapshot_dir,
        max_retries=settings.provider_max_retries,
        backoff_seconds=settings.provider_retry_backoff_seconds,
    )
