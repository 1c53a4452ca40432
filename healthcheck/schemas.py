from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime


MODULES = "modules"
LICENSE = "license"
JOBS = "jobs"
REPOSITORIES = "repositories"
PROXIES = "proxies"
SESSIONS = "sessions"
SUMMARY = "summary"

ENTITY_KINDS = (MODULES, LICENSE, JOBS, REPOSITORIES, PROXIES, SESSIONS)

STATUS_OK = "ok"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class FetchFilter:
    since: datetime | None = None


@dataclass(frozen=True)
class ReportRow:
    """One rendered record: ordered (column, value) pairs."""

    cells: tuple[tuple[str, object], ...]

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, object]]) -> "ReportRow":
        return cls(tuple(pairs))

    @property
    def columns(self) -> tuple[str, ...]:
        return tuple(column for column, _ in self.cells)

    def get(self, column: str, default: object = None) -> object:
        for name, value in self.cells:
            if name == column:
                return value
        return default

    def __getitem__(self, column: str) -> object:
        for name, value in self.cells:
            if name == column:
                return value
        raise KeyError(column)

    def as_dict(self) -> dict[str, object]:
        return dict(self.cells)


@dataclass(frozen=True)
class SkippedRecord:
    record_index: int
    record: dict[str, object]
    reason: str


@dataclass(frozen=True)
class ReportSection:
    key: str
    title: str
    columns: tuple[str, ...]
    rows: tuple[ReportRow, ...] = ()


@dataclass(frozen=True)
class SessionSummary:
    window_days: int
    total: int
    success: int
    warning: int
    failed: int
    running: int
    success_rate: float


@dataclass(frozen=True)
class SectionOutcome:
    name: str
    status: str
    detail: str | None = None
    row_count: int = 0
    skipped_records: int = 0


@dataclass(frozen=True)
class HealthCheckResult:
    run_id: int
    run_key: str
    trigger_source: str
    status: str
    output_dir: str
    sections: dict[str, SectionOutcome] = field(default_factory=dict)
    outputs: dict[str, SectionOutcome] = field(default_factory=dict)
    reused_existing_run: bool = False
