"""Projection of raw provider records into report rows.

Each entity kind has a fixed, ordered table of columns. A column reads one
or more source fields from the raw record and applies a transform; missing
optional values always come out as a sentinel token so that CSV and HTML
consumers never see a blank cell. Only a missing identity field rejects a
record.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
import math

from healthcheck.clock import format_timestamp, parse_timestamp, utc_now
from healthcheck.errors import MalformedRecord
from healthcheck.schemas import (
    JOBS,
    LICENSE,
    MODULES,
    PROXIES,
    REPOSITORIES,
    SESSIONS,
    ReportRow,
    SkippedRecord,
)


NOT_AVAILABLE = "N/A"
NOT_SCHEDULED = "Not Scheduled"
NEVER_RUN = "Never Run"
PERPETUAL = "Perpetual"
RUNNING_OR_FAILED = "Running or Failed"

BYTES_PER_GB = 2**30

RawRecord = dict[str, object]
Getter = Callable[[RawRecord, datetime], object]


@dataclass(frozen=True)
class Column:
    name: str
    getter: Getter


@dataclass(frozen=True)
class Projection:
    entity_kind: str
    columns: tuple[Column, ...]
    identity: tuple[str, ...] = ()

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)


def _lookup(record: RawRecord, sources: tuple[str, ...]) -> object:
    for source in sources:
        value = record.get(source)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _number(value: object) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        amount = float(value.strip() if isinstance(value, str) else value)
    except (OverflowError, ValueError):
        return None
    # NaN and infinities carry no usable reading.
    return amount if math.isfinite(amount) else None


def to_gigabytes(value: object) -> float | int:
    amount = _number(value)
    if amount is None or amount <= 0:
        return 0
    return round(amount / BYTES_PER_GB, 2)


def to_ratio(value: object) -> float | int:
    amount = _number(value)
    if amount is None or amount <= 0:
        return 0
    return round(amount, 2)


def to_percentage(part: object, whole: object) -> float | int:
    numerator = _number(part)
    denominator = _number(whole)
    if numerator is None or denominator is None or denominator <= 0 or numerator < 0:
        return 0
    return round(numerator / denominator * 100, 2)


def format_duration(delta: timedelta) -> str:
    total_seconds = int(delta.total_seconds())
    days, remainder = divmod(total_seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)
    clock = f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{days}.{clock}" if days else clock


def to_flag(value: object, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return default


# Column getters. Each returns a closure over its source field names.


def text(*sources: str, default: str = NOT_AVAILABLE) -> Getter:
    def get(record: RawRecord, now: datetime) -> object:
        value = _lookup(record, sources)
        return default if value is None else str(value).strip()

    return get


def flag(*sources: str, default: bool = False) -> Getter:
    def get(record: RawRecord, now: datetime) -> object:
        return to_flag(_lookup(record, sources), default)

    return get


def integer(*sources: str, default: object = 0) -> Getter:
    def get(record: RawRecord, now: datetime) -> object:
        amount = _number(_lookup(record, sources))
        return default if amount is None else int(amount)

    return get


def passthrough(*sources: str) -> Getter:
    def get(record: RawRecord, now: datetime) -> object:
        value = _lookup(record, sources)
        if value is None:
            return NOT_AVAILABLE
        if isinstance(value, (bool, int, float)):
            return value
        return str(value)

    return get


def gigabytes(*sources: str) -> Getter:
    def get(record: RawRecord, now: datetime) -> object:
        return to_gigabytes(_lookup(record, sources))

    return get


def ratio(*sources: str) -> Getter:
    def get(record: RawRecord, now: datetime) -> object:
        return to_ratio(_lookup(record, sources))

    return get


def used_gigabytes(total_source: str, free_source: str, used_source: str) -> Getter:
    def get(record: RawRecord, now: datetime) -> object:
        used = _number(_lookup(record, (used_source,)))
        if used is None:
            total = _number(_lookup(record, (total_source,))) or 0
            free = _number(_lookup(record, (free_source,))) or 0
            used = total - free
        return to_gigabytes(used)

    return get


def percentage(part_source: str, whole_source: str) -> Getter:
    def get(record: RawRecord, now: datetime) -> object:
        return to_percentage(_lookup(record, (part_source,)), _lookup(record, (whole_source,)))

    return get


def timestamp(*sources: str, default: str = NOT_AVAILABLE) -> Getter:
    def get(record: RawRecord, now: datetime) -> object:
        value = _lookup(record, sources)
        parsed = parse_timestamp(value)
        if parsed is not None:
            return format_timestamp(parsed)
        return default if value is None else str(value)

    return get


def duration(start_source: str, end_source: str) -> Getter:
    def get(record: RawRecord, now: datetime) -> object:
        end = parse_timestamp(_lookup(record, (end_source,)))
        if end is None:
            return RUNNING_OR_FAILED
        start = parse_timestamp(_lookup(record, (start_source,)))
        if start is None or end < start:
            return NOT_AVAILABLE
        return format_duration(end - start)

    return get


def days_remaining(source: str) -> Getter:
    def get(record: RawRecord, now: datetime) -> object:
        expiration = parse_timestamp(_lookup(record, (source,)))
        if expiration is None:
            return PERPETUAL
        return (expiration - now).days

    return get


def schedule_status(description_source: str, enabled_source: str) -> Getter:
    def get(record: RawRecord, now: datetime) -> object:
        enabled = _lookup(record, (enabled_source,))
        if enabled is not None and not to_flag(enabled, True):
            return NOT_SCHEDULED
        description = _lookup(record, (description_source,))
        if description is None:
            return NOT_SCHEDULED
        return str(description).strip()

    return get


PROJECTIONS: dict[str, Projection] = {
    MODULES: Projection(
        MODULES,
        (
            Column("ModuleName", text("Name", "ModuleName")),
            Column("Installed", flag("Installed")),
            Column("Version", text("Version")),
        ),
        identity=("Name", "ModuleName"),
    ),
    LICENSE: Projection(
        LICENSE,
        (
            Column("LicenseStatus", text("Status", "LicenseStatus", default="Unknown")),
            Column("Edition", text("Edition")),
            Column("LicenseType", text("Type", "LicenseType")),
            Column("LicensedTo", text("LicensedTo")),
            Column("ExpirationDate", timestamp("ExpirationDate", default=PERPETUAL)),
            Column("DaysRemaining", days_remaining("ExpirationDate")),
            Column("SupportId", text("SupportId")),
            Column("SupportExpirationDate", timestamp("SupportExpirationDate")),
            Column("LicensedInstances", integer("LicensedInstances")),
            Column("UsedInstances", integer("UsedInstances")),
        ),
    ),
    JOBS: Projection(
        JOBS,
        (
            Column("JobName", text("Name", "JobName")),
            Column("JobType", text("JobType", "Type")),
            Column("IsDisabled", flag("IsDisabled")),
            Column("ScheduleStatus", schedule_status("Schedule", "IsScheduleEnabled")),
            Column("NextRun", timestamp("NextRun", default=NOT_SCHEDULED)),
            Column("LastRun", timestamp("LastRun", default=NEVER_RUN)),
            Column("LastResult", text("LastResult", default=NEVER_RUN)),
            Column("TargetRepository", text("TargetRepository")),
            Column("RetentionPoints", integer("RetentionPoints", default=NOT_AVAILABLE)),
        ),
        identity=("Name", "JobName"),
    ),
    REPOSITORIES: Projection(
        REPOSITORIES,
        (
            Column("Name", text("Name")),
            Column("Type", text("Type")),
            Column("Path", text("Path")),
            Column("TotalSpaceGB", gigabytes("TotalSpace")),
            Column("FreeSpaceGB", gigabytes("FreeSpace")),
            Column("UsedSpaceGB", used_gigabytes("TotalSpace", "FreeSpace", "UsedSpace")),
            Column("FreePercentage", percentage("FreeSpace", "TotalSpace")),
            Column("IsUnavailable", flag("IsUnavailable")),
            Column("MaxConcurrentTasks", integer("MaxConcurrentTasks", default=NOT_AVAILABLE)),
        ),
        identity=("Name",),
    ),
    PROXIES: Projection(
        PROXIES,
        (
            Column("Name", text("Name")),
            Column("Type", text("Type")),
            Column("Host", text("Host")),
            Column("IsDisabled", flag("IsDisabled")),
            Column("MaxTasks", integer("MaxTasks", default=NOT_AVAILABLE)),
            Column("TransportMode", text("TransportMode")),
        ),
        identity=("Name",),
    ),
    SESSIONS: Projection(
        SESSIONS,
        (
            Column("JobName", text("JobName", "Name")),
            Column("JobType", text("JobType")),
            Column("CreationTime", timestamp("CreationTime")),
            Column("EndTime", timestamp("EndTime")),
            Column("Duration", duration("CreationTime", "EndTime")),
            Column("State", text("State")),
            Column("Result", text("Result")),
            Column("ProcessedGB", gigabytes("ProcessedSize")),
            Column("ReadGB", gigabytes("ReadSize")),
            Column("TransferredGB", gigabytes("TransferredSize", "TransferedSize")),
            Column("DedupRatio", ratio("DedupRatio")),
            Column("CompressionRatio", ratio("CompressionRatio")),
            Column("Bottleneck", text("Bottleneck")),
            Column("IsRetryMode", passthrough("IsRetryMode")),
            Column("IsWorking", passthrough("IsWorking")),
        ),
        identity=("JobName", "Name"),
    ),
}


def columns_for(entity_kind: str) -> tuple[str, ...]:
    return PROJECTIONS[entity_kind].column_names


def normalize_record(entity_kind: str, record: object, *, now: datetime | None = None) -> ReportRow:
    projection = PROJECTIONS[entity_kind]
    if not isinstance(record, dict):
        raise MalformedRecord(entity_kind, "record must be a mapping")
    if projection.identity and _lookup(record, projection.identity) is None:
        raise MalformedRecord(entity_kind, f"missing identity field {projection.identity[0]}")

    now = now or utc_now()
    return ReportRow.from_pairs((column.name, column.getter(record, now)) for column in projection.columns)


def normalize_records(
    entity_kind: str,
    records: Iterable[object],
    *,
    now: datetime | None = None,
) -> tuple[list[ReportRow], list[SkippedRecord]]:
    now = now or utc_now()
    rows: list[ReportRow] = []
    skipped: list[SkippedRecord] = []

    for index, record in enumerate(records):
        try:
            rows.append(normalize_record(entity_kind, record, now=now))
        except MalformedRecord as exc:
            raw = record if isinstance(record, dict) else {"value": record}
            skipped.append(SkippedRecord(index, raw, exc.reason))

    return rows, skipped
