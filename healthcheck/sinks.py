import csv
from collections.abc import Sequence
from pathlib import Path

from healthcheck.errors import ReportWriteError
from healthcheck.schemas import ReportRow


def write_csv(rows: Sequence[ReportRow], destination: Path, columns: Sequence[str] | None = None) -> Path:
    """Write rows as CSV; an empty row set still produces the header line."""
    header = list(columns) if columns is not None else list(rows[0].columns) if rows else []
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        with destination.open("w", encoding="utf-8", newline="") as outfile:
            writer = csv.writer(outfile)
            writer.writerow(header)
            for row in rows:
                writer.writerow([row.get(column) for column in header])
    except OSError as exc:
        raise ReportWriteError(f"cannot write {destination}: {exc}") from exc
    return destination


def write_text(document: str, destination: Path) -> Path:
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(document, encoding="utf-8")
    except OSError as exc:
        raise ReportWriteError(f"cannot write {destination}: {exc}") from exc
    return destination
