import json
from collections.abc import Iterable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from healthcheck.clock import utc_now
from healthcheck.db_models import HealthCheckRun, SectionRun, SkippedRecordEntry
from healthcheck.schemas import STATUS_FAILED, STATUS_OK, STATUS_SKIPPED, SectionOutcome, SkippedRecord


SECTION = "section"
OUTPUT = "output"

COMPLETED_STATUSES = ("succeeded", "partial")


def get_run_by_key(db: Session, run_key: str) -> HealthCheckRun | None:
    stmt = select(HealthCheckRun).where(HealthCheckRun.run_key == run_key)
    return db.execute(stmt).scalar_one_or_none()


def create_or_get_run(db: Session, *, run_key: str, trigger_source: str) -> tuple[HealthCheckRun, bool]:
    run = HealthCheckRun(run_key=run_key, trigger_source=trigger_source, status="queued")
    db.add(run)
    try:
        db.commit()
    except IntegrityError:
        # Unique run_key keeps one ledger entry per run.
        db.rollback()
        existing = get_run_by_key(db, run_key)
        if existing:
            return existing, False
        raise

    db.refresh(run)
    return run, True


def reset_run_state(db: Session, run: HealthCheckRun) -> None:
    db.execute(delete(SectionRun).where(SectionRun.run_id == run.id))
    db.execute(delete(SkippedRecordEntry).where(SkippedRecordEntry.run_id == run.id))

    run.status = "queued"
    run.completed_at = None
    run.error = None
    run.sections_ok = 0
    run.sections_skipped = 0
    run.sections_failed = 0
    db.commit()


def mark_run_running(db: Session, run: HealthCheckRun, *, output_dir: str) -> None:
    run.status = "running"
    run.output_dir = output_dir
    run.started_at = utc_now()
    db.commit()


def _tally_sections(db: Session, run: HealthCheckRun) -> None:
    stmt = select(SectionRun.status).where(SectionRun.run_id == run.id)
    statuses = list(db.execute(stmt).scalars().all())

    run.sections_ok = statuses.count(STATUS_OK)
    run.sections_skipped = statuses.count(STATUS_SKIPPED)
    run.sections_failed = statuses.count(STATUS_FAILED)


def mark_run_completed(db: Session, run: HealthCheckRun) -> None:
    _tally_sections(db, run)
    run.status = "partial" if run.sections_failed else "succeeded"
    run.completed_at = utc_now()
    db.commit()


def mark_run_failed(db: Session, run: HealthCheckRun, *, error: str) -> None:
    _tally_sections(db, run)
    run.status = "failed"
    run.error = error
    run.completed_at = utc_now()
    db.commit()


def start_section(db: Session, *, run_id: int, name: str, kind: str = SECTION) -> SectionRun:
    section = SectionRun(run_id=run_id, name=name, kind=kind, status="started", started_at=utc_now())
    db.add(section)
    db.commit()
    db.refresh(section)
    return section


def finish_section(db: Session, section: SectionRun, outcome: SectionOutcome) -> None:
    finished_at = utc_now()
    section.status = outcome.status
    section.detail = outcome.detail
    section.row_count = outcome.row_count
    section.skipped_records = outcome.skipped_records
    section.completed_at = finished_at
    section.duration_ms = (finished_at - section.started_at).total_seconds() * 1000
    db.commit()


def store_skipped_records(db: Session, *, run_id: int, section: str, skipped: Iterable[SkippedRecord]) -> None:
    for entry in skipped:
        db.add(
            SkippedRecordEntry(
                run_id=run_id,
                section=section,
                record_index=entry.record_index,
                raw_record=json.dumps(entry.record, default=str, sort_keys=True),
                reason=entry.reason,
            )
        )
    db.commit()


def load_outcomes(db: Session, run_id: int) -> tuple[dict[str, SectionOutcome], dict[str, SectionOutcome]]:
    stmt = select(SectionRun).where(SectionRun.run_id == run_id).order_by(SectionRun.id)
    sections: dict[str, SectionOutcome] = {}
    outputs: dict[str, SectionOutcome] = {}

    for entry in db.execute(stmt).scalars().all():
        outcome = SectionOutcome(
            name=entry.name,
            status=entry.status,
            detail=entry.detail,
            row_count=entry.row_count,
            skipped_records=entry.skipped_records,
        )
        target = outputs if entry.kind == OUTPUT else sections
        target[entry.name] = outcome
    return sections, outputs
