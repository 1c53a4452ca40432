from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
import logging
from pathlib import Path

from sqlalchemy.orm import Session, sessionmaker

from healthcheck.aggregator import SUMMARY_COLUMNS, summarize_sessions, summary_row
from healthcheck.clock import utc_now
from healthcheck.config import Settings
from healthcheck.db_models import HealthCheckRun
from healthcheck.errors import OutputLocationError, ProviderError, ReportWriteError
from healthcheck.html_report import DEFAULT_STYLE_RULES, render_html
from healthcheck.normalizer import columns_for, normalize_records
from healthcheck.provider import DataProvider
from healthcheck.run_store import (
    COMPLETED_STATUSES,
    OUTPUT,
    SECTION,
    create_or_get_run,
    finish_section,
    load_outcomes,
    mark_run_completed,
    mark_run_failed,
    mark_run_running,
    reset_run_state,
    start_section,
    store_skipped_records,
)
from healthcheck.schemas import (
    JOBS,
    LICENSE,
    MODULES,
    PROXIES,
    REPOSITORIES,
    SESSIONS,
    STATUS_FAILED,
    STATUS_OK,
    STATUS_SKIPPED,
    SUMMARY,
    FetchFilter,
    HealthCheckResult,
    ReportRow,
    ReportSection,
    SectionOutcome,
)
from healthcheck.sinks import write_csv, write_text


logger = logging.getLogger(__name__)

SECTION_TITLES = {
    MODULES: "PowerShell Modules",
    LICENSE: "License Information",
    JOBS: "Backup Jobs",
    REPOSITORIES: "Backup Repositories",
    PROXIES: "Backup Proxies",
    SESSIONS: "Backup Sessions",
    SUMMARY: "Session Summary",
}

CSV_FILES = {
    MODULES: "modules.csv",
    LICENSE: "license.csv",
    JOBS: "jobs.csv",
    REPOSITORIES: "repositories.csv",
    PROXIES: "proxies.csv",
    SESSIONS: "sessions.csv",
    SUMMARY: "session_summary.csv",
}

HTML_FILE = "health_report.html"
STATUS_COLUMNS = ("Section", "Status", "Detail", "Rows", "SkippedRecords")


class HealthCheckRunner:
    def __init__(
        self,
        settings: Settings,
        session_factory: sessionmaker[Session],
        provider: DataProvider,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.provider = provider
        self.clock = clock

    def run(self, *, run_key: str, trigger_source: str = "manual") -> HealthCheckResult:
        output_root = self._prepare_output_root()

        with self.session_factory() as db:
            run, created = create_or_get_run(db, run_key=run_key, trigger_source=trigger_source)
            if not created:
                if run.status in COMPLETED_STATUSES and run.output_dir == str(output_root):
                    logger.info("completed run reused", extra={"run_key": run_key, "status": run.status})
                    return self._result_from_run(db, run, reused_existing_run=True)
                # Interrupted, failed or relocated runs restart from a clean ledger.
                logger.info(
                    "restarting run",
                    extra={"run_key": run_key, "status": run.status, "previous_output_dir": run.output_dir},
                )
                reset_run_state(db, run)

            mark_run_running(db, run, output_dir=str(output_root))
            try:
                self._execute(db, run, output_root)
            except Exception as exc:
                db.rollback()
                mark_run_failed(db, run, error=f"{type(exc).__name__}: {exc}")
                logger.exception("health check run failed", extra={"run_key": run_key})
                return self._result_from_run(db, run, reused_existing_run=False)

            mark_run_completed(db, run)
            logger.info("health check completed", extra={"run_key": run_key, "status": run.status})
            return self._result_from_run(db, run, reused_existing_run=False)

    def _execute(self, db: Session, run: HealthCheckRun, output_root: Path) -> None:
        now = self.clock()

        collected: dict[str, list[ReportRow]] = {}
        outcomes: dict[str, SectionOutcome] = {}

        outcomes[MODULES], collected[MODULES] = self._collect(db, run, MODULES, FetchFilter(), now)

        license_gate = self._license_gate(outcomes[MODULES], collected[MODULES])
        if license_gate is None:
            outcomes[LICENSE], collected[LICENSE] = self._collect(db, run, LICENSE, FetchFilter(), now)
        else:
            outcomes[LICENSE] = self._skip(db, run, LICENSE, license_gate)

        for entity_kind in (JOBS, REPOSITORIES, PROXIES):
            outcomes[entity_kind], collected[entity_kind] = self._collect(
                db, run, entity_kind, FetchFilter(), now
            )

        since = now - timedelta(days=self.settings.session_window_days)
        outcomes[SESSIONS], collected[SESSIONS] = self._collect(db, run, SESSIONS, FetchFilter(since=since), now)

        outcomes[SUMMARY], collected[SUMMARY] = self._aggregate(db, run, outcomes[SESSIONS], collected[SESSIONS])

        for name, rows in collected.items():
            if outcomes[name].status != STATUS_OK:
                continue
            columns = SUMMARY_COLUMNS if name == SUMMARY else columns_for(name)
            self._write_output(
                db,
                run,
                CSV_FILES[name],
                lambda rows=rows, columns=columns, name=name: write_csv(
                    rows, output_root / CSV_FILES[name], columns
                ),
            )

        if self.settings.skip_html_report:
            self._skip(db, run, HTML_FILE, "html report disabled", kind=OUTPUT)
        else:
            sections = self._report_sections(collected, outcomes)
            self._write_output(
                db,
                run,
                HTML_FILE,
                lambda: write_text(
                    render_html(
                        sections,
                        DEFAULT_STYLE_RULES,
                        host_name=self.settings.host_name,
                        generated_at=now,
                    ),
                    output_root / HTML_FILE,
                ),
            )

    def _prepare_output_root(self) -> Path:
        output_root = Path(self.settings.output_dir)
        try:
            output_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputLocationError(f"cannot create output folder {output_root}: {exc}") from exc
        return output_root

    def _collect(
        self,
        db: Session,
        run: HealthCheckRun,
        entity_kind: str,
        fetch_filter: FetchFilter,
        now: datetime,
    ) -> tuple[SectionOutcome, list[ReportRow]]:
        section = start_section(db, run_id=run.id, name=entity_kind)
        try:
            records = self.provider.fetch(entity_kind, fetch_filter)
        except ProviderError as exc:
            outcome = SectionOutcome(entity_kind, STATUS_FAILED, detail=f"{type(exc).__name__}: {exc}")
            logger.warning("section failed", extra={"section": entity_kind, "error": str(exc)})
            finish_section(db, section, outcome)
            return outcome, []
        except Exception as exc:
            # Any provider exception fails only this section.
            outcome = SectionOutcome(entity_kind, STATUS_FAILED, detail=f"{type(exc).__name__}: {exc}")
            logger.exception("section raised unexpectedly", extra={"section": entity_kind})
            finish_section(db, section, outcome)
            return outcome, []

        try:
            rows, skipped = normalize_records(entity_kind, records, now=now)
        except Exception as exc:
            outcome = SectionOutcome(entity_kind, STATUS_FAILED, detail=f"normalization failed: {exc}")
            logger.exception("section normalization failed", extra={"section": entity_kind})
            finish_section(db, section, outcome)
            return outcome, []

        if skipped:
            logger.warning("malformed records skipped", extra={"section": entity_kind, "skipped": len(skipped)})
            store_skipped_records(db, run_id=run.id, section=entity_kind, skipped=skipped)

        outcome = SectionOutcome(entity_kind, STATUS_OK, row_count=len(rows), skipped_records=len(skipped))
        finish_section(db, section, outcome)
        return outcome, rows

    def _license_gate(self, modules_outcome: SectionOutcome, module_rows: Sequence[ReportRow]) -> str | None:
        primary = self.settings.primary_module
        if modules_outcome.status != STATUS_OK:
            return "module check failed"
        for row in module_rows:
            if row.get("ModuleName") == primary and row.get("Installed") is True:
                return None
        return f"module {primary} not installed"

    def _aggregate(
        self,
        db: Session,
        run: HealthCheckRun,
        sessions_outcome: SectionOutcome,
        session_rows: Sequence[ReportRow],
    ) -> tuple[SectionOutcome, list[ReportRow]]:
        if sessions_outcome.status != STATUS_OK:
            return self._skip(db, run, SUMMARY, "session data unavailable"), []

        section = start_section(db, run_id=run.id, name=SUMMARY)
        summary = summarize_sessions(session_rows, self.settings.session_window_days)
        outcome = SectionOutcome(SUMMARY, STATUS_OK, row_count=1)
        finish_section(db, section, outcome)
        logger.info(
            "sessions summarized",
            extra={"total": summary.total, "failed": summary.failed, "success_rate": summary.success_rate},
        )
        return outcome, [summary_row(summary)]

    def _skip(self, db: Session, run: HealthCheckRun, name: str, reason: str, *, kind: str = SECTION) -> SectionOutcome:
        section = start_section(db, run_id=run.id, name=name, kind=kind)
        outcome = SectionOutcome(name, STATUS_SKIPPED, detail=reason)
        finish_section(db, section, outcome)
        logger.info("section skipped", extra={"section": name, "reason": reason})
        return outcome

    def _write_output(self, db: Session, run: HealthCheckRun, name: str, write: Callable[[], Path]) -> None:
        section = start_section(db, run_id=run.id, name=name, kind=OUTPUT)
        try:
            path = write()
        except ReportWriteError as exc:
            logger.error("report write failed", extra={"output": name, "error": str(exc)})
            finish_section(db, section, SectionOutcome(name, STATUS_FAILED, detail=str(exc)))
            return
        finish_section(db, section, SectionOutcome(name, STATUS_OK, detail=str(path)))

    def _report_sections(
        self,
        collected: dict[str, list[ReportRow]],
        outcomes: dict[str, SectionOutcome],
    ) -> list[ReportSection]:
        sections = []
        for name, rows in collected.items():
            if outcomes[name].status != STATUS_OK:
                continue
            columns = SUMMARY_COLUMNS if name == SUMMARY else columns_for(name)
            title = SECTION_TITLES[name]
            if name == SESSIONS:
                title = f"{title} (Last {self.settings.session_window_days} Days)"
            sections.append(ReportSection(name, title, columns, tuple(rows)))

        status_rows = tuple(
            ReportRow.from_pairs(
                zip(
                    STATUS_COLUMNS,
                    (name, outcome.status, outcome.detail or "N/A", outcome.row_count, outcome.skipped_records),
                )
            )
            for name, outcome in outcomes.items()
        )
        sections.append(ReportSection("run-status", "Run Status", STATUS_COLUMNS, status_rows))
        return sections

    def _result_from_run(self, db: Session, run: HealthCheckRun, reused_existing_run: bool) -> HealthCheckResult:
        sections, outputs = load_outcomes(db, run.id)
        return HealthCheckResult(
            run_id=run.id,
            run_key=run.run_key,
            trigger_source=run.trigger_source,
            status=run.status,
            output_dir=run.output_dir,
            sections=sections,
            outputs=outputs,
            reused_existing_run=reused_existing_run,
        )
