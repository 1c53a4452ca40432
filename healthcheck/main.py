import argparse
from dataclasses import replace
import logging

from healthcheck.clock import utc_now
from healthcheck.config import Settings, get_settings
from healthcheck.database import build_session_factory
from healthcheck.errors import OutputLocationError
from healthcheck.pipeline import HealthCheckRunner
from healthcheck.provider import build_provider
from healthcheck.scheduler import start_scheduler


logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Backup platform health check report")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="run one health check")
    run_parser.add_argument("--output-folder", help="Folder receiving the CSV and HTML reports")
    run_parser.add_argument("--session-window-days", type=int, help="Days of backup sessions to report (default 7)")
    run_parser.add_argument("--skip-html-report", action="store_true", help="Write CSV files only")
    run_parser.add_argument("--snapshot-dir", help="Folder holding the provider snapshot documents")
    run_parser.add_argument("--run-key", required=False, help="Ledger key for this run")
    run_parser.add_argument(
        "--trigger-source",
        default="manual",
        choices=["manual", "scheduled"],
        help="Metadata label for how this run was triggered",
    )

    schedule_parser = subparsers.add_parser("schedule", help="start daily scheduler")
    schedule_parser.add_argument("--run-now", action="store_true", help="also run once immediately")

    return parser.parse_args(argv)


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides: dict[str, object] = {}
    if getattr(args, "output_folder", None):
        overrides["output_dir"] = args.output_folder
    if getattr(args, "session_window_days", None) is not None:
        overrides["session_window_days"] = args.session_window_days
    if getattr(args, "skip_html_report", False):
        overrides["skip_html_report"] = True
    if getattr(args, "snapshot_dir", None):
        overrides["snapshot_dir"] = args.snapshot_dir
    return replace(settings, **overrides)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = apply_overrides(get_settings(), args)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    session_factory = build_session_factory(settings.database_url)
    if args.command == "schedule":
        start_scheduler(settings, session_factory, run_now=args.run_now)
        return

    run_key = args.run_key or f"{args.trigger_source}-{utc_now():%Y%m%dT%H%M%S}"
    runner = HealthCheckRunner(settings, session_factory, build_provider(settings))
    try:
        result = runner.run(run_key=run_key, trigger_source=args.trigger_source)
    except OutputLocationError as exc:
        logger.error("health check aborted", extra={"run_key": run_key, "error": str(exc)})
        print(f"run_key={run_key} status=aborted error={exc}")
        raise SystemExit(1) from exc

    print(
        "run_id={run_id} run_key={run_key} trigger={trigger} status={status} reused={reused} output={output}".format(
            run_id=result.run_id,
            run_key=result.run_key,
            trigger=result.trigger_source,
            status=result.status,
            reused=result.reused_existing_run,
            output=result.output_dir,
        )
    )
    for outcome in [*result.sections.values(), *result.outputs.values()]:
        print(
            f"  {outcome.name}: {outcome.status} rows={outcome.row_count} "
            f"skipped={outcome.skipped_records} detail={outcome.detail or '-'}"
        )
    if result.status == "failed":
        raise SystemExit(1)


if __name__ == "__main__":
    main()
