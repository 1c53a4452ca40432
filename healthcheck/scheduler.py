import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from sqlalchemy.orm import Session, sessionmaker

from healthcheck.clock import utc_now
from healthcheck.config import Settings
from healthcheck.errors import OutputLocationError
from healthcheck.pipeline import HealthCheckRunner
from healthcheck.provider import build_provider
from healthcheck.schemas import STATUS_FAILED


logger = logging.getLogger(__name__)


def _run_daily_check(settings: Settings, session_factory: sessionmaker[Session]) -> None:
    run_key = f"scheduled-{utc_now().date().isoformat()}"

    runner = HealthCheckRunner(settings, session_factory, build_provider(settings))
    try:
        result = runner.run(run_key=run_key, trigger_source="scheduled")
    except OutputLocationError as exc:
        logger.error("scheduled health check aborted", extra={"run_key": run_key, "error": str(exc)})
        return

    failed = [name for name, outcome in result.sections.items() if outcome.status == STATUS_FAILED]
    logger.info(
        "scheduled health check completed",
        extra={
            "run_key": result.run_key,
            "status": result.status,
            "failed_sections": failed,
            "reused_existing_run": result.reused_existing_run,
        },
    )


def start_scheduler(settings: Settings, session_factory: sessionmaker[Session], *, run_now: bool = False) -> None:
    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(
        _run_daily_check,
        "cron",
        args=[settings, session_factory],
        hour=settings.schedule_hour_utc,
        minute=settings.schedule_minute_utc,
        id="daily_health_check",
        replace_existing=True,
    )

    logger.info(
        "scheduler started",
        extra={
            "schedule_hour_utc": settings.schedule_hour_utc,
            "schedule_minute_utc": settings.schedule_minute_utc,
        },
    )

    if run_now:
        _run_daily_check(settings, session_factory)

    scheduler.start()
