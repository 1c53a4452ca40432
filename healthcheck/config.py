from dataclasses import dataclass
import os
import socket

from dotenv import load_dotenv


load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    database_url: str
    log_level: str
    snapshot_dir: str
    output_dir: str
    session_window_days: int
    skip_html_report: bool
    primary_module: str
    host_name: str
    provider_max_retries: int
    provider_retry_backoff_seconds: float
    schedule_hour_utc: int
    schedule_minute_utc: int


def get_settings() -> Settings:
    return Settings(
        app_name=os.getenv("APP_NAME", "backup-healthcheck"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./healthcheck.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        snapshot_dir=os.getenv("SNAPSHOT_DIR", "./data/snapshot"),
        output_dir=os.getenv("OUTPUT_DIR", "./outputs"),
        session_window_days=int(os.getenv("SESSION_WINDOW_DAYS", "7")),
        skip_html_report=_env_flag("SKIP_HTML_REPORT"),
        primary_module=os.getenv("PRIMARY_MODULE", "Veeam.Backup.PowerShell"),
        host_name=os.getenv("HOST_NAME", socket.gethostname()),
        provider_max_retries=int(os.getenv("PROVIDER_MAX_RETRIES", "2")),
        provider_retry_backoff_seconds=float(os.getenv("PROVIDER_RETRY_BACKOFF_SECONDS", "1")),
        schedule_hour_utc=int(os.getenv("SCHEDULE_HOUR_UTC", "6")),
        schedule_minute_utc=int(os.getenv("SCHEDULE_MINUTE_UTC", "0")),
    )
