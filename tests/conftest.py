from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import pytest

from healthcheck.config import Settings
from healthcheck.database import build_session_factory
from healthcheck.pipeline import HealthCheckRunner
from healthcheck.provider import DataProvider
from healthcheck.schemas import FetchFilter


NOW = datetime(2026, 10, 18, 12, 0, 0)
GB = 2**30


class FakeProvider(DataProvider):
    def __init__(self, payloads: dict[str, object]) -> None:
        self.payloads = payloads
        self.calls: list[tuple[str, FetchFilter]] = []

    def fetch(self, entity_kind: str, fetch_filter: FetchFilter) -> list[dict[str, object]]:
        self.calls.append((entity_kind, fetch_filter))
        payload = self.payloads.get(entity_kind, [])
        if isinstance(payload, Exception):
            raise payload
        return list(payload)

    def called_kinds(self) -> list[str]:
        return [entity_kind for entity_kind, _ in self.calls]


def sample_payloads() -> dict[str, object]:
    return {
        "modules": [{"Name": "Veeam.Backup.PowerShell", "Installed": True, "Version": "12.1.2.172"}],
        "license": [
            {
                "Status": "Valid",
                "Edition": "EnterprisePlus",
                "Type": "Subscription",
                "LicensedTo": "Example Corp",
                "ExpirationDate": "2026-11-07T00:00:00",
                "SupportId": "01234567",
                "LicensedInstances": 50,
                "UsedInstances": 42,
            }
        ],
        "jobs": [
            {
                "Name": "Daily VMs",
                "JobType": "Backup",
                "IsDisabled": False,
                "Schedule": "Daily at 22:00",
                "NextRun": "2026-10-18T22:00:00",
                "LastRun": "2026-10-17T22:00:00",
                "LastResult": "Success",
                "TargetRepository": "Main Repo",
                "RetentionPoints": 14,
            },
            {"Name": "Archive Copy", "JobType": "BackupCopy", "IsDisabled": True},
            {"JobType": "Backup"},
        ],
        "repositories": [
            {
                "Name": "Main Repo",
                "Type": "WinLocal",
                "Path": "D:\\Backups",
                "TotalSpace": 1000 * GB,
                "FreeSpace": 95 * GB,
                "IsUnavailable": False,
                "MaxConcurrentTasks": 8,
            }
        ],
        "proxies": [
            {
                "Name": "VMware Backup Proxy",
                "Type": "Vi",
                "Host": "vbr01",
                "IsDisabled": False,
                "MaxTasks": 4,
                "TransportMode": "Auto",
            }
        ],
        "sessions": [
            {
                "JobName": "Daily VMs",
                "JobType": "Backup",
                "CreationTime": "2026-10-17T22:00:00",
                "EndTime": "2026-10-17T23:15:30",
                "State": "Stopped",
                "Result": "Success",
                "ProcessedSize": 50 * GB,
                "ReadSize": 20 * GB,
                "TransferredSize": 5 * GB,
                "DedupRatio": 1.8,
                "CompressionRatio": 2.456,
                "Bottleneck": "Source",
                "IsRetryMode": False,
                "IsWorking": False,
            },
            {
                "JobName": "Daily VMs",
                "JobType": "Backup",
                "CreationTime": "2026-10-18T11:00:00",
                "State": "Working",
                "Result": "Warning",
                "IsWorking": True,
            },
            {
                "JobName": "Archive Copy",
                "JobType": "BackupCopy",
                "CreationTime": "2026-10-16T01:00:00",
                "EndTime": "2026-10-16T01:05:00",
                "State": "Stopped",
                "Result": "Failed",
            },
        ],
    }


@pytest.fixture()
def temp_workspace(tmp_path: Path) -> Path:
    (tmp_path / "outputs").mkdir(parents=True, exist_ok=True)
    return tmp_path


@pytest.fixture()
def test_settings(temp_workspace: Path) -> Settings:
    return Settings(
        app_name="backup-healthcheck",
        database_url=f"sqlite:///{temp_workspace / 'test.db'}",
        log_level="INFO",
        snapshot_dir=str(temp_workspace / "snapshot"),
        output_dir=str(temp_workspace / "outputs"),
        session_window_days=7,
        skip_html_report=False,
        primary_module="Veeam.Backup.PowerShell",
        host_name="vbr01.example.com",
        provider_max_retries=1,
        provider_retry_backoff_seconds=0,
        schedule_hour_utc=6,
        schedule_minute_utc=0,
    )


@pytest.fixture()
def make_runner(test_settings: Settings) -> Callable[..., HealthCheckRunner]:
    session_factory = build_session_factory(test_settings.database_url)

    def build(provider: DataProvider, settings: Settings | None = None) -> HealthCheckRunner:
        return HealthCheckRunner(settings or test_settings, session_factory, provider, clock=lambda: NOW)

    return build
