from datetime import datetime
from pathlib import Path

import pytest

from dbdump.models import (
    BackupResult,
    DiskUsage,
    EngineKind,
    MySQLEntry,
    Outcome,
    RedisEntry,
    RunStatus,
    RunSummary,
)


def _summary(succeeded, failed):
    return RunSummary(
        total=succeeded + failed,
        succeeded=succeeded,
        failed=failed,
        retention_days=7,
        disk_usage=DiskUsage(backups_bytes=0),
        generated_at=datetime(2026, 10, 18, 2, 30),
    )


@pytest.mark.parametrize("succeeded, failed, expected", [
    (0, 0, RunStatus.SUCCESS),
    (3, 0, RunStatus.SUCCESS),
    (0, 2, RunStatus.FAILED),
    (1, 1, RunStatus.PARTIAL),
    (5, 1, RunStatus.PARTIAL),
])
def test_run_status_classification(succeeded, failed, expected):
    assert _summary(succeeded, failed).status == expected


def test_engine_processing_order():
    assert [k.value for k in EngineKind] == ["mysql", "postgres", "mongo", "redis"]
    assert EngineKind.POSTGRES.label == "PostgreSQL"


def test_redis_is_not_supported():
    assert not RedisEntry(name="cache", host="redis").supported
    assert MySQLEntry(name="a", host="h", user="u", password="p", dbname="d").supported


class TestBackupResult:
    entry = MySQLEntry(name="shop", host="db", user="app", password="pw", dbname="shop")
    ts = datetime(2026, 10, 18, 2, 30)

    def test_success(self):
        result = BackupResult.success(self.entry, self.ts, Path("/b/shop/dump.sql.gz"), 42, 1.5)
        assert result.succeeded
        assert result.outcome is Outcome.SUCCESS
        assert result.error_summary is None

    def test_failure(self):
        result = BackupResult.failure(self.entry, self.ts, "Authentication Error: nope")
        assert not result.succeeded
        assert result.artifact is None
        assert result.size_bytes is None
        assert result.outcome.value == "failed"
