import time

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, write_to_textfile

from .logger import get_logger
from .models import BackupResult, DiskUsage

logger = get_logger(__name__)


class BackupMetrics:
    """Prometheus metrics for a single backup run, in a registry of their own."""

    def __init__(self):
        self.registry = CollectorRegistry()

        self.backups_total = Counter(
            "dbdump_backups_total",
            "Total number of backup attempts.",
            ["database_name", "engine", "status"],
            registry=self.registry,
        )
        self.backup_duration_seconds = Histogram(
            "dbdump_backup_duration_seconds",
            "Duration of backup operations in seconds.",
            ["database_name"],
            registry=self.registry,
        )
        self.backup_size_bytes = Gauge(
            "dbdump_backup_size_bytes",
            "Size of the last successful backup in bytes.",
            ["database_name"],
            registry=self.registry,
        )
        self.backup_last_status = Gauge(
            "dbdump_backup_last_status",
            "Status of the last backup (1 for success, 0 for failure).",
            ["database_name"],
            registry=self.registry,
        )
        self.retention_files_deleted_total = Counter(
            "dbdump_retention_files_deleted_total",
            "Total number of files deleted by retention policy.",
            ["database_name"],
            registry=self.registry,
        )
        self.disk_space_available_bytes = Gauge(
            "dbdump_disk_space_available_bytes",
            "Available disk space for backups in bytes.",
            registry=self.registry,
        )
        self.last_run_timestamp_seconds = Gauge(
            "dbdump_last_run_timestamp_seconds",
            "Unix timestamp of the last completed backup run.",
            registry=self.registry,
        )

    def record_backup(self, result: BackupResult) -> None:
        name = result.entry.name
        status = result.outcome.value
        self.backups_total.labels(database_name=name, engine=result.entry.engine.value, status=status).inc()
        self.backup_duration_seconds.labels(database_name=name).observe(result.duration_seconds)
        self.backup_last_status.labels(database_name=name).set(1 if result.succeeded else 0)
        if result.succeeded:
            self.backup_size_bytes.labels(database_name=name).set(result.size_bytes)

    def record_retention(self, database_name: str, deleted: int) -> None:
        if deleted > 0:
            self.retention_files_deleted_total.labels(database_name=database_name).inc(deleted)

    def record_run(self, disk_usage: DiskUsage) -> None:
        if disk_usage.free_bytes is not None:
            self.disk_space_available_bytes.set(disk_usage.free_bytes)
        self.last_run_timestamp_seconds.set(time.time())

    def write(self, path) -> None:
        """Export for the node_exporter textfile collector."""
        write_to_textfile(str(path), self.registry)
        logger.debug(f"Metrics written to {path}")
