import os
import subprocess
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from .config import RunSettings
from .error_parser import parse_backup_error
from .exceptions import DumpFailed
from .logger import get_logger
from .metrics import BackupMetrics
from .models import BackupResult, DatabaseEntry, EngineKind, MongoEntry, MySQLEntry, PostgresEntry
from .retention import sweep
from .storage import LocalStorage
from .utils import human_size, redact_command

logger = get_logger(__name__)


def mysqldump_command(entry: MySQLEntry) -> List[str]:
    return [
        "mysqldump", "-h", entry.host, "-P", str(entry.port), "-u", entry.user,
        "--single-transaction", "--routines", "--triggers", "--events", entry.dbname,
    ]


def pg_dump_command(entry: PostgresEntry) -> List[str]:
    return [
        "pg_dump", "-h", entry.host, "-p", str(entry.port), "-U", entry.user,
        "-d", entry.dbname, "--no-password", "--clean", "--if-exists",
    ]


def mongodump_command(entry: MongoEntry, archive_path: Path) -> List[str]:
    return [
        "mongodump",
        f"--host={entry.host}",
        f"--port={entry.port}",
        f"--username={entry.user}",
        f"--password={entry.password}",
        f"--authenticationDatabase={entry.authdb}",
        f"--db={entry.dbname}",
        f"--archive={archive_path}",
        "--gzip",
    ]


def _pipe_through_gzip(cmd: List[str], env: dict, artifact: Path) -> None:
    """Runs `cmd | gzip > artifact`; raises DumpFailed if either side fails."""
    with open(artifact, "wb") as f:
        p1 = subprocess.Popen(cmd, env=env, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        try:
            p2 = subprocess.Popen(["gzip"], stdin=p1.stdout, stdout=f, stderr=subprocess.PIPE)
        except OSError:
            p1.kill()
            p1.wait()
            raise
        p1.stdout.close()

        p1_stderr = p1.stderr.read()
        p2_stderr = p2.stderr.read()
        p1.stderr.close()
        p2.stderr.close()

        p1_rc = p1.wait()
        p2_rc = p2.wait()

    log_output = (p1_stderr + p2_stderr).decode("utf-8", errors="replace")
    if p1_rc != 0:
        raise DumpFailed(f"{cmd[0]} failed with exit code {p1_rc}", stderr=log_output)
    if p2_rc != 0:
        raise DumpFailed(f"gzip failed with exit code {p2_rc}", stderr=log_output)


def dump_mysql(entry: MySQLEntry, artifact: Path) -> None:
    env = os.environ.copy()
    env["MYSQL_PWD"] = entry.password
    cmd = mysqldump_command(entry)
    logger.debug(f"Executing mysqldump on host={entry.host} port={entry.port} user={entry.user} db={entry.dbname}")
    _pipe_through_gzip(cmd, env, artifact)


def dump_postgres(entry: PostgresEntry, artifact: Path) -> None:
    env = os.environ.copy()
    env["PGPASSWORD"] = entry.password
    cmd = pg_dump_command(entry)
    logger.debug(f"Executing pg_dump on host={entry.host} port={entry.port} user={entry.user} db={entry.dbname}")
    _pipe_through_gzip(cmd, env, artifact)


def dump_mongo(entry: MongoEntry, artifact: Path) -> None:
    cmd = mongodump_command(entry, artifact)
    logger.debug(f"Executing: {redact_command(cmd, [entry.password])}")

    result = subprocess.run(cmd, capture_output=True, text=True)
    if result.returncode != 0:
        raise DumpFailed(f"mongodump failed with exit code {result.returncode}", stderr=result.stderr)


DUMPERS = {
    EngineKind.MYSQL: dump_mysql,
    EngineKind.POSTGRES: dump_postgres,
    EngineKind.MONGO: dump_mongo,
}


def backup_database(entry: DatabaseEntry, storage: LocalStorage, timestamp: datetime) -> BackupResult:
    """
    Dumps one database into its timestamped artifact.

    Never raises for a dump problem: the partial artifact is removed and a
    failure result is returned instead.
    """
    start_time = time.time()
    artifact = storage.artifact_path(entry, timestamp)
    logger.info(f"Backup {entry.engine.label}: {entry.name} ({entry.dbname})")

    try:
        storage.prepare(entry)
        DUMPERS[entry.engine](entry, artifact)
        size = storage.size(artifact)
        if size == 0:
            raise DumpFailed(
                f"Backup file is empty for {entry.name}",
                summary="Empty Dump: The dump utility exited cleanly but produced no data.",
            )
    except DumpFailed as e:
        logger.error(f"Failed to backup {entry.name}: {e}")
        if e.stderr:
            logger.debug(f"Error output: {e.stderr.strip()}")
        storage.delete(artifact)
        summary = e.summary or parse_backup_error(e.stderr, entry.engine)
        return BackupResult.failure(entry, timestamp, summary, time.time() - start_time)
    except OSError as e:
        # missing dump binary or unwritable target directory
        logger.error(f"Failed to backup {entry.name}: {e}", exc_info=True)
        storage.delete(artifact)
        return BackupResult.failure(entry, timestamp, f"System Error: {e}", time.time() - start_time)

    storage.apply_ownership(artifact)
    duration = time.time() - start_time
    logger.info(f"  Created: {artifact.name} ({human_size(size)}) in {duration:.2f}s")
    return BackupResult.success(entry, timestamp, artifact, size, duration)


def run_backups(
    entries: Dict[EngineKind, List[DatabaseEntry]],
    settings: RunSettings,
    timestamp: datetime,
    metrics: Optional[BackupMetrics] = None,
) -> List[BackupResult]:
    """Backs up every configured database, one at a time, in engine order."""
    storage = LocalStorage(settings.backups_root, settings.owner_uid, settings.owner_gid)
    results = []
    claimed = set()

    for kind in EngineKind:
        section = entries.get(kind, [])
        logger.info(f">> {kind.label}")
        logger.debug(f"Found {len(section)} {kind.label} databases in config")

        if not section:
            logger.info(f"No {kind.label} databases configured")
            continue

        for entry in section:
            if not entry.supported:
                logger.info(f"{kind.label} backup not implemented (typically cache-only), skipping {entry.name}")
                continue
            if entry.name in claimed:
                logger.warning(f"Skipping {kind.label} database {entry.name}: {storage.target_dir(entry)} is already used")
                continue
            claimed.add(entry.name)

            result = backup_database(entry, storage, timestamp)
            results.append(result)
            if metrics is not None:
                metrics.record_backup(result)

            if result.succeeded:
                removed = sweep(storage.target_dir(entry), settings.retention_days)
                if metrics is not None:
                    metrics.record_retention(entry.name, len(removed))

    return results
