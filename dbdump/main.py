import argparse
import os
import sys
from datetime import datetime
from typing import List, Optional

import requests

from .backup_manager import run_backups
from .config import RunSettings, TlsMode, load_entries, settings_from_env
from .discovery import discover_entries, render_config
from .exceptions import ConfigIncomplete, ConfigInvalid, ConfigMissing, RemoteRunFailed, RemoteRunTimeout
from .komodo.client import KomodoClient
from .komodo.job import load_job
from .komodo.runner import RemoteBackupRunner
from .logger import get_logger, setup_console_logging, setup_logging
from .metrics import BackupMetrics
from .notifier import EmailNotifier
from .report import render_html, subject, summarize
from .storage import LocalStorage, format_timestamp
from .utils import human_size

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dbdump",
        description="Dump every database listed in config.yaml, rotate old dumps and report by e-mail.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    b = sub.add_parser("backup", help="Back up all configured databases once")
    b.add_argument("--config", help="Path to config.yaml (default: /config/config.yaml)")
    b.add_argument("--backups-dir", help="Root directory for dumps (default: /backups)")
    b.add_argument("--verbose", "-v", action="store_true", help="Show debug output on the console")
    b.add_argument("--retention", type=int, metavar="DAYS", help="Keep dumps for DAYS days (default: 7)")
    b.add_argument("--log-file", help="Log file path (default: <backups-dir>/backup.log)")
    b.add_argument("--metrics-file", help="Write Prometheus metrics to this textfile")
    b.add_argument("--enable-email", action="store_true", default=None, help="Send the HTML report by e-mail")
    b.add_argument("--smtp-host", help="SMTP server hostname")
    b.add_argument("--smtp-port", type=int, help="SMTP server port (default: 587)")
    b.add_argument("--smtp-user", help="SMTP authentication username")
    b.add_argument("--smtp-pass", help="SMTP authentication password")
    b.add_argument("--smtp-from", help="Sender address")
    b.add_argument("--smtp-to", action="append", metavar="EMAIL", help="Recipient address (repeatable)")
    b.add_argument("--smtp-tls", choices=[m.value for m in TlsMode], help="TLS mode (default: auto)")

    d = sub.add_parser("discover", help="Generate config.yaml from running database containers")
    d.add_argument("--network", help="Only containers attached to this Docker network")
    d.add_argument("--output", "-o", help="Write the config here instead of stdout")

    r = sub.add_parser("remote", help="Run the backup container on a Komodo server")
    r.add_argument("--job", required=True, help="Job file (JSON or YAML) with the run parameters")
    r.add_argument("--komodo-url", default=os.environ.get("KOMODO_URL"), help="Komodo core URL")
    r.add_argument("--verbose", "-v", action="store_true")
    return parser


def apply_cli_overrides(settings: RunSettings, args: argparse.Namespace) -> RunSettings:
    updates = {}
    if args.config:
        updates["config_path"] = args.config
    if args.backups_dir:
        updates["backups_root"] = args.backups_dir
        # the default log file lives inside the backups root
        if not args.log_file and settings.log_file == settings.backups_root / "backup.log":
            updates["log_file"] = os.path.join(args.backups_dir, "backup.log")
    if args.log_file:
        updates["log_file"] = args.log_file
    if args.retention is not None:
        updates["retention_days"] = args.retention
    if args.metrics_file:
        updates["metrics_file"] = args.metrics_file
    if args.verbose:
        updates["verbose"] = True

    smtp = {}
    for flag, key in (("enable_email", "enabled"), ("smtp_host", "host"), ("smtp_port", "port"),
                      ("smtp_user", "user"), ("smtp_pass", "password"), ("smtp_from", "sender"),
                      ("smtp_to", "recipients"), ("smtp_tls", "tls")):
        value = getattr(args, flag)
        if value is not None:
            smtp[key] = value
    if smtp:
        updates["smtp"] = {**settings.smtp.model_dump(), **smtp}

    return RunSettings.model_validate({**settings.model_dump(), **updates})


def run_backup(settings: RunSettings) -> int:
    """One complete backup run. Returns the process exit code."""
    timestamp = datetime.now()
    setup_logging(settings.log_file, verbose=settings.verbose)

    logger.info("=== Database Backup ===")
    logger.info(f"Timestamp: {format_timestamp(timestamp)}")
    logger.info(f"Retention: {settings.retention_days} days")
    logger.info(f"Email notifications: {'enabled' if settings.smtp.enabled else 'disabled'}")
    if settings.smtp.error:
        logger.warning(settings.smtp.error)

    try:
        entries = load_entries(settings.config_path)
    except ConfigMissing as e:
        logger.error(f"{e}. Run `dbdump discover` to generate one.")
        return 1
    except ConfigInvalid as e:
        logger.error(str(e))
        return 1

    settings.backups_root.mkdir(parents=True, exist_ok=True)
    metrics = BackupMetrics()
    results = run_backups(entries, settings, timestamp, metrics)

    storage = LocalStorage(settings.backups_root)
    disk_usage = storage.disk_usage()
    summary = summarize(results, settings.retention_days, disk_usage, datetime.now().astimezone())
    metrics.record_run(disk_usage)

    logger.info("Backup completed!")
    logger.info("Statistics:")
    logger.info(f"  - Successful backups:  {summary.succeeded}")
    logger.info(f"  - Failed backups:      {summary.failed}")
    logger.info(f"  - Backup directory:    {settings.backups_root}")
    logger.info(f"  - Retention:           {settings.retention_days} days")
    logger.info(f"  - Total disk usage:    {human_size(disk_usage.backups_bytes)}")

    if settings.metrics_file:
        try:
            metrics.write(settings.metrics_file)
        except OSError as e:
            logger.error(f"Failed to write metrics to {settings.metrics_file}: {e}")

    if settings.smtp.enabled:
        logger.info("Generating email report...")
        html = render_html(results, summary, settings.backups_root, timestamp)
        try:
            EmailNotifier(settings.smtp).send(subject(summary, timestamp), html)
        except ConfigIncomplete as e:
            logger.error(str(e))

    if summary.failed > 0:
        logger.info("Some backups failed. Check logs above.")
        return 1
    logger.info("All backups completed successfully")
    return 0


def run_discover(args: argparse.Namespace) -> int:
    sections = discover_entries(network=args.network)
    content = render_config(sections)
    if args.output:
        with open(args.output, "w") as f:
            f.write(content)
        logger.info(f"Configuration written to {args.output}")
    else:
        sys.stdout.write(content)
    return 0


def run_remote(args: argparse.Namespace) -> int:
    if not args.komodo_url:
        logger.error("Komodo URL missing: pass --komodo-url or set KOMODO_URL")
        return 1
    try:
        job = load_job(args.job)
    except (ConfigMissing, ConfigInvalid) as e:
        logger.error(str(e))
        return 1

    client = KomodoClient(
        args.komodo_url,
        os.environ.get("KOMODO_API_KEY", ""),
        os.environ.get("KOMODO_API_SECRET", ""),
    )
    try:
        RemoteBackupRunner(client, job).run()
    except (RemoteRunFailed, RemoteRunTimeout, requests.RequestException):
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "backup":
        try:
            settings = apply_cli_overrides(settings_from_env(), args)
        except (ConfigInvalid, ValueError) as e:
            print(f"Invalid configuration: {e}", file=sys.stderr)
            return 1
        return run_backup(settings)

    setup_console_logging(verbose=getattr(args, "verbose", False))
    if args.command == "discover":
        return run_discover(args)
    return run_remote(args)


if __name__ == "__main__":
    sys.exit(main())
