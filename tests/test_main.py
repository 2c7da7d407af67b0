"""
Tests for main.py
-----------------
End-to-end runs of the `backup` subcommand with fake dump tools, plus CLI
argument handling.
"""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from dbdump.config import RunSettings, TlsMode
from dbdump.exceptions import RemoteRunFailed
from dbdump.main import apply_cli_overrides, build_parser, main
from fake_tools import MYSQLDUMP_ACCESS_DENIED, PG_DUMP_OK

SHOP = {"name": "shop", "host": "mysql-shop", "user": "app", "password": "pw", "dbname": "shop"}
CRM = {"name": "crm", "host": "pg-crm", "user": "crm", "password": "pw", "dbname": "crm"}


def _backup(config, backups, *extra):
    return main(["backup", "--config", str(config), "--backups-dir", str(backups), *extra])


class TestBackupCommand:
    def test_empty_config_exits_zero(self, tmp_path, write_config):
        backups = tmp_path / "backups"
        assert _backup(write_config(""), backups) == 0
        assert (backups / "backup.log").exists()

    def test_missing_config_exits_one(self, tmp_path):
        assert _backup(tmp_path / "missing.yaml", tmp_path / "backups") == 1

    def test_invalid_config_exits_one(self, tmp_path, write_config):
        assert _backup(write_config("mysql: [oops"), tmp_path / "backups") == 1

    def test_all_successful(self, tmp_path, write_config, fake_bin):
        fake_bin("pg_dump", PG_DUMP_OK)
        backups = tmp_path / "backups"

        assert _backup(write_config({"postgres": [CRM]}), backups) == 0

        dumps = list((backups / "crm").glob("dump-*.sql.gz"))
        assert len(dumps) == 1
        assert dumps[0].stat().st_size > 0

    def test_partial_failure_exits_one(self, tmp_path, write_config, fake_bin):
        fake_bin("mysqldump", MYSQLDUMP_ACCESS_DENIED)
        fake_bin("pg_dump", PG_DUMP_OK)
        backups = tmp_path / "backups"
        metrics_file = tmp_path / "dbdump.prom"

        code = _backup(write_config({"mysql": [SHOP], "postgres": [CRM]}), backups,
                       "--metrics-file", str(metrics_file))

        assert code == 1
        assert list((backups / "shop").iterdir()) == []
        assert len(list((backups / "crm").iterdir())) == 1
        metrics = metrics_file.read_text()
        assert 'dbdump_backups_total{database_name="shop",engine="mysql",status="failed"} 1.0' in metrics
        assert "dbdump_last_run_timestamp_seconds" in metrics

    def test_report_is_mailed(self, tmp_path, write_config, fake_bin):
        fake_bin("mysqldump", MYSQLDUMP_ACCESS_DENIED)
        fake_bin("pg_dump", PG_DUMP_OK)
        server = MagicMock()
        server.__enter__.return_value = server

        with patch("dbdump.notifier.smtplib.SMTP", return_value=server):
            code = _backup(
                write_config({"mysql": [SHOP], "postgres": [CRM]}), tmp_path / "backups",
                "--enable-email", "--smtp-host", "smtp.example.com", "--smtp-from", "backup@example.com",
                "--smtp-to", "ops@example.com",
            )

        assert code == 1
        message = server.send_message.call_args.args[0]
        assert message["Subject"].startswith("[PARTIAL] Database Backup - ")
        assert message["To"] == "ops@example.com"
        assert "Authentication Error" in message.get_content()

    def test_incomplete_smtp_does_not_change_exit_code(self, tmp_path, write_config, fake_bin):
        fake_bin("pg_dump", PG_DUMP_OK)
        with patch("dbdump.notifier.smtplib.SMTP") as smtp:
            code = _backup(write_config({"postgres": [CRM]}), tmp_path / "backups", "--enable-email")
        assert code == 0
        smtp.assert_not_called()

    def test_bad_smtp_environment_with_email_disabled(self, tmp_path, write_config, fake_bin, monkeypatch):
        fake_bin("pg_dump", PG_DUMP_OK)
        monkeypatch.setenv("ENABLE_EMAIL", "false")
        monkeypatch.setenv("SMTP_TLS", "starttls")
        backups = tmp_path / "backups"

        assert _backup(write_config({"postgres": [CRM]}), backups) == 0
        assert len(list((backups / "crm").glob("dump-*.sql.gz"))) == 1

    def test_bad_smtp_port_skips_mail_but_keeps_exit_code(self, tmp_path, write_config, fake_bin, monkeypatch):
        fake_bin("pg_dump", PG_DUMP_OK)
        monkeypatch.setenv("ENABLE_EMAIL", "true")
        monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
        monkeypatch.setenv("SMTP_PORT", "abc")
        monkeypatch.setenv("SMTP_FROM", "backup@example.com")
        monkeypatch.setenv("SMTP_TO", "ops@example.com")

        with patch("dbdump.notifier.smtplib.SMTP") as smtp:
            code = _backup(write_config({"postgres": [CRM]}), tmp_path / "backups")

        assert code == 0
        smtp.assert_not_called()

    def test_invalid_retention_exits_one(self, tmp_path, write_config):
        assert _backup(write_config(""), tmp_path / "backups", "--retention", "0") == 1

    def test_environment_is_used(self, tmp_path, write_config, monkeypatch):
        backups = tmp_path / "from-env"
        monkeypatch.setenv("DBDUMP_CONFIG", str(write_config("")))
        monkeypatch.setenv("BACKUPS_DIR", str(backups))

        assert main(["backup"]) == 0
        assert (backups / "backup.log").exists()


class TestCliOverrides:
    def _args(self, *argv):
        return build_parser().parse_args(["backup", *argv])

    def test_no_flags_keep_settings(self):
        settings = RunSettings(retention_days=30)
        assert apply_cli_overrides(settings, self._args()) == settings

    def test_flags_override_environment(self):
        settings = RunSettings(retention_days=30)
        result = apply_cli_overrides(settings, self._args(
            "--retention", "3", "--smtp-to", "a@x.io", "--smtp-to", "b@x.io", "--smtp-tls", "off", "-v"))

        assert result.retention_days == 3
        assert result.verbose is True
        assert result.smtp.recipients == ["a@x.io", "b@x.io"]
        assert result.smtp.tls == TlsMode.OFF

    def test_backups_dir_moves_default_log(self):
        result = apply_cli_overrides(RunSettings(), self._args("--backups-dir", "/data"))
        assert result.log_file == Path("/data/backup.log")

    def test_explicit_log_file_is_kept(self):
        settings = RunSettings(log_file="/var/log/dbdump.log")
        result = apply_cli_overrides(settings, self._args("--backups-dir", "/data"))
        assert result.log_file == Path("/var/log/dbdump.log")


class TestOtherCommands:
    def test_remote_requires_url(self, tmp_path):
        assert main(["remote", "--job", str(tmp_path / "job.yaml")]) == 1

    def test_remote_missing_job(self, tmp_path):
        assert main(["remote", "--job", str(tmp_path / "job.yaml"), "--komodo-url", "https://k"]) == 1

    def test_remote_failure_exit_code(self, tmp_path):
        job = tmp_path / "job.yaml"
        job.write_text("server_name: prod-1\nnetwork: n\nconfig_path: /c\ndump_path: /d\n")
        runner = MagicMock()
        runner.return_value.run.side_effect = RemoteRunFailed(3)

        with patch("dbdump.main.RemoteBackupRunner", runner):
            assert main(["remote", "--job", str(job), "--komodo-url", "https://k"]) == 1

    def test_discover_logs_to_console_only(self, tmp_path):
        with patch("dbdump.main.discover_entries", return_value={}), \
                patch("dbdump.main.setup_console_logging") as console, patch("dbdump.main.setup_logging") as full:
            assert main(["discover", "--output", str(tmp_path / "config.yaml")]) == 0

        console.assert_called_once_with(verbose=False)
        full.assert_not_called()

    def test_discover_writes_file(self, tmp_path):
        output = tmp_path / "config.yaml"
        sections = {"mysql": [], "postgres": [SHOP], "mongo": [], "redis": []}

        with patch("dbdump.main.discover_entries", return_value=sections):
            assert main(["discover", "--output", str(output)]) == 0

        assert "postgres:" in output.read_text()

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            main([])