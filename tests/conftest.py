import logging
import os
import stat

import pytest
import yaml

# Environment variables read by settings_from_env; cleared so the host
# environment cannot leak into a test run.
RUN_ENV_VARS = (
    "DBDUMP_CONFIG", "BACKUPS_DIR", "LOG_FILE", "RETENTION_DAYS", "METRICS_FILE", "PUID", "PGID",
    "LOG_LEVEL", "ENABLE_EMAIL", "SMTP_HOST", "SMTP_PORT", "SMTP_USER", "SMTP_PASS", "SMTP_FROM",
    "SMTP_TO", "SMTP_TLS", "KOMODO_URL", "KOMODO_API_KEY", "KOMODO_API_SECRET",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in RUN_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def restore_root_logger():
    """setup_logging replaces the root handlers; put the previous ones back."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def fake_bin(tmp_path, monkeypatch):
    """
    Installs fake dump tools as shell scripts in a directory prepended to PATH.

    Usage: fake_bin("pg_dump", 'echo "CREATE TABLE t;"')
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")

    def install(name, body):
        script = bin_dir / name
        script.write_text("#!/bin/sh\n" + body + "\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return install


@pytest.fixture
def write_config(tmp_path):
    def write(data, name="config.yaml"):
        path = tmp_path / name
        path.write_text(data if isinstance(data, str) else yaml.safe_dump(data))
        return path

    return write
