import os
import re
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigInvalid, ConfigMissing
from .logger import get_logger
from .models import ENTRY_MODELS, DatabaseEntry, EngineKind

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = "/config/config.yaml"
DEFAULT_BACKUPS_ROOT = "/backups"
DEFAULT_LOG_FILE = "/backups/backup.log"

_TRUE_VALUES = {"1", "true", "yes", "on"}


class TlsMode(str, Enum):
    AUTO = "auto"
    ON = "on"
    OFF = "off"


class SmtpSettings(BaseModel):
    enabled: bool = False
    host: Optional[str] = None
    port: int = 587
    user: Optional[str] = None
    password: Optional[str] = None
    sender: Optional[str] = None
    recipients: List[str] = Field(default_factory=list)
    tls: TlsMode = TlsMode.AUTO
    timeout: float = 30.0
    # set when the environment held SMTP values that could not be used
    error: Optional[str] = None


class RunSettings(BaseModel):
    config_path: Path = Path(DEFAULT_CONFIG_PATH)
    backups_root: Path = Path(DEFAULT_BACKUPS_ROOT)
    log_file: Path = Path(DEFAULT_LOG_FILE)
    retention_days: int = Field(default=7, ge=1)
    verbose: bool = False
    smtp: SmtpSettings = Field(default_factory=SmtpSettings)
    metrics_file: Optional[Path] = None
    owner_uid: Optional[int] = None
    owner_gid: Optional[int] = None


def parse_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def split_recipients(value: str) -> List[str]:
    return [r for r in re.split(r"[,\s]+", value) if r]


def settings_from_env(environ: Optional[Mapping[str, str]] = None) -> RunSettings:
    """
    Builds the run settings from the container environment.
    Unset variables keep their defaults; the CLI applies its flags on top.
    """
    env = os.environ if environ is None else environ

    values = {}
    smtp = {}
    for var, key in (("DBDUMP_CONFIG", "config_path"), ("BACKUPS_DIR", "backups_root"),
                     ("LOG_FILE", "log_file"), ("RETENTION_DAYS", "retention_days"),
                     ("METRICS_FILE", "metrics_file"), ("PUID", "owner_uid"), ("PGID", "owner_gid")):
        if env.get(var):
            values[key] = env[var]

    # the log file follows the backups root unless set explicitly
    if "backups_root" in values and "log_file" not in values:
        values["log_file"] = str(Path(values["backups_root"]) / "backup.log")

    if env.get("LOG_LEVEL", "").upper() == "DEBUG":
        values["verbose"] = True

    if env.get("ENABLE_EMAIL"):
        smtp["enabled"] = parse_bool(env["ENABLE_EMAIL"])
    for var, key in (("SMTP_HOST", "host"), ("SMTP_PORT", "port"), ("SMTP_USER", "user"),
                     ("SMTP_PASS", "password"), ("SMTP_FROM", "sender")):
        if env.get(var):
            smtp[key] = env[var]
    if env.get("SMTP_TLS"):
        smtp["tls"] = env["SMTP_TLS"].strip().lower()
    if env.get("SMTP_TO"):
        smtp["recipients"] = split_recipients(env["SMTP_TO"])
    if smtp:
        values["smtp"] = _smtp_from_env(smtp)

    try:
        return RunSettings(**values)
    except ValidationError as e:
        raise ConfigInvalid(f"Invalid environment configuration: {_describe(e)}") from e


def _smtp_from_env(smtp: dict) -> SmtpSettings:
    # invalid SMTP values only disable delivery; the notifier reports them after the run
    try:
        return SmtpSettings(**smtp)
    except ValidationError as e:
        return SmtpSettings(
            enabled=smtp.get("enabled", False),
            error=f"Invalid SMTP settings in environment: {_describe(e)}",
        )


def load_entries(config_path) -> Dict[EngineKind, List[DatabaseEntry]]:
    """
    Reads the database list from config.yaml.

    Every engine kind is present in the result, in processing order. Invalid or
    duplicate entries are skipped with a warning; a missing or unreadable file
    is fatal.
    """
    path = Path(config_path)
    if not path.is_file():
        raise ConfigMissing(path)

    with open(path, "r") as f:
        try:
            config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Error parsing {path}: {e}")
            raise ConfigInvalid(f"Error parsing {path}: {e}") from e

    if not isinstance(config_data, dict):
        raise ConfigInvalid(f"{path} must contain a mapping of engine sections")

    known = {kind.value for kind in EngineKind}
    unknown = [key for key in config_data if key not in known]
    if unknown:
        logger.debug(f"Ignoring unknown config sections: {unknown}")

    # names are directories under the backups root, so they must be unique across engines
    seen = {}
    entries = {kind: _load_section(kind, config_data.get(kind.value), seen) for kind in EngineKind}
    logger.debug("Loaded config: " + ", ".join(f"{k.value}={len(v)}" for k, v in entries.items()))
    return entries


def _load_section(kind: EngineKind, raw, seen: Dict[str, EngineKind]) -> List[DatabaseEntry]:
    if not raw:
        return []
    if not isinstance(raw, list):
        logger.warning(f"Section '{kind.value}' is not a list, ignoring it.")
        return []

    model = ENTRY_MODELS[kind]
    section = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            logger.warning(f"Skipping {kind.value} entry #{index}: expected a mapping, got {type(item).__name__}.")
            continue

        try:
            entry = model.model_validate(item)
        except ValidationError as e:
            logger.warning(
                f"Skipping {kind.value} entry #{index} (name: {item.get('name', 'N/A')}) "
                f"because it is invalid: {_describe(e)}"
            )
            continue

        if entry.name in seen:
            logger.warning(
                f"Skipping {kind.value} entry '{entry.name}': the name is already used by a "
                f"{seen[entry.name].value} entry."
            )
            continue

        seen[entry.name] = kind
        section.append(entry)
    return section


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'value'}: {err['msg']}" for err in error.errors()
    )
