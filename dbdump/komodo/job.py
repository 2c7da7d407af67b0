import shlex
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..config import TlsMode, split_recipients
from ..exceptions import ConfigInvalid, ConfigMissing

DEFAULT_IMAGE = "ghcr.io/dbdump/dbdump:latest"
DOCKER_SOCKET = "/var/run/docker.sock"


class JobSmtp(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = False
    host: Optional[str] = None
    port: int = 587
    user: Optional[str] = None
    password: Optional[str] = Field(default=None, alias="pass")
    sender: Optional[str] = Field(default=None, alias="from")
    recipients: List[str] = Field(default_factory=list, alias="to")
    tls: TlsMode = TlsMode.AUTO

    @field_validator("recipients", mode="before")
    @classmethod
    def _split(cls, value: Union[str, List[str], None]):
        if value is None:
            return []
        if isinstance(value, str):
            return split_recipients(value)
        return value


class JobConfig(BaseModel):
    """Parameters of one remote backup run, as stored in the Komodo action arguments."""

    server_name: str = Field(min_length=1)
    network: str = Field(min_length=1)
    config_path: str = Field(min_length=1)
    dump_path: str = Field(min_length=1)
    retention_days: int = Field(default=7, ge=1)
    timezone: str = "UTC"
    image: str = DEFAULT_IMAGE
    terminal_name: str = "dbdump-backup-temp"
    timeout_seconds: Optional[float] = Field(default=6 * 60 * 60, ge=0)
    grace_seconds: float = 0.5
    puid: Optional[int] = None
    pgid: Optional[int] = None
    smtp: JobSmtp = Field(default_factory=JobSmtp)


def load_job(path) -> JobConfig:
    """Reads a job file; JSON or YAML."""
    path = Path(path)
    if not path.is_file():
        raise ConfigMissing(path)
    try:
        data = yaml.safe_load(path.read_text()) or {}
        return JobConfig.model_validate(data)
    except (yaml.YAMLError, ValidationError) as e:
        raise ConfigInvalid(f"Invalid job file {path}: {e}") from e


def container_environment(job: JobConfig) -> List[tuple]:
    smtp = job.smtp
    env = [
        ("RETENTION_DAYS", str(job.retention_days)),
        ("TZ", job.timezone),
        ("PUID", job.puid),
        ("PGID", job.pgid),
        ("ENABLE_EMAIL", "true" if smtp.enabled else "false"),
    ]
    if smtp.enabled:
        env += [
            ("SMTP_HOST", smtp.host),
            ("SMTP_PORT", str(smtp.port)),
            ("SMTP_USER", smtp.user),
            ("SMTP_PASS", smtp.password),
            ("SMTP_FROM", smtp.sender),
            ("SMTP_TO", ",".join(smtp.recipients)),
            ("SMTP_TLS", smtp.tls.value),
        ]
    return [(k, v) for k, v in env if v not in (None, "")]


def build_docker_command(job: JobConfig) -> str:
    """The `docker run` line executed in the remote terminal."""
    q = shlex.quote
    parts = [
        "docker", "run", "--rm",
        # evaluated by the remote shell
        "--name", "dbdump-runner-$(date +%s)",
        "--network", q(job.network),
        "-v", q(f"{DOCKER_SOCKET}:{DOCKER_SOCKET}:ro"),
        "-v", q(f"{job.config_path}:/config:ro"),
        "-v", q(f"{job.dump_path}:/backups"),
    ]
    for key, value in container_environment(job):
        parts += ["-e", q(f"{key}={value}")]
    parts += [q(job.image), "dbdump", "backup"]
    return " ".join(parts)
