from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import ClassVar, Dict, Optional, Type, Union

from pydantic import BaseModel, Field, field_validator


class EngineKind(str, Enum):
    # Declaration order is the processing order of a run.
    MYSQL = "mysql"
    POSTGRES = "postgres"
    MONGO = "mongo"
    REDIS = "redis"

    @property
    def label(self) -> str:
        return ENGINE_LABELS[self]


ENGINE_LABELS = {
    EngineKind.MYSQL: "MySQL",
    EngineKind.POSTGRES: "PostgreSQL",
    EngineKind.MONGO: "MongoDB",
    EngineKind.REDIS: "Redis",
}


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failed"


class RunStatus(str, Enum):
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class DatabaseEntryBase(BaseModel):
    engine: ClassVar[EngineKind]
    extension: ClassVar[Optional[str]] = None

    name: str = Field(min_length=1)
    host: str = Field(min_length=1)

    @field_validator("*", mode="before")
    @classmethod
    def _numbers_to_str(cls, value, info):
        # YAML turns unquoted passwords like 123456 into ints
        if info.field_name != "port" and isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("name")
    @classmethod
    def _plain_directory_name(cls, value: str) -> str:
        # the name becomes a directory under the backups root
        if value in (".", "..") or "/" in value or "\\" in value:
            raise ValueError("name must be a plain directory name")
        return value

    @property
    def supported(self) -> bool:
        return self.extension is not None


class MySQLEntry(DatabaseEntryBase):
    engine: ClassVar[EngineKind] = EngineKind.MYSQL
    extension: ClassVar[Optional[str]] = "sql"

    port: int = 3306
    user: str = Field(min_length=1)
    password: str
    dbname: str = Field(min_length=1)


class PostgresEntry(DatabaseEntryBase):
    engine: ClassVar[EngineKind] = EngineKind.POSTGRES
    extension: ClassVar[Optional[str]] = "sql"

    port: int = 5432
    user: str = Field(min_length=1)
    password: str
    dbname: str = Field(min_length=1)


class MongoEntry(DatabaseEntryBase):
    engine: ClassVar[EngineKind] = EngineKind.MONGO
    extension: ClassVar[Optional[str]] = "archive"

    port: int = 27017
    user: str = Field(min_length=1)
    password: str
    dbname: str = Field(min_length=1)
    authdb: str = "admin"


class RedisEntry(DatabaseEntryBase):
    """Recognized in config but never backed up."""
    engine: ClassVar[EngineKind] = EngineKind.REDIS

    port: int = 6379
    password: Optional[str] = None


DatabaseEntry = Union[MySQLEntry, PostgresEntry, MongoEntry, RedisEntry]

ENTRY_MODELS: Dict[EngineKind, Type[DatabaseEntryBase]] = {
    EngineKind.MYSQL: MySQLEntry,
    EngineKind.POSTGRES: PostgresEntry,
    EngineKind.MONGO: MongoEntry,
    EngineKind.REDIS: RedisEntry,
}


@dataclass(frozen=True)
class BackupResult:
    entry: DatabaseEntryBase
    outcome: Outcome
    timestamp: datetime
    artifact: Optional[Path] = None
    size_bytes: Optional[int] = None
    duration_seconds: float = 0.0
    error_summary: Optional[str] = None

    @classmethod
    def success(cls, entry, timestamp, artifact: Path, size_bytes: int, duration_seconds: float = 0.0):
        return cls(entry, Outcome.SUCCESS, timestamp, artifact, size_bytes, duration_seconds)

    @classmethod
    def failure(cls, entry, timestamp, error_summary: str, duration_seconds: float = 0.0):
        return cls(entry, Outcome.FAILURE, timestamp, duration_seconds=duration_seconds, error_summary=error_summary)

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCESS


@dataclass(frozen=True)
class DiskUsage:
    backups_bytes: Optional[int]
    free_bytes: Optional[int] = None
    total_bytes: Optional[int] = None


@dataclass(frozen=True)
class RunSummary:
    total: int
    succeeded: int
    failed: int
    retention_days: int
    disk_usage: DiskUsage
    generated_at: datetime

    @property
    def status(self) -> RunStatus:
        if self.failed == 0:
            return RunStatus.SUCCESS
        if self.succeeded == 0:
            return RunStatus.FAILED
        return RunStatus.PARTIAL
