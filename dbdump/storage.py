import os
from datetime import datetime
from pathlib import Path
from typing import Optional

import psutil

from .logger import get_logger
from .models import DatabaseEntryBase, DiskUsage

logger = get_logger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M"


def format_timestamp(ts: datetime) -> str:
    return ts.strftime(TIMESTAMP_FORMAT)


class LocalStorage:
    """Artifact layout under the backups root: {root}/{name}/dump-{ts}.{ext}.gz"""

    def __init__(self, base_path, owner_uid: Optional[int] = None, owner_gid: Optional[int] = None):
        self.base_path = Path(base_path)
        self.owner_uid = owner_uid
        self.owner_gid = owner_gid

    def target_dir(self, entry: DatabaseEntryBase) -> Path:
        return self.base_path / entry.name

    def prepare(self, entry: DatabaseEntryBase) -> Path:
        target = self.target_dir(entry)
        target.mkdir(parents=True, exist_ok=True)
        self.apply_ownership(target)
        return target

    def artifact_path(self, entry: DatabaseEntryBase, timestamp: datetime) -> Path:
        filename = f"dump-{format_timestamp(timestamp)}.{entry.extension}.gz"
        return self.target_dir(entry) / filename

    def size(self, path: Path) -> int:
        try:
            return path.stat().st_size
        except FileNotFoundError:
            return 0

    def delete(self, path: Path) -> bool:
        if path.exists():
            try:
                path.unlink()
                return True
            except OSError as e:
                logger.error(f"Failed to remove {path}: {e}")
                return False
        return True

    def apply_ownership(self, path: Path) -> None:
        if self.owner_uid is None or self.owner_gid is None:
            return
        try:
            os.chown(path, self.owner_uid, self.owner_gid)
        except (OSError, OverflowError) as e:
            logger.warning(f"Cannot change owner of {path} to {self.owner_uid}:{self.owner_gid}: {e}")

    def disk_usage(self) -> DiskUsage:
        """Size of the backups tree plus free space on its filesystem."""
        if not self.base_path.exists():
            return DiskUsage(backups_bytes=None)

        total = 0
        for root, _dirs, files in os.walk(self.base_path):
            for name in files:
                try:
                    total += os.lstat(os.path.join(root, name)).st_size
                except OSError:
                    continue

        try:
            fs = psutil.disk_usage(str(self.base_path))
            return DiskUsage(backups_bytes=total, free_bytes=fs.free, total_bytes=fs.total)
        except OSError as e:
            logger.debug(f"Could not read filesystem usage for {self.base_path}: {e}")
            return DiskUsage(backups_bytes=total)
