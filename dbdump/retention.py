import time
from pathlib import Path
from typing import List, Optional

from .logger import get_logger

logger = get_logger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def sweep(target_dir, max_age_days: int, now: Optional[float] = None) -> List[Path]:
    """
    Delete every regular file under target_dir last modified more than
    max_age_days ago. Returns the removed paths; a missing directory is not
    an error.
    """
    target = Path(target_dir)
    if not target.is_dir():
        return []

    cutoff = (time.time() if now is None else now) - max_age_days * SECONDS_PER_DAY
    logger.debug(f"Rotating backups for {target.name} (retention: {max_age_days} days)")

    removed = []
    for path in sorted(target.rglob("*")):
        if path.is_symlink() or not path.is_file():
            continue
        try:
            if path.stat().st_mtime >= cutoff:
                continue
            path.unlink()
        except FileNotFoundError:
            continue
        logger.info(f"Removing old backup: {path.name}")
        removed.append(path)

    if removed:
        logger.debug(f"Removed {len(removed)} old backups")
    else:
        logger.debug("No old backups to remove")
    return removed
