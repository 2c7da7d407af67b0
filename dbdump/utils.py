from typing import Iterable, List, Optional

_UNITS = ("B", "K", "M", "G", "T", "P")


def human_size(size_bytes: Optional[int]) -> str:
    """
    Formats a byte count the way `du -h` does: 512B, 4.0K, 12M, 1.5G.
    - One decimal below 10 of a unit, none above.
    - None means the size could not be computed.
    """
    if size_bytes is None:
        return "N/A"

    size = float(size_bytes)
    for unit in _UNITS:
        if size < 1024 or unit == _UNITS[-1]:
            break
        size /= 1024

    if unit == "B":
        return f"{int(size)}B"
    if size < 10:
        return f"{size:.1f}{unit}"
    return f"{size:.0f}{unit}"


def redact_command(cmd: Iterable[str], secrets: Iterable[Optional[str]]) -> str:
    """Joins a command for logging with every secret value masked."""
    hidden = [s for s in secrets if s]
    parts: List[str] = []
    for part in cmd:
        for secret in hidden:
            part = part.replace(secret, "<REDACTED>")
        parts.append(part)
    return " ".join(parts)
