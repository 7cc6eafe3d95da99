"""Utility functions for sync-settings."""

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


def atomic_write_text(path: Path, text: str) -> None:
    """Atomically write text to file with crash safety.

    1. Writes to temp file with fsync to ensure content is on disk
    2. Atomic rename to target path (appears all-at-once)
    3. Fsync parent directory to ensure rename is durable

    Directory fsync is best-effort (not supported on Windows).

    Args:
        path: Target file path
        text: Text content to write
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    # Create temp file in same directory
    with tempfile.NamedTemporaryFile(
        mode="w",
        delete=False,
        dir=path.parent,
        prefix=f".{path.name}.tmp-",
        suffix="",
        encoding="utf-8",
    ) as f:
        f.write(text)
        f.flush()
        os.fsync(f.fileno())
        tmp = Path(f.name)

    try:
        os.replace(tmp, path)

        try:
            flags = os.O_RDONLY
            if hasattr(os, "O_DIRECTORY"):
                flags |= os.O_DIRECTORY

            dirfd = os.open(str(path.parent), flags)
            try:
                os.fsync(dirfd)
            finally:
                os.close(dirfd)
        except OSError:
            # Expected on Windows or filesystems that don't support directory fsync
            pass
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def get_iso_timestamp() -> str:
    """Get current UTC timestamp in the ISO 8601 form used by backup history."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_iso_date(iso_string: Optional[str]) -> str:
    """Clean up ISO 8601 timestamp for display.

    Examples:
        "2025-08-26T02:51:17.317839Z" -> "2025-08-26 02:51:17"
        "2025-08-26T02:51:17Z" -> "2025-08-26 02:51:17"
    """
    if not iso_string:
        return "never"
    if "T" in iso_string and "." in iso_string:
        clean_date = iso_string.split(".")[0].replace("T", " ")
    elif "T" in iso_string:
        clean_date = iso_string.rstrip("Z").replace("T", " ")
    else:
        clean_date = iso_string
    return clean_date


def humanize_date(iso_string: Optional[str]) -> str:
    """Convert ISO 8601 timestamp to human-readable relative time.

    Examples:
        "2024-01-15T10:30:45Z" -> "2 hours ago"
        "2024-01-10T10:30:45Z" -> "5 days ago"
    """
    if not iso_string:
        return "never"
    try:
        dt = datetime.fromisoformat(iso_string.rstrip("Z")).replace(tzinfo=timezone.utc)
        seconds = (datetime.now(timezone.utc) - dt).total_seconds()

        if seconds < 60:
            return "just now"
        elif seconds < 3600:
            minutes = int(seconds / 60)
            return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
        elif seconds < 86400:
            hours = int(seconds / 3600)
            return f"{hours} hour{'s' if hours != 1 else ''} ago"
        elif seconds < 2592000:
            days = int(seconds / 86400)
            return f"{days} day{'s' if days != 1 else ''} ago"
        elif seconds < 31536000:
            months = int(seconds / 2592000)
            return f"{months} month{'s' if months != 1 else ''} ago"
        else:
            years = int(seconds / 31536000)
            return f"{years} year{'s' if years != 1 else ''} ago"
    except (ValueError, AttributeError):
        # If parsing fails, return the original string
        return iso_string
