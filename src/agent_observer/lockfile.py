"""Lock file through which the server reports its port to producers and observers."""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from . import __version__

logger = logging.getLogger(__name__)


@dataclass
class ServerLock:
    """Contents of the server lock file."""

    pid: int
    port: int
    version: str

    def to_dict(self) -> dict[str, Any]:
        return {"pid": self.pid, "port": self.port, "version": self.version}


def write_lock_file(lock_file: Path, port: int) -> ServerLock:
    """Write the lock file for the current process.

    Args:
        lock_file: Path of the lock file
        port: Port the server is bound to

    Returns:
        The lock that was written
    """
    lock = ServerLock(pid=os.getpid(), port=port, version=__version__)
    lock_file.parent.mkdir(parents=True, exist_ok=True)
    lock_file.write_text(json.dumps(lock.to_dict(), indent=2), encoding="utf-8")
    logger.info(f"Wrote lock file {lock_file} (port={port})")
    return lock


def read_lock_file(lock_file: Path) -> ServerLock | None:
    """Read the lock file.

    Returns:
        The lock, or None if the file is missing or unreadable
    """
    if not lock_file.exists():
        return None
    try:
        data = json.loads(lock_file.read_text(encoding="utf-8"))
        return ServerLock(pid=int(data["pid"]), port=int(data["port"]), version=str(data.get("version", "")))
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning(f"Invalid lock file {lock_file}: {e}")
        return None


def remove_lock_file(lock_file: Path) -> None:
    """Remove the lock file, ignoring errors."""
    try:
        lock_file.unlink(missing_ok=True)
        logger.debug(f"Removed lock file {lock_file}")
    except OSError as e:
        logger.debug(f"Failed to remove lock file {lock_file}: {e}")
