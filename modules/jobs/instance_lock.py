"""
Cross-process single-instance guard.

The long-lived instance holds a pid file for its lifetime. The file also
carries the local API port so one-shot commands can hand off to it.
"""

import json
import os
from pathlib import Path
from typing import Dict, Optional

import psutil

from core.logger import get_logger

logger = get_logger(__name__)

PID_FILENAME = "autopilot.pid"


class InstanceLockError(Exception):
    """Raised when another live instance holds the lock."""

    def __init__(self, message: str, owner: Optional[Dict] = None):
        self.owner = owner
        super().__init__(message)


class InstanceLock:
    """Pid file created with O_CREAT|O_EXCL; stale files are replaced."""

    def __init__(self, data_dir: Path):
        self.path = Path(data_dir) / PID_FILENAME
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def read_owner(self) -> Optional[Dict]:
        """
        Read the current holder.

        Returns:
            Dict with `pid` (and `api_port` if published) for a live holder, else None
        """
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Unreadable instance lock file", path=str(self.path), error=str(e))
            return None

        pid = data.get("pid") if isinstance(data, dict) else None
        if not isinstance(pid, int) or not psutil.pid_exists(pid):
            return None
        return data

    def acquire(self, api_port: Optional[int] = None):
        """
        Take the lock.

        Args:
            api_port: Local API port to publish, if the API is enabled

        Raises:
            InstanceLockError: If another live process holds the lock
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps({"pid": os.getpid(), "api_port": api_port})

        for _ in range(2):
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                owner = self.read_owner()
                if owner is not None and owner.get("pid") != os.getpid():
                    raise InstanceLockError(
                        f"Another instance is already running (pid {owner['pid']})",
                        owner,
                    )
                logger.warning("Removing stale instance lock", path=str(self.path))
                self.path.unlink(missing_ok=True)
                continue

            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            self._held = True
            logger.info("Acquired instance lock", path=str(self.path), pid=os.getpid())
            return

        raise InstanceLockError(f"Could not create instance lock at {self.path}")

    def release(self):
        """Remove the pid file if this process holds it."""
        if not self._held:
            return
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to remove instance lock", path=str(self.path), error=str(e))
        self._held = False
        logger.info("Released instance lock")

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False
