"""
Persisted manual-disable flag.

The flag file's existence means "the user stopped the tunnel by hand, do not
auto-start it". Its content is the time the flag was set.
"""

import threading
from datetime import datetime
from pathlib import Path

from core.fileio import atomic_write_text
from core.logger import get_logger

logger = get_logger(__name__)

MANUAL_DISABLE_FILENAME = "manual_disable.flag"


class ManualOverrideStore:
    """Single durable boolean for the one managed tunnel."""

    def __init__(self, data_dir: Path):
        """
        Initialize the store and load the persisted state.

        Args:
            data_dir: Directory holding the flag file
        """
        self.path = Path(data_dir) / MANUAL_DISABLE_FILENAME
        self._lock = threading.Lock()
        self._disabled = False
        # set when the last change could not be written; the file is stale until then
        self._unsaved = False
        self.reload()

    @property
    def is_disabled(self) -> bool:
        return self._disabled

    def reload(self) -> bool:
        """
        Re-read the flag from disk so changes made by another process apply.

        Unreadable state counts as not disabled. An unsaved in-memory change
        is kept instead of the stale file.
        """
        with self._lock:
            if self._unsaved:
                return self._disabled
            try:
                self._disabled = self.path.exists()
            except OSError as e:
                logger.error("Failed to read manual disable flag", path=str(self.path), error=str(e))
                self._disabled = False
            return self._disabled

    def set_disabled(self, disabled: bool) -> bool:
        """
        Set and persist the flag before returning.

        Args:
            disabled: New flag value

        Returns:
            True if persisted; False if only the in-memory value changed
        """
        with self._lock:
            self._disabled = disabled
            try:
                if disabled:
                    atomic_write_text(self.path, datetime.now().isoformat())
                else:
                    self.path.unlink(missing_ok=True)
                self._unsaved = False
            except OSError as e:
                self._unsaved = True
                logger.error(
                    "Failed to persist manual disable flag; in-memory value still applies",
                    path=str(self.path),
                    disabled=disabled,
                    error=str(e)
                )
                return False

        logger.info("Manual disable flag updated", disabled=disabled)
        return True
