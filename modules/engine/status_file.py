"""
Plain-text status record read by other processes (tray, scripts).

Format:

    SSID: <ssid display>
    VPN: <status label>
    Auto-start: Disabled (manually)     <- only while the manual override is set

The file is always replaced whole.
"""

from pathlib import Path
from typing import Dict, Optional

from core.fileio import atomic_write_text
from core.logger import get_logger
from core.state import QUERY_FAILED_LABEL, TunnelStatus

logger = get_logger(__name__)

STATUS_RECORD_FILENAME = "tunnel_status.flag"
MANUAL_DISABLE_LINE = "Auto-start: Disabled (manually)"


def format_status_record(ssid: str, status: TunnelStatus, manually_disabled: bool) -> str:
    lines = [f"SSID: {ssid}", f"VPN: {status.value}"]
    if manually_disabled:
        lines.append(MANUAL_DISABLE_LINE)
    return "\n".join(lines)


def parse_status_record(text: str) -> Dict[str, str]:
    """Split a status record into its `Key: value` fields."""
    fields = {}
    for line in (text or "").splitlines():
        key, sep, value = line.partition(":")
        if sep:
            fields[key.strip()] = value.strip()
    return fields


class StatusRecordFile:
    """Owner of the status record file."""

    def __init__(self, data_dir: Path):
        self.path = Path(data_dir) / STATUS_RECORD_FILENAME

    def write(self, ssid: str, status: TunnelStatus, manually_disabled: bool) -> bool:
        """
        Overwrite the record.

        Returns:
            True if written, False if the write failed (logged)
        """
        content = format_status_record(ssid, status, manually_disabled)
        try:
            atomic_write_text(self.path, content)
        except OSError as e:
            logger.error("Failed to write status record", path=str(self.path), error=str(e))
            return False
        logger.debug("Status record written", ssid=ssid, status=status.value, manually_disabled=manually_disabled)
        return True

    def read(self) -> Optional[str]:
        """Return the record text, or None if it does not exist or cannot be read."""
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Failed to read status record", path=str(self.path), error=str(e))
            return None

    def ensure_exists(self) -> bool:
        """Create an initial record if none exists. Returns True if one was created."""
        if self.path.exists():
            return False
        return self.write(QUERY_FAILED_LABEL, TunnelStatus.UNKNOWN, False)
