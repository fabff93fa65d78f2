"""
Network change detection by polling a cheap fingerprint of the network identity.
"""

from typing import Callable, Iterable, Optional, Tuple

from core.logger import get_logger
from core.state import NetworkSnapshot
from modules.network.observer import NetworkObserver

logger = get_logger(__name__)

Fingerprint = Tuple[str, str, Tuple[str, ...]]


def fingerprint(snapshot: NetworkSnapshot) -> Fingerprint:
    """Reduce a snapshot to the parts whose change should trigger a cycle."""
    return (
        snapshot.ssid.state.value,
        snapshot.ssid.ssid or "",
        tuple(sorted(snapshot.local_ipv4_addresses)),
    )


class NetworkChangeWatcher:
    """Calls `on_change` whenever the network fingerprint differs from the previous poll."""

    def __init__(
        self,
        observer: NetworkObserver,
        on_change: Callable[[], object],
        excluded_adapters: Callable[[], Iterable[str]] = lambda: (),
    ):
        self.observer = observer
        self.on_change = on_change
        self.excluded_adapters = excluded_adapters
        self._last: Optional[Fingerprint] = None

    def check(self) -> bool:
        """
        Poll once.

        The first poll only records a baseline.

        Returns:
            True if a change was detected and the callback fired
        """
        current = fingerprint(self.observer.snapshot(self.excluded_adapters()))
        previous, self._last = self._last, current

        if previous is None or previous == current:
            return False

        logger.info(
            "Network change detected",
            previous_ssid=previous[1] or previous[0],
            current_ssid=current[1] or current[0],
            addresses=list(current[2])
        )
        self.on_change()
        return True

    def reset(self) -> None:
        """Forget the baseline; the next poll records a new one."""
        self._last = None
