"""Debounced change queue for a single sync configuration."""

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class ChangeType(str, enum.Enum):
    CREATE = 'create'
    CHANGE = 'change'
    DELETE = 'delete'


@dataclass
class PendingChange:
    """A queued local file event."""

    path: str
    change_type: ChangeType
    timestamp: float


class ChangeQueue:
    """Coalescing queue of pending file events with a debounce timer.

    At most one entry exists per path; a later event on the same path
    replaces the kind and timestamp of the earlier one. A single timer is
    kept per queue and restarted on every event, so the batch callback only
    runs after a full quiet period.
    """

    def __init__(self, name: str = ''):
        self.name = name
        self._changes: Dict[str, PendingChange] = {}
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        # Held while a batch executes so batches never overlap
        self.batch_lock = threading.Lock()

    def put(self, path: str, change_type: ChangeType) -> int:
        """Insert or overwrite the entry for a path.

        Returns:
            Number of pending entries after the insert
        """
        with self._lock:
            existing = self._changes.get(path)
            if existing is not None:
                existing.change_type = change_type
                existing.timestamp = time.time()
            else:
                self._changes[path] = PendingChange(path, change_type, time.time())
            size = len(self._changes)
        logger.debug(f"Queued {change_type.value}: {path}")
        return size

    def snapshot(self) -> Dict[str, ChangeType]:
        """Get the pending change kind per path without draining."""
        with self._lock:
            return {path: change.change_type for path, change in self._changes.items()}

    def drain(self) -> List[PendingChange]:
        """Atomically take every pending entry and clear the queue."""
        with self._lock:
            changes = list(self._changes.values())
            self._changes = {}
        return changes

    def __len__(self) -> int:
        with self._lock:
            return len(self._changes)

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> None:
        """(Re)start the debounce timer.

        Any pending timer is cancelled first.
        """
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(max(delay_ms, 0) / 1000.0, self._fire, args=(callback,))
            timer.daemon = True
            timer.name = f"wdsc-debounce-{self.name}" if self.name else "wdsc-debounce"
            self._timer = timer
            timer.start()

    def _fire(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if self._timer is threading.current_thread():
                self._timer = None
        callback()

    def cancel(self) -> None:
        """Cancel the pending debounce timer, if any."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def clear(self) -> None:
        """Drop all entries and the pending timer."""
        self.cancel()
        with self._lock:
            self._changes = {}
