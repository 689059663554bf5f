"""Per-execution run log collection."""

import logging
import threading

from radiusedge import exceptions
from radiusedge.models import LogEntry, LogLevel

logger = logging.getLogger(__name__)

# mirror run log entries into process logging at a matching level
_PROCESS_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.SSH_FAIL: logging.WARNING,
}


class LogAggregator:
    """Collect the log entries of one run and persist them in a single batch.

    Entries are kept in memory in the order they were appended and pushed to every
    observer as soon as they arrive. Timestamps never go backwards: an entry stamped
    earlier than its predecessor takes the predecessor's timestamp.

    Args:
        store: Persistence collaborator receiving the batch on flush
        observers: Callables invoked with each appended LogEntry
    """

    def __init__(self, store, observers=()):
        self.store = store
        self._observers = list(observers)
        self._entries = []
        self._lock = threading.Lock()
        self.flushed = False

    @property
    def entries(self):
        return tuple(self._entries)

    def add_observer(self, observer):
        self._observers.append(observer)

    def append(self, entry):
        """Add an entry to the batch and notify observers.

        Raises:
            ExecutionError: If the batch has already been flushed
        """
        with self._lock:
            if self.flushed:
                raise exceptions.ExecutionError(
                    f"Cannot append to a flushed run log: {entry.message}"
                )
            if self._entries and entry.timestamp < self._entries[-1].timestamp:
                entry.timestamp = self._entries[-1].timestamp
            self._entries.append(entry)
        logger.log(
            _PROCESS_LEVELS.get(entry.level, logging.DEBUG),
            f"[{entry.level.value}] {entry.message}",
        )
        for observer in list(self._observers):
            try:
                observer(entry)
            except Exception as err:  # noqa: BLE001
                logger.warning(f"Run log observer {observer!r} failed: {err}")
        return entry

    def log(self, level, message, details=None, step_id=None):
        """Build a LogEntry from its parts and append it."""
        return self.append(LogEntry(level, message, details=details, step_id=step_id))

    def flush(self, execution_id):
        """Hand the whole batch to the store in one append_logs call.

        Raises:
            ExecutionError: If this batch was already flushed
        """
        with self._lock:
            if self.flushed:
                raise exceptions.ExecutionError(f"Run log of {execution_id} was already flushed")
            self.flushed = True
            batch = list(self._entries)
        logger.debug(f"Flushing {len(batch)} log entries for execution {execution_id}")
        self.store.append_logs(execution_id, batch)
        return len(batch)
