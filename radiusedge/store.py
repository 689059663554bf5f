"""Persistence of execution records, run logs and result summaries.

Two implementations are provided:
    MemoryStore: keeps everything in dictionaries, for embedding and tests
    FileStore: one YAML file per execution record and result summary and one JSON
        file per run log, under ``<RADIUSEDGE_DIRECTORY>/<STORE.PATH>``
"""

from abc import ABC, abstractmethod
import copy
import logging
from pathlib import Path
import threading
from uuid import uuid4

from radiusedge import exceptions, helpers
from radiusedge.models import ExecutionRecord, LogEntry
from radiusedge.settings import RADIUSEDGE_DIRECTORY, clone_global_settings

logger = logging.getLogger(__name__)


class Store(ABC):
    """Persistence collaborator interface used by the execution engine."""

    @abstractmethod
    def create_execution_record(self, record):
        """Persist a new ExecutionRecord and return its id."""

    @abstractmethod
    def update_execution_record(self, execution_id, patch):
        """Apply a dict of field updates to a stored record."""

    @abstractmethod
    def append_logs(self, execution_id, entries):
        """Append LogEntry objects to the stored run log of an execution."""

    @abstractmethod
    def create_result_summary(self, summary):
        """Persist a result summary dict and return its id."""

    @abstractmethod
    def get_execution_record(self, execution_id):
        """Return the stored ExecutionRecord."""

    @abstractmethod
    def list_execution_records(self):
        """Return every stored ExecutionRecord, oldest first."""

    @abstractmethod
    def get_logs(self, execution_id):
        """Return the stored LogEntry list of an execution."""


def _serialize_patch(patch):
    return {key: getattr(value, "value", value) for key, value in patch.items()}


class MemoryStore(Store):
    """Thread-safe in-memory store."""

    def __init__(self):
        self._lock = threading.Lock()
        self.records = {}
        self.logs = {}
        self.results = {}

    def create_execution_record(self, record):
        with self._lock:
            if record.id in self.records:
                raise exceptions.ExecutionError(f"Execution record {record.id} already exists")
            self.records[record.id] = record.to_dict()
            self.logs.setdefault(record.id, [])
        return record.id

    def update_execution_record(self, execution_id, patch):
        with self._lock:
            if execution_id not in self.records:
                raise exceptions.ExecutionError(f"Unknown execution record {execution_id}")
            self.records[execution_id].update(_serialize_patch(patch))

    def append_logs(self, execution_id, entries):
        with self._lock:
            self.logs.setdefault(execution_id, []).extend(entry.to_dict() for entry in entries)

    def create_result_summary(self, summary):
        result_id = str(uuid4())
        with self._lock:
            self.results[result_id] = copy.deepcopy(summary)
        return result_id

    def get_execution_record(self, execution_id):
        with self._lock:
            if execution_id not in self.records:
                raise exceptions.ExecutionError(f"Unknown execution record {execution_id}")
            return ExecutionRecord.from_dict(self.records[execution_id])

    def list_execution_records(self):
        with self._lock:
            records = [ExecutionRecord.from_dict(data) for data in self.records.values()]
        return sorted(records, key=lambda record: record.start_time)

    def get_logs(self, execution_id):
        with self._lock:
            return [LogEntry.from_dict(data) for data in self.logs.get(execution_id, [])]

    def get_result_summary(self, result_id):
        with self._lock:
            return copy.deepcopy(self.results.get(result_id))


class FileStore(Store):
    """Store executions as files on disk.

    Args:
        directory: Root directory; defaults to STORE.PATH relative to RADIUSEDGE_DIRECTORY
        store_settings: Optional settings object to use instead of global settings
    """

    def __init__(self, directory=None, store_settings=None):
        if directory is None:
            _settings = store_settings or clone_global_settings()
            directory = Path(_settings.STORE.PATH)
            if not directory.is_absolute():
                directory = RADIUSEDGE_DIRECTORY / directory
        self.directory = Path(directory)
        for sub in ("executions", "logs", "results"):
            self.directory.joinpath(sub).mkdir(parents=True, exist_ok=True)

    def _record_path(self, execution_id):
        return self.directory / "executions" / f"{execution_id}.yaml"

    def _log_path(self, execution_id):
        return self.directory / "logs" / f"{execution_id}.json"

    def create_execution_record(self, record):
        path = self._record_path(record.id)
        with helpers.FileLock(path):
            if path.exists():
                raise exceptions.ExecutionError(f"Execution record {record.id} already exists")
            helpers.save_file(path, record.to_dict())
        return record.id

    def update_execution_record(self, execution_id, patch):
        path = self._record_path(execution_id)
        with helpers.FileLock(path):
            if not path.exists():
                raise exceptions.ExecutionError(f"Unknown execution record {execution_id}")
            data = dict(helpers.load_file(path))
            data.update(_serialize_patch(patch))
            helpers.save_file(path, data)

    def append_logs(self, execution_id, entries):
        path = self._log_path(execution_id)
        with helpers.FileLock(path):
            existing = helpers.load_file(path, warn=False) if path.exists() else []
            existing.extend(entry.to_dict() for entry in entries)
            helpers.save_file(path, existing)
        logger.debug(f"Wrote {len(entries)} log entries to {path}")

    def create_result_summary(self, summary):
        result_id = str(uuid4())
        path = self.directory / "results" / f"{result_id}.yaml"
        helpers.save_file(path, {"id": result_id, **summary})
        return result_id

    def get_execution_record(self, execution_id):
        path = self._record_path(execution_id)
        if not path.exists():
            raise exceptions.ExecutionError(f"Unknown execution record {execution_id}")
        return ExecutionRecord.from_dict(dict(helpers.load_file(path)))

    def list_execution_records(self):
        records = [
            ExecutionRecord.from_dict(dict(helpers.load_file(path)))
            for path in self.directory.joinpath("executions").glob("*.yaml")
        ]
        return sorted(records, key=lambda record: record.start_time)

    def get_logs(self, execution_id):
        path = self._log_path(execution_id)
        if not path.exists():
            return []
        return [LogEntry.from_dict(data) for data in helpers.load_file(path)]

    def get_result_summary(self, result_id):
        path = self.directory / "results" / f"{result_id}.yaml"
        return dict(helpers.load_file(path)) if path.exists() else None
