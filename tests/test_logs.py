from datetime import timedelta

import pytest

from radiusedge import exceptions
from radiusedge.logs import LogAggregator
from radiusedge.models import LogEntry, LogLevel, utcnow
from radiusedge.store import MemoryStore


class CountingStore(MemoryStore):
    def __init__(self):
        super().__init__()
        self.flushes = []

    def append_logs(self, execution_id, entries):
        self.flushes.append(execution_id)
        super().append_logs(execution_id, entries)


def test_entries_are_streamed_and_kept_in_order():
    seen = []
    log = LogAggregator(MemoryStore(), observers=[seen.append])
    first = log.log(LogLevel.INFO, "one")
    second = log.log(LogLevel.SENT, "two", details="User-Name = x", step_id="1")
    assert seen == [first, second]
    assert log.entries == (first, second)
    assert second.step_id == "1"


def test_timestamps_never_go_backwards():
    log = LogAggregator(MemoryStore())
    now = utcnow()
    log.append(LogEntry(LogLevel.INFO, "late", timestamp=now))
    early = log.append(LogEntry(LogLevel.INFO, "early", timestamp=now - timedelta(seconds=5)))
    assert early.timestamp == now
    stamps = [entry.timestamp for entry in log.entries]
    assert stamps == sorted(stamps)


def test_flush_once_per_execution():
    store = CountingStore()
    log = LogAggregator(store)
    log.log(LogLevel.INFO, "one")
    log.log(LogLevel.ERROR, "two")
    assert log.flush("exec-1") == 2
    assert store.flushes == ["exec-1"]
    assert [entry.message for entry in store.get_logs("exec-1")] == ["one", "two"]
    with pytest.raises(exceptions.ExecutionError):
        log.flush("exec-1")
    assert store.flushes == ["exec-1"]


def test_append_after_flush_is_rejected():
    log = LogAggregator(MemoryStore())
    log.flush("exec-1")
    with pytest.raises(exceptions.ExecutionError):
        log.log(LogLevel.INFO, "too late")


def test_failing_observer_does_not_stop_the_run():
    def broken(entry):
        raise RuntimeError("console went away")

    seen = []
    log = LogAggregator(MemoryStore(), observers=[broken, seen.append])
    log.log(LogLevel.INFO, "still logged")
    assert len(log.entries) == 1
    assert len(seen) == 1


def test_level_names_are_case_insensitive():
    assert LogEntry("warn", "x").level is LogLevel.WARN
    with pytest.raises(exceptions.ConfigurationError):
        LogEntry("verbose", "x")
