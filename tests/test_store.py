from datetime import timedelta

import pytest

from radiusedge import exceptions
from radiusedge.models import ExecutionRecord, ExecutionStatus, LogEntry, LogLevel, utcnow
from radiusedge.store import FileStore, MemoryStore


@pytest.fixture(params=["memory", "file"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return MemoryStore()
    return FileStore(tmp_path / "runs")


def _record(execution_id="exec-1", start_time=None):
    return ExecutionRecord(
        execution_id, "auth_smoke", "Auth smoke", "lab", "Lab server", start_time=start_time
    )


def test_record_lifecycle(any_store):
    record = _record()
    assert any_store.create_execution_record(record) == "exec-1"
    record.finish(ExecutionStatus.FAILED)
    any_store.update_execution_record(
        "exec-1",
        {"end_time": record.end_time.isoformat(), "status": ExecutionStatus.FAILED},
    )
    stored = any_store.get_execution_record("exec-1")
    assert stored.status is ExecutionStatus.FAILED
    assert stored.end_time == record.end_time
    assert stored.scenario_name == "Auth smoke"


def test_duplicate_and_unknown_records(any_store):
    any_store.create_execution_record(_record())
    with pytest.raises(exceptions.ExecutionError):
        any_store.create_execution_record(_record())
    with pytest.raises(exceptions.ExecutionError):
        any_store.update_execution_record("missing", {"status": "Completed"})
    with pytest.raises(exceptions.ExecutionError):
        any_store.get_execution_record("missing")


def test_logs_round_trip(any_store):
    entries = [
        LogEntry(LogLevel.SSH_CMD, "restart", details="root@lab:~$ systemctl restart radiusd"),
        LogEntry(LogLevel.RECV, "reply", details="Access-Accept", step_id="access"),
    ]
    any_store.append_logs("exec-1", entries)
    loaded = any_store.get_logs("exec-1")
    assert [entry.to_dict() for entry in loaded] == [entry.to_dict() for entry in entries]
    assert any_store.get_logs("other") == []


def test_result_summaries(any_store):
    summary = {"scenario_name": "Auth smoke", "status": "Pass", "latency_ms": 12}
    result_id = any_store.create_result_summary(summary)
    stored = any_store.get_result_summary(result_id)
    assert stored["status"] == "Pass"
    assert stored["latency_ms"] == 12


def test_list_records_oldest_first(any_store):
    now = utcnow()
    any_store.create_execution_record(_record("exec-2", start_time=now))
    any_store.create_execution_record(_record("exec-1", start_time=now - timedelta(minutes=1)))
    assert [record.id for record in any_store.list_execution_records()] == ["exec-1", "exec-2"]


def test_file_store_layout(tmp_path):
    store = FileStore(tmp_path / "runs")
    store.create_execution_record(_record())
    store.append_logs("exec-1", [LogEntry(LogLevel.INFO, "hello")])
    assert (tmp_path / "runs" / "executions" / "exec-1.yaml").exists()
    assert (tmp_path / "runs" / "logs" / "exec-1.json").exists()
    assert not list((tmp_path / "runs").rglob("*.lock"))
