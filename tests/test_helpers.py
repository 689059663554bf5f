import pytest

from radiusedge import exceptions, helpers

PROFILE_DATA = {
    "id": "lab",
    "host": "10.0.0.5",
    "preamble": [{"name": "restart", "command": "systemctl restart freeradius"}],
}


@pytest.fixture
def tmp_file(tmp_path):
    return tmp_path / "test.json"


@pytest.mark.parametrize("suffix", [".json", ".yaml"])
def test_save_and_load_file(tmp_path, suffix):
    path = helpers.save_file(tmp_path / f"profile{suffix}", PROFILE_DATA)
    assert helpers.load_file(path) == PROFILE_DATA


def test_negative_load_file():
    data = helpers.load_file("this/doesnt/exist.something")
    assert not data


def test_yaml_format_from_json_string():
    assert helpers.yaml_format('{"host": "10.0.0.5"}') == "host: 10.0.0.5\n"


def test_merge_dicts_second_wins():
    merged = helpers.merge_dicts(
        {"SSH": {"timeout": 30, "user": "root"}, "keep": 1},
        {"SSH": {"timeout": 5}, "new": None},
    )
    assert merged == {"SSH": {"timeout": 5, "user": "root"}, "keep": 1}


def test_dotted_get():
    data = {"user": {"groups": [{"name": "admins"}, {"name": "ops"}]}}
    assert helpers.dotted_get(data, "user.groups.1.name") == "ops"
    with pytest.raises(KeyError):
        helpers.dotted_get(data, "user.groups.5.name")
    with pytest.raises(KeyError):
        helpers.dotted_get(data, "user.email")


def test_parse_key_value_pairs():
    assert helpers.parse_key_value_pairs(["imsi=0011", "filter=a=b"]) == {
        "imsi": "0011",
        "filter": "a=b",
    }
    with pytest.raises(exceptions.ConfigurationError):
        helpers.parse_key_value_pairs(["nonsense"])


def test_simple_retry_gives_up():
    calls = []

    def flaky():
        calls.append(1)
        raise OSError("refused")

    with pytest.raises(OSError):
        helpers.simple_retry(flaky, max_timeout=0)
    assert len(calls) == 1


def test_simple_retry_terminal_exception():
    calls = []

    def denied():
        calls.append(1)
        raise exceptions.AuthenticationError("denied")

    with pytest.raises(exceptions.AuthenticationError):
        helpers.simple_retry(
            denied, max_timeout=60, terminal_exceptions=(exceptions.AuthenticationError,)
        )
    assert len(calls) == 1


def test_file_lock_times_out(tmp_file):
    with helpers.FileLock(tmp_file):
        with pytest.raises(exceptions.RadiusEdgeError):
            with helpers.FileLock(tmp_file, timeout=0.2, poll=0.05):
                pass
    assert not tmp_file.with_name("test.json.lock").exists()


def test_result_representation():
    ssh = helpers.Result.from_ssh(stdout="active", stderr="", status=0)
    assert "status: 0" in repr(ssh)
    other = helpers.Result(rows=[], error=None)
    assert repr(other) == "Result(rows=[], error=None)"
    assert other.get("missing", "default") == "default"


def test_dictlist_to_table():
    table = helpers.dictlist_to_table([{"id": "a", "status": None}], title="Executions")
    assert table.row_count == 1
    assert [column.header for column in table.columns] == ["id", "status"]
