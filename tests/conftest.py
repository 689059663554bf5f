import os
from pathlib import Path
import tempfile
import threading

import pytest

# keep the test session away from the user's ~/.radiusedge
os.environ.setdefault("RADIUSEDGE_DIRECTORY", tempfile.mkdtemp(prefix="radiusedge-tests-"))

from radiusedge import helpers, settings  # noqa: E402
from radiusedge.binds import DatabaseBind, RadiusBind, SshBind  # noqa: E402
from radiusedge.binds.http import RequestsBind  # noqa: E402
from radiusedge.logs import LogAggregator  # noqa: E402
from radiusedge.models import (  # noqa: E402
    PreambleCommand,
    Scenario,
    ScenarioStep,
    ScenarioVariable,
    ServerProfile,
)
from radiusedge.store import MemoryStore  # noqa: E402


def pytest_sessionstart(session):
    """For things that need to happen before any test runs."""
    from radiusedge.logging import setup_logging

    setup_logging(
        console_level="warning",
        file_level="debug",
        log_path="logs/radiusedge_tests.log",
        structured=False,
    )


@pytest.fixture(scope="session")
def data_dir():
    """Return path to the test data directory"""
    return Path(__file__).parent / "data"


@pytest.fixture(scope="session")
def radiusedge_settings():
    """Create a settings object with fast retries and short timeouts"""
    test_config = {
        "SSH": {
            "connection_timeout": 5,
            "command_timeout": 5,
            "retry_max_wait": 0,
        },
        "VARIABLES": {
            "random_string_length": 8,
            "random_number_max": 100,
        },
        "RADIUS": {
            "radclient": "radclient",
            "radtest": "radtest",
            "timeout": 2,
            "retries": 1,
        },
        "HTTP": {"timeout": 5, "verify": False},
        "RESULTS": {"create_summary": True},
        "LOGGING": {
            "console_level": "warning",
            "file_level": "debug",
        },
    }
    return settings.create_settings(config_dict=test_config)


@pytest.fixture
def set_envars(monkeypatch, request):
    """Set environment variables for a test and clean up afterward"""
    for envar, value in request.param:
        monkeypatch.setenv(envar, value)
    yield


class FakeSsh(SshBind):
    """Scripted SSH session.

    results maps a command to the Result (or exception) it produces; anything
    else succeeds with empty output.
    """

    def __init__(self, results=None, connect_error=None, disconnect_error=None):
        self.results = results or {}
        self.connect_error = connect_error
        self.disconnect_error = disconnect_error
        self.connect_attempts = 0
        self.disconnects = 0
        self.commands = []
        self.connected = False

    def connect(self, profile):
        self.connect_attempts += 1
        if self.connect_error:
            raise self.connect_error
        self.connected = True

    def execute_command(self, command, timeout=None):
        assert self.connected, "command sent on a closed session"
        self.commands.append(command)
        result = self.results.get(command, helpers.Result.from_ssh("", "", 0))
        if isinstance(result, Exception):
            raise result
        return result

    def disconnect(self):
        self.disconnects += 1
        self.connected = False
        if self.disconnect_error:
            raise self.disconnect_error


class FakeRadius(RadiusBind):
    def __init__(self, result=None, hook=None):
        self.result = result
        self.hook = hook
        self.packets = []

    def execute_tool(self, packet, server, variables=()):
        self.packets.append(packet)
        if self.hook:
            self.hook(packet)
        if self.result is not None:
            return self.result
        return helpers.Result(
            command="radclient",
            sent="Sent Access-Request Id 1\n\tUser-Name = \"user\"",
            received="Received Access-Accept Id 1\n\tReply-Message = \"Welcome\"",
            output="",
            status=0,
            error=None,
        )


class FakeDatabase(DatabaseBind):
    def __init__(self, rows=None, error=None, connect_error=None):
        self.rows = rows or []
        self.error = error
        self.connect_error = connect_error
        self.queries = []
        self.profiles = []
        self.disconnects = 0

    def connect(self, profile):
        if self.connect_error:
            raise self.connect_error
        self.profiles.append(profile)

    def execute_query(self, query):
        self.queries.append(query)
        return helpers.Result(rows=self.rows, error=self.error)

    def disconnect(self):
        self.disconnects += 1


class FakeHttp(RequestsBind):
    """Real response validation, canned responses."""

    def __init__(self, response=None):
        self._settings = None
        self.response = response or helpers.Result(
            status_code=200, headers={}, data={"status": "ok"}, error=None
        )
        self.requests = []

    def request(self, url, method="GET", headers=None, body=None):
        self.requests.append({"url": url, "method": method, "headers": headers, "body": body})
        return self.response


@pytest.fixture
def fake_ssh():
    return FakeSsh()


@pytest.fixture
def fake_radius():
    return FakeRadius()


@pytest.fixture
def fake_database():
    return FakeDatabase(rows=[{"username": "001010123456789", "n": 1}])


@pytest.fixture
def fake_http():
    return FakeHttp()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def run_log(store):
    return LogAggregator(store)


@pytest.fixture
def server():
    return ServerProfile("lab", name="Lab server", host="10.0.0.5", secret="testing123")


@pytest.fixture
def preamble_server():
    return ServerProfile(
        "lab-pre",
        host="10.0.0.6",
        secret="testing123",
        preamble=[
            PreambleCommand("restart", "systemctl restart freeradius"),
            PreambleCommand("health", "systemctl is-active freeradius", expected_output="active"),
        ],
    )


def make_scenario(*steps, variables=(), name="test scenario"):
    """Build a scenario from (kind, details) tuples or ScenarioStep objects."""
    built = []
    for num, step in enumerate(steps, start=1):
        if isinstance(step, ScenarioStep):
            built.append(step)
        else:
            kind, details = step
            built.append(ScenarioStep(str(num), kind, name=f"step {num}", details=details))
    variables = [
        var if isinstance(var, ScenarioVariable) else ScenarioVariable(*var) for var in variables
    ]
    return Scenario(name.replace(" ", "-"), name, built, variables)


class Gate:
    """Block a collaborator call until the test releases it."""

    def __init__(self):
        self.entered = threading.Event()
        self.released = threading.Event()

    def __call__(self, *args, **kwargs):
        self.entered.set()
        assert self.released.wait(5), "gate was never released"
