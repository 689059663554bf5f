"""Data model for scenarios, target profiles, executions and run logs.

Every model can be built from the plain dictionaries found in scenario and profile
files (``from_dict``) and turned back into one for persistence (``to_dict``).
Construction validates the invariants the engine relies on and raises
ConfigurationError when they do not hold.
"""

from datetime import datetime, timezone
from enum import Enum
import inspect

from radiusedge import exceptions


def utcnow():
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _isoformat(value):
    return value.isoformat() if isinstance(value, datetime) else value


def _parse_time(value):
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _profile_fields(cls, data):
    """Split a profile dict into its id and the keyword arguments ``cls`` accepts."""
    fields = dict(data)
    profile_id = fields.pop("id", None) or fields.get("name")
    if not profile_id:
        raise exceptions.ConfigurationError(f"{cls.__name__} needs an id or a name")
    accepted = set(inspect.signature(cls.__init__).parameters) - {"self", "id"}
    if unknown := sorted(set(fields) - accepted):
        raise exceptions.ConfigurationError(
            f"{cls.__name__} {profile_id!r} has unknown fields: {', '.join(unknown)}"
        )
    return profile_id, fields


def _coerce_enum(enum_cls, value, what):
    try:
        return value if isinstance(value, enum_cls) else enum_cls(str(value).lower())
    except ValueError as err:
        choices = ", ".join(member.value for member in enum_cls)
        raise exceptions.ConfigurationError(
            f"Unknown {what} {value!r}; expected one of: {choices}"
        ) from err


class ExecutionStatus(str, Enum):
    """Lifecycle states of a scenario execution."""

    NOT_STARTED = "NotStarted"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    ABORTED = "Aborted"

    @property
    def terminal(self):
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.ABORTED)


class LogLevel(str, Enum):
    """Levels of run log entries."""

    INFO = "INFO"
    DEBUG = "DEBUG"
    WARN = "WARN"
    ERROR = "ERROR"
    SENT = "SENT"
    RECV = "RECV"
    SSH_CMD = "SSH_CMD"
    SSH_OUT = "SSH_OUT"
    SSH_FAIL = "SSH_FAIL"


class StepKind(str, Enum):
    RADIUS = "radius"
    SQL = "sql"
    API_CALL = "api_call"
    DELAY = "delay"
    LOG_MESSAGE = "log_message"
    LOOP_START = "loop_start"
    LOOP_END = "loop_end"
    CONDITIONAL_START = "conditional_start"
    CONDITIONAL_END = "conditional_end"

    @property
    def is_marker(self):
        return self in (
            StepKind.LOOP_START,
            StepKind.LOOP_END,
            StepKind.CONDITIONAL_START,
            StepKind.CONDITIONAL_END,
        )


class VariableKind(str, Enum):
    STATIC = "static"
    RANDOM_STRING = "random_string"
    RANDOM_NUMBER = "random_number"
    LIST = "list"


class ScenarioVariable:
    """A named value that ``${name}`` placeholders are replaced with."""

    def __init__(self, name, kind=VariableKind.STATIC, value=""):
        if not name:
            raise exceptions.ConfigurationError("Scenario variables must have a name")
        self.name = str(name)
        self.kind = _coerce_enum(VariableKind, kind, "variable type")
        self.value = "" if value is None else value

    @classmethod
    def from_dict(cls, data):
        return cls(name=data.get("name"), kind=data.get("type", "static"), value=data.get("value"))

    def to_dict(self):
        return {"name": self.name, "type": self.kind.value, "value": self.value}

    def __repr__(self):
        return f"ScenarioVariable({self.name!r}, {self.kind.value}, {self.value!r})"


class ScenarioStep:
    """One unit of work within a scenario.

    Attributes:
        id: Identifier, unique within the scenario
        kind: StepKind of the step
        name: Human readable name used in logs
        details: Kind-specific payload, e.g. ``packet_id`` for radius steps
        enabled: Disabled steps are logged as skipped and never executed
    """

    def __init__(self, id, kind, name=None, details=None, enabled=True):  # noqa: A002
        if id is None or id == "":
            raise exceptions.ConfigurationError("Scenario steps must have an id")
        self.id = str(id)
        self.kind = _coerce_enum(StepKind, kind, "step type")
        self.name = name or f"{self.kind.value} step {self.id}"
        self.details = dict(details or {})
        self.enabled = bool(enabled)

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data.get("id"),
            kind=data.get("type"),
            name=data.get("name"),
            details=data.get("details"),
            enabled=data.get("enabled", True),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.kind.value,
            "name": self.name,
            "details": self.details,
            "enabled": self.enabled,
        }

    def __repr__(self):
        return f"ScenarioStep({self.id!r}, {self.kind.value}, {self.name!r})"


class Scenario:
    """An ordered list of steps plus the variables they reference."""

    def __init__(self, id, name, steps=(), variables=(), description="", tags=()):  # noqa: A002
        self.id = str(id)
        self.name = name or self.id
        self.description = description or ""
        self.tags = tuple(tags or ())
        self.steps = tuple(steps)
        self.variables = tuple(variables)
        self._check_unique("step id", [step.id for step in self.steps])
        self._check_unique("variable name", [var.name for var in self.variables])

    def _check_unique(self, what, values):
        seen = set()
        for value in values:
            if value in seen:
                raise exceptions.ConfigurationError(
                    f"Scenario {self.name!r} declares duplicate {what} {value!r}"
                )
            seen.add(value)

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data.get("id") or data.get("name"),
            name=data.get("name"),
            description=data.get("description"),
            tags=data.get("tags"),
            steps=[ScenarioStep.from_dict(step) for step in data.get("steps") or []],
            variables=[ScenarioVariable.from_dict(var) for var in data.get("variables") or []],
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "tags": list(self.tags),
            "variables": [var.to_dict() for var in self.variables],
            "steps": [step.to_dict() for step in self.steps],
        }

    def with_overrides(self, overrides):
        """Return a copy where each override replaces (or adds) a static variable."""
        if not overrides:
            return self
        variables = {var.name: var for var in self.variables}
        for name, value in overrides.items():
            variables[name] = ScenarioVariable(name, VariableKind.STATIC, value)
        return Scenario(
            self.id, self.name, self.steps, variables.values(), self.description, self.tags
        )

    def database_profiles(self, databases):
        """Return the profiles the enabled SQL steps run against, once each, in first-use order.

        Steps whose profile cannot be chosen are left out; they fail when they run.
        """
        profiles = {}
        for step in self.steps:
            if step.kind is not StepKind.SQL or not step.enabled:
                continue
            try:
                profile = DatabaseProfile.for_step(step, databases)
            except exceptions.ConfigurationError:
                continue
            profiles.setdefault(profile.id, profile)
        return list(profiles.values())


class PreambleCommand:
    """An SSH command run against a target before the scenario steps."""

    def __init__(self, name, command, enabled=True, expected_output=None):
        if not command:
            raise exceptions.ConfigurationError(f"Preamble command {name!r} has no command")
        self.name = name or command
        self.command = command
        self.enabled = bool(enabled)
        self.expected_output = expected_output or None

    @classmethod
    def from_dict(cls, data):
        return cls(
            name=data.get("name"),
            command=data.get("command"),
            enabled=data.get("enabled", True),
            expected_output=data.get("expected_output"),
        )

    def to_dict(self):
        return {
            "name": self.name,
            "command": self.command,
            "enabled": self.enabled,
            "expected_output": self.expected_output,
        }


class _SshTarget:
    """Shared SSH connection fields of server and database profiles."""

    def _init_ssh(self, host, ssh_port, ssh_user, ssh_password, ssh_key_filename, preamble):
        self.host = host
        self.ssh_port = int(ssh_port or 22)
        self.ssh_user = ssh_user or "root"
        self.ssh_password = ssh_password
        self.ssh_key_filename = ssh_key_filename
        self.preamble = tuple(
            cmd if isinstance(cmd, PreambleCommand) else PreambleCommand.from_dict(cmd)
            for cmd in preamble or ()
        )

    def _ssh_dict(self):
        return {
            "ssh_port": self.ssh_port,
            "ssh_user": self.ssh_user,
            "ssh_password": self.ssh_password,
            "ssh_key_filename": self.ssh_key_filename,
            "preamble": [cmd.to_dict() for cmd in self.preamble],
        }

    @property
    def ssh_login(self):
        return f"{self.ssh_user}@{self.host}"


class ServerProfile(_SshTarget):
    """A RADIUS server under test and how to reach it over SSH."""

    def __init__(
        self,
        id,  # noqa: A002
        name=None,
        host=None,
        ssh_port=22,
        ssh_user="root",
        ssh_password=None,
        ssh_key_filename=None,
        auth_port=1812,
        acct_port=1813,
        secret=None,
        nas_secrets=None,
        preamble=(),
    ):
        if not host:
            raise exceptions.ConfigurationError(f"Server profile {id!r} has no host")
        self.id = str(id)
        self.name = name or self.id
        self.auth_port = int(auth_port or 1812)
        self.acct_port = int(acct_port or 1813)
        self.secret = secret
        self.nas_secrets = dict(nas_secrets or {})
        self._init_ssh(host, ssh_port, ssh_user, ssh_password, ssh_key_filename, preamble)

    @classmethod
    def from_dict(cls, data):
        profile_id, fields = _profile_fields(cls, data)
        return cls(profile_id, **fields)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "host": self.host,
            "auth_port": self.auth_port,
            "acct_port": self.acct_port,
            "secret": self.secret,
            "nas_secrets": self.nas_secrets,
            **self._ssh_dict(),
        }


class DatabaseProfile(_SshTarget):
    """A database that SQL steps query, optionally prepared over SSH."""

    DRIVERS = {
        "mysql": "mysql+pymysql",
        "postgresql": "postgresql+psycopg2",
        "mssql": "mssql+pymssql",
        "sqlite": "sqlite",
    }

    def __init__(
        self,
        id,  # noqa: A002
        name=None,
        url=None,
        type="sqlite",  # noqa: A002
        host=None,
        port=None,
        username=None,
        password=None,
        database=None,
        ssh_port=22,
        ssh_user="root",
        ssh_password=None,
        ssh_key_filename=None,
        preamble=(),
        default=False,
    ):
        self.id = str(id)
        self.name = name or self.id
        self.type = str(type).lower()
        if not url and self.type not in self.DRIVERS:
            raise exceptions.ConfigurationError(
                f"Database profile {self.id!r} has unsupported type {type!r}"
            )
        self.url = url
        self.port = port
        self.username = username
        self.password = password
        self.database = database
        self.default = bool(default)
        self._init_ssh(host, ssh_port, ssh_user, ssh_password, ssh_key_filename, preamble)

    @property
    def connection_url(self):
        """Return the SQLAlchemy URL for this database."""
        if self.url:
            return self.url
        if self.type == "sqlite":
            return f"sqlite:///{self.database or ':memory:'}"
        auth = ""
        if self.username:
            auth = self.username + (f":{self.password}" if self.password else "") + "@"
        port = f":{self.port}" if self.port else ""
        return f"{self.DRIVERS[self.type]}://{auth}{self.host}{port}/{self.database or ''}"

    @classmethod
    def for_step(cls, step, databases):
        """Pick the profile an SQL step runs against.

        A ``connection_id`` names the profile. Without one the step uses the default
        profile, or the only profile when none is marked default.

        Args:
            step: The SQL ScenarioStep
            databases: Mapping of profile id to DatabaseProfile

        Raises:
            ConfigurationError: If no single profile matches
        """
        connection_id = step.details.get("connection_id")
        if connection_id not in (None, ""):
            profile = databases.get(str(connection_id))
            if profile is None:
                raise exceptions.ConfigurationError(
                    f"Database connection {connection_id!r} not found"
                )
            return profile
        defaults = [db for db in databases.values() if db.default]
        candidates = defaults or list(databases.values())
        if len(candidates) != 1:
            raise exceptions.ConfigurationError(
                f"sql step {step.id!r} needs a connection_id "
                f"({len(databases)} database profile(s) available)"
            )
        return candidates[0]

    @classmethod
    def from_dict(cls, data):
        profile_id, fields = _profile_fields(cls, data)
        return cls(profile_id, **fields)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "type": self.type,
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "password": self.password,
            "database": self.database,
            "default": self.default,
            **self._ssh_dict(),
        }


class RadiusPacket:
    """A RADIUS packet template and the tool used to send it."""

    TOOLS = ("radclient", "radtest")

    def __init__(
        self, id, name=None, attributes=(), tool="radclient", tool_options=None  # noqa: A002
    ):
        self.id = str(id)
        self.name = name or self.id
        self.attributes = [_attribute_pair(attr) for attr in attributes or ()]
        self.tool = str(tool or "radclient").lower()
        if self.tool not in self.TOOLS:
            raise exceptions.ConfigurationError(
                f"Packet {self.id!r} uses unsupported tool {tool!r}; expected one of {self.TOOLS}"
            )
        self.tool_options = dict(tool_options or {})

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data.get("id") or data.get("name"),
            name=data.get("name"),
            attributes=data.get("attributes"),
            tool=data.get("tool", "radclient"),
            tool_options=data.get("tool_options"),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "attributes": [{"name": name, "value": value} for name, value in self.attributes],
            "tool": self.tool,
            "tool_options": self.tool_options,
        }

    def resolved(self, resolve):
        """Return a copy with every attribute and tool option passed through ``resolve``."""
        return RadiusPacket(
            self.id,
            self.name,
            [(resolve(name), resolve(value)) for name, value in self.attributes],
            self.tool,
            {key: resolve(value) for key, value in self.tool_options.items()},
        )


def _attribute_pair(attr):
    if isinstance(attr, dict):
        if "name" not in attr:
            raise exceptions.ConfigurationError(f"Packet attribute {attr!r} has no name")
        return str(attr["name"]), attr.get("value", "")
    name, value = attr
    return str(name), value


class LogEntry:
    """One line of a run log."""

    def __init__(self, level, message, details=None, timestamp=None, step_id=None):
        try:
            self.level = LogLevel(str(getattr(level, "value", level)).upper())
        except ValueError as err:
            raise exceptions.ConfigurationError(f"Unknown log level {level!r}") from err
        self.message = message
        self.details = details
        self.timestamp = timestamp or utcnow()
        self.step_id = step_id

    @classmethod
    def from_dict(cls, data):
        return cls(
            level=LogLevel(data["level"]),
            message=data.get("message", ""),
            details=data.get("details"),
            timestamp=_parse_time(data.get("timestamp")),
            step_id=data.get("step_id"),
        )

    def to_dict(self):
        return {
            "timestamp": _isoformat(self.timestamp),
            "level": self.level.value,
            "message": self.message,
            "details": self.details,
            "step_id": self.step_id,
        }

    def __repr__(self):
        return f"LogEntry({self.level.value}, {self.message!r})"


class ExecutionRecord:
    """The durable record of one scenario execution.

    The status only ever moves from Running to one terminal state.
    """

    def __init__(
        self,
        id,  # noqa: A002
        scenario_id,
        scenario_name,
        server_id,
        server_name,
        start_time=None,
        end_time=None,
        status=ExecutionStatus.RUNNING,
        result_id=None,
    ):
        self.id = id
        self.scenario_id = scenario_id
        self.scenario_name = scenario_name
        self.server_id = server_id
        self.server_name = server_name
        self.start_time = start_time or utcnow()
        self.end_time = end_time
        self.status = ExecutionStatus(status)
        self.result_id = result_id

    def finish(self, status, end_time=None):
        """Move the record into a terminal status."""
        status = ExecutionStatus(status)
        if not status.terminal:
            raise exceptions.ExecutionError(f"{status.value} is not a terminal status")
        if self.status is not ExecutionStatus.RUNNING:
            raise exceptions.ExecutionError(
                f"Execution {self.id} is already {self.status.value}; cannot become {status.value}"
            )
        self.status = status
        self.end_time = end_time or utcnow()

    @property
    def duration_ms(self):
        if not self.end_time:
            return None
        return int((self.end_time - self.start_time).total_seconds() * 1000)

    @classmethod
    def from_dict(cls, data):
        fields = dict(data)
        fields["start_time"] = _parse_time(fields.get("start_time"))
        fields["end_time"] = _parse_time(fields.get("end_time"))
        return cls(**fields)

    def to_dict(self):
        return {
            "id": self.id,
            "scenario_id": self.scenario_id,
            "scenario_name": self.scenario_name,
            "server_id": self.server_id,
            "server_name": self.server_name,
            "start_time": _isoformat(self.start_time),
            "end_time": _isoformat(self.end_time),
            "status": self.status.value,
            "result_id": self.result_id,
        }


class StepOutcome:
    """What happened when a single step was executed."""

    def __init__(self, success, logs=(), error=None):
        self.success = success
        self.logs = list(logs)
        self.error = error

    @property
    def error_kind(self):
        return self.error.tag if self.error is not None else None

    def __repr__(self):
        return f"StepOutcome(success={self.success}, error={self.error_kind})"


class PreambleOutcome:
    """What happened when a list of preamble commands was run."""

    def __init__(self):
        self.success = True
        self.aborted = False
        self.failed_command = None
        self.error = None
        self.logs = []

    @property
    def error_kind(self):
        return self.error.tag if self.error is not None else None

    def fail(self, command_name, error):
        self.success = False
        self.failed_command = command_name
        self.error = error

    def __repr__(self):
        return (
            f"PreambleOutcome(success={self.success}, aborted={self.aborted}, "
            f"failed_command={self.failed_command!r})"
        )
