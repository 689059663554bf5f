"""Execution of individual scenario steps.

StepExecutor.execute runs one step and reports a StepOutcome. Every entry it
produces goes straight to the run's LogAggregator (so live observers see it) and
is also returned in the outcome. Failures are raised internally as
ConnectionError, ValidationError or ConfigurationError and turned into a failed
outcome with an ERROR entry carrying the error's tag.
"""

import json
import logging
import re
import threading

from radiusedge import exceptions
from radiusedge.models import DatabaseProfile, LogLevel, RadiusPacket, StepKind, StepOutcome
from radiusedge.settings import clone_global_settings
from radiusedge.variables import VariableResolver

logger = logging.getLogger(__name__)

_ATTRIBUTE_LINE = re.compile(r"^\s*(?P<name>[A-Za-z0-9][\w\-:.]*)\s*=\s*(?P<value>.*?)\s*$")


def parse_attributes(packet_text):
    """Return the ``Name = value`` pairs of a packet dump as a dict of lists of strings."""
    attributes = {}
    for line in (packet_text or "").splitlines():
        if match := _ATTRIBUTE_LINE.match(line):
            value = match["value"]
            if len(value) >= 2 and value[0] == value[-1] == '"':
                value = value[1:-1]
            attributes.setdefault(match["name"], []).append(value)
    return attributes


class RunContext:
    """Everything a step may need from the run it belongs to.

    Attributes:
        execution_id: Id of the current execution
        scenario: The Scenario being run
        server: The target ServerProfile
        log: LogAggregator of the run
        packets: Mapping of packet id to RadiusPacket
        databases: Mapping of connection id to DatabaseProfile
        cancel_event: threading.Event set when an abort is requested
    """

    def __init__(
        self, execution_id, scenario, server, log, packets=None, databases=None, cancel_event=None
    ):
        self.execution_id = execution_id
        self.scenario = scenario
        self.server = server
        self.log = log
        self.packets = dict(packets or {})
        self.databases = dict(databases or {})
        self.cancel_event = cancel_event or threading.Event()

    @property
    def variables(self):
        return self.scenario.variables


class StepExecutor:
    """Execute scenario steps through the radius, database and http collaborators.

    Args:
        radius: RadiusBind used by radius steps
        database: DatabaseBind used by sql steps
        http: HttpBind used by api_call steps
        resolver: VariableResolver for placeholders in step details
        executor_settings: Optional settings object to use instead of global settings
    """

    def __init__(
        self, radius=None, database=None, http=None, resolver=None, executor_settings=None
    ):
        self._settings = executor_settings or clone_global_settings()
        self.radius = radius
        self.database = database
        self.http = http
        self.resolver = resolver or VariableResolver(self._settings)

    def execute(self, step, ctx):
        """Run one step and return its StepOutcome."""
        logs = []

        def emit(level, message, details=None):
            logs.append(ctx.log.log(level, message, details=details, step_id=step.id))

        if not step.enabled:
            emit(LogLevel.INFO, f"Step '{step.name}' skipped (disabled)")
            return StepOutcome(True, logs)

        logger.debug(f"Executing step {step.id} ({step.kind.value}) of {ctx.execution_id}")
        try:
            self._dispatch(step, ctx, emit)
        except (
            exceptions.ConnectionError,
            exceptions.ValidationError,
            exceptions.ConfigurationError,
        ) as err:
            emit(
                LogLevel.ERROR,
                f"[STEP FAIL][{err.tag}] Step '{step.name}' failed: {err.message}",
            )
            return StepOutcome(False, logs, error=err)
        return StepOutcome(True, logs)

    def _dispatch(self, step, ctx, emit):
        kind = step.kind
        if kind is StepKind.RADIUS:
            return self._step_radius(step, ctx, emit)
        elif kind is StepKind.SQL:
            return self._step_sql(step, ctx, emit)
        elif kind is StepKind.API_CALL:
            return self._step_api_call(step, ctx, emit)
        elif kind is StepKind.DELAY:
            return self._step_delay(step, ctx, emit)
        elif kind is StepKind.LOG_MESSAGE:
            return self._step_log_message(step, ctx, emit)
        elif kind.is_marker:
            return self._step_marker(step, ctx, emit)
        raise exceptions.ConfigurationError(f"Unknown step type: {kind}")

    def _resolve(self, value, ctx):
        return self.resolver.resolve(value, ctx.variables)

    def _require(self, step, field):
        value = step.details.get(field)
        if value is None or value == "":
            raise exceptions.ConfigurationError(
                f"{step.kind.value} step {step.id!r} is missing required field {field!r}"
            )
        return value

    def _bind(self, attr):
        bind = getattr(self, attr)
        if bind is None:
            raise exceptions.ConfigurationError(f"No {attr} collaborator is configured")
        return bind

    def _call(self, what, func, *args):
        """Call a collaborator, reporting anything unexpected as a ConnectionError."""
        try:
            return func(*args)
        except exceptions.RadiusEdgeError:
            raise
        except Exception as err:
            raise exceptions.ConnectionError(f"{what} call failed: {err}") from err

    # radius

    def _packet_for(self, step, ctx):
        if packet_id := step.details.get("packet_id"):
            packet = ctx.packets.get(str(packet_id))
            if packet is None:
                raise exceptions.ConfigurationError(f"Packet template {packet_id!r} not found")
            return packet
        if attributes := step.details.get("attributes"):
            return RadiusPacket(
                f"adhoc-{step.id}",
                name=f"Ad-hoc packet for {step.name}",
                attributes=attributes,
                tool=step.details.get("tool", "radclient"),
                tool_options=step.details.get("tool_options"),
            )
        raise exceptions.ConfigurationError(
            f"radius step {step.id!r} needs a packet_id or an inline attributes list"
        )

    def _step_radius(self, step, ctx, emit):
        packet = self._packet_for(step, ctx).resolved(lambda value: self._resolve(value, ctx))
        emit(
            LogLevel.INFO,
            f"Sending packet '{packet.name}' with {packet.tool} to {ctx.server.host}",
            details="\n".join(f"{name} = {value}" for name, value in packet.attributes),
        )
        radius = self._bind("radius")
        result = self._call("RADIUS tool", radius.execute_tool, packet, ctx.server, ctx.variables)
        if result.get("sent"):
            emit(LogLevel.SENT, f"{packet.tool} sent request", details=result.sent)
        if result.get("received"):
            emit(LogLevel.RECV, f"{packet.tool} received response", details=result.received)
        if result.get("output"):
            emit(LogLevel.DEBUG, f"{packet.tool} output", details=result.output)
        if result.get("status") != 0 or result.get("error"):
            reason = result.get("error") or f"exited with code {result.get('status')}"
            raise exceptions.ConnectionError(f"{packet.tool} failed: {reason}")
        if expected := step.details.get("expected_attributes"):
            self._check_reply(expected, result.get("received"), ctx)
        emit(LogLevel.INFO, f"RADIUS exchange for '{step.name}' succeeded")

    def _check_reply(self, expected, received, ctx):
        reply = parse_attributes(received)
        mismatches = []
        for item in expected:
            name = self._resolve(item.get("name"), ctx)
            value = self._resolve(item.get("value", ""), ctx)
            actual = reply.get(name)
            if actual is None:
                mismatches.append(f"{name} missing from reply")
            elif value not in actual:
                mismatches.append(f"{name} = {', '.join(actual)} (expected {value})")
        if mismatches:
            raise exceptions.ValidationError(
                "reply attributes did not match: " + "; ".join(mismatches)
            )

    # sql

    def _step_sql(self, step, ctx, emit):
        query = self._resolve(self._require(step, "query"), ctx)
        column, value = step.details.get("expect_column"), step.details.get("expect_value")
        if (column is None) != (value is None):
            raise exceptions.ConfigurationError(
                f"sql step {step.id!r} must declare expect_column and expect_value together"
            )
        profile = DatabaseProfile.for_step(step, ctx.databases)
        emit(LogLevel.INFO, f"Executing SQL query on '{profile.name}'", details=query)
        database = self._bind("database")
        self._call("Database", database.connect, profile)
        try:
            result = self._call("Database", database.execute_query, query)
        finally:
            try:
                database.disconnect()
            except Exception as err:  # noqa: BLE001
                emit(LogLevel.WARN, f"Failed to close database connection: {err}")
        if result.get("error"):
            raise exceptions.ConnectionError(f"query failed: {result.error}")
        rows = result.get("rows") or []
        emit(
            LogLevel.DEBUG,
            f"SQL query returned {len(rows)} row(s)",
            details=json.dumps(rows, indent=2, default=str),
        )
        if column is None:
            return
        column, expected = self._resolve(column, ctx), self._resolve(value, ctx)
        if not rows:
            raise exceptions.ValidationError(f"expected {column} = {expected!r} but got no rows")
        if column not in rows[0]:
            raise exceptions.ValidationError(f"column {column!r} not in query result")
        actual = rows[0][column]
        if str(actual) != expected:
            raise exceptions.ValidationError(
                f"expected {column} = {expected!r}, got {actual!r}"
            )
        emit(LogLevel.INFO, f"SQL validation passed: {column} = {expected!r}")

    # api_call

    def _step_api_call(self, step, ctx, emit):
        url = self._resolve(self._require(step, "url"), ctx)
        method = str(step.details.get("method", "GET")).upper()
        headers = step.details.get("headers") or {}
        if isinstance(headers, list):
            headers = {item["name"]: item.get("value", "") for item in headers if item.get("name")}
        headers = {
            self._resolve(name, ctx): self._resolve(value, ctx) for name, value in headers.items()
        }
        body = step.details.get("body")
        if isinstance(body, str):
            body = self._resolve(body, ctx)
            if body.strip():
                try:
                    decoded = json.loads(body)
                except json.JSONDecodeError:
                    decoded = None
                # only objects and arrays go out as JSON, anything else as text
                if isinstance(decoded, dict | list):
                    body = decoded
            else:
                body = None
        elif body is not None:
            body = self.resolver.resolve_data(body, ctx.variables)
        emit(
            LogLevel.INFO,
            f"Making API call: {method} {url}",
            details=json.dumps({"headers": headers, "body": body}, indent=2, default=str),
        )
        http = self._bind("http")
        response = self._call("HTTP", http.request, url, method, headers, body)
        if response.get("error"):
            raise exceptions.ConnectionError(f"{method} {url} failed: {response.error}")
        data = response.get("data")
        emit(
            LogLevel.DEBUG,
            f"API response status {response.get('status_code')}",
            details=data if isinstance(data, str) else json.dumps(data, indent=2, default=str),
        )
        passed, reason = self._call(
            "HTTP",
            http.validate_response,
            response,
            step.details.get("expected_status"),
            step.details.get("validation_rules"),
        )
        if not passed:
            raise exceptions.ValidationError(reason or "response validation failed")
        emit(LogLevel.INFO, f"API call '{step.name}' passed validation")

    # delay, log_message and markers

    def _step_delay(self, step, ctx, emit):
        raw = self._resolve(step.details.get("duration_ms", 1000), ctx)
        try:
            duration_ms = int(float(raw))
        except (ValueError, OverflowError) as err:
            raise exceptions.ConfigurationError(
                f"delay step {step.id!r} has invalid duration_ms {raw!r}"
            ) from err
        if duration_ms < 0:
            raise exceptions.ConfigurationError(
                f"delay step {step.id!r} has negative duration_ms {duration_ms}"
            )
        emit(LogLevel.INFO, f"Delaying for {duration_ms}ms...")
        if ctx.cancel_event.wait(duration_ms / 1000):
            logger.info(f"Delay of step {step.id} cut short by an abort request")

    def _step_log_message(self, step, ctx, emit):
        emit(LogLevel.INFO, f"LOG: {self._resolve(step.details.get('message', ''), ctx)}")

    def _step_marker(self, step, ctx, emit):
        if step.kind in (StepKind.LOOP_END, StepKind.CONDITIONAL_END):
            emit(LogLevel.INFO, f"End of block ({step.kind.value})")
            return
        described = []
        if condition := step.details.get("condition"):
            described.append(f"condition: {self._resolve(condition, ctx)}")
        if iterations := step.details.get("iterations"):
            described.append(f"iterations: {self._resolve(iterations, ctx)}")
        suffix = f" ({', '.join(described)})" if described else ""
        emit(
            LogLevel.INFO,
            f"{step.kind.value}{suffix}: control flow is not evaluated, "
            "the enclosed steps run once in order",
        )
