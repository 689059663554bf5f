"""SSH preparation commands run before a scenario's steps.

A preamble is an ordered list of PreambleCommand run over one SSH session. The
session is opened only when at least one command is enabled and it is always
closed again, whatever the outcome.
"""

from contextlib import contextmanager
import logging

from radiusedge import exceptions, helpers
from radiusedge.models import LogLevel, PreambleOutcome
from radiusedge.settings import clone_global_settings
from radiusedge.variables import VariableResolver

logger = logging.getLogger(__name__)

TAG = "[SCENARIO PREAMBLE]"


class PreambleRunner:
    """Run preamble commands against a server or database profile.

    Args:
        ssh_factory: Callable returning a fresh SshBind for every run
        resolver: VariableResolver used for commands and expected output
        runner_settings: Optional settings object to use instead of global settings
    """

    def __init__(self, ssh_factory, resolver=None, runner_settings=None):
        self._settings = runner_settings or clone_global_settings()
        self.ssh_factory = ssh_factory
        self.resolver = resolver or VariableResolver(self._settings)

    @contextmanager
    def _session(self, profile, emit):
        """Connect with retries, yield the session, then always disconnect."""
        session = self.ssh_factory()
        try:
            helpers.simple_retry(
                session.connect,
                cmd_args=[profile],
                max_timeout=self._settings.SSH.RETRY_MAX_WAIT,
                terminal_exceptions=(exceptions.AuthenticationError,),
            )
        except exceptions.RadiusEdgeError:
            self._teardown(session, profile, emit)
            raise
        except Exception as err:
            self._teardown(session, profile, emit)
            raise exceptions.ConnectionError(
                f"SSH connection to {profile.ssh_login}:{profile.ssh_port} failed: {err}"
            ) from err
        try:
            yield session
        finally:
            self._teardown(session, profile, emit)

    def _teardown(self, session, profile, emit):
        try:
            session.disconnect()
        except Exception as err:  # noqa: BLE001
            emit(LogLevel.WARN, f"{TAG} Failed to close SSH session to {profile.host}: {err}")

    def run(self, commands, profile, log, variables=(), cancelled=None):
        """Run every enabled command in order, stopping at the first failure.

        Args:
            commands: Sequence of PreambleCommand
            profile: ServerProfile or DatabaseProfile to connect to
            log: LogAggregator receiving the produced entries
            variables: Scenario variables used to resolve commands and expected output
            cancelled: Optional callable, checked before every command

        Returns:
            PreambleOutcome
        """
        outcome = PreambleOutcome()

        def emit(level, message, details=None):
            outcome.logs.append(log.log(level, message, details=details))

        commands = list(commands)
        if not any(cmd.enabled for cmd in commands):
            for cmd in commands:
                emit(LogLevel.INFO, f"{TAG} Skipped (disabled): {cmd.name}")
            return outcome

        emit(LogLevel.INFO, f"{TAG} Running {len(commands)} command(s) on {profile.name}")
        current = None
        try:
            with self._session(profile, emit) as session:
                for cmd in commands:
                    if cancelled is not None and cancelled():
                        outcome.aborted = True
                        emit(LogLevel.WARN, f"{TAG} Abort requested before {cmd.name!r}")
                        break
                    if not cmd.enabled:
                        emit(LogLevel.INFO, f"{TAG} Skipped (disabled): {cmd.name}")
                        continue
                    current = cmd.name
                    self._run_command(session, cmd, profile, variables, emit)
                    current = None
        except (
            exceptions.ConnectionError,
            exceptions.ValidationError,
            exceptions.ConfigurationError,
        ) as err:
            outcome.fail(current, err)
            where = f"command {current!r}" if current else f"connection to {profile.name}"
            emit(
                LogLevel.ERROR,
                f"{TAG}[{err.tag}] {where} failed: {err.message}. Halting scenario.",
            )
            return outcome

        if outcome.success and not outcome.aborted:
            emit(LogLevel.INFO, f"{TAG} Completed on {profile.name}")
        return outcome

    def _run_command(self, session, cmd, profile, variables, emit):
        command = self.resolver.resolve(cmd.command, variables)
        emit(LogLevel.SSH_CMD, f"{TAG} {cmd.name}", details=f"{profile.ssh_login}:~$ {command}")
        try:
            result = session.execute_command(command, timeout=self._settings.SSH.COMMAND_TIMEOUT)
        except exceptions.RadiusEdgeError:
            raise
        except Exception as err:
            raise exceptions.ConnectionError(f"SSH command failed: {err}") from err
        stdout, stderr = result.stdout or "", result.stderr or ""
        if stdout:
            emit(LogLevel.SSH_OUT, f"{TAG} {cmd.name} stdout", details=stdout)
        if stderr:
            emit(LogLevel.SSH_FAIL, f"{TAG} {cmd.name} stderr", details=stderr)
        if result.status != 0:
            raise exceptions.ValidationError(f"exited with status {result.status}")
        if cmd.expected_output:
            expected = self.resolver.resolve(cmd.expected_output, variables)
            if expected not in stdout and expected not in stderr:
                raise exceptions.ValidationError(
                    f"expected output {expected!r} not found in stdout or stderr"
                )
        emit(LogLevel.INFO, f"{TAG} {cmd.name} succeeded")
