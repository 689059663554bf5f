"""Top-level driver of scenario executions.

An execution moves NotStarted -> Running -> Completed | Failed | Aborted:

    1. an ExecutionRecord is created in the store with status Running
    2. the server preamble runs, then the preamble of every database profile the
       scenario's sql steps use
    3. steps run one after another until one fails or an abort is observed
    4. the run is finalized: run log flush, result summary, record update

Aborts are cooperative. abort() sets a flag that is checked before every preamble
command and every step; the step or command already running is allowed to finish.
"""

from collections import defaultdict
import logging
import threading
from uuid import uuid4

from radiusedge import exceptions
from radiusedge.binds import default_binds
from radiusedge.logs import LogAggregator
from radiusedge.models import ExecutionRecord, ExecutionStatus, LogLevel
from radiusedge.preamble import PreambleRunner
from radiusedge.settings import clone_global_settings
from radiusedge.steps import RunContext, StepExecutor
from radiusedge.variables import VariableResolver

logger = logging.getLogger(__name__)


class ExecutionState:
    """In-memory state of one execution owned by the controller."""

    def __init__(self, record, log, ctx):
        self.record = record
        self.log = log
        self.ctx = ctx
        self.cancel_event = ctx.cancel_event
        self.finalizing = False
        self.thread = None
        self.error = None
        self.preamble_outcomes = []
        self.step_outcomes = []
        self.done = threading.Event()

    @property
    def status(self):
        return self.record.status


class ExecutionController:
    """Run scenarios against server profiles, one execution at a time.

    Args:
        store: Persistence collaborator (see radiusedge.store)
        ssh: Callable returning a fresh SshBind, used for every preamble
        radius: RadiusBind for radius steps
        database: DatabaseBind for sql steps
        http: HttpBind for api_call steps
        packets: Mapping (or iterable) of RadiusPacket templates available to radius steps
        databases: Mapping (or iterable) of DatabaseProfile available to sql steps
        controller_settings: Optional settings object to use instead of global settings

    Collaborators left as None are replaced by the library-backed binds.
    """

    def __init__(
        self,
        store,
        ssh=None,
        radius=None,
        database=None,
        http=None,
        packets=None,
        databases=None,
        controller_settings=None,
    ):
        self._settings = controller_settings or clone_global_settings()
        if None in (ssh, radius, database, http):
            defaults = default_binds(self._settings)
            ssh = ssh or defaults["ssh"]
            radius = radius or defaults["radius"]
            database = database or defaults["database"]
            http = http or defaults["http"]
        self.store = store
        self.packets = _by_id(packets)
        self.databases = _by_id(databases)
        self.resolver = VariableResolver(self._settings)
        self.preamble_runner = PreambleRunner(ssh, self.resolver, self._settings)
        self.step_executor = StepExecutor(radius, database, http, self.resolver, self._settings)
        self._lock = threading.Lock()
        self._active = None
        self._executions = {}
        self._subscribers = defaultdict(list)

    # live log stream

    def subscribe(self, callback, execution_id=None):
        """Register a callback receiving (execution_id, LogEntry) for every new entry.

        Args:
            callback: Callable taking the execution id and the entry
            execution_id: Only stream this execution; None streams every execution

        Returns:
            A callable that removes the subscription
        """
        with self._lock:
            self._subscribers[execution_id].append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers[execution_id]:
                    self._subscribers[execution_id].remove(callback)

        return unsubscribe

    def _publish(self, execution_id, entry):
        with self._lock:
            callbacks = self._subscribers[None] + self._subscribers[execution_id]
        for callback in callbacks:
            callback(execution_id, entry)

    # lifecycle

    def start(self, scenario, server):
        """Start an execution in a background thread and return its id.

        Raises:
            ExecutionError: If this controller is already running an execution
        """
        state = self._begin(scenario, server)
        state.thread = threading.Thread(
            target=self._drive_in_thread,
            args=(state,),
            name=f"radiusedge-{state.record.id[:8]}",
            daemon=True,
        )
        state.thread.start()
        return state.record.id

    def run(self, scenario, server):
        """Run an execution in the calling thread and return its ExecutionRecord.

        Raises:
            ExecutionError: If this controller is already running an execution
            FinalizationError: If persisting the outcome failed
        """
        state = self._begin(scenario, server)
        try:
            self._drive(state)
        finally:
            state.done.set()
        return state.record

    def wait(self, execution_id, timeout=None):
        """Block until a started execution has finished and return its ExecutionRecord.

        Raises:
            ExecutionError: If the id is unknown or the timeout expired
            FinalizationError: If persisting the outcome failed
        """
        state = self._get(execution_id)
        if not state.done.wait(timeout):
            raise exceptions.ExecutionError(f"Execution {execution_id} is still running")
        if state.error is not None:
            raise state.error
        return state.record

    def abort(self, execution_id):
        """Request a cooperative abort.

        Returns:
            True if the request was registered, False if the execution is already finalizing

        Raises:
            ExecutionError: If the id is unknown
        """
        state = self._get(execution_id)
        with self._lock:
            if state.finalizing:
                logger.info(f"Abort of {execution_id} ignored, execution is already finishing")
                return False
            state.cancel_event.set()
        logger.warning(f"Abort requested for execution {execution_id}")
        return True

    def status(self, execution_id):
        return self._get(execution_id).status

    def state(self, execution_id):
        return self._get(execution_id)

    def _get(self, execution_id):
        with self._lock:
            state = self._executions.get(execution_id)
        if state is None:
            raise exceptions.ExecutionError(f"Unknown execution {execution_id}")
        return state

    def _begin(self, scenario, server):
        with self._lock:
            if self._active is not None and not self._active.done.is_set():
                raise exceptions.ExecutionError(
                    f"Execution {self._active.record.id} is still running on this controller"
                )
            record = ExecutionRecord(
                id=str(uuid4()),
                scenario_id=scenario.id,
                scenario_name=scenario.name,
                server_id=server.id,
                server_name=server.name,
            )
            log = LogAggregator(self.store)
            ctx = RunContext(
                record.id, scenario, server, log, packets=self.packets, databases=self.databases
            )
            state = ExecutionState(record, log, ctx)
            self._active = state
        log.add_observer(lambda entry: self._publish(record.id, entry))
        try:
            self.store.create_execution_record(record)
        except Exception:
            with self._lock:
                self._active = None
            raise
        with self._lock:
            self._executions[record.id] = state
        logger.info(
            f"Execution {record.id} started: scenario '{scenario.name}' on server '{server.name}'"
        )
        return state

    def _drive_in_thread(self, state):
        try:
            self._drive(state)
        except exceptions.RadiusEdgeError as err:
            state.error = err
        except Exception as err:  # noqa: BLE001
            state.error = exceptions.ExecutionError(f"Execution {state.record.id} crashed: {err}")
        finally:
            state.done.set()

    def _drive(self, state):
        try:
            status = self._run_phases(state)
        except exceptions.CancellationError:
            status = ExecutionStatus.ABORTED
        except exceptions.RadiusEdgeError as err:
            state.log.log(LogLevel.ERROR, f"[{err.tag}] Execution halted: {err.message}")
            status = ExecutionStatus.FAILED
        except Exception as err:
            logger.exception(f"Unexpected error in execution {state.record.id}")
            state.log.log(LogLevel.ERROR, f"Execution halted by an unexpected error: {err}")
            status = ExecutionStatus.FAILED
        self._finalize(state, status)

    def _checkpoint(self, state, remaining, what):
        if state.cancel_event.is_set():
            state.log.log(
                LogLevel.WARN,
                f"Execution aborted by user before {what}; {remaining} step(s) not run",
            )
            raise exceptions.CancellationError(f"Execution {state.record.id} aborted")

    def _run_phases(self, state):
        scenario, server = state.ctx.scenario, state.ctx.server
        steps = scenario.steps

        targets = [server] if server.preamble else []
        targets += [db for db in scenario.database_profiles(self.databases) if db.preamble]

        for target in targets:
            self._checkpoint(state, len(steps), f"the preamble of {target.name}")
            logger.info(f"Running preamble of {target.name} for {state.record.id}")
            outcome = self.preamble_runner.run(
                target.preamble,
                target,
                state.log,
                variables=scenario.variables,
                cancelled=state.cancel_event.is_set,
            )
            state.preamble_outcomes.append(outcome)
            if outcome.aborted:
                self._checkpoint(state, len(steps), "the remaining preamble commands")
            if not outcome.success:
                return ExecutionStatus.FAILED

        for index, step in enumerate(steps):
            self._checkpoint(state, len(steps) - index, f"step '{step.name}'")
            outcome = self.step_executor.execute(step, state.ctx)
            state.step_outcomes.append(outcome)
            if not outcome.success:
                logger.info(f"Step '{step.name}' failed, skipping {len(steps) - index - 1} step(s)")
                return ExecutionStatus.FAILED
        return ExecutionStatus.COMPLETED

    def _finalize(self, state, status):
        """Record the terminal status, then flush logs, write the summary and update the record.

        Every write is attempted; failures are raised together as a FinalizationError.
        """
        with self._lock:
            state.finalizing = True
            if state.cancel_event.is_set():
                status = ExecutionStatus.ABORTED
        record = state.record
        record.finish(status)
        logger.info(f"Execution {record.id} finished with status {status.value}")

        failures = []
        try:
            state.log.flush(record.id)
        except Exception as err:  # noqa: BLE001
            failures.append(("run log", err))

        if self._settings.RESULTS.CREATE_SUMMARY and status in (
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
        ):
            try:
                record.result_id = self.store.create_result_summary(self._summary(state))
            except Exception as err:  # noqa: BLE001
                failures.append(("result summary", err))

        try:
            self.store.update_execution_record(
                record.id,
                {
                    "end_time": record.end_time.isoformat(),
                    "status": record.status.value,
                    "result_id": record.result_id,
                },
            )
        except Exception as err:  # noqa: BLE001
            failures.append(("execution record", err))

        if failures:
            raise exceptions.FinalizationError(record.id, failures)

    def _summary(self, state):
        record = state.record
        return {
            "scenario_name": record.scenario_name,
            "status": "Pass" if record.status is ExecutionStatus.COMPLETED else "Fail",
            "timestamp": record.end_time.isoformat(),
            "latency_ms": record.duration_ms,
            "server": record.server_name,
            "details": {"execution_id": record.id, "log_count": len(state.log.entries)},
        }


def _by_id(items):
    if items is None:
        return {}
    if isinstance(items, dict):
        return {str(key): value for key, value in items.items()}
    return {item.id: item for item in items}
