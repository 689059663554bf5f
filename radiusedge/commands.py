"""Defines the CLI commands for RadiusEdge."""

from functools import wraps
import logging
import signal
import sys

from rich.console import Console
from rich.syntax import Syntax
from rich.text import Text
import rich_click as click

from radiusedge import exceptions, helpers, scenarios, settings
from radiusedge.execution import ExecutionController
from radiusedge.logging import LOG_LEVEL
from radiusedge.models import ExecutionStatus, LogLevel
from radiusedge.store import FileStore

logger = logging.getLogger(__name__)

CONSOLE = Console(no_color=settings.settings.LESS_COLORS)  # rich console for pretty printing

click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.COMMAND_GROUPS = {
    "radiusedge": [
        {"name": "Scenarios", "commands": ["run", "validate", "scenarios"]},
        {"name": "History", "commands": ["executions", "logs"]},
    ]
}

EXIT_CODES = {
    ExecutionStatus.COMPLETED: 0,
    ExecutionStatus.FAILED: exceptions.ValidationError.error_code,
    ExecutionStatus.ABORTED: exceptions.CancellationError.error_code,
}

LEVEL_STYLES = {
    LogLevel.INFO: "cyan",
    LogLevel.DEBUG: "dim",
    LogLevel.WARN: "yellow",
    LogLevel.ERROR: "bold red",
    LogLevel.SENT: "blue",
    LogLevel.RECV: "green",
    LogLevel.SSH_CMD: "magenta",
    LogLevel.SSH_OUT: "white",
    LogLevel.SSH_FAIL: "red",
}


def loggedcli(group=None, *cli_args, **cli_kwargs):
    """Update the group command wrapper function in order to add logging."""
    if not group:
        group = cli  # default to the main cli group

    def decorator(func):
        @group.command(*cli_args, **cli_kwargs)
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger.log(LOG_LEVEL.TRACE.value, f"Calling {func=}(*{args=} **{kwargs=}")
            retval = func(*args, **kwargs)
            logger.log(LOG_LEVEL.TRACE.value, f"Finished {func=}(*{args=} **{kwargs=}) {retval=}")
            return retval

        return wrapper

    return decorator


class ExceptionHandler(click.RichGroup):
    """Wraps click group to catch and handle raised exceptions."""

    def __call__(self, *args, **kwargs):
        """Override the __call__ method to catch and handle exceptions."""
        try:
            return self.main(*args, **kwargs)
        except Exception as err:  # noqa: BLE001
            if not isinstance(err, exceptions.RadiusEdgeError):
                err = exceptions.RadiusEdgeError(err)
            CONSOLE.print(f"[bold red]{err.tag}:[/] {err.message}")
            sys.exit(err.error_code)


def print_entry(entry, verbose=False):
    """Write one run log entry to the console."""
    line = Text()
    line.append(f"{entry.timestamp:%H:%M:%S.%f}"[:12] + " ", style="dim")
    line.append(f"{entry.level.value:<8} ", style=LEVEL_STYLES.get(entry.level, ""))
    if entry.step_id:
        line.append(f"[{entry.step_id}] ", style="bold")
    line.append(entry.message)
    CONSOLE.print(line)
    if entry.details and (verbose or entry.level is not LogLevel.DEBUG):
        CONSOLE.print(Text(str(entry.details), style="dim"), soft_wrap=True)


@click.group(cls=ExceptionHandler)
@click.option(
    "--log-level",
    type=click.Choice(["info", "warning", "error", "debug", "trace", "silent"]),
    default=settings.settings.LOGGING.CONSOLE_LEVEL,
    callback=helpers.update_log_level,
    is_eager=True,
    expose_value=False,
)
def cli():
    """Run RADIUS test scenarios against lab servers."""


@loggedcli()
@click.argument("scenario", type=str)
@click.option(
    "-s",
    "--server",
    "server_file",
    type=click.Path(exists=True),
    required=True,
    help="Server profile file",
)
@click.option("--server-id", type=str, help="Profile to use when the server file holds several")
@click.option("-p", "--packets", "packets_file", type=click.Path(exists=True), help="Packet file")
@click.option(
    "-d",
    "--databases",
    "databases_file",
    type=click.Path(exists=True),
    help="Database profile file",
)
@click.option(
    "-v",
    "--var",
    "variables",
    multiple=True,
    help="Override a scenario variable (e.g. '--var imsi=001010123456789')",
)
@click.option("--store", "store_dir", type=click.Path(file_okay=False), help="Run store directory")
@click.option("--verbose", is_flag=True, help="Also print the details of DEBUG entries")
def run(
    scenario, server_file, server_id, packets_file, databases_file, variables, store_dir, verbose
):
    """Run a scenario against a server and stream its run log.

    Ctrl-C requests an abort; the step in progress finishes first.

    COMMAND: radiusedge run auth_smoke --server lab.yaml --packets packets.yaml
    """
    overrides = helpers.parse_key_value_pairs(variables)
    scenario = scenarios.load_scenario(scenario, overrides=overrides)
    server = scenarios.load_server_profile(server_file, server_id=server_id)
    packets = scenarios.load_packets(packets_file) if packets_file else {}
    databases = scenarios.load_databases(databases_file) if databases_file else {}

    controller = ExecutionController(FileStore(store_dir), packets=packets, databases=databases)
    controller.subscribe(lambda _id, entry: print_entry(entry, verbose))
    execution_id = controller.start(scenario, server)
    CONSOLE.print(f"Execution [bold]{execution_id}[/] of '{scenario.name}' on '{server.name}'")

    def request_abort(signum, frame):
        if controller.abort(execution_id):
            CONSOLE.print("[yellow]Abort requested, waiting for the current step to finish[/]")

    previous = signal.signal(signal.SIGINT, request_abort)
    try:
        record = controller.wait(execution_id)
    finally:
        signal.signal(signal.SIGINT, previous)

    style = {ExecutionStatus.COMPLETED: "green", ExecutionStatus.FAILED: "red"}
    CONSOLE.print(
        f"[{style.get(record.status, 'yellow')}]{record.status.value}[/] "
        f"in {record.duration_ms}ms"
    )
    if code := EXIT_CODES[record.status]:
        sys.exit(code)


@loggedcli()
@click.argument("scenario", type=str)
def validate(scenario):
    """Check a scenario file against the scenario schema."""
    path = scenarios.find_scenario(scenario)
    valid, message = scenarios.validate_scenario(path)
    if not valid:
        raise exceptions.ScenarioError(message, path=path)
    CONSOLE.print(f"[green]{path} is valid[/]" + (f" ({message})" if message else ""))


@cli.command(name="scenarios")
def list_scenarios():
    """List the scenarios stored in the RadiusEdge directory."""
    names = scenarios.list_scenarios()
    if not names:
        CONSOLE.print(f"No scenarios found in {scenarios.SCENARIOS_DIR}")
        return
    for name in names:
        CONSOLE.print(name)


@loggedcli()
@click.option("--store", "store_dir", type=click.Path(file_okay=False), help="Run store directory")
@click.option("--status", type=click.Choice([s.value for s in ExecutionStatus]), help="Filter")
def executions(store_dir, status):
    """Display a table of stored executions."""
    records = FileStore(store_dir).list_execution_records()
    if status:
        records = [record for record in records if record.status.value == status]
    rows = [
        {
            "id": record.id,
            "scenario": record.scenario_name,
            "server": record.server_name,
            "started": record.start_time.isoformat(timespec="seconds"),
            "status": record.status.value,
            "duration (ms)": record.duration_ms,
        }
        for record in records
    ]
    CONSOLE.print(helpers.dictlist_to_table(rows, title="Executions"))


@loggedcli()
@click.argument("execution_id", type=str)
@click.option("--store", "store_dir", type=click.Path(file_okay=False), help="Run store directory")
@click.option("--verbose", is_flag=True, help="Also print the details of DEBUG entries")
@click.option("--summary", is_flag=True, help="Print the result summary instead of the log")
def logs(execution_id, store_dir, verbose, summary):
    """Print the persisted run log of an execution."""
    store = FileStore(store_dir)
    record = store.get_execution_record(execution_id)
    if summary:
        data = store.get_result_summary(record.result_id) if record.result_id else None
        if data is None:
            CONSOLE.print(f"Execution {execution_id} has no result summary")
            return
        CONSOLE.print(Syntax(helpers.yaml_format(data), "yaml", background_color="default"))
        return
    for entry in store.get_logs(execution_id):
        print_entry(entry, verbose)
