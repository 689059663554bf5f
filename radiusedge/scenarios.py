"""Loading of scenario files and the profiles they are run against.

Scenarios, server profiles, packet templates and database profiles are all kept
as YAML (or JSON) files. Scenario files are validated against the packaged
``scenario_schema.json`` before they are turned into model objects.

Usage:
    scenario = load_scenario("auth_smoke", overrides={"imsi": "001010123456789"})
    server = load_server_profile("servers/lab.yaml")
"""

from functools import lru_cache
import json
import logging
from pathlib import Path

import jsonschema
from ruamel.yaml import YAML, YAMLError

from radiusedge import exceptions
from radiusedge.models import DatabaseProfile, RadiusPacket, Scenario, ServerProfile
from radiusedge.settings import RADIUSEDGE_DIRECTORY

logger = logging.getLogger(__name__)

yaml = YAML(typ="safe")

SCENARIOS_DIR = RADIUSEDGE_DIRECTORY / "scenarios"
SCENARIOS_DIR.mkdir(parents=True, exist_ok=True)

SCHEMA_PATH = Path(__file__).parent / "scenario_schema.json"


@lru_cache(maxsize=1)
def get_schema():
    """Return the packaged scenario JSON schema, or None when it is not installed."""
    return json.loads(SCHEMA_PATH.read_text()) if SCHEMA_PATH.is_file() else None


def find_scenario(name_or_path):
    """Resolve a scenario name or path to an existing file.

    Paths are tried as given and with ".yaml" appended, then names are looked up
    in SCENARIOS_DIR with a ".yaml" or ".yml" extension.

    Raises:
        ScenarioError: If the scenario cannot be found
    """
    path = Path(name_or_path)
    if path.is_file():
        return path
    if not path.suffix and (candidate := path.with_suffix(".yaml")).is_file():
        return candidate
    for candidate in (
        SCENARIOS_DIR / path.name,
        SCENARIOS_DIR / f"{name_or_path}.yaml",
        SCENARIOS_DIR / f"{name_or_path}.yml",
    ):
        if candidate.is_file():
            return candidate
    raise exceptions.ScenarioError(f"Scenario not found: {name_or_path}")


def list_scenarios():
    """Return the names of the scenarios stored in SCENARIOS_DIR."""
    found = {path.stem for pattern in ("*.yaml", "*.yml") for path in SCENARIOS_DIR.glob(pattern)}
    return sorted(found)


def _read(path):
    """Parse a YAML or JSON file, raising ScenarioError when it cannot be read."""
    path = Path(path)
    if not path.is_file():
        raise exceptions.ScenarioError("File not found", path=path)
    try:
        if path.suffix == ".json":
            return json.loads(path.read_text())
        with path.open() as f:
            return yaml.load(f)
    except (OSError, YAMLError, json.JSONDecodeError) as err:
        raise exceptions.ScenarioError(f"Failed to parse: {err}", path=path) from err


def _build(path, factory, data):
    try:
        return factory(data)
    except exceptions.ConfigurationError as err:
        raise exceptions.ScenarioError(err.message, path=path) from err
    except (AttributeError, TypeError, ValueError) as err:
        raise exceptions.ScenarioError(f"Malformed entry {data!r}: {err}", path=path) from err


def validate_scenario(scenario_path):
    """Check a scenario file against scenario_schema.json.

    Returns:
        (valid, message) where message explains a failure, or notes that no schema
        was available
    """
    path = Path(scenario_path)
    if not path.is_file():
        return False, f"Scenario file not found: {scenario_path}"
    try:
        data = _read(path)
    except exceptions.ScenarioError as err:
        return False, err.message

    schema = get_schema()
    if not schema:
        return True, "Schema not found, skipping validation"
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as err:
        where = "/".join(str(part) for part in err.absolute_path)
        return False, f"Validation error at '{where or '<root>'}': {err.message}"
    return True, None


def load_scenario(name_or_path, overrides=None):
    """Find, validate and load a scenario.

    Args:
        name_or_path: Scenario name or path, see find_scenario
        overrides: Optional dict of variable values replacing the declared ones

    Returns:
        Scenario

    Raises:
        ScenarioError: If the file is missing, unreadable or invalid
    """
    path = find_scenario(name_or_path)
    valid, message = validate_scenario(path)
    if not valid:
        raise exceptions.ScenarioError(f"Invalid scenario: {message}", path=path)
    data = _read(path)
    data.setdefault("id", path.stem)
    scenario = _build(path, Scenario.from_dict, data)
    logger.debug(f"Loaded scenario {scenario.name!r} ({len(scenario.steps)} steps) from {path}")
    return _build(path, scenario.with_overrides, overrides)


def _entries(path, data, key):
    """Return the profile dicts of a file holding one profile, a list or a ``key:`` block."""
    if isinstance(data, dict) and key in data:
        data = data[key]
    if isinstance(data, dict):
        if all(isinstance(value, dict) for value in data.values()) and "id" not in data:
            return [{"id": entry_id, **value} for entry_id, value in data.items()]
        return [data]
    if isinstance(data, list):
        return data
    raise exceptions.ScenarioError(f"No {key} found", path=path)


def load_server_profile(path, server_id=None):
    """Load a server profile.

    Args:
        path: File holding one profile, or several under ``servers:``
        server_id: Which profile to pick when the file holds more than one

    Raises:
        ScenarioError: If the profile cannot be found or is invalid
    """
    profiles = [
        _build(path, ServerProfile.from_dict, entry)
        for entry in _entries(path, _read(path), "servers")
    ]
    if server_id is not None:
        for profile in profiles:
            if server_id in (profile.id, profile.name):
                return profile
        raise exceptions.ScenarioError(f"Server {server_id!r} not found", path=path)
    if len(profiles) != 1:
        raise exceptions.ScenarioError(
            f"{len(profiles)} server profiles found; choose one by id", path=path
        )
    return profiles[0]


def load_packets(path):
    """Load RADIUS packet templates as a dict keyed by packet id."""
    packets = {}
    for entry in _entries(path, _read(path), "packets"):
        packet = _build(path, RadiusPacket.from_dict, entry)
        if packet.id in packets:
            raise exceptions.ScenarioError(f"Duplicate packet id {packet.id!r}", path=path)
        packets[packet.id] = packet
    return packets


def load_databases(path):
    """Load database profiles as a dict keyed by connection id."""
    databases = {}
    for entry in _entries(path, _read(path), "databases"):
        profile = _build(path, DatabaseProfile.from_dict, entry)
        if profile.id in databases:
            raise exceptions.ScenarioError(f"Duplicate database id {profile.id!r}", path=path)
        databases[profile.id] = profile
    return databases
