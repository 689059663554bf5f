"""RadiusEdge settings module.

Settings are read, in increasing priority, from the validator defaults below,
``<RADIUSEDGE_DIRECTORY>/radiusedge_settings.yaml`` and ``RADIUSEDGE_`` environment
variables (``RADIUSEDGE_RADIUS__TIMEOUT=10`` sets RADIUS.TIMEOUT).

Useful items:
    settings: Lazily created global settings object
    create_settings: Build an independent settings object, e.g. for tests
    RADIUSEDGE_DIRECTORY: Home of the settings file, scenarios, logs and the run store
"""

import os
from pathlib import Path
import sys

import click
from dynaconf import Dynaconf, Validator
from dynaconf.validator import ValidationError

from radiusedge.exceptions import ConfigurationError
from radiusedge.helpers.dict_utils import merge_dicts

INTERACTIVE_MODE = sys.stdin.isatty() and "PYTEST_CURRENT_TEST" not in os.environ

_directory = Path(os.environ.get("RADIUSEDGE_DIRECTORY", "~/.radiusedge")).expanduser()
RADIUSEDGE_DIRECTORY = _directory if _directory.is_dir() else Path.home() / ".radiusedge"
RADIUSEDGE_DIRECTORY.mkdir(parents=True, exist_ok=True)

settings_path = RADIUSEDGE_DIRECTORY / "radiusedge_settings.yaml"

LOG_LEVELS = ["error", "warning", "info", "debug", "trace", "silent"]

BASE_VALIDATORS = [
    # SSH sessions used by preambles
    Validator("SSH", is_type_of=dict, default={}),
    Validator("SSH.CONNECTION_TIMEOUT", "SSH.COMMAND_TIMEOUT", is_type_of=int, default=30),
    Validator("SSH.RETRY_MAX_WAIT", is_type_of=int, gte=0, default=4),
    # ${name} substitution
    Validator("VARIABLES", is_type_of=dict, default={}),
    Validator("VARIABLES.RANDOM_STRING_LENGTH", is_type_of=int, gte=1, default=6),
    Validator("VARIABLES.RANDOM_NUMBER_MAX", is_type_of=int, gte=1, default=10000),
    # radius steps
    Validator("RADIUS", is_type_of=dict, default={}),
    Validator("RADIUS.RADCLIENT", is_type_of=str, default="radclient"),
    Validator("RADIUS.RADTEST", is_type_of=str, default="radtest"),
    Validator("RADIUS.TIMEOUT", default=5),
    Validator("RADIUS.RETRIES", is_type_of=int, gte=0, default=3),
    # api_call steps
    Validator("HTTP", is_type_of=dict, default={}),
    Validator("HTTP.TIMEOUT", default=30),
    Validator("HTTP.VERIFY", default=True),
    # persistence
    Validator("STORE", is_type_of=dict, default={}),
    Validator("STORE.PATH", is_type_of=str, default="runs"),
    Validator("RESULTS", is_type_of=dict, default={}),
    Validator("RESULTS.CREATE_SUMMARY", is_type_of=bool, default=True),
    # python logging, run logs are always kept
    Validator("LOGGING", is_type_of=dict, default={}),
    Validator("LOGGING.CONSOLE_LEVEL", is_in=LOG_LEVELS, default="info"),
    Validator("LOGGING.FILE_LEVEL", is_in=LOG_LEVELS, default="debug"),
    Validator("LOGGING.LOG_PATH", default="logs/radiusedge.log"),
    Validator("LOGGING.STRUCTURED", is_type_of=bool, default=False),
    Validator("LESS_COLORS", default=False),
]


def _upper_keys(data):
    return {
        str(key).upper(): _upper_keys(value) if isinstance(value, dict) else value
        for key, value in data.items()
    }


def _overlay(target, config_dict):
    """Apply config_dict on top of target, merging sections key by key."""
    for key, value in _upper_keys(config_dict).items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = merge_dicts(current, value)
        target[key] = value


def create_settings(config_dict=None, config_file=None, skip_validation=False):
    """Create a new settings object.

    Args:
        config_dict: Values laid over the file and environment, section by section
        config_file: Settings file to read instead of the default one
        skip_validation: Only validate the LOGGING section

    Returns:
        A dynaconf settings object

    Raises:
        ConfigurationError: If a value fails validation
    """
    source = Path(config_file or settings_path)
    has_file = source.exists()
    if not (has_file or config_dict or config_file) and INTERACTIVE_MODE:
        click.secho(f"No settings file at {settings_path}, using defaults.", fg="yellow", err=True)

    new_settings = Dynaconf(
        settings_file=str(source) if has_file else None,
        envvar_prefix="RADIUSEDGE",
        validators=BASE_VALIDATORS,
    )
    if config_dict:
        _overlay(new_settings, config_dict)

    try:
        new_settings.validators.validate(only=["LOGGING"] if skip_validation else None)
    except ValidationError as err:
        where = f" in {source}" if has_file else ""
        raise ConfigurationError(f"Invalid setting{where}: {err.args[0]}") from err
    return new_settings


def clone_global_settings():
    """Return a copy of the global settings that callers may modify freely."""
    return settings.dynaconf_clone()


class _SettingsProxy:
    """Stand-in for the global settings object, built the first time it is used."""

    def __init__(self):
        self._wrapped = None

    def _load(self):
        if self._wrapped is None:
            self._wrapped = create_settings()
        return self._wrapped

    def __getattr__(self, name):
        return getattr(self._load(), name)

    def __getitem__(self, key):
        return self._load()[key]

    def __setitem__(self, key, value):
        self._load()[key] = value

    def __contains__(self, key):
        return key in self._load()


settings = _SettingsProxy()
