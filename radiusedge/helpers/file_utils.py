"""File handling utilities.

JSON and YAML are told apart by file extension only.
"""

from io import StringIO
import json
import logging
from pathlib import Path
import time

from ruamel.yaml import YAML

from radiusedge import exceptions

logger = logging.getLogger(__name__)

yaml = YAML()
yaml.default_flow_style = False
yaml.sort_keys = False

JSON_SUFFIXES = (".json",)
YAML_SUFFIXES = (".yaml", ".yml")


def _dump_yaml(data):
    stream = StringIO()
    yaml.dump(data, stream)
    return stream.getvalue()


def load_file(file, warn=True):
    """Load a JSON or YAML file.

    Missing files and unknown extensions give an empty list, with a warning unless
    ``warn`` is False.
    """
    file = Path(file)
    suffix = file.suffix.lower()
    if not file.is_file() or suffix not in JSON_SUFFIXES + YAML_SUFFIXES:
        if warn:
            logger.warning(f"Cannot load {file.absolute()}: missing or not JSON/YAML")
        return []
    if suffix in JSON_SUFFIXES:
        return json.loads(file.read_text())
    return yaml.load(file)


def save_file(file, data):
    """Write data to file as JSON or YAML, or as plain text for any other extension.

    Parent directories are created as needed.

    Returns:
        The Path written to
    """
    file = Path(file)
    suffix = file.suffix.lower()
    if suffix in JSON_SUFFIXES:
        content = json.dumps(data, indent=2, default=str)
    elif suffix in YAML_SUFFIXES:
        content = _dump_yaml(data)
    else:
        content = str(data)
    file.parent.mkdir(parents=True, exist_ok=True)
    file.write_text(content if content.endswith("\n") else content + "\n")
    logger.debug(f"Wrote {file}")
    return file


def yaml_format(in_struct):
    """Render a structure, or a JSON/YAML string holding one, as a YAML document."""
    if isinstance(in_struct, str):
        try:
            in_struct = json.loads(in_struct)
        except json.JSONDecodeError:
            in_struct = yaml.load(in_struct)
    return _dump_yaml(in_struct)


class FileLock:
    """Serialize writers of a file through a sibling ``<file>.lock``.

    The lock file is created exclusively, so only one holder exists at a time, and
    removed on release. Waiting longer than ``timeout`` seconds raises RadiusEdgeError.

        with FileLock(path):
            save_file(path, data)
    """

    def __init__(self, file_name, timeout=10, poll=0.1):
        self.lock = Path(f"{file_name}.lock")
        self.timeout = timeout
        self.poll = poll

    def acquire(self):
        self.lock.parent.mkdir(parents=True, exist_ok=True)
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                self.lock.touch(exist_ok=False)
            except FileExistsError:
                if time.monotonic() >= deadline:
                    raise exceptions.RadiusEdgeError(
                        f"Gave up waiting for {self.lock} after {self.timeout}s"
                    ) from None
                time.sleep(self.poll)
            else:
                return

    def release(self):
        self.lock.unlink(missing_ok=True)

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, *tb_info):
        self.release()
