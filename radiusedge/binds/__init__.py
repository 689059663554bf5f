"""Collaborator interfaces used by the execution engine.

The engine never talks to SSH servers, databases, RADIUS tools or HTTP services
directly. It calls one of the binds below, each wrapping a single library:

    SshBind       -> radiusedge.binds.paramiko.ParamikoBind
    DatabaseBind  -> radiusedge.binds.database.SQLAlchemyBind
    RadiusBind    -> radiusedge.binds.radius.RadclientBind
    HttpBind      -> radiusedge.binds.http.RequestsBind

Every call returns a radiusedge.helpers.Result. Tests and embedders can pass any
object implementing the same methods.
"""

from abc import ABC, abstractmethod


class SshBind(ABC):
    """One SSH session to a server or database profile."""

    @abstractmethod
    def connect(self, profile):
        """Open the session using the profile's host, ssh_port, ssh_user and credentials."""

    @abstractmethod
    def execute_command(self, command, timeout=None):
        """Run a command and return Result(status, stdout, stderr)."""

    @abstractmethod
    def disconnect(self):
        """Close the session. Safe to call when connect failed."""


class DatabaseBind(ABC):
    """One connection to a DatabaseProfile."""

    @abstractmethod
    def connect(self, profile):
        """Open the connection."""

    @abstractmethod
    def execute_query(self, query):
        """Run a query and return Result(rows, error), rows being a list of dicts."""

    @abstractmethod
    def disconnect(self):
        """Close the connection."""


class RadiusBind(ABC):
    @abstractmethod
    def execute_tool(self, packet, server, variables=()):
        """Send a resolved RadiusPacket to the server.

        Returns:
            Result(sent, received, output, status, error)
        """


class HttpBind(ABC):
    @abstractmethod
    def request(self, url, method="GET", headers=None, body=None):
        """Perform a request and return Result(status_code, headers, data, error)."""

    @abstractmethod
    def validate_response(self, response, expected_status=None, rules=None):
        """Return (passed, reason) for a response of request()."""


def default_binds(bind_settings=None):
    """Instantiate the library-backed binds.

    Returns:
        dict with ``ssh`` (a factory returning a fresh SshBind), ``database``,
        ``radius`` and ``http`` instances
    """
    from radiusedge.binds.database import SQLAlchemyBind
    from radiusedge.binds.http import RequestsBind
    from radiusedge.binds.paramiko import ParamikoBind
    from radiusedge.binds.radius import RadclientBind

    return {
        "ssh": lambda: ParamikoBind(bind_settings=bind_settings),
        "database": SQLAlchemyBind(),
        "radius": RadclientBind(bind_settings=bind_settings),
        "http": RequestsBind(bind_settings=bind_settings),
    }
