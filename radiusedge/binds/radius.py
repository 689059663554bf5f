"""RADIUS exchanges for radius steps, run through the FreeRADIUS client tools.

radclient reads the attribute list on stdin; radtest takes user, password and
NAS port as arguments. Both are run with verbose output so the sent and received
packets can be cut out of the tool's stdout.
"""

import logging
import shlex
import subprocess

from radiusedge import exceptions, helpers
from radiusedge.binds import RadiusBind
from radiusedge.logging import mask_secret
from radiusedge.settings import clone_global_settings
from radiusedge.variables import VariableResolver

logger = logging.getLogger(__name__)


def _quote_value(value):
    value = str(value)
    if value.isdigit() or (value.startswith("0x") and len(value) > 2):
        return value
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def split_packets(output):
    """Cut verbose radclient output into its sent and received packet blocks.

    Returns:
        Tuple of (sent, received) strings; the last block of each kind wins
    """
    sent = received = ""
    current, block = None, []

    def close():
        nonlocal sent, received
        if current == "sent":
            sent = "\n".join(block)
        elif current == "received":
            received = "\n".join(block)

    for line in output.splitlines():
        if line.startswith(("Sent ", "Sending ")):
            close()
            current, block = "sent", [line]
        elif line.startswith("Received "):
            close()
            current, block = "received", [line]
        elif current and line[:1] in (" ", "\t") and line.strip():
            block.append(line)
        else:
            close()
            current, block = None, []
    close()
    return sent, received


class RadclientBind(RadiusBind):
    """Default runtime for radius steps."""

    def __init__(self, bind_settings=None):
        self._settings = bind_settings or clone_global_settings()
        self._resolver = VariableResolver(self._settings)

    def _secret(self, packet, server, variables):
        secret = server.secret or packet.tool_options.get("secret")
        if not secret:
            raise exceptions.ConfigurationError(
                f"No shared secret for {server.name!r}, set it on the server or in tool_options"
            )
        secret = self._resolver.resolve(secret, variables)
        mask_secret(secret)
        return secret

    def build_command(self, packet, server, secret):
        """Return (argv, stdin) for sending the packet to the server."""
        options = packet.tool_options
        packet_type = str(options.get("type", "auth"))
        default_port = server.acct_port if packet_type == "acct" else server.auth_port
        target = f"{server.host}:{options.get('port') or default_port}"
        if packet.tool == "radtest":
            argv = [self._settings.RADIUS.RADTEST, "-x"]
            if auth_type := options.get("auth_type"):
                argv += ["-t", str(auth_type)]
            argv += [
                str(options.get("user", "testuser")),
                str(options.get("password", "")),
                target,
                str(options.get("nas_port", 0)),
                secret,
            ]
            return argv, None
        argv = [
            self._settings.RADIUS.RADCLIENT,
            "-x",
            "-c", str(options.get("count", 1)),
            "-r", str(options.get("retries", self._settings.RADIUS.RETRIES)),
            "-t", str(options.get("timeout", self._settings.RADIUS.TIMEOUT)),
            target,
            packet_type,
            secret,
        ]  # fmt: skip
        stdin = "\n".join(f"{name} = {_quote_value(value)}" for name, value in packet.attributes)
        return argv, stdin + "\n"

    def execute_tool(self, packet, server, variables=()):
        """Run the packet's tool against the server.

        Raises:
            ConfigurationError: If no shared secret is configured
            ConnectionError: If the tool executable cannot be started
        """
        secret = self._secret(packet, server, variables)
        argv, stdin = self.build_command(packet, server, secret)
        masked = shlex.join(argv[:-1] + ["*" * len(secret)])
        logger.debug(f"Running {masked}")
        timeout = float(packet.tool_options.get("timeout", self._settings.RADIUS.TIMEOUT))
        retries = int(packet.tool_options.get("retries", self._settings.RADIUS.RETRIES))
        try:
            proc = subprocess.run(  # noqa: S603
                argv,
                input=stdin,
                capture_output=True,
                text=True,
                timeout=timeout * (retries + 1) + 5,
                check=False,
            )
        except FileNotFoundError as err:
            raise exceptions.ConnectionError(f"{argv[0]} is not installed or not in PATH") from err
        except subprocess.TimeoutExpired as err:
            return helpers.Result(
                command=masked,
                sent="",
                received="",
                output=f"$ {masked}\n",
                status=-1,
                error=f"{packet.tool} timed out after {err.timeout} seconds",
            )
        sent, received = split_packets(proc.stdout)
        error = None
        if proc.returncode != 0:
            error = proc.stderr.strip().splitlines()[-1] if proc.stderr.strip() else None
        return helpers.Result(
            command=masked,
            sent=sent,
            received=received,
            output=f"$ {masked}\n{proc.stdout}{proc.stderr}",
            status=proc.returncode,
            error=error,
        )
