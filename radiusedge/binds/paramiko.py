"""SSH sessions to server and database profiles built on Paramiko."""

import logging
from pathlib import Path

import paramiko

from radiusedge import exceptions, helpers
from radiusedge.binds import SshBind
from radiusedge.logging import mask_secret
from radiusedge.settings import clone_global_settings

logger = logging.getLogger(__name__)


class ParamikoBind(SshBind):
    """One Paramiko SSHClient per preamble run.

    With a key file the profile's ssh_password is used as the key's passphrase.
    Without key file or password the SSH agent is tried. Unknown host keys are
    accepted.
    """

    def __init__(self, bind_settings=None):
        self._settings = bind_settings or clone_global_settings()
        self.client = None
        self.login = None

    def _credentials(self, profile):
        if profile.ssh_key_filename:
            return {
                "key_filename": str(Path(profile.ssh_key_filename).expanduser()),
                "passphrase": profile.ssh_password,
                "allow_agent": False,
            }
        if profile.ssh_password:
            return {"password": profile.ssh_password, "allow_agent": False}
        return {"allow_agent": True}

    def connect(self, profile):
        """Open a session to the profile's host.

        Args:
            profile: ServerProfile or DatabaseProfile providing host, ssh_port, ssh_user,
                ssh_password and ssh_key_filename

        Raises:
            ConnectionError: If the host cannot be reached or the SSH handshake fails
            AuthenticationError: If the credentials are rejected
        """
        mask_secret(profile.ssh_password)
        timeout = self._settings.SSH.CONNECTION_TIMEOUT
        self.login = f"{profile.ssh_login}:{profile.ssh_port}"
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                profile.host,
                port=profile.ssh_port,
                username=profile.ssh_user,
                timeout=timeout,
                banner_timeout=timeout,
                auth_timeout=timeout,
                look_for_keys=False,
                **self._credentials(profile),
            )
        except paramiko.AuthenticationException as err:
            client.close()
            raise exceptions.AuthenticationError(
                f"Authentication as {self.login} failed: {err}"
            ) from err
        except (paramiko.SSHException, OSError) as err:
            client.close()
            raise exceptions.ConnectionError(f"Unable to reach {self.login}: {err}") from err
        client.get_transport().set_keepalive(30)
        self.client = client
        logger.debug(f"SSH session open to {self.login}")

    def execute_command(self, command, timeout=None):
        if self.client is None:
            raise exceptions.ConnectionError("SSH session is not connected")
        timeout = timeout or self._settings.SSH.COMMAND_TIMEOUT
        try:
            _, stdout, stderr = self.client.exec_command(command, timeout=timeout)
            output = stdout.read().decode("utf-8", errors="replace")
            errors = stderr.read().decode("utf-8", errors="replace")
            status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as err:
            raise exceptions.ConnectionError(
                f"{command!r} on {self.login} failed: {err}"
            ) from err
        return helpers.Result.from_ssh(stdout=output, stderr=errors, status=status)

    def disconnect(self):
        if self.client is not None:
            self.client.close()
            logger.debug(f"SSH session to {self.login} closed")
        self.client = None
