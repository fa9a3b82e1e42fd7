"""SSH transport for remote command batches.

``SSHExecutor`` keeps one ``paramiko.SSHClient`` per endpoint and reuses it
for every batch and upload of a run, so a deploy opens at most one TCP
connection per host. Sessions on the same client can run concurrently.
"""

from __future__ import annotations

import codecs
import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

import paramiko

from axon.lib.errors import RemoteExecutionError
from axon.lib.logging_config import get_logger

if TYPE_CHECKING:
    from axon.models.environment import ServerEndpoint

logger = get_logger(__name__)

_ClientKey = tuple[str, int, str]


class SSHExecutor:
    """Runs batch scripts over SSH with connection reuse.

    Args:
        connect_timeout: Seconds to wait for the TCP and SSH handshake
        command_timeout: Seconds of channel inactivity before a command is
            considered hung. None waits forever.

    Example:
        >>> with SSHExecutor() as executor:
        ...     batch.execute(executor)
    """

    def __init__(
        self, connect_timeout: float = 10.0, command_timeout: float | None = None
    ) -> None:
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self._clients: dict[_ClientKey, paramiko.SSHClient] = {}
        self._lock = threading.Lock()

    def __enter__(self) -> SSHExecutor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _connect(self, endpoint: ServerEndpoint) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())  # nosec B507

        key_filename = None
        if endpoint.ssh_key:
            key_path = Path(os.path.expanduser(endpoint.ssh_key))
            if not key_path.is_file():
                raise RemoteExecutionError(
                    endpoint.host, f"SSH key not found: {endpoint.ssh_key}"
                )
            key_filename = str(key_path)

        logger.debug("Opening SSH connection to %s:%d", endpoint.label, endpoint.port)
        try:
            client.connect(
                hostname=endpoint.host,
                port=endpoint.port,
                username=endpoint.user,
                key_filename=key_filename,
                look_for_keys=key_filename is None,
                timeout=self.connect_timeout,
            )
        except paramiko.AuthenticationException as e:
            raise RemoteExecutionError(
                endpoint.host, f"authentication failed for {endpoint.user}: {e}"
            ) from e
        except (paramiko.SSHException, OSError) as e:
            raise RemoteExecutionError(endpoint.host, f"cannot connect: {e}") from e
        return client

    def client_for(self, endpoint: ServerEndpoint) -> paramiko.SSHClient:
        """Return a connected client for the endpoint, reusing live ones."""
        key = (endpoint.host, endpoint.port, endpoint.user)
        with self._lock:
            client = self._clients.get(key)
            transport = client.get_transport() if client else None
            if client is None or transport is None or not transport.is_active():
                client = self._connect(endpoint)
                self._clients[key] = client
            return client

    def run_script(self, endpoint: ServerEndpoint, script: str) -> str:
        """Run a bash script on the endpoint and return its stdout.

        The script is sent on stdin of ``bash -s`` so it never shows up in
        the remote process list.

        Raises:
            RemoteExecutionError: If the connection or channel fails
        """
        client = self.client_for(endpoint)
        try:
            stdin, stdout, stderr = client.exec_command(  # nosec B601
                "bash -s", timeout=self.command_timeout
            )
            stdin.write(script)
            stdin.flush()
            stdin.channel.shutdown_write()
            output = stdout.read().decode("utf-8", errors="replace")
            errors = stderr.read().decode("utf-8", errors="replace")
            exit_status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as e:
            raise RemoteExecutionError(endpoint.host, str(e)) from e

        if errors.strip():
            logger.debug("stderr from %s: %s", endpoint.label, errors.strip())
        logger.debug("Script on %s exited with %d", endpoint.label, exit_status)
        return output

    def stream(
        self, endpoint: ServerEndpoint, command: str, write: Callable[[str], None]
    ) -> int:
        """Run a command and pass its combined output to ``write`` as it arrives.

        Blocks until the command exits, e.g. ``tail -F`` runs until the caller
        interrupts it.

        Returns:
            Exit status of the command

        Raises:
            RemoteExecutionError: If the connection or channel fails
        """
        client = self.client_for(endpoint)
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            transport = client.get_transport()
            if transport is None:
                raise RemoteExecutionError(endpoint.host, "connection closed")
            channel = transport.open_session()
            try:
                channel.set_combine_stderr(True)
                channel.exec_command(command)  # nosec B601
                while chunk := channel.recv(4096):
                    if text := decoder.decode(chunk):
                        write(text)
                if tail := decoder.decode(b"", final=True):
                    write(tail)
                exit_status = channel.recv_exit_status()
            finally:
                channel.close()
        except (paramiko.SSHException, OSError) as e:
            raise RemoteExecutionError(endpoint.host, str(e)) from e
        logger.debug("Command on %s exited with %d", endpoint.label, exit_status)
        return exit_status

    def upload(
        self, endpoint: ServerEndpoint, content: bytes, remote_path: str
    ) -> None:
        """Write bytes to a file on the endpoint over SFTP.

        Raises:
            RemoteExecutionError: If the transfer fails
        """
        client = self.client_for(endpoint)
        try:
            sftp = client.open_sftp()
            try:
                with sftp.file(remote_path, "wb") as f:
                    f.write(content)
            finally:
                sftp.close()
        except (paramiko.SSHException, OSError) as e:
            raise RemoteExecutionError(
                endpoint.host, f"upload to {remote_path} failed: {e}"
            ) from e
        logger.debug(
            "Uploaded %d bytes to %s:%s", len(content), endpoint.label, remote_path
        )

    def close(self) -> None:
        """Close every cached connection."""
        with self._lock:
            for client in self._clients.values():
                client.close()
            self._clients.clear()
