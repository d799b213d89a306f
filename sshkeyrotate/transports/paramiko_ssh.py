"""Transport built on paramiko for hosts without an ``ssh`` binary."""

from __future__ import annotations

import logging
import socket
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import paramiko

from ..errors import TransportError
from .base import (
    BaseTransport,
    CommandResult,
    decode_diagnostics,
    decode_output,
    encode_input,
    render_command,
)

logger = logging.getLogger(__name__)


class ParamikoTransport(BaseTransport):
    """Run remote commands over a paramiko ``SSHClient``.

    Host keys come from the user's ``known_hosts``; unknown hosts are
    rejected rather than trusted on first use.
    """

    def __init__(
        self,
        host: str,
        port: Optional[int] = None,
        connect_timeout: Optional[int] = None,
        key_passphrase: Optional[str] = None,
    ) -> None:
        super().__init__(host)
        self.port = port or 22
        self.connect_timeout = connect_timeout
        self.key_passphrase = key_passphrase or None

    def _connect(
        self, client: paramiko.SSHClient, user: str, identity_file: Optional[Path]
    ) -> None:
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.RejectPolicy())
        kwargs: Dict[str, Any] = {
            "hostname": self.host,
            "port": self.port,
            "username": user,
            "timeout": self.connect_timeout,
        }
        if identity_file is not None:
            kwargs.update(
                key_filename=str(identity_file),
                passphrase=self.key_passphrase,
                look_for_keys=False,
                allow_agent=False,
            )
        client.connect(**kwargs)

    def run(
        self,
        user: str,
        command: Sequence[str],
        stdin: Optional[str] = None,
        identity_file: Optional[Path] = None,
    ) -> CommandResult:
        remote_command = render_command(command)
        logger.debug("Running %s as %s@%s", remote_command, user, self.host)
        client = paramiko.SSHClient()
        try:
            self._connect(client, user, identity_file)
            channel_in, channel_out, channel_err = client.exec_command(remote_command)
            if stdin:
                channel_in.write(encode_input(stdin))
                channel_in.flush()
            channel_in.channel.shutdown_write()
            stdout = decode_output(channel_out.read())
            stderr = decode_diagnostics(channel_err.read())
            exit_status = channel_out.channel.recv_exit_status()
        except (paramiko.SSHException, socket.error) as exc:
            raise TransportError(
                f"ssh to {user}@{self.host} failed: {exc}", host=self.host
            ) from exc
        finally:
            client.close()

        return CommandResult(exit_status=exit_status, stdout=stdout, stderr=stderr)
