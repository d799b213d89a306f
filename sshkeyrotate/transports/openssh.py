"""Transport driving the OpenSSH ``ssh`` client."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence

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

# ssh reserves this exit status for its own failures
SSH_ERROR_STATUS = 255

# Options applied when a session must authenticate with one key only. No
# config file is read so IdentityFile entries there cannot be offered.
_PINNED_IDENTITY_OPTIONS = (
    "-F",
    "none",
    "-o",
    "IdentitiesOnly=yes",
    "-o",
    "IdentityAgent=none",
    "-o",
    "PasswordAuthentication=no",
    "-o",
    "KbdInteractiveAuthentication=no",
)

# Settings from the user's client configuration that decide where a session
# lands and how the host is verified. They are replayed explicitly on
# pinned sessions, which skip the configuration file.
_ENDPOINT_OPTIONS = {
    "hostname": "HostName",
    "port": "Port",
    "proxyjump": "ProxyJump",
    "proxycommand": "ProxyCommand",
    "hostkeyalias": "HostKeyAlias",
    "userknownhostsfile": "UserKnownHostsFile",
    "stricthostkeychecking": "StrictHostKeyChecking",
}


def parse_effective_config(output: str) -> List[str]:
    """Turn ``ssh -G`` output into ``-o Key=value`` arguments for the endpoint."""
    args: List[str] = []
    for line in output.splitlines():
        key, _, value = line.strip().partition(" ")
        option = _ENDPOINT_OPTIONS.get(key.lower())
        value = value.strip()
        if option is None or not value or value.lower() == "none":
            continue
        args.extend(["-o", f"{option}={value}"])
    return args


class OpenSSHTransport(BaseTransport):
    """Run remote commands through the local ``ssh`` binary."""

    def __init__(
        self,
        host: str,
        ssh_binary: str = "ssh",
        port: Optional[int] = None,
        connect_timeout: Optional[int] = None,
        options: Sequence[str] = (),
    ) -> None:
        super().__init__(host)
        self.ssh_binary = ssh_binary
        self.port = port
        self.connect_timeout = connect_timeout
        self.options = list(options)
        self._endpoints: Dict[str, List[str]] = {}

    def _common_args(self) -> List[str]:
        args: List[str] = []
        if self.port:
            args.extend(["-p", str(self.port)])
        if self.connect_timeout:
            args.extend(["-o", f"ConnectTimeout={self.connect_timeout}"])
        for option in self.options:
            args.extend(["-o", option])
        return args

    def build_args(
        self,
        user: str,
        command: Sequence[str],
        identity_file: Optional[Path] = None,
        endpoint: Sequence[str] = (),
    ) -> List[str]:
        args = [self.ssh_binary]
        if identity_file is not None:
            args.extend(_PINNED_IDENTITY_OPTIONS)
            args.extend(["-i", str(identity_file)])
        args.extend(self._common_args())
        # ssh keeps the first value it sees, so explicit settings above win
        args.extend(endpoint)
        args.extend(["-l", user, "--", self.host, render_command(command)])
        return args

    def resolve_endpoint(self, user: str) -> List[str]:
        """Endpoint options the client configuration gives ``user@host``.

        Resolved once per user with ``ssh -G``. When the client cannot
        report its configuration the pinned session uses ssh defaults.
        """
        if user in self._endpoints:
            return self._endpoints[user]
        args = [self.ssh_binary, "-G", *self._common_args(), "-l", user, "--", self.host]
        try:
            completed = subprocess.run(args, capture_output=True, check=False)
        except OSError as exc:
            raise TransportError(
                f"Could not execute {self.ssh_binary}: {exc}", host=self.host
            ) from exc
        if completed.returncode != 0:
            logger.warning(
                "Could not resolve ssh configuration for %s: %s",
                self.host,
                decode_diagnostics(completed.stderr).strip() or "no output",
            )
            endpoint: List[str] = []
        else:
            endpoint = parse_effective_config(decode_output(completed.stdout))
        logger.debug("Endpoint options for %s@%s: %s", user, self.host, endpoint)
        self._endpoints[user] = endpoint
        return endpoint

    def run(
        self,
        user: str,
        command: Sequence[str],
        stdin: Optional[str] = None,
        identity_file: Optional[Path] = None,
    ) -> CommandResult:
        endpoint = self.resolve_endpoint(user) if identity_file is not None else []
        args = self.build_args(user, command, identity_file, endpoint)
        logger.debug("Running %s", args)
        try:
            completed = subprocess.run(
                args,
                input=encode_input(stdin),
                capture_output=True,
                check=False,
            )
        except OSError as exc:
            raise TransportError(
                f"Could not execute {self.ssh_binary}: {exc}", host=self.host
            ) from exc

        stderr = decode_diagnostics(completed.stderr)
        if completed.returncode == SSH_ERROR_STATUS:
            raise TransportError(
                f"ssh to {user}@{self.host} failed: {stderr.strip() or 'no output'}",
                host=self.host,
            )
        return CommandResult(
            exit_status=completed.returncode,
            stdout=decode_output(completed.stdout),
            stderr=stderr,
        )
