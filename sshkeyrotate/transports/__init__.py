"""Transport factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import SshKeyRotateConfig, load_config
from ..errors import ConfigError
from .base import BaseTransport, CommandResult, render_command
from .local import LocalTransport
from .openssh import OpenSSHTransport


def get_transport(
    host: str,
    backend: Optional[str] = None,
    config: Optional[SshKeyRotateConfig] = None,
    port: Optional[int] = None,
    key_passphrase: Optional[str] = None,
) -> BaseTransport:
    """Factory function to get the configured transport for ``host``."""

    config = config or load_config()
    transport_conf = config.transport
    backend = (
        backend
        or os.getenv("SSHKEYROTATE_TRANSPORT")
        or transport_conf.backend
    ).lower()
    port = port or transport_conf.port

    if backend == "openssh":
        return OpenSSHTransport(
            host,
            ssh_binary=transport_conf.ssh_binary,
            port=port,
            connect_timeout=transport_conf.connect_timeout,
            options=transport_conf.options,
        )
    elif backend == "paramiko":
        from .paramiko_ssh import ParamikoTransport

        return ParamikoTransport(
            host,
            port=port,
            connect_timeout=transport_conf.connect_timeout,
            key_passphrase=key_passphrase,
        )
    elif backend == "local":
        if not transport_conf.local_home:
            raise ConfigError("transport.local_home is required for the local backend")
        return LocalTransport(os.path.expanduser(transport_conf.local_home), host=host)
    else:
        raise ConfigError(f"Unsupported transport backend: {backend}")


__all__ = [
    "BaseTransport",
    "CommandResult",
    "LocalTransport",
    "OpenSSHTransport",
    "get_transport",
    "render_command",
]
