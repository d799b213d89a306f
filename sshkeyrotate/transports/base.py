"""Base transport interface for running commands on the remote host."""

from __future__ import annotations

import abc
import shlex
from pathlib import Path
from typing import Optional, Sequence

from pydantic import BaseModel

# Remote files are byte streams that may hold comments in any encoding.
# Latin-1 maps each byte to exactly one code point, so content read from
# stdout and written back through stdin is unchanged byte for byte.
STREAM_ENCODING = "latin-1"


class CommandResult(BaseModel):
    """Outcome of one remote command."""

    exit_status: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


def encode_input(stdin: Optional[str]) -> bytes:
    """Bytes to feed a remote command's standard input."""
    return (stdin or "").encode(STREAM_ENCODING)


def decode_output(data: bytes) -> str:
    return data.decode(STREAM_ENCODING)


def decode_diagnostics(data: bytes) -> str:
    """Decode stderr for messages only; never written back anywhere."""
    return data.decode("utf-8", errors="replace")


def render_command(command: Sequence[str]) -> str:
    """Quote an argument vector into the single string a remote shell runs.

    This is the only place where arguments become shell text.
    """
    if not command:
        raise ValueError("Remote command must not be empty")
    return shlex.join(command)


class BaseTransport(metaclass=abc.ABCMeta):
    """Abstract secure-shell transport bound to one remote host."""

    def __init__(self, host: str) -> None:
        self.host = host

    @abc.abstractmethod
    def run(
        self,
        user: str,
        command: Sequence[str],
        stdin: Optional[str] = None,
        identity_file: Optional[Path] = None,
    ) -> CommandResult:
        """Run ``command`` as ``user``.

        Args:
            user: Remote account to log in as.
            command: Argument vector, quoted by :func:`render_command`.
            stdin: Text piped into the command's standard input.
            identity_file: When given, authenticate with this private key only.

        Raises:
            TransportError: The session could not be established.
        """
        raise NotImplementedError

    def check_login(self, user: str, identity_file: Path) -> CommandResult:
        """Open a session with ``identity_file`` alone and run a no-op."""
        return self.run(user, ["true"], identity_file=identity_file)

    def close(self) -> None:
        """Release transport resources (no-op by default)."""
        pass
