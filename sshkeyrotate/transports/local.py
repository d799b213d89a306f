"""Local transport for tests and dry runs."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Optional, Sequence, Union

from ..constants import AUTHORIZED_KEYS_PATH
from ..errors import TransportError
from ..keys import public_key_blob, read_public_key
from .base import (
    BaseTransport,
    CommandResult,
    decode_diagnostics,
    decode_output,
    encode_input,
    render_command,
)


class LocalTransport(BaseTransport):
    """Execute "remote" commands with ``sh`` on this machine.

    Commands run with ``HOME`` and the working directory set to ``home`` so
    a scratch directory stands in for the remote account. Sessions pinned to
    an identity are only accepted when that identity's public key is listed
    in ``home/.ssh/authorized_keys``, the way ``sshd`` would decide.
    """

    def __init__(self, home: Union[str, Path], host: str = "localhost") -> None:
        super().__init__(host)
        self.home = Path(home)

    def is_authorized(self, identity_file: Path) -> bool:
        try:
            wanted = public_key_blob(read_public_key(identity_file))
            authorized = decode_output((self.home / AUTHORIZED_KEYS_PATH).read_bytes())
        except OSError:
            return False
        if wanted is None:
            return False
        return any(public_key_blob(line) == wanted for line in authorized.split("\n"))

    def run(
        self,
        user: str,
        command: Sequence[str],
        stdin: Optional[str] = None,
        identity_file: Optional[Path] = None,
    ) -> CommandResult:
        if identity_file is not None and not self.is_authorized(identity_file):
            raise TransportError(
                f"Permission denied (publickey) for {user}@{self.host}", host=self.host
            )
        env = dict(os.environ, HOME=str(self.home), USER=user)
        completed = subprocess.run(
            ["sh", "-c", render_command(command)],
            cwd=self.home,
            env=env,
            input=encode_input(stdin),
            capture_output=True,
            check=False,
        )
        return CommandResult(
            exit_status=completed.returncode,
            stdout=decode_output(completed.stdout),
            stderr=decode_diagnostics(completed.stderr),
        )
