"""Authorization store driven over a secure-shell transport."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Type

from ..constants import AUTHORIZED_KEYS_BACKUP_SUFFIX, AUTHORIZED_KEYS_PATH
from ..errors import (
    RemoteCleanupError,
    RemoteSetupError,
    RemoteWriteError,
    RotationError,
    TransportError,
)
from ..transports.base import BaseTransport, CommandResult
from .base import AuthorizationStore
from .models import (
    AuthorizedKeyEntry,
    filter_entries,
    parse_authorized_keys,
    render_authorized_keys,
)

logger = logging.getLogger(__name__)

# Scripts take their paths as positional parameters and never interpolate
# caller-supplied values into shell text.
_BOOTSTRAP_SCRIPT = """set -e
umask 077
cd "$HOME"
file=$1
dir=$(dirname "$file")
[ -d "$dir" ] || { mkdir -p "$dir"; chmod 700 "$dir"; }
[ -f "$file" ] || { touch "$file"; chmod 600 "$file"; }
"""

_APPEND_SCRIPT = """set -e
umask 077
cd "$HOME"
file=$1
if [ -s "$file" ] && [ -n "$(tail -c 1 "$file")" ]; then printf '\\n' >> "$file"; fi
cat >> "$file"
"""

_READ_SCRIPT = """set -e
cd "$HOME"
cat "$1"
"""

_REWRITE_SCRIPT = """set -e
umask 077
cd "$HOME"
file=$1
backup=$2
tmp="$file.sshkeyrotate.$$"
trap 'rm -f "$tmp"' EXIT
cp -p "$file" "$backup"
cat > "$tmp"
chmod 600 "$tmp"
mv -f "$tmp" "$file"
"""


def _script(body: str, *args: str) -> List[str]:
    return ["sh", "-c", body, "sh", *args]


class SshAuthorizationStore(AuthorizationStore):
    """``authorized_keys`` of the transport's host, edited with POSIX shell tools."""

    def __init__(
        self,
        transport: BaseTransport,
        authorized_keys_path: str = AUTHORIZED_KEYS_PATH,
    ) -> None:
        self.transport = transport
        self.authorized_keys_path = authorized_keys_path

    @property
    def host(self) -> str:
        return self.transport.host

    def _execute(
        self,
        user: str,
        command: Sequence[str],
        error_cls: Type[RotationError],
        action: str,
        stdin: Optional[str] = None,
        identity_file: Optional[Path] = None,
    ) -> CommandResult:
        try:
            result = self.transport.run(
                user, command, stdin=stdin, identity_file=identity_file
            )
        except TransportError as exc:
            raise error_cls(f"Could not {action}: {exc.message}", host=self.host) from exc
        except UnicodeError as exc:
            raise error_cls(f"Could not {action}: {exc}", host=self.host) from exc
        if not result.ok:
            detail = result.stderr.strip() or f"exit status {result.exit_status}"
            raise error_cls(f"Could not {action}: {detail}", host=self.host)
        return result

    def ensure_bootstrap(self, user: str, identity_file: Optional[Path] = None) -> None:
        self._execute(
            user,
            _script(_BOOTSTRAP_SCRIPT, self.authorized_keys_path),
            RemoteSetupError,
            f"prepare {self.authorized_keys_path} for {user}",
            identity_file=identity_file,
        )
        logger.debug("Remote %s ready for %s@%s", self.authorized_keys_path, user, self.host)

    def append_key(
        self, user: str, public_key_text: str, identity_file: Optional[Path] = None
    ) -> None:
        line = public_key_text.strip()
        if not line or "\n" in line:
            raise RemoteWriteError("Public key must be a single non-empty line", host=self.host)
        self._execute(
            user,
            _script(_APPEND_SCRIPT, self.authorized_keys_path),
            RemoteWriteError,
            f"append key for {user}",
            stdin=line + "\n",
            identity_file=identity_file,
        )

    def _read(self, user: str, error_cls: Type[RotationError], identity_file: Optional[Path]) -> str:
        result = self._execute(
            user,
            _script(_READ_SCRIPT, self.authorized_keys_path),
            error_cls,
            f"read {self.authorized_keys_path} for {user}",
            identity_file=identity_file,
        )
        return result.stdout

    def scan(self, user: str, identity_file: Optional[Path] = None) -> List[AuthorizedKeyEntry]:
        return parse_authorized_keys(self._read(user, RemoteSetupError, identity_file))

    def retire_old_entries(
        self,
        user: str,
        relationship_id: str,
        keep_issued_at: int,
        identity_file: Optional[Path] = None,
    ) -> List[AuthorizedKeyEntry]:
        entries = parse_authorized_keys(self._read(user, RemoteCleanupError, identity_file))
        kept, retired = filter_entries(entries, relationship_id, keep_issued_at)
        if not retired:
            logger.debug("No entries to retire for relationship %s", relationship_id)
            return []

        self._execute(
            user,
            _script(
                _REWRITE_SCRIPT,
                self.authorized_keys_path,
                self.authorized_keys_path + AUTHORIZED_KEYS_BACKUP_SUFFIX,
            ),
            RemoteCleanupError,
            f"rewrite {self.authorized_keys_path} for {user}",
            stdin=render_authorized_keys(kept),
            identity_file=identity_file,
        )
        logger.info(
            "Retired %d old key(s) of relationship %s on %s",
            len(retired),
            relationship_id,
            self.host,
        )
        return retired
