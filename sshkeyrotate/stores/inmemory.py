"""In-memory authorization store for testing."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

from ..errors import RemoteWriteError
from .base import AuthorizationStore
from .models import AuthorizedKeyEntry, filter_entries


class InMemoryAuthorizationStore(AuthorizationStore):
    """Keep ``authorized_keys`` lines per user in local memory.

    Useful for tests. ``backups`` holds the content each user had before the
    last rewrite, mirroring the ``.bak`` file the SSH backend leaves behind.
    """

    def __init__(self, initial: Optional[Dict[str, List[str]]] = None) -> None:
        self.files: Dict[str, List[str]] = {
            user: list(lines) for user, lines in (initial or {}).items()
        }
        self.backups: Dict[str, List[str]] = {}
        self.bootstrapped: set[str] = set()

    def ensure_bootstrap(self, user: str, identity_file: Optional[Path] = None) -> None:
        self.files.setdefault(user, [])
        self.bootstrapped.add(user)

    def append_key(
        self, user: str, public_key_text: str, identity_file: Optional[Path] = None
    ) -> None:
        line = public_key_text.strip()
        if not line or "\n" in line:
            raise RemoteWriteError("Public key must be a single non-empty line")
        self.files.setdefault(user, []).append(line)

    def scan(self, user: str, identity_file: Optional[Path] = None) -> List[AuthorizedKeyEntry]:
        return [AuthorizedKeyEntry.from_line(line) for line in self.files.get(user, [])]

    def retire_old_entries(
        self,
        user: str,
        relationship_id: str,
        keep_issued_at: int,
        identity_file: Optional[Path] = None,
    ) -> List[AuthorizedKeyEntry]:
        kept, retired = filter_entries(self.scan(user), relationship_id, keep_issued_at)
        if retired:
            self.backups[user] = list(self.files.get(user, []))
            self.files[user] = [entry.line for entry in kept]
        return retired
