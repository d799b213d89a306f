"""Abstract interface over a remote host's ``authorized_keys``."""

from __future__ import annotations

import abc
from pathlib import Path
from typing import List, Optional

from .models import AuthorizedKeyEntry


class AuthorizationStore(metaclass=abc.ABCMeta):
    """Authorized keys of one remote host.

    ``identity_file`` pins a call to a specific private key; when omitted the
    backend authenticates however it normally would.
    """

    @abc.abstractmethod
    def ensure_bootstrap(self, user: str, identity_file: Optional[Path] = None) -> None:
        """Create ``~/.ssh`` (0700) and ``authorized_keys`` (0600) if missing."""
        raise NotImplementedError

    @abc.abstractmethod
    def append_key(
        self, user: str, public_key_text: str, identity_file: Optional[Path] = None
    ) -> None:
        """Append one public key line, leaving existing entries untouched."""
        raise NotImplementedError

    @abc.abstractmethod
    def scan(self, user: str, identity_file: Optional[Path] = None) -> List[AuthorizedKeyEntry]:
        """Return every entry in file order."""
        raise NotImplementedError

    @abc.abstractmethod
    def retire_old_entries(
        self,
        user: str,
        relationship_id: str,
        keep_issued_at: int,
        identity_file: Optional[Path] = None,
    ) -> List[AuthorizedKeyEntry]:
        """Remove older issuances of ``relationship_id`` and return them."""
        raise NotImplementedError
