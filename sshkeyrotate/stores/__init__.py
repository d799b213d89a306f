"""Remote authorized-keys stores."""

from __future__ import annotations

from .base import AuthorizationStore
from .inmemory import InMemoryAuthorizationStore
from .models import (
    AuthorizedKeyEntry,
    filter_entries,
    parse_authorized_keys,
    render_authorized_keys,
)
from .ssh import SshAuthorizationStore

__all__ = [
    "AuthorizationStore",
    "AuthorizedKeyEntry",
    "InMemoryAuthorizationStore",
    "SshAuthorizationStore",
    "filter_entries",
    "parse_authorized_keys",
    "render_authorized_keys",
]
