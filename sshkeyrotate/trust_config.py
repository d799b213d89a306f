"""Local SSH client configuration (``~/.ssh/config``) maintenance."""

from __future__ import annotations

import logging
import re
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel

from .errors import LocalConfigError
from .utils.fs import atomic_replace, ensure_directory, ensure_file

logger = logging.getLogger(__name__)

_OPTION_PATTERN = re.compile(r"^(?P<indent>\s*)(?P<keyword>[A-Za-z]+)(?:\s*=\s*|\s+)(?P<value>.*?)\s*$")
_STANZA_KEYWORDS = {"host", "match"}
DEFAULT_INDENT = "    "


class HostConfigEntry(BaseModel):
    """One ``Host`` stanza of the client configuration."""

    host: str
    hostname: Optional[str] = None
    user: Optional[str] = None
    identity_file: Optional[str] = None


@dataclass
class _Stanza:
    entry: HostConfigEntry
    patterns: List[str]
    start: int
    end: int
    identity_line: Optional[int] = None
    indent: str = DEFAULT_INDENT


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def _quote(value: str) -> str:
    if any(ch.isspace() for ch in value):
        return f'"{value}"'
    return value


def _split_patterns(value: str) -> List[str]:
    try:
        return shlex.split(value)
    except ValueError:
        return value.split()


def _parse_stanzas(lines: List[str]) -> List[_Stanza]:
    stanzas: List[_Stanza] = []
    current: Optional[_Stanza] = None
    for index, line in enumerate(lines):
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        match = _OPTION_PATTERN.match(line)
        if not match:
            continue
        keyword = match.group("keyword").lower()
        value = match.group("value")
        if keyword in _STANZA_KEYWORDS:
            if current is not None:
                stanzas.append(current)
            current = None
            if keyword == "host":
                current = _Stanza(
                    entry=HostConfigEntry(host=value),
                    patterns=_split_patterns(value),
                    start=index,
                    end=index,
                )
            continue
        if current is None:
            continue
        current.end = index
        if match.group("indent"):
            current.indent = match.group("indent")
        if keyword == "hostname" and current.entry.hostname is None:
            current.entry.hostname = _unquote(value)
        elif keyword == "user" and current.entry.user is None:
            current.entry.user = _unquote(value)
        elif keyword == "identityfile" and current.identity_line is None:
            current.entry.identity_file = _unquote(value)
            current.identity_line = index
    if current is not None:
        stanzas.append(current)
    return stanzas


class LocalTrustConfig:
    """Upserts host identities in an OpenSSH client configuration file.

    Stanzas are keyed by host name only: a host reached as two different
    remote users shares one stanza, and the last rotation wins.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path).expanduser()

    def _read_lines(self) -> List[str]:
        if not self.path.exists():
            return []
        text = self.path.read_text(encoding="utf-8")
        if not text:
            return []
        lines = text.split("\n")
        if lines[-1] == "":
            lines.pop()
        return lines

    def _find(self, lines: List[str], host_name: str) -> Optional[_Stanza]:
        for stanza in _parse_stanzas(lines):
            if host_name in stanza.patterns or stanza.entry.hostname == host_name:
                return stanza
        return None

    def entries(self) -> List[HostConfigEntry]:
        try:
            return [stanza.entry for stanza in _parse_stanzas(self._read_lines())]
        except (OSError, UnicodeDecodeError) as exc:
            raise LocalConfigError(f"Could not read {self.path}: {exc}") from exc

    def find_host(self, host_name: str) -> Optional[HostConfigEntry]:
        try:
            stanza = self._find(self._read_lines(), host_name)
        except (OSError, UnicodeDecodeError) as exc:
            raise LocalConfigError(f"Could not read {self.path}: {exc}") from exc
        return stanza.entry if stanza else None

    def upsert_host_identity(
        self, host_name: str, remote_user: str, identity_file_path: Union[str, Path]
    ) -> bool:
        """Point ``host_name`` at ``identity_file_path``.

        Returns ``True`` when the file was changed.
        """
        identity = str(identity_file_path)
        try:
            ensure_directory(self.path.parent, 0o700)
            ensure_file(self.path, 0o600)
            lines = self._read_lines()
            stanza = self._find(lines, host_name)

            if stanza is None:
                if lines and lines[-1].strip():
                    lines.append("")
                lines.extend(
                    [
                        f"Host {host_name}",
                        f"{DEFAULT_INDENT}HostName {host_name}",
                        f"{DEFAULT_INDENT}User {remote_user}",
                        f"{DEFAULT_INDENT}IdentityFile {_quote(identity)}",
                    ]
                )
                logger.info("Adding stanza for %s to %s", host_name, self.path)
            else:
                if stanza.entry.user and stanza.entry.user != remote_user:
                    logger.warning(
                        "Stanza for %s in %s is for user %s, not %s; its IdentityFile is replaced anyway",
                        host_name,
                        self.path,
                        stanza.entry.user,
                        remote_user,
                    )
                if stanza.entry.identity_file == identity:
                    logger.debug("%s already uses %s", host_name, identity)
                    return False
                if stanza.identity_line is not None:
                    match = _OPTION_PATTERN.match(lines[stanza.identity_line])
                    lines[stanza.identity_line] = (
                        f"{match.group('indent')}{match.group('keyword')} {_quote(identity)}"
                    )
                else:
                    lines.insert(stanza.end + 1, f"{stanza.indent}IdentityFile {_quote(identity)}")
                logger.info("Updating IdentityFile of %s in %s", host_name, self.path)

            atomic_replace(self.path, "\n".join(lines) + "\n", mode=0o600, backup_suffix=".bak")
        except (OSError, UnicodeDecodeError) as exc:
            raise LocalConfigError(f"Could not update {self.path}: {exc}", host=host_name) from exc
        return True
