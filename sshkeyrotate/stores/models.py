"""Entries of an ``authorized_keys`` file."""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from .. import metadata as key_metadata
from ..metadata import KeyMetadata


class AuthorizedKeyEntry(BaseModel):
    """One line of ``authorized_keys`` kept verbatim, plus its parsed tag."""

    model_config = ConfigDict(frozen=True)

    line: str
    metadata: Optional[KeyMetadata] = None

    @classmethod
    def from_line(cls, line: str) -> "AuthorizedKeyEntry":
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            return cls(line=line)
        return cls(line=line, metadata=key_metadata.parse(line))

    def belongs_to(self, relationship_id: str) -> bool:
        return self.metadata is not None and self.metadata.relationship_id == relationship_id


def parse_authorized_keys(text: str) -> List[AuthorizedKeyEntry]:
    """Split file content into entries, one per line, keeping each line as is."""
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [AuthorizedKeyEntry.from_line(line) for line in lines]


def render_authorized_keys(entries: Iterable[AuthorizedKeyEntry]) -> str:
    lines = [entry.line for entry in entries]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def filter_entries(
    entries: Iterable[AuthorizedKeyEntry], relationship_id: str, keep_issued_at: int
) -> Tuple[List[AuthorizedKeyEntry], List[AuthorizedKeyEntry]]:
    """Partition ``entries`` into ``(kept, retired)``.

    Retired entries belong to ``relationship_id`` with an issuance other than
    ``keep_issued_at``. Everything else is kept in its original order.
    """
    kept: List[AuthorizedKeyEntry] = []
    retired: List[AuthorizedKeyEntry] = []
    for entry in entries:
        if entry.belongs_to(relationship_id) and entry.metadata.issued_at != keep_issued_at:
            retired.append(entry)
        else:
            kept.append(entry)
    return kept, retired
