"""Identity tag embedded in the comment field of every issued key.

A tag looks like::

    {"sshKeyRotate":"0.3.0","keyId":"<relationship id>","keySerial":1700000000}

``keyId`` identifies the relationship (local user@host to remote user@host)
and ``keySerial`` the issuance. The field names are shared with keys issued
by earlier releases of the tool so that rotation retires them as well.
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import TOOL_VERSION

_TAG_PATTERN = re.compile(r'\{[^{}]*"sshKeyRotate"[^{}]*\}')


class KeyMetadata(BaseModel):
    """Relationship and issuance of a single key."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    tool_version: str = Field(
        alias="sshKeyRotate", min_length=1, pattern=r"^[0-9A-Za-z.+-]+$"
    )
    relationship_id: str = Field(
        alias="keyId", min_length=1, pattern=r"^[0-9A-Za-z_-]+$"
    )
    issued_at: int = Field(alias="keySerial", ge=0, strict=True)

    def to_comment(self) -> str:
        """Serialize to the compact single-line form stored in key comments."""
        return self.model_dump_json(by_alias=True)


def compute_relationship_id(
    local_user: str, local_host: str, remote_user: str, remote_host: str
) -> str:
    """Return the stable fingerprint of a local/remote principal pairing.

    The digest covers ``"<local_user>@<local_host> <remote_user>@<remote_host>\\n"``,
    which keeps identifiers compatible with keys tagged by earlier releases.
    """
    relationship = f"{local_user}@{local_host} {remote_user}@{remote_host}\n"
    return hashlib.md5(relationship.encode("utf-8"), usedforsecurity=False).hexdigest()


def encode(tool_version: str, relationship_id: str, issued_at: int) -> str:
    return KeyMetadata(
        tool_version=tool_version,
        relationship_id=relationship_id,
        issued_at=issued_at,
    ).to_comment()


def issue(relationship_id: str, issued_at: int) -> KeyMetadata:
    """Create metadata for a new key issued by this release."""
    return KeyMetadata(
        tool_version=TOOL_VERSION,
        relationship_id=relationship_id,
        issued_at=issued_at,
    )


def parse(comment_text: str) -> Optional[KeyMetadata]:
    """Extract the tag from ``comment_text``.

    The tag may appear anywhere in the text, so a whole ``authorized_keys``
    line (options, key type and blob included) can be passed as is.
    Returns ``None`` for foreign or malformed comments.
    """
    if not comment_text:
        return None
    for match in _TAG_PATTERN.finditer(comment_text):
        try:
            data = json.loads(match.group(0))
            return KeyMetadata.model_validate(data)
        except ValueError:
            continue
    return None


def matches_relationship(comment_text: str, relationship_id: str) -> bool:
    """True iff the comment carries a tag for ``relationship_id``.

    Tool version and issuance are ignored so keys from any prior release
    and any prior rotation match.
    """
    metadata = parse(comment_text)
    return metadata is not None and metadata.relationship_id == relationship_id


def is_same_issuance(comment_text: str, relationship_id: str, issued_at: int) -> bool:
    metadata = parse(comment_text)
    return (
        metadata is not None
        and metadata.relationship_id == relationship_id
        and metadata.issued_at == issued_at
    )


__all__ = [
    "KeyMetadata",
    "compute_relationship_id",
    "encode",
    "issue",
    "parse",
    "matches_relationship",
    "is_same_issuance",
]
