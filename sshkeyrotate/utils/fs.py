"""Local filesystem helpers with permission bits applied at creation time."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional, Union

PathLike = Union[str, Path]


def ensure_directory(path: PathLike, mode: int = 0o700) -> Path:
    """Create ``path`` (and parents) with ``mode`` if it does not exist.

    Existing directories are left as they are.
    """
    directory = Path(path)
    if not directory.is_dir():
        directory.mkdir(mode=mode, parents=True, exist_ok=True)
        # mkdir honours the umask, so set the final mode explicitly.
        os.chmod(directory, mode)
    return directory


def ensure_file(path: PathLike, mode: int = 0o600) -> Path:
    """Create an empty file at ``path`` with ``mode`` unless one exists."""
    target = Path(path)
    try:
        fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
    except FileExistsError:
        return target
    os.close(fd)
    return target


def write_new_file(path: PathLike, data: bytes, mode: int) -> Path:
    """Write ``data`` to a file that must not exist yet.

    Raises ``FileExistsError`` instead of overwriting.
    """
    target = Path(path)
    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
    with os.fdopen(fd, "wb") as handle:
        handle.write(data)
    os.chmod(target, mode)
    return target


def atomic_replace(
    path: PathLike, text: str, mode: int = 0o600, backup_suffix: Optional[str] = None
) -> Path:
    """Replace ``path`` with ``text`` without exposing a half-written file.

    The content goes to a temporary file in the same directory which is then
    renamed over the target. With ``backup_suffix`` the previous content is
    kept next to it (e.g. ``config.bak``).
    """
    target = Path(path)
    if backup_suffix and target.exists():
        backup = target.with_name(target.name + backup_suffix)
        write_backup = os.open(backup, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
        with os.fdopen(write_backup, "wb") as handle:
            handle.write(target.read_bytes())

    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    return target
