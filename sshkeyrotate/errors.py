"""Exception hierarchy for key rotation failures."""

from __future__ import annotations

from typing import Optional


class RotationError(Exception):
    """Base class for every failure surfaced by a rotation run.

    Carries enough context (the step, the remote host and the relationship
    id) for the caller to tell where a run stopped.
    """

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        host: Optional[str] = None,
        relationship_id: Optional[str] = None,
    ) -> None:
        self.message = message
        self.step = step
        self.host = host
        self.relationship_id = relationship_id
        super().__init__(message)

    def __str__(self) -> str:
        context = []
        if self.step:
            context.append(f"step={self.step}")
        if self.host:
            context.append(f"host={self.host}")
        if self.relationship_id:
            context.append(f"relationship={self.relationship_id}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class ConfigError(RotationError):
    """Invalid or unreadable configuration."""


class TransportError(RotationError):
    """The secure-shell transport could not connect or authenticate."""


class GenerationError(RotationError):
    """A key pair could not be generated or persisted."""


class CollisionError(GenerationError):
    """A key file already exists at the target path."""


class RemoteSetupError(RotationError):
    """The remote ``~/.ssh`` directory or ``authorized_keys`` could not be prepared."""


class RemoteWriteError(RotationError):
    """Appending the new public key to the remote store failed."""


class ValidationError(RotationError):
    """The new key pair could not open a session on the remote host."""


class RemoteCleanupError(RotationError):
    """Old entries could not be retired from the remote store."""


class LocalConfigError(RotationError):
    """The local SSH client configuration could not be updated."""


__all__ = [
    "RotationError",
    "ConfigError",
    "TransportError",
    "GenerationError",
    "CollisionError",
    "RemoteSetupError",
    "RemoteWriteError",
    "ValidationError",
    "RemoteCleanupError",
    "LocalConfigError",
]
