"""Key pair generation and on-disk persistence."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Tuple, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from pydantic import BaseModel, ConfigDict

from .errors import CollisionError, GenerationError
from .metadata import KeyMetadata
from .utils.fs import ensure_directory, write_new_file

logger = logging.getLogger(__name__)

RSA_MIN_BITS = 1024
RSA_MAX_BITS = 16384

_ECDSA_CURVES = {
    256: ec.SECP256R1,
    384: ec.SECP384R1,
    521: ec.SECP521R1,
}

SUPPORTED_ALGORITHMS = ("rsa", "ecdsa", "ed25519")

_KEY_TYPE_PREFIXES = ("ssh-", "ecdsa-", "sk-")

PrivateKey = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey, ed25519.Ed25519PrivateKey]


class KeyPair(BaseModel):
    """A generated key pair persisted on local storage."""

    model_config = ConfigDict(frozen=True)

    algorithm: str
    bits: int
    private_key_path: Path
    public_key_path: Path
    public_key: str

    @property
    def comment(self) -> str:
        parts = self.public_key.split(None, 2)
        return parts[2] if len(parts) == 3 else ""


def key_filename(algorithm: str, metadata: KeyMetadata) -> str:
    """File name unique per relationship and issuance."""
    return f"id_{algorithm}_{metadata.relationship_id}_{metadata.issued_at}"


def _create_private_key(algorithm: str, bits: int) -> PrivateKey:
    if algorithm == "rsa":
        if not RSA_MIN_BITS <= bits <= RSA_MAX_BITS:
            raise GenerationError(
                f"RSA key size must be between {RSA_MIN_BITS} and {RSA_MAX_BITS} bits, got {bits}"
            )
        return rsa.generate_private_key(public_exponent=65537, key_size=bits)
    if algorithm == "ecdsa":
        curve = _ECDSA_CURVES.get(bits)
        if curve is None:
            raise GenerationError(
                f"ECDSA key size must be one of {sorted(_ECDSA_CURVES)}, got {bits}"
            )
        return ec.generate_private_key(curve())
    if algorithm == "ed25519":
        return ed25519.Ed25519PrivateKey.generate()
    raise GenerationError(
        f"Unsupported key algorithm '{algorithm}' (expected one of {', '.join(SUPPORTED_ALGORITHMS)})"
    )


class KeyGenerator:
    """Mints key pairs into ``key_dir``.

    Private keys are written in OpenSSH format with mode ``0600``; public keys
    as a single ``authorized_keys`` line with mode ``0644``. Existing files are
    never overwritten.
    """

    def __init__(self, key_dir: Union[str, Path]) -> None:
        self.key_dir = Path(key_dir).expanduser()

    def generate(
        self,
        algorithm: str,
        bits: int,
        comment: str,
        filename: str,
        passphrase: str = "",
    ) -> KeyPair:
        algorithm = algorithm.lower()
        if any(ch in comment for ch in "\r\n\0"):
            raise GenerationError("Key comment must be a single line")
        if not filename or os.sep in filename or filename.startswith("."):
            raise GenerationError(f"Invalid key file name: {filename!r}")

        private_path = self.key_dir / filename
        public_path = self.key_dir / f"{filename}.pub"
        for path in (private_path, public_path):
            if path.exists():
                raise CollisionError(f"Refusing to overwrite existing key file {path}")

        try:
            private_key = _create_private_key(algorithm, bits)
            if passphrase:
                encryption = serialization.BestAvailableEncryption(passphrase.encode("utf-8"))
            else:
                encryption = serialization.NoEncryption()
            private_bytes = private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.OpenSSH,
                encryption_algorithm=encryption,
            )
            public_blob = private_key.public_key().public_bytes(
                encoding=serialization.Encoding.OpenSSH,
                format=serialization.PublicFormat.OpenSSH,
            )
        except GenerationError:
            raise
        except (ValueError, TypeError) as exc:
            raise GenerationError(f"Key generation failed: {exc}") from exc

        public_line = public_blob.decode("ascii")
        if comment:
            public_line = f"{public_line} {comment}"

        try:
            ensure_directory(self.key_dir)
            write_new_file(private_path, private_bytes, 0o600)
        except FileExistsError as exc:
            raise CollisionError(f"Refusing to overwrite existing key file {private_path}") from exc
        except OSError as exc:
            raise GenerationError(f"Could not write private key {private_path}: {exc}") from exc

        try:
            write_new_file(public_path, (public_line + "\n").encode("ascii"), 0o644)
        except (FileExistsError, OSError) as exc:
            # Never leave half a pair behind.
            private_path.unlink(missing_ok=True)
            if isinstance(exc, FileExistsError):
                raise CollisionError(
                    f"Refusing to overwrite existing key file {public_path}"
                ) from exc
            raise GenerationError(f"Could not write public key {public_path}: {exc}") from exc

        # bits only describe RSA and ECDSA keys
        effective_bits = 256 if algorithm == "ed25519" else bits
        logger.info("Generated %s-%d key pair %s", algorithm, effective_bits, private_path)
        return KeyPair(
            algorithm=algorithm,
            bits=effective_bits,
            private_key_path=private_path,
            public_key_path=public_path,
            public_key=public_line,
        )


def read_public_key(private_key_path: Union[str, Path]) -> str:
    """Return the public key line stored next to ``private_key_path``."""
    return Path(f"{private_key_path}.pub").read_text(encoding="utf-8").strip()


def public_key_blob(line: str) -> Optional[Tuple[str, str]]:
    """Return ``(key type, base64 blob)`` from a public key or ``authorized_keys`` line.

    Leading ``authorized_keys`` options are skipped. ``None`` when the line
    holds no key.
    """
    tokens = line.split()
    for index, token in enumerate(tokens[:-1]):
        if token.startswith(_KEY_TYPE_PREFIXES):
            return token, tokens[index + 1]
    return None


__all__ = [
    "KeyGenerator",
    "KeyPair",
    "SUPPORTED_ALGORITHMS",
    "key_filename",
    "public_key_blob",
    "read_public_key",
]
