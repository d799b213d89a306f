from __future__ import annotations

import getpass
import os
import platform
from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .constants import (
    CONFIG_ENV_VAR,
    DEFAULT_ALGORITHM,
    DEFAULT_CONFIG_FILE,
    DEFAULT_KEY_BITS,
    DEFAULT_KEY_BITS_BY_ALGORITHM,
)
from .errors import ConfigError


class TransportConfig(BaseModel):
    """Secure-shell transport settings."""

    backend: Literal["openssh", "paramiko", "local"] = "openssh"
    ssh_binary: str = "ssh"
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    connect_timeout: Optional[int] = Field(default=None, ge=1)
    options: List[str] = Field(default_factory=list)
    # home directory standing in for the remote account with the local backend
    local_home: Optional[str] = None


class KeysConfig(BaseModel):
    """Key generation defaults."""

    algorithm: str = DEFAULT_ALGORITHM
    # None picks the default size of the algorithm
    bits: Optional[int] = None
    directory: str = "~/.ssh"


class SshKeyRotateConfig(BaseModel):
    """Top-level configuration model."""

    transport: TransportConfig = TransportConfig()
    keys: KeysConfig = KeysConfig()
    ssh_config: str = "~/.ssh/config"


def load_config(path: Optional[str] = None) -> SshKeyRotateConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to the
            SSHKEYROTATE_CONFIG env variable or 'sshkeyrotate.yaml' in the
            current directory.
    """

    config_path = path or os.getenv(CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE)
    if not os.path.exists(config_path):
        return SshKeyRotateConfig()
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        return SshKeyRotateConfig(**data)
    except (OSError, yaml.YAMLError, ValidationError, TypeError) as exc:
        raise ConfigError(f"Invalid configuration file {config_path}: {exc}") from exc


def default_key_bits(algorithm: str) -> int:
    return DEFAULT_KEY_BITS_BY_ALGORITHM.get(algorithm.lower(), DEFAULT_KEY_BITS)


def _check_name(value: str) -> str:
    if not value:
        raise ValueError("must not be empty")
    if value.startswith("-"):
        raise ValueError("must not start with '-'")
    if any(ch.isspace() for ch in value) or any(ch in value for ch in "@\0"):
        raise ValueError("must not contain whitespace, '@' or NUL")
    return value


class RotationSettings(BaseModel):
    """Everything one rotation run needs, fixed at startup."""

    model_config = ConfigDict(frozen=True, validate_default=True)

    remote_user: str
    remote_host: str
    local_user: str
    local_host: str
    algorithm: str = DEFAULT_ALGORITHM
    bits: int = DEFAULT_KEY_BITS
    passphrase: str = Field(default="", repr=False)
    key_dir: Path = Path("~/.ssh")
    ssh_config: Path = Path("~/.ssh/config")
    verbose: bool = False

    @field_validator("remote_user", "remote_host", "local_user", "local_host")
    @classmethod
    def _validate_names(cls, value: str) -> str:
        return _check_name(value)

    @field_validator("algorithm")
    @classmethod
    def _normalize_algorithm(cls, value: str) -> str:
        return value.lower()

    @field_validator("key_dir", "ssh_config")
    @classmethod
    def _expand(cls, value: Path) -> Path:
        return value.expanduser()

    @classmethod
    def build(
        cls,
        remote_user: str,
        remote_host: str,
        config: Optional[SshKeyRotateConfig] = None,
        algorithm: Optional[str] = None,
        bits: Optional[int] = None,
        passphrase: str = "",
        verbose: bool = False,
        local_user: Optional[str] = None,
        local_host: Optional[str] = None,
    ) -> "RotationSettings":
        """Merge command line values over the loaded configuration.

        The configured size only applies to the configured algorithm;
        choosing another algorithm falls back to that algorithm's default.
        """
        config = config or load_config()
        chosen = algorithm or config.keys.algorithm
        if bits is None:
            same_algorithm = chosen.lower() == config.keys.algorithm.lower()
            if config.keys.bits and same_algorithm:
                bits = config.keys.bits
            else:
                bits = default_key_bits(chosen)
        try:
            return cls(
                remote_user=remote_user,
                remote_host=remote_host,
                local_user=local_user or getpass.getuser(),
                local_host=local_host or platform.node(),
                algorithm=chosen,
                bits=bits,
                passphrase=passphrase,
                key_dir=Path(config.keys.directory),
                ssh_config=Path(config.ssh_config),
                verbose=verbose,
            )
        except ValidationError as exc:
            raise ConfigError(f"Invalid rotation settings: {exc}") from exc
