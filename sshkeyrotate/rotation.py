"""Rotation of the key pair for one local/remote relationship."""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from . import metadata as key_metadata
from .config import RotationSettings
from .errors import RotationError, TransportError, ValidationError
from .keys import KeyGenerator, KeyPair, key_filename
from .metadata import KeyMetadata
from .stores.base import AuthorizationStore
from .stores.models import AuthorizedKeyEntry
from .transports.base import BaseTransport
from .trust_config import LocalTrustConfig

logger = logging.getLogger(__name__)


class RotationState(str, Enum):
    START = "start"
    GENERATE_KEY_PAIR = "generate_key_pair"
    BOOTSTRAP_REMOTE = "bootstrap_remote"
    PROVISION_PUBLIC_KEY = "provision_public_key"
    VALIDATE_NEW_KEY = "validate_new_key"
    RETIRE_OLD_KEYS = "retire_old_keys"
    UPDATE_LOCAL_CONFIG = "update_local_config"
    DONE = "done"


class RotationReport(BaseModel):
    """What a rotation run did.

    ``errors`` holds the failures of the steps that run after the new key
    was validated; those are reported rather than raised.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    relationship_id: str
    state: RotationState = RotationState.START
    completed: List[RotationState] = Field(default_factory=list)
    metadata: Optional[KeyMetadata] = None
    key_pair: Optional[KeyPair] = None
    retired: List[AuthorizedKeyEntry] = Field(default_factory=list)
    config_changed: bool = False
    errors: List[RotationError] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state == RotationState.DONE and not self.errors


class RotationOrchestrator:
    """Sequences generation, provisioning, validation and cleanup.

    Old keys are only retired once the new key has opened a session on its
    own, so a failed run never leaves the relationship without a working key.
    Failures up to validation raise; later failures are logged and collected
    in the returned :class:`RotationReport`.
    """

    def __init__(
        self,
        settings: RotationSettings,
        store: AuthorizationStore,
        transport: BaseTransport,
        trust_config: Optional[LocalTrustConfig] = None,
        generator: Optional[KeyGenerator] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.store = store
        self.transport = transport
        self.trust_config = trust_config or LocalTrustConfig(settings.ssh_config)
        self.generator = generator or KeyGenerator(settings.key_dir)
        self.clock = clock
        self.relationship_id = key_metadata.compute_relationship_id(
            settings.local_user,
            settings.local_host,
            settings.remote_user,
            settings.remote_host,
        )

    # ------------------------------------------------------------------
    def _enter(self, report: RotationReport, state: RotationState) -> None:
        if report.state != RotationState.START:
            report.completed.append(report.state)
        report.state = state
        logger.info("Rotation %s: %s", self.relationship_id, state.value)

    def _annotate(self, exc: RotationError, state: RotationState) -> RotationError:
        exc.step = exc.step or state.value
        exc.host = exc.host or self.settings.remote_host
        exc.relationship_id = exc.relationship_id or self.relationship_id
        return exc

    # ------------------------------------------------------------------
    def generate_key_pair(self, report: RotationReport) -> KeyPair:
        metadata = key_metadata.issue(self.relationship_id, int(self.clock()))
        key_pair = self.generator.generate(
            self.settings.algorithm,
            self.settings.bits,
            metadata.to_comment(),
            key_filename(self.settings.algorithm, metadata),
            passphrase=self.settings.passphrase,
        )
        report.metadata = metadata
        report.key_pair = key_pair
        return key_pair

    def bootstrap_remote(self, report: RotationReport) -> None:
        self.store.ensure_bootstrap(self.settings.remote_user)

    def provision_public_key(self, report: RotationReport) -> None:
        self.store.append_key(self.settings.remote_user, report.key_pair.public_key)

    def validate_new_key(self, report: RotationReport) -> None:
        identity = report.key_pair.private_key_path
        try:
            result = self.transport.check_login(self.settings.remote_user, identity)
        except TransportError as exc:
            raise ValidationError(
                f"New key {identity} was rejected: {exc.message}"
            ) from exc
        if not result.ok:
            raise ValidationError(
                f"Session with new key {identity} exited with status {result.exit_status}"
            )

    def retire_old_keys(self, report: RotationReport) -> None:
        report.retired = self.store.retire_old_entries(
            self.settings.remote_user,
            self.relationship_id,
            report.metadata.issued_at,
            identity_file=report.key_pair.private_key_path,
        )

    def update_local_config(self, report: RotationReport) -> None:
        report.config_changed = self.trust_config.upsert_host_identity(
            self.settings.remote_host,
            self.settings.remote_user,
            report.key_pair.private_key_path.resolve(),
        )

    # ------------------------------------------------------------------
    def run(self) -> RotationReport:
        """Rotate the key pair, raising on any failure before validation."""
        report = RotationReport(relationship_id=self.relationship_id)
        logger.debug(
            "Rotating %s@%s -> %s@%s (%s-%d, key dir %s, config %s)",
            self.settings.local_user,
            self.settings.local_host,
            self.settings.remote_user,
            self.settings.remote_host,
            self.settings.algorithm,
            self.settings.bits,
            self.settings.key_dir,
            self.settings.ssh_config,
        )

        fatal_steps = [
            (RotationState.GENERATE_KEY_PAIR, self.generate_key_pair),
            (RotationState.BOOTSTRAP_REMOTE, self.bootstrap_remote),
            (RotationState.PROVISION_PUBLIC_KEY, self.provision_public_key),
            (RotationState.VALIDATE_NEW_KEY, self.validate_new_key),
        ]
        for state, step in fatal_steps:
            self._enter(report, state)
            try:
                step(report)
            except RotationError as exc:
                self._annotate(exc, state)
                raise

        reported_steps = [
            (RotationState.RETIRE_OLD_KEYS, self.retire_old_keys),
            (RotationState.UPDATE_LOCAL_CONFIG, self.update_local_config),
        ]
        for state, step in reported_steps:
            self._enter(report, state)
            try:
                step(report)
            except RotationError as exc:
                self._annotate(exc, state)
                logger.error("%s", exc)
                report.errors.append(exc)

        self._enter(report, RotationState.DONE)
        return report
