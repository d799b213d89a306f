"""Tests for the rotation state machine, with in-memory collaborators."""

import pytest

from sshkeyrotate import metadata
from sshkeyrotate.config import RotationSettings
from sshkeyrotate.errors import (
    CollisionError,
    LocalConfigError,
    RemoteCleanupError,
    RemoteSetupError,
    RemoteWriteError,
    TransportError,
    ValidationError,
)
from sshkeyrotate.keys import public_key_blob
from sshkeyrotate.rotation import RotationOrchestrator, RotationState
from sshkeyrotate.stores import InMemoryAuthorizationStore
from sshkeyrotate.transports.base import BaseTransport, CommandResult
from sshkeyrotate.trust_config import LocalTrustConfig

NOW = 1700000000


class StoreBackedTransport(BaseTransport):
    """Accepts an identity iff its public key is in the in-memory store."""

    def __init__(self, store, accept=True):
        super().__init__("server1")
        self.store = store
        self.accept = accept
        self.logins = []

    def run(self, user, command, stdin=None, identity_file=None):
        self.logins.append(identity_file)
        public = (identity_file.parent / f"{identity_file.name}.pub").read_text()
        listed = any(
            public_key_blob(line) == public_key_blob(public)
            for line in self.store.files.get(user, [])
        )
        if not (self.accept and listed):
            raise TransportError("Permission denied (publickey)")
        return CommandResult(exit_status=0)


class FailingStore(InMemoryAuthorizationStore):
    def __init__(self, fail_on, initial=None):
        super().__init__(initial)
        self.fail_on = fail_on

    def ensure_bootstrap(self, user, identity_file=None):
        if self.fail_on == "bootstrap":
            raise RemoteSetupError("mkdir: permission denied")
        super().ensure_bootstrap(user, identity_file)

    def append_key(self, user, public_key_text, identity_file=None):
        if self.fail_on == "append":
            raise RemoteWriteError("disk full")
        super().append_key(user, public_key_text, identity_file)

    def retire_old_entries(self, user, relationship_id, keep_issued_at, identity_file=None):
        if self.fail_on == "retire":
            raise RemoteCleanupError("mv: read-only file system")
        return super().retire_old_entries(user, relationship_id, keep_issued_at, identity_file)


def _settings(tmp_path, **overrides):
    values = dict(
        remote_user="bob",
        remote_host="server1",
        local_user="alice",
        local_host="laptop",
        algorithm="ed25519",
        bits=256,
        key_dir=tmp_path / "keys",
        ssh_config=tmp_path / "ssh" / "config",
    )
    values.update(overrides)
    return RotationSettings(**values)


def _rid():
    return metadata.compute_relationship_id("alice", "laptop", "bob", "server1")


def _tagged(name, serial, rid=None):
    return f"ssh-ed25519 AAAA{name} " + metadata.encode("0.2.0", rid or _rid(), serial)


def _orchestrator(tmp_path, store, transport=None, clock=lambda: NOW, **overrides):
    settings = _settings(tmp_path, **overrides)
    return RotationOrchestrator(
        settings,
        store,
        transport or StoreBackedTransport(store),
        clock=clock,
    )


def test_successful_rotation_walks_every_state(tmp_path):
    store = InMemoryAuthorizationStore()
    report = _orchestrator(tmp_path, store).run()

    assert report.ok
    assert report.completed == [
        RotationState.GENERATE_KEY_PAIR,
        RotationState.BOOTSTRAP_REMOTE,
        RotationState.PROVISION_PUBLIC_KEY,
        RotationState.VALIDATE_NEW_KEY,
        RotationState.RETIRE_OLD_KEYS,
        RotationState.UPDATE_LOCAL_CONFIG,
    ]
    assert report.state == RotationState.DONE
    assert report.metadata.issued_at == NOW
    assert report.metadata.relationship_id == _rid()
    assert report.key_pair.private_key_path.name == f"id_ed25519_{_rid()}_{NOW}"
    assert store.files["bob"] == [report.key_pair.public_key]
    assert report.config_changed


def test_rotation_retires_only_older_issuances_of_the_relationship(tmp_path):
    foreign = "ssh-rsa AAAAforeign carol@desktop"
    other = _tagged("other", 10, rid="f" * 32)
    store = InMemoryAuthorizationStore(
        {"bob": [_tagged("old1", 10), foreign, _tagged("old2", 20), other]}
    )

    report = _orchestrator(tmp_path, store).run()

    assert report.ok
    assert [e.line for e in report.retired] == [_tagged("old1", 10), _tagged("old2", 20)]
    assert store.files["bob"] == [foreign, other, report.key_pair.public_key]


def test_retirement_uses_the_new_key(tmp_path):
    store = InMemoryAuthorizationStore()
    transport = StoreBackedTransport(store)
    orchestrator = _orchestrator(tmp_path, store, transport)
    seen = []
    original = store.retire_old_entries

    def spy(user, relationship_id, keep_issued_at, identity_file=None):
        seen.append(identity_file)
        return original(user, relationship_id, keep_issued_at, identity_file)

    store.retire_old_entries = spy
    report = orchestrator.run()

    assert seen == [report.key_pair.private_key_path]
    assert transport.logins == [report.key_pair.private_key_path]


def test_validation_failure_keeps_old_keys_and_config(tmp_path):
    old = _tagged("old", 10)
    store = InMemoryAuthorizationStore({"bob": [old]})
    orchestrator = _orchestrator(tmp_path, store, StoreBackedTransport(store, accept=False))

    with pytest.raises(ValidationError) as excinfo:
        orchestrator.run()

    assert excinfo.value.step == RotationState.VALIDATE_NEW_KEY.value
    assert excinfo.value.host == "server1"
    assert excinfo.value.relationship_id == _rid()
    assert store.files["bob"][0] == old
    assert len(store.files["bob"]) == 2
    assert metadata.is_same_issuance(store.files["bob"][1], _rid(), NOW)
    assert not (tmp_path / "ssh" / "config").exists()


def test_non_zero_login_status_is_a_validation_failure(tmp_path):
    class RefusingTransport(BaseTransport):
        def run(self, user, command, stdin=None, identity_file=None):
            return CommandResult(exit_status=1)

    store = InMemoryAuthorizationStore()
    with pytest.raises(ValidationError):
        _orchestrator(tmp_path, store, RefusingTransport("server1")).run()


@pytest.mark.parametrize(
    "fail_on,error",
    [("bootstrap", RemoteSetupError), ("append", RemoteWriteError)],
)
def test_failures_before_validation_abort(tmp_path, fail_on, error):
    old = _tagged("old", 10)
    store = FailingStore(fail_on, {"bob": [old]})

    with pytest.raises(error) as excinfo:
        _orchestrator(tmp_path, store).run()

    assert excinfo.value.step is not None
    assert store.files["bob"] == [old]
    assert not (tmp_path / "ssh" / "config").exists()


def test_generation_collision_aborts_before_touching_remote(tmp_path):
    store = InMemoryAuthorizationStore()
    _orchestrator(tmp_path, store).run()

    second_store = InMemoryAuthorizationStore()
    with pytest.raises(CollisionError) as excinfo:
        _orchestrator(tmp_path, second_store).run()

    assert excinfo.value.step == RotationState.GENERATE_KEY_PAIR.value
    assert second_store.files == {}


def test_cleanup_failure_is_reported_and_config_still_updated(tmp_path):
    old = _tagged("old", 10)
    store = FailingStore("retire", {"bob": [old]})

    report = _orchestrator(tmp_path, store).run()

    assert not report.ok
    assert report.state == RotationState.DONE
    assert len(report.errors) == 1
    assert isinstance(report.errors[0], RemoteCleanupError)
    assert report.errors[0].step == RotationState.RETIRE_OLD_KEYS.value
    assert old in store.files["bob"]
    trust = LocalTrustConfig(tmp_path / "ssh" / "config")
    assert trust.find_host("server1").identity_file == str(report.key_pair.private_key_path.resolve())


def test_local_config_failure_is_reported(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    store = InMemoryAuthorizationStore({"bob": [_tagged("old", 10)]})

    report = _orchestrator(tmp_path, store, ssh_config=blocker / "config").run()

    assert [type(e) for e in report.errors] == [LocalConfigError]
    assert report.errors[0].relationship_id == _rid()
    assert store.files["bob"] == [report.key_pair.public_key]


def test_rerun_after_partial_failure_converges(tmp_path):
    store = InMemoryAuthorizationStore({"bob": [_tagged("old", 10)]})
    with pytest.raises(ValidationError):
        _orchestrator(tmp_path, store, StoreBackedTransport(store, accept=False)).run()
    assert len(store.files["bob"]) == 2

    report = _orchestrator(tmp_path, store, clock=lambda: NOW + 60).run()

    assert report.ok
    assert len(report.retired) == 2
    assert store.files["bob"] == [report.key_pair.public_key]
