import getpass
import platform

import pytest
from typer.testing import CliRunner

from sshkeyrotate import metadata
from sshkeyrotate.cli import app
from sshkeyrotate.constants import TOOL_VERSION


@pytest.fixture(autouse=True)
def local_identity(monkeypatch):
    monkeypatch.setattr(getpass, "getuser", lambda: "alice")
    monkeypatch.setattr(platform, "node", lambda: "laptop")


@pytest.fixture
def config_file(tmp_path):
    remote_home = tmp_path / "remote"
    remote_home.mkdir()
    path = tmp_path / "sshkeyrotate.yaml"
    path.write_text(
        f"""
transport:
  backend: local
  local_home: {remote_home}
keys:
  algorithm: ed25519
  directory: {tmp_path / "keys"}
ssh_config: {tmp_path / "ssh" / "config"}
"""
    )
    return path


def test_version_option():
    result = CliRunner().invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.strip() == TOOL_VERSION


def test_relationship_command_prints_id():
    result = CliRunner().invoke(app, ["relationship", "-u", "bob", "-h", "server1"])
    assert result.exit_code == 0, result.output
    assert result.output.strip() == metadata.compute_relationship_id(
        "alice", "laptop", "bob", "server1"
    )


def test_rotate_requires_user_and_host():
    result = CliRunner().invoke(app, ["rotate", "-h", "server1"])
    assert result.exit_code != 0


def test_rotate_and_list_keys(tmp_path, config_file):
    runner = CliRunner()
    result = runner.invoke(
        app, ["rotate", "-u", "bob", "-h", "server1", "-c", str(config_file)]
    )
    assert result.exit_code == 0, f"Command failed: {result.output}"
    assert "New key:" in result.output
    assert "Retired keys: 0" in result.output

    authorized = (tmp_path / "remote" / ".ssh" / "authorized_keys").read_text().splitlines()
    assert len(authorized) == 1
    assert authorized[0].startswith("ssh-ed25519 ")
    assert "IdentityFile" in (tmp_path / "ssh" / "config").read_text()

    listing = runner.invoke(app, ["keys", "-u", "bob", "-h", "server1", "-c", str(config_file)])
    assert listing.exit_code == 0, listing.output
    rid = metadata.compute_relationship_id("alice", "laptop", "bob", "server1")
    assert listing.output.startswith(rid + "\t")


def test_rotate_reports_fatal_failure(config_file):
    result = CliRunner().invoke(
        app,
        ["rotate", "-u", "bob", "-h", "server1", "-t", "dsa", "-c", str(config_file)],
    )
    assert result.exit_code == 1
    assert "Rotation failed" in result.output


def test_rotate_rejects_unsafe_host(config_file):
    result = CliRunner().invoke(
        app, ["rotate", "-u", "bob", "-h", "-oProxyCommand=x", "-c", str(config_file)]
    )
    assert result.exit_code != 0


def test_rotate_exits_with_incomplete_status_when_config_cannot_be_written(tmp_path, config_file):
    blocker = tmp_path / "ssh"
    blocker.write_text("")
    result = CliRunner().invoke(
        app, ["rotate", "-u", "bob", "-h", "server1", "-c", str(config_file)]
    )
    assert result.exit_code == 2, result.output
    assert "Warning:" in result.output


def test_keys_fails_when_remote_file_is_missing(config_file):
    result = CliRunner().invoke(
        app, ["keys", "-u", "bob", "-h", "server1", "-c", str(config_file)]
    )
    assert result.exit_code == 1


def test_keys_without_tagged_entries(tmp_path, config_file):
    ssh_dir = tmp_path / "remote" / ".ssh"
    ssh_dir.mkdir()
    (ssh_dir / "authorized_keys").write_text("ssh-rsa AAAAuntagged carol@desktop\n")
    result = CliRunner().invoke(
        app, ["keys", "-u", "bob", "-h", "server1", "-c", str(config_file)]
    )
    assert result.exit_code == 0, result.output
    assert "No tagged keys found" in result.output


def test_rotate_ecdsa_without_explicit_size(tmp_path, config_file):
    result = CliRunner().invoke(
        app, ["rotate", "-u", "bob", "-h", "server1", "-t", "ecdsa", "-c", str(config_file)]
    )
    assert result.exit_code == 0, result.output
    authorized = (tmp_path / "remote" / ".ssh" / "authorized_keys").read_text()
    assert authorized.startswith("ecdsa-sha2-nistp256 ")
