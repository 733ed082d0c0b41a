"""Tests for the command line entry point."""
from pathlib import Path

from jot_vault.main import open_session, parse_args, resolve_vault
from jot_vault.models.schema import BackendKind, VaultRecord


def test_parse_args_defaults(monkeypatch):
    monkeypatch.delenv("JOT_VAULT", raising=False)
    monkeypatch.delenv("JOT_BACKEND", raising=False)
    args = parse_args([])
    assert args.vault is None
    assert args.backend == "local"


def test_parse_args_explicit():
    args = parse_args(["--vault", "team-1", "--backend", "remote", "--log-level", "DEBUG"])
    assert args.vault == "team-1"
    assert args.backend == "remote"
    assert args.log_level == "DEBUG"


class TestResolveVault:
    """Tests for picking the vault to open."""

    def test_first_run_registers_default_vault(self, registry, test_config):
        record = resolve_vault(registry, None, BackendKind.LOCAL)
        assert record.name == "Default vault"
        assert Path(record.location).parent == test_config.vaults_dir
        assert registry.get_current().id == record.id

    def test_reuses_current_vault(self, registry, test_config):
        existing = registry.add_vault("Notes", "/tmp/notes")
        assert resolve_vault(registry, None, BackendKind.LOCAL).id == existing.id

    def test_finds_vault_by_name(self, registry, test_config):
        wanted = registry.add_vault("Notes", "/tmp/notes")
        registry.add_vault("Other", "/tmp/other")
        record = resolve_vault(registry, "Notes", BackendKind.LOCAL)
        assert record.id == wanted.id
        assert registry.get_current().id == wanted.id

    def test_registers_new_local_path(self, registry, test_config, tmp_path):
        record = resolve_vault(registry, str(tmp_path / "fresh"), BackendKind.LOCAL)
        assert record.name == "fresh"
        assert record.location == str((tmp_path / "fresh").resolve())

    def test_registers_remote_vault(self, registry, test_config):
        record = resolve_vault(registry, "42", BackendKind.REMOTE)
        assert record.backend == BackendKind.REMOTE
        assert record.location == "42"
        assert record.name == "remote-42"


def test_open_session_initializes_missing_local_vault(test_config, tmp_path):
    location = tmp_path / "new-vault"
    session = open_session(VaultRecord(name="New", location=str(location)))
    assert location.is_dir()
    assert session.error is None
    assert session.documents == []


def test_open_session_keeps_load_error(test_config, tmp_path):
    location = tmp_path / "vault"
    location.mkdir()
    (location / ".structure.json").write_text("{broken")

    session = open_session(VaultRecord(name="Broken", location=str(location)))

    assert session.error == "Vault structure is malformed"
