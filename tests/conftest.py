"""Common test fixtures for Jot Vault."""

import tempfile
from pathlib import Path

import pytest

from tests.fakes import InMemoryBackend
from jot_vault.config import config
from jot_vault.models.db_models import init_db
from jot_vault.models.schema import BackendKind
from jot_vault.observability import metrics
from jot_vault.services.vault_session import VaultSession
from jot_vault.storage.local_storage import LocalStorage
from jot_vault.storage.vault_registry import VaultRegistry


@pytest.fixture
def temp_dirs():
    """Create temporary directories for vaults and the registry database."""
    with tempfile.TemporaryDirectory() as vaults_dir:
        with tempfile.TemporaryDirectory() as db_dir:
            yield Path(vaults_dir), Path(db_dir)


@pytest.fixture
def test_config(temp_dirs, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    vaults_dir, db_dir = temp_dirs
    monkeypatch.setattr(config, "vaults_dir", vaults_dir)
    monkeypatch.setattr(config, "registry_path", db_dir / "test_registry.db")
    monkeypatch.setattr(config, "save_debounce", 0.0)
    yield config


@pytest.fixture
def local_storage(test_config):
    """Create a local storage backend rooted in the test vaults directory."""
    yield LocalStorage(vaults_dir=test_config.vaults_dir, cfg=test_config)


@pytest.fixture
def vault_path(local_storage):
    """An initialized, empty local vault."""
    location = local_storage.choose_location()
    local_storage.initialize(location)
    yield location


@pytest.fixture
def session(local_storage, vault_path):
    """A loaded session over an empty local vault."""
    session = VaultSession(local_storage, vault_path)
    session.load()
    yield session
    session.close()


@pytest.fixture
def registry(temp_dirs):
    """A vault registry over a fresh SQLite database."""
    _, db_dir = temp_dirs
    engine = init_db(f"sqlite:///{db_dir / 'registry.db'}")
    yield VaultRegistry(engine)
    engine.dispose()


@pytest.fixture
def memory_backend():
    """An in-memory local backend."""
    yield InMemoryBackend()


@pytest.fixture
def remote_backend():
    """An in-memory backend that behaves like a remote vault."""
    yield InMemoryBackend(kind=BackendKind.REMOTE, location="server-vault")


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with empty operation metrics."""
    metrics.reset()
    yield
