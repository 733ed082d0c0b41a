"""Storage layer for Jot Vault."""

from jot_vault.storage.base import StorageBackend
from jot_vault.storage.local_storage import LocalStorage
from jot_vault.storage.remote_storage import RemoteStorage
from jot_vault.storage.vault_registry import VaultRegistry, create_backend

__all__ = [
    "StorageBackend",
    "LocalStorage",
    "RemoteStorage",
    "VaultRegistry",
    "create_backend",
]
