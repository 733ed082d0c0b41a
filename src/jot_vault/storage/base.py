"""Storage backend interface shared by local and remote vaults."""
from abc import ABC, abstractmethod
from typing import List, Optional

from jot_vault.models.schema import (
    BackendKind,
    Document,
    DocumentMetadata,
    VaultStructure,
)


class StorageBackend(ABC):
    """Persists documents of a vault and, where supported, its structure.

    A location is a filesystem path for local vaults and a server vault
    id for remote ones. Every failure is raised as a ``StorageError``.
    """

    kind: BackendKind

    @property
    def supports_structure(self) -> bool:
        """Whether ``read_structure``/``write_structure`` persist anything."""
        return self.kind == BackendKind.LOCAL

    @abstractmethod
    def choose_location(self) -> Optional[str]:
        """Pick a location for a new vault, or None if none is available."""
        pass

    @abstractmethod
    def initialize(self, location: str) -> None:
        """Prepare ``location`` to hold a vault."""
        pass

    @abstractmethod
    def list_ids(self, location: str) -> List[str]:
        """List the ids of every document in the vault."""
        pass

    @abstractmethod
    def read_all(self, location: str) -> List[Document]:
        """Read every document in the vault."""
        pass

    @abstractmethod
    def read(self, location: str, document_id: str) -> Document:
        """Read one document."""
        pass

    @abstractmethod
    def write(
        self,
        location: str,
        document_id: str,
        metadata: DocumentMetadata,
        body: str,
    ) -> None:
        """Replace the metadata and body of one document together."""
        pass

    @abstractmethod
    def create(self, location: str, title: str) -> Document:
        """Create an empty document titled ``title``."""
        pass

    @abstractmethod
    def delete(self, location: str, document_id: str) -> None:
        """Delete one document."""
        pass

    @abstractmethod
    def read_structure(self, location: str) -> Optional[VaultStructure]:
        """Read the vault structure; None where the backend keeps none."""
        pass

    @abstractmethod
    def write_structure(self, location: str, structure: VaultStructure) -> None:
        """Persist the vault structure."""
        pass
