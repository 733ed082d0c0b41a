"""Local vault storage: one directory per vault, one file per document."""
import logging
import os
import tempfile
import threading
import uuid
from pathlib import Path
from typing import List, Optional

import yaml

from jot_vault.config import JotVaultConfig, config as default_config
from jot_vault.exceptions import (
    DocumentNotFoundError,
    ErrorCode,
    StorageError,
    StorageErrorKind,
    StorageIOError,
    StoragePermissionError,
    ValidationError,
)
from jot_vault.models.schema import (
    BackendKind,
    Document,
    DocumentMetadata,
    VaultStructure,
    validate_safe_path_component,
)
from jot_vault.storage.base import StorageBackend
from jot_vault.storage.document_format import DocumentFormat

logger = logging.getLogger(__name__)

DOCUMENT_SUFFIX = ".jt"
STRUCTURE_FILE = ".structure.json"
VAULT_MARKER = ".vault.json"


def _os_error(
    message: str, operation: str, path: Path, error: OSError
) -> StorageError:
    """Translate an OSError into the matching StorageError."""
    if isinstance(error, PermissionError):
        return StoragePermissionError(
            message, operation=operation, path=str(path), original_error=error
        )
    if isinstance(error, FileNotFoundError):
        return StorageError(
            message,
            kind=StorageErrorKind.NOT_FOUND,
            operation=operation,
            path=str(path),
            original_error=error,
        )
    return StorageIOError(
        message, operation=operation, path=str(path), original_error=error
    )


class LocalStorage(StorageBackend):
    """Vaults stored as directories on the local filesystem.

    Every write lands in a temporary file in the vault directory and is
    moved over the target with ``os.replace``, so a crash leaves either the
    old or the new file on disk.
    """

    kind = BackendKind.LOCAL

    def __init__(self, vaults_dir: Optional[Path] = None, cfg: Optional[JotVaultConfig] = None):
        self.config = cfg or default_config
        self.vaults_dir = Path(vaults_dir) if vaults_dir else None
        self.format = DocumentFormat()
        self.file_lock = threading.RLock()

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _vault_dir(self, location: str, operation: str) -> Path:
        path = Path(location)
        if not path.is_dir():
            raise StorageError(
                "Vault path does not exist",
                kind=StorageErrorKind.NOT_FOUND,
                operation=operation,
                path=str(path),
            )
        return path

    def _document_path(self, location: str, document_id: str, operation: str) -> Path:
        try:
            validate_safe_path_component(document_id, "Document ID")
        except ValueError as e:
            raise ValidationError(
                str(e),
                field="document_id",
                value=document_id,
                code=ErrorCode.PATH_TRAVERSAL_DETECTED,
            ) from e
        return self._vault_dir(location, operation) / f"{document_id}{DOCUMENT_SUFFIX}"

    def _atomic_write(self, path: Path, content: str, operation: str) -> None:
        """Write ``content`` to ``path`` through a temporary sibling file."""
        tmp_name = None
        try:
            with self.file_lock:
                fd, tmp_name = tempfile.mkstemp(
                    dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp"
                )
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, path)
                tmp_name = None
        except OSError as e:
            raise _os_error(
                f"Failed to write {path.name}", operation, path, e
            ) from e
        finally:
            if tmp_name is not None:
                try:
                    os.remove(tmp_name)
                except OSError as cleanup_err:
                    logger.warning(f"Could not remove temp file {tmp_name}: {cleanup_err}")

    def _parse_file(self, path: Path) -> Document:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
        document = self.format.parse_document(content)
        if document.id != path.stem:
            logger.warning(
                f"Document file {path.name} declares id {document.id}, using file name"
            )
            document = document.model_copy(update={"id": path.stem})
        return document

    # ------------------------------------------------------------------
    # StorageBackend
    # ------------------------------------------------------------------

    def choose_location(self) -> Optional[str]:
        """Return a fresh directory under the configured vaults directory."""
        parent = self.vaults_dir or self.config.get_vaults_dir()
        location = parent / f"vault-{uuid.uuid4().hex[:8]}"
        logger.debug(f"Chose new vault location {location}")
        return str(location)

    def initialize(self, location: str) -> None:
        path = Path(location)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise _os_error("Failed to create vault directory", "initialize", path, e) from e

        marker = path / VAULT_MARKER
        if marker.exists():
            logger.info(f"Vault already initialized at {path}")
            return
        self._atomic_write(marker, self.format.render_vault_marker(str(path)), "initialize")
        logger.info(f"Initialized vault at {path}")

    def list_ids(self, location: str) -> List[str]:
        vault_dir = self._vault_dir(location, "list_ids")
        try:
            return sorted(p.stem for p in vault_dir.glob(f"*{DOCUMENT_SUFFIX}") if p.is_file())
        except OSError as e:
            raise _os_error("Failed to list documents", "list_ids", vault_dir, e) from e

    def read_all(self, location: str) -> List[Document]:
        """Read every document, skipping files that cannot be parsed."""
        vault_dir = self._vault_dir(location, "read_all")
        documents: List[Document] = []
        failed_files: List[str] = []

        for path in sorted(vault_dir.glob(f"*{DOCUMENT_SUFFIX}")):
            if not path.is_file():
                continue
            try:
                documents.append(self._parse_file(path))
            except PermissionError as e:
                raise _os_error(f"Cannot read {path.name}", "read_all", path, e) from e
            except OSError as e:
                logger.error(f"Cannot read file {path.name}: {e}")
                failed_files.append(path.name)
            except (ValueError, yaml.YAMLError) as e:
                logger.error(f"Invalid document format in {path.name}: {e}")
                failed_files.append(path.name)

        if failed_files:
            logger.warning(
                f"Skipped {len(failed_files)} unreadable documents: "
                f"{failed_files[:5]}{'...' if len(failed_files) > 5 else ''}"
            )
        return documents

    def read(self, location: str, document_id: str) -> Document:
        path = self._document_path(location, document_id, "read")
        if not path.exists():
            raise DocumentNotFoundError(document_id, operation="read")
        try:
            return self._parse_file(path)
        except OSError as e:
            raise _os_error(f"Failed to read document {document_id}", "read", path, e) from e
        except (ValueError, yaml.YAMLError) as e:
            raise StorageIOError(
                f"Document {document_id} is malformed",
                operation="read",
                path=str(path),
                original_error=e,
            ) from e

    def write(
        self,
        location: str,
        document_id: str,
        metadata: DocumentMetadata,
        body: str,
    ) -> None:
        path = self._document_path(location, document_id, "write")
        document = Document(id=document_id, metadata=metadata, body=body)
        self._atomic_write(path, self.format.render_document(document), "write")
        logger.debug(f"Wrote document {document_id}")

    def create(self, location: str, title: str) -> Document:
        document = Document.new(title)
        path = self._document_path(location, document.id, "create")
        self._atomic_write(path, self.format.render_document(document), "create")
        logger.info(f"Created document {document.id} ({title!r})")
        return document

    def delete(self, location: str, document_id: str) -> None:
        path = self._document_path(location, document_id, "delete")
        if not path.exists():
            raise DocumentNotFoundError(document_id, operation="delete")
        try:
            with self.file_lock:
                os.remove(path)
        except OSError as e:
            raise _os_error(f"Failed to delete document {document_id}", "delete", path, e) from e
        logger.info(f"Deleted document {document_id}")

    def read_structure(self, location: str) -> Optional[VaultStructure]:
        """Read the structure file; a vault without one has an empty structure."""
        path = self._vault_dir(location, "read_structure") / STRUCTURE_FILE
        if not path.exists():
            return VaultStructure()
        try:
            with open(path, "r", encoding="utf-8") as f:
                return self.format.parse_structure(f.read())
        except OSError as e:
            raise _os_error("Failed to read vault structure", "read_structure", path, e) from e
        except (ValueError, KeyError, TypeError) as e:
            raise StorageIOError(
                "Vault structure is malformed",
                operation="read_structure",
                path=str(path),
                original_error=e,
            ) from e

    def write_structure(self, location: str, structure: VaultStructure) -> None:
        path = self._vault_dir(location, "write_structure") / STRUCTURE_FILE
        self._atomic_write(path, self.format.render_structure(structure), "write_structure")
        logger.debug(f"Wrote vault structure ({len(structure.documents)} entries)")
