"""Vault session: the single owner of the active vault's state.

The session loads a vault through one storage backend, rebuilds the index
after every structural change and publishes documents, index and
structure together as one immutable snapshot. Mutators write to storage
first and only then replace the snapshot, so readers never observe a
state that failed to persist.

Mutators hold the session lock across their whole read-modify-write, so
a debounced body save running on a timer thread cannot interleave with a
metadata or structure write to the same record.
"""
import logging
import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pycrdt import Doc

from jot_vault.exceptions import (
    DocumentNotFoundError,
    ErrorCode,
    JotVaultError,
    StorageError,
    StorageErrorKind,
    StructureValidationError,
    ValidationError,
)
from jot_vault.models.schema import (
    Document,
    DocumentType,
    MoveKind,
    StructureMove,
    SyncStatus,
    VaultIndex,
    VaultSnapshot,
    VaultStructure,
)
from jot_vault.observability import timed_operation
from jot_vault.replication.cache import DocumentCache
from jot_vault.services.index_builder import build_index
from jot_vault.services.structure_resolver import (
    detach,
    place_new,
    resolve_move,
    resolve_placements,
)
from jot_vault.storage.base import StorageBackend

logger = logging.getLogger(__name__)


class VaultSession:
    """Owns the active vault: backend, snapshot, current document and status."""

    def __init__(self, backend: StorageBackend, location: Optional[str] = None):
        self.backend = backend
        self.location = location
        self.cache = DocumentCache()
        self._snapshot = VaultSnapshot()
        self._current: Optional[Document] = None
        self._loading = False
        self._error: Optional[str] = None
        self._sync = SyncStatus()
        # Reentrant: update_metadata goes through batch_update_metadata
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> VaultSnapshot:
        return self._snapshot

    @property
    def documents(self) -> List[Document]:
        return list(self._snapshot.documents)

    @property
    def index(self) -> Optional[VaultIndex]:
        return self._snapshot.index

    @property
    def structure(self) -> Optional[VaultStructure]:
        """Stored structure; None for backends that keep none."""
        return self._snapshot.structure

    @property
    def current_document(self) -> Optional[Document]:
        return self._current

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> Optional[str]:
        """Raw message of the last failed load, cleared by a successful one."""
        return self._error

    @property
    def sync_status(self) -> SyncStatus:
        return self._sync

    def set_sync_status(self, connected: bool, synced: bool) -> None:
        """Publish the state of the external synchronization channel."""
        self._sync = SyncStatus(connected=connected, synced=synced)
        logger.debug(f"Sync status: connected={connected} synced={synced}")

    def get_document(self, document_id: str) -> Optional[Document]:
        """Get a document from the current snapshot."""
        return self._snapshot.get(document_id)

    def placements(self) -> Dict[str, Any]:
        """Effective ``{id: (parent_id, order)}`` for presentation."""
        return resolve_placements(self._snapshot.documents, self._snapshot.structure)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_location(self) -> str:
        if not self.location:
            raise StorageError(
                "No vault is open",
                kind=StorageErrorKind.NOT_FOUND,
                operation="session",
            )
        return self.location

    def _require_document(self, document_id: str, operation: str) -> Document:
        document = self._snapshot.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id, operation=operation)
        return document

    def _rebuild(self, affected: Iterable[str] = ()) -> None:
        """Re-read the vault, rebuild the index and publish a new snapshot."""
        location = self._require_location()
        documents = self.backend.read_all(location)
        structure = self.backend.read_structure(location)
        index = build_index(documents)
        self._snapshot = VaultSnapshot.build(documents, index, structure)

        if self._current is not None:
            fresh = self._snapshot.get(self._current.id)
            if fresh is None:
                self._current = None
            elif self._current.id in set(affected):
                self._current = fresh

    def _write_metadata(self, document_id: str, updates: Mapping[str, Any]) -> Document:
        """Merge ``updates`` into the stored metadata and write it back.

        The stored record is read first so a body saved since the last
        rebuild is not overwritten by the snapshot's copy. Callers hold
        the session lock.
        """
        location = self._require_location()
        stored = self.backend.read(location, document_id)
        try:
            metadata = stored.metadata.merged(updates)
        except ValueError as e:
            raise ValidationError(str(e), field="metadata", value=dict(updates)) from e
        self.backend.write(location, document_id, metadata, stored.body)
        return stored.model_copy(update={"metadata": metadata})

    def _check_parent_change(
        self,
        document_id: str,
        parent_id: Optional[str],
        structure: Optional[VaultStructure],
    ) -> VaultStructure:
        """Validate a new parent and compute the structure that places it there."""
        move = StructureMove(active_id=document_id, target_id=parent_id, kind=MoveKind.REPARENT)
        return resolve_move(self._snapshot.documents, structure, move, require_folder=False)

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Load the vault and build its index.

        On failure the raw message is kept in ``error`` and the error is
        re-raised; the previous snapshot stays published.
        """
        location = self._require_location()
        with self._lock:
            self._loading = True
            try:
                with timed_operation("load", location=location) as op:
                    self._rebuild(affected=[self._current.id] if self._current else [])
                    op["document_count"] = len(self._snapshot.documents)
                self._error = None
                logger.info(
                    f"Loaded vault {location}: {len(self._snapshot.documents)} documents"
                )
            except JotVaultError as e:
                self._error = e.message
                logger.error(f"Failed to load vault {location}: {e}")
                raise
            finally:
                self._loading = False

    def initialize_vault(self, location: Optional[str] = None) -> str:
        """Create a vault (at ``location`` or one the backend picks) and load it."""
        with self._lock:
            with timed_operation("initialize_vault", location=location):
                location = location or self.backend.choose_location()
                if not location:
                    raise StorageError(
                        "No location available for a new vault",
                        kind=StorageErrorKind.NOT_FOUND,
                        operation="initialize_vault",
                    )
                self.backend.initialize(location)
            self.close()
            self.location = location
            self.load()
        return location

    def create_document(
        self,
        title: str,
        doc_type: Optional[DocumentType] = None,
        parent_id: Optional[str] = None,
    ) -> Document:
        """Create a document, place it last in its group and open it."""
        if not title or not title.strip():
            raise ValidationError("Title is required", field="title")
        location = self._require_location()

        with self._lock:
            if parent_id is not None:
                self._require_document(parent_id, "create_document")

            with timed_operation("create_document", title=title[:50]) as op:
                document = self.backend.create(location, title.strip())
                op["document_id"] = document.id

                updates: Dict[str, Any] = {}
                if doc_type is not None:
                    updates["type"] = doc_type
                if parent_id is not None:
                    updates["parent_id"] = parent_id
                if updates:
                    document = self._write_metadata(document.id, updates)

                if self.backend.supports_structure:
                    documents = list(self._snapshot.documents) + [document]
                    structure = place_new(
                        documents, self._snapshot.structure, document.id, parent_id
                    )
                    self.backend.write_structure(location, structure)

                self._rebuild()
                self._current = self._snapshot.get(document.id) or document
            return self._current

    def open_document(self, document_id: str) -> Document:
        """Make a document current and hydrate its live replicated body."""
        location = self._require_location()
        with self._lock:
            with timed_operation("open_document", document_id=document_id):
                document = self.backend.read(location, document_id)
                self.cache.get(document_id, document.body)
                self._current = document
        return document

    def save_body(self, document_id: str, encoded_state: str) -> Document:
        """Persist a new body. The index is not rebuilt.

        Call sites debounce this (see ``SaveScheduler``), so it may run on
        a timer thread.
        """
        location = self._require_location()
        with self._lock:
            with timed_operation("save_body", document_id=document_id):
                stored = self.backend.read(location, document_id)
                metadata = stored.metadata.merged({})
                self.backend.write(location, document_id, metadata, encoded_state)
                document = stored.model_copy(
                    update={"metadata": metadata, "body": encoded_state}
                )
                if self._current is not None and self._current.id == document_id:
                    self._current = document
        return document

    def update_metadata(self, document_id: str, updates: Mapping[str, Any]) -> Document:
        """Apply a partial metadata update and rebuild."""
        with self._lock:
            self.batch_update_metadata({document_id: updates})
            return self._require_document(document_id, "update_metadata")

    def batch_update_metadata(self, updates: Mapping[str, Mapping[str, Any]]) -> None:
        """Apply several partial metadata updates with a single rebuild.

        Updates are written in order. If one fails, the ones already
        written stay and the snapshot is rebuilt before the error is raised.
        """
        location = self._require_location()
        with self._lock, timed_operation("update_metadata", count=len(updates)):
            for document_id in updates:
                self._require_document(document_id, "update_metadata")
            written: List[str] = []
            # Structure as of the updates applied so far in this batch
            running = self._snapshot.structure
            try:
                for document_id, partial in updates.items():
                    structure = None
                    if "parent_id" in partial:
                        placements = resolve_placements(self._snapshot.documents, running)
                        if partial["parent_id"] != placements[document_id][0]:
                            structure = self._check_parent_change(
                                document_id, partial["parent_id"], running
                            )
                    self._write_metadata(document_id, partial)
                    if structure is not None:
                        running = structure
                        if self.backend.supports_structure:
                            self.backend.write_structure(location, structure)
                    written.append(document_id)
            finally:
                if written:
                    self._rebuild(affected=written)

    def apply_structure_move(self, move: StructureMove) -> Optional[VaultStructure]:
        """Apply a drag gesture, persist it and rebuild.

        Remote vaults accept only reparenting, recorded in ``parent_id``.
        For a reparent the parent field is written before the structure;
        if a later write fails the snapshot is still rebuilt from what
        reached storage.

        Raises:
            StructureValidationError: If the move is invalid; nothing is written
        """
        location = self._require_location()
        with self._lock, timed_operation(
            "apply_structure_move", active=move.active_id, kind=move.kind.value
        ):
            if not self.backend.supports_structure and move.kind == MoveKind.REORDER:
                raise StructureValidationError(
                    "This vault has no sibling order to change",
                    active_id=move.active_id,
                    target_id=move.target_id,
                    code=ErrorCode.STRUCTURE_UNSUPPORTED,
                )

            structure = resolve_move(
                self._snapshot.documents, self._snapshot.structure, move
            )

            wrote = False
            try:
                if move.kind == MoveKind.REPARENT:
                    active = self._snapshot.get(move.active_id)
                    if active.metadata.parent_id != move.target_id:
                        self._write_metadata(move.active_id, {"parent_id": move.target_id})
                        wrote = True

                if self.backend.supports_structure:
                    self.backend.write_structure(location, structure)
                    wrote = True
            finally:
                if wrote:
                    self._rebuild(affected=[move.active_id])
            return self._snapshot.structure

    def delete_document(self, document_id: str) -> List[str]:
        """Delete a document; its children move up to its parent.

        Returns:
            Ids of the children that were moved
        """
        location = self._require_location()

        with self._lock:
            self._require_document(document_id, "delete_document")
            with timed_operation("delete_document", document_id=document_id) as op:
                placements = self.placements()
                new_parent = placements.get(document_id, (None, 0))[0]
                structure, lifted = detach(
                    self._snapshot.documents, self._snapshot.structure, document_id
                )

                self.backend.delete(location, document_id)
                self.cache.evict(document_id)

                for child_id in lifted:
                    self._write_metadata(child_id, {"parent_id": new_parent})
                if self.backend.supports_structure:
                    self.backend.write_structure(location, structure)

                self._rebuild(affected=lifted)
                if self._current is not None and self._current.id == document_id:
                    self._current = None
                op["lifted"] = len(lifted)

        if lifted:
            logger.info(f"Moved {len(lifted)} children of {document_id} to {new_parent or 'root'}")
        return lifted

    # ------------------------------------------------------------------
    # Live documents
    # ------------------------------------------------------------------

    def live_document(self, document_id: str) -> Doc:
        """Get the live replicated body of a document, hydrating it once."""
        cached = self.cache.peek(document_id)
        if cached is not None:
            return cached
        location = self._require_location()
        with self._lock:
            document = self.backend.read(location, document_id)
            return self.cache.get(document_id, document.body)

    def close(self) -> None:
        """Drop live documents and the snapshot (vault switch)."""
        with self._lock:
            self.cache.clear()
            self._snapshot = VaultSnapshot()
            self._current = None
            self._error = None
