"""Cache of live replicated documents owned by one vault session."""
import logging
from threading import Lock
from typing import Dict, Optional

from pycrdt import Doc

from jot_vault.replication.codec import decode_state

logger = logging.getLogger(__name__)


class DocumentCache:
    """Live replicated documents keyed by document id.

    An entry is hydrated from the stored body the first time it is
    requested. Later requests return the same instance, so edits made by
    the editor or a sync channel stay visible to every holder.
    """

    def __init__(self):
        self._docs: Dict[str, Doc] = {}
        self._lock = Lock()

    def get(self, document_id: str, initial_state: str = "") -> Doc:
        """Get the live document, creating it from ``initial_state`` if absent."""
        with self._lock:
            doc = self._docs.get(document_id)
            if doc is None:
                doc = Doc()
                decode_state(initial_state, doc)
                self._docs[document_id] = doc
                logger.debug(f"Hydrated live document {document_id}")
            return doc

    def peek(self, document_id: str) -> Optional[Doc]:
        """Get the live document only if it is already cached."""
        with self._lock:
            return self._docs.get(document_id)

    def evict(self, document_id: str) -> None:
        with self._lock:
            self._docs.pop(document_id, None)

    def clear(self) -> None:
        """Drop every live document (vault switch or close)."""
        with self._lock:
            count = len(self._docs)
            self._docs.clear()
        if count:
            logger.debug(f"Evicted {count} live documents")

    def __contains__(self, document_id: str) -> bool:
        with self._lock:
            return document_id in self._docs

    def __len__(self) -> int:
        with self._lock:
            return len(self._docs)
