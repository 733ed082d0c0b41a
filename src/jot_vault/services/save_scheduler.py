"""Debounced body saves for documents being edited."""
import logging
import threading
from typing import Callable, Dict, List, Optional

from jot_vault.exceptions import JotVaultError

logger = logging.getLogger(__name__)

SaveCallback = Callable[[str, str], None]


class SaveScheduler:
    """Coalesce body saves per document over a quiescence window.

    Each ``schedule`` call replaces the pending state of that document and
    restarts its timer; only the last state is written once the document
    has been quiet for ``delay`` seconds. A failed save keeps the state
    pending so the next ``schedule`` or ``flush`` writes it.
    """

    def __init__(self, save: SaveCallback, delay: float = 0.5):
        self._save = save
        self._delay = delay
        self._lock = threading.Lock()
        self._pending: Dict[str, str] = {}
        self._timers: Dict[str, threading.Timer] = {}

    @property
    def pending_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._pending)

    def schedule(self, document_id: str, state: str) -> None:
        """Record the latest state of a document and restart its timer."""
        if self._delay <= 0:
            with self._lock:
                self._pending[document_id] = state
            self._write(document_id)
            return

        with self._lock:
            self._pending[document_id] = state
            timer = self._timers.pop(document_id, None)
            if timer is not None:
                timer.cancel()
            timer = threading.Timer(self._delay, self._write, args=(document_id,))
            timer.daemon = True
            self._timers[document_id] = timer
            timer.start()

    def _write(self, document_id: str) -> bool:
        """Save the pending state of one document. Never raises."""
        with self._lock:
            self._timers.pop(document_id, None)
            state: Optional[str] = self._pending.get(document_id)
        if state is None:
            return True
        try:
            self._save(document_id, state)
        except JotVaultError as e:
            logger.error(f"Saving document {document_id} failed: {e}")
            return False
        with self._lock:
            # A newer state may have arrived while saving
            if self._pending.get(document_id) == state:
                del self._pending[document_id]
        logger.debug(f"Saved document {document_id}")
        return True

    def flush(self) -> int:
        """Write every pending state now.

        Returns:
            Number of documents that failed to save
        """
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            ids = list(self._pending)
        failures = sum(1 for document_id in ids if not self._write(document_id))
        if ids:
            logger.info(f"Flushed {len(ids)} pending saves ({failures} failed)")
        return failures

    def cancel(self, document_id: Optional[str] = None) -> None:
        """Drop pending saves for one document, or for all when None."""
        with self._lock:
            ids = [document_id] if document_id is not None else list(self._pending)
            for key in ids:
                timer = self._timers.pop(key, None)
                if timer is not None:
                    timer.cancel()
                self._pending.pop(key, None)
