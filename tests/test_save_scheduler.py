"""Tests for debounced body saves."""
import threading
import time
from unittest.mock import MagicMock

from jot_vault.exceptions import RemoteUnavailableError
from jot_vault.services.save_scheduler import SaveScheduler


def wait_for(condition, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


class TestSaveScheduler:
    """Tests for the SaveScheduler class."""

    def test_zero_delay_saves_immediately(self):
        save = MagicMock()
        scheduler = SaveScheduler(save, delay=0)

        scheduler.schedule("a", "state-1")

        save.assert_called_once_with("a", "state-1")
        assert scheduler.pending_ids == []

    def test_rapid_edits_coalesce_to_last_state(self):
        saved = []
        done = threading.Event()

        def save(document_id, state):
            saved.append((document_id, state))
            done.set()

        scheduler = SaveScheduler(save, delay=0.05)
        for i in range(5):
            scheduler.schedule("a", f"state-{i}")

        assert done.wait(2.0)
        assert wait_for(lambda: scheduler.pending_ids == [])
        assert saved == [("a", "state-4")]

    def test_documents_are_debounced_independently(self):
        save = MagicMock()
        scheduler = SaveScheduler(save, delay=0.05)

        scheduler.schedule("a", "A")
        scheduler.schedule("b", "B")

        assert wait_for(lambda: save.call_count == 2)
        save.assert_any_call("a", "A")
        save.assert_any_call("b", "B")

    def test_flush_writes_pending_now(self):
        save = MagicMock()
        scheduler = SaveScheduler(save, delay=60)

        scheduler.schedule("a", "A")
        assert scheduler.pending_ids == ["a"]
        assert save.call_count == 0

        assert scheduler.flush() == 0
        save.assert_called_once_with("a", "A")
        assert scheduler.pending_ids == []

    def test_failed_save_stays_pending(self):
        save = MagicMock(side_effect=RemoteUnavailableError("offline"))
        scheduler = SaveScheduler(save, delay=0)

        scheduler.schedule("a", "A")

        assert scheduler.pending_ids == ["a"]
        assert scheduler.flush() == 1

        save.side_effect = None
        assert scheduler.flush() == 0
        assert scheduler.pending_ids == []
        assert save.call_args.args == ("a", "A")

    def test_cancel_one_document(self):
        save = MagicMock()
        scheduler = SaveScheduler(save, delay=60)
        scheduler.schedule("a", "A")
        scheduler.schedule("b", "B")

        scheduler.cancel("a")

        assert scheduler.pending_ids == ["b"]
        scheduler.flush()
        save.assert_called_once_with("b", "B")

    def test_cancel_all(self):
        save = MagicMock()
        scheduler = SaveScheduler(save, delay=60)
        scheduler.schedule("a", "A")
        scheduler.schedule("b", "B")

        scheduler.cancel()

        assert scheduler.pending_ids == []
        assert scheduler.flush() == 0
        save.assert_not_called()
