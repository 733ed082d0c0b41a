# tests/test_mcp_server.py
"""Tests for the MCP server tools."""
from unittest.mock import MagicMock, patch

import pytest

from tests.fakes import InMemoryBackend, body_from_text, make_document
from jot_vault.exceptions import RemoteUnavailableError, StorageIOError
from jot_vault.models.schema import BackendKind
from jot_vault.replication.blocks import plain_text, read_blocks
from jot_vault.server.mcp_server import JotVaultMcpServer
from jot_vault.services.vault_session import VaultSession


class TestMcpServer:
    """Tests for the JotVaultMcpServer class."""

    @pytest.fixture(autouse=True)
    def server_setup(self, session):
        """Build a server over a real local session with FastMCP mocked out."""
        self.registered_tools = {}
        self.mock_mcp = MagicMock()

        def mock_tool_decorator(*args, **kwargs):
            def tool_wrapper(func):
                self.registered_tools[kwargs.get("name")] = func
                return func
            return tool_wrapper
        self.mock_mcp.tool = mock_tool_decorator

        self.session = session
        with patch("jot_vault.server.mcp_server.FastMCP", return_value=self.mock_mcp), \
                patch("jot_vault.server.mcp_server.atexit.register"):
            self.server = JotVaultMcpServer(session, save_delay=0)
        yield
        self.server.saves.cancel()

    def tool(self, name):
        return self.registered_tools[name]

    def test_tools_are_registered(self):
        assert set(self.registered_tools) == {
            "vault_status",
            "vault_list_documents",
            "vault_get_document",
            "vault_search",
            "vault_backlinks",
            "vault_create_document",
            "vault_append_text",
            "vault_update_metadata",
            "vault_move_document",
            "vault_delete_document",
            "vault_reload",
        }

    def test_create_document_with_content(self):
        result = self.tool("vault_create_document")(
            title="Plan", content="# Goals\nShip it", tags="work, q3"
        )
        assert "created successfully" in result
        document = self.session.documents[0]
        assert document.metadata.tags == {"work", "q3"}
        assert self.session.index.get(document.id).headers[0].text == "Goals"

    def test_create_folder_and_child(self):
        self.tool("vault_create_document")(title="Projects", folder=True)
        folder = self.session.documents[0]
        result = self.tool("vault_create_document")(title="Child", parent_id=folder.id)
        assert "Document created" in result

        listing = self.tool("vault_list_documents")()
        lines = listing.splitlines()
        assert lines[0] == "2 documents:"
        assert lines[1].startswith("- Projects [folder]")
        assert lines[2].startswith("  - Child")

    def test_create_rejects_long_title(self):
        result = self.tool("vault_create_document")(title="x" * 501)
        assert result.startswith("Error: Invalid input")
        assert self.session.documents == []

    def test_empty_vault_listing(self):
        assert self.tool("vault_list_documents")() == "The vault is empty."

    def test_get_document_shows_links_and_backlinks(self):
        target = self.session.create_document("Target")
        source = self.session.create_document("Source")
        self.session.save_body(source.id, body_from_text(f"see [[{target.id}]]"))
        self.session.load()

        result = self.tool("vault_get_document")(identifier="Target")

        assert result.startswith("# Target")
        assert "## Backlinks" in result
        assert f"- Source ({source.id})" in result
        assert self.session.current_document.id == target.id

        result = self.tool("vault_get_document")(identifier=source.id)
        assert "## Links" in result
        assert f"see [[{target.id}]]" in result

    def test_get_missing_document(self):
        assert self.tool("vault_get_document")(identifier="nope") == "Document not found: nope"

    def test_search(self):
        self.session.create_document("Weekly review")
        self.session.create_document("Reading list")

        result = self.tool("vault_search")(query="RE")
        assert result.splitlines()[0] == "Found 2 documents:"
        assert "No documents match" in self.tool("vault_search")(query="zzz")

    def test_backlinks_tool(self):
        target = self.session.create_document("Target")
        assert "No documents link" in self.tool("vault_backlinks")(identifier=target.id)

    def test_append_text_saves_body(self):
        document = self.session.create_document("Log")

        result = self.tool("vault_append_text")(document_id=document.id, text="first\nsecond")

        assert result.startswith("Appended 2 lines")
        stored = self.session.backend.read(self.session.location, document.id)
        assert stored.body
        assert self.server.saves.pending_ids == []
        assert plain_text(read_blocks(self.session.live_document(document.id))) == "first\nsecond"

    def test_append_text_to_missing_document(self):
        assert "not found" in self.tool("vault_append_text")(document_id="nope", text="x")

    def test_update_metadata(self):
        document = self.session.create_document("Old")
        result = self.tool("vault_update_metadata")(
            document_id=document.id, title="New", icon="x"
        )
        assert "updated (icon, title)" in result
        assert self.session.get_document(document.id).title == "New"
        assert self.tool("vault_update_metadata")(document_id=document.id) == "Nothing to update."

    def test_update_metadata_blank_title_is_an_error(self):
        document = self.session.create_document("Named")

        result = self.tool("vault_update_metadata")(document_id=document.id, title="")

        assert result.startswith("Error:")
        assert self.session.get_document(document.id).title == "Named"

    def test_move_document(self):
        x = self.session.create_document("X")
        self.session.create_document("Y")
        z = self.session.create_document("Z")

        result = self.tool("vault_move_document")(document_id=x.id, target_id=z.id)

        assert result == f"Moved {x.id}: parent=root, position=2"

    def test_move_into_own_child_is_reported(self):
        folder = self.session.create_document("F")
        child = self.session.create_document("C", parent_id=folder.id)

        result = self.tool("vault_move_document")(
            document_id=folder.id, target_id=child.id, kind="reparent"
        )
        assert result.startswith("Error: A document cannot be moved into itself")
        assert self.session.placements()[child.id] == (folder.id, 0)

    def test_invalid_move_kind(self):
        result = self.tool("vault_move_document")(document_id="a", kind="sideways")
        assert result.startswith("Invalid move kind")

    def test_delete_document(self):
        folder = self.session.create_document("F")
        self.session.create_document("C", parent_id=folder.id)

        result = self.tool("vault_delete_document")(document_id=folder.id)

        assert result == f"Document {folder.id} deleted; moved 1 children up"
        assert self.session.get_document(folder.id) is None

    def test_status_and_reload(self):
        self.session.create_document("One")
        status = self.tool("vault_status")()
        assert f"Vault: {self.session.location}" in status
        assert "Backend: local" in status
        assert "Documents: 1" in status

        assert self.tool("vault_reload")() == "Reloaded 1 documents"


class TestErrorFormatting:
    """Tests for format_error_response."""

    @pytest.fixture
    def server(self):
        session = VaultSession(InMemoryBackend(kind=BackendKind.REMOTE), "v")
        with patch("jot_vault.server.mcp_server.FastMCP"), \
                patch("jot_vault.server.mcp_server.atexit.register"):
            yield JotVaultMcpServer(session, save_delay=0)

    def test_retryable_error_says_so(self, server):
        message = server.format_error_response(RemoteUnavailableError("offline"))
        assert message == "Error: offline (server unavailable, retry later)"

    def test_storage_error(self, server):
        assert server.format_error_response(StorageIOError("disk")) == "Error: disk"

    def test_value_error_hides_details(self, server):
        message = server.format_error_response(ValueError("secret detail"))
        assert "secret detail" not in message
        assert "ref:" in message

    def test_unexpected_error(self, server):
        assert "unexpected" in server.format_error_response(RuntimeError("x"))


def test_failed_load_shows_in_status():
    backend = InMemoryBackend()
    backend.add(make_document("A"))
    backend.fail_on["read_all"] = RemoteUnavailableError("offline")
    session = VaultSession(backend, "mem")
    with pytest.raises(RemoteUnavailableError):
        session.load()

    tools = {}
    mock_mcp = MagicMock()
    mock_mcp.tool = lambda **kwargs: (lambda func: tools.setdefault(kwargs["name"], func))
    with patch("jot_vault.server.mcp_server.FastMCP", return_value=mock_mcp), \
            patch("jot_vault.server.mcp_server.atexit.register"):
        JotVaultMcpServer(session, save_delay=0)

    assert "Error: offline" in tools["vault_status"]()
    assert tools["vault_reload"]().startswith("Error: offline")
