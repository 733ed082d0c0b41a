"""MCP server exposing a vault session as tools."""

import atexit
import logging
import uuid
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from jot_vault.config import config
from jot_vault.exceptions import IndexParseError, JotVaultError
from jot_vault.models.schema import Document, DocumentType, MoveKind, StructureMove
from jot_vault.observability import metrics, timed_operation
from jot_vault.replication.blocks import paragraphs, plain_text, read_blocks, write_blocks
from jot_vault.replication.codec import encode_state
from jot_vault.services.index_builder import (
    backlinks_for,
    extract_headers,
    find_by_title,
    search_documents,
)
from jot_vault.services.save_scheduler import SaveScheduler
from jot_vault.services.vault_session import VaultSession

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 500
MAX_CONTENT_LENGTH = 1_000_000  # 1 MB


def _validate_input_lengths(
    title: Optional[str] = None, content: Optional[str] = None
) -> None:
    """Validate input string lengths at the MCP boundary."""
    if title and len(title) > MAX_TITLE_LENGTH:
        raise ValueError(
            f"Title exceeds maximum length of {MAX_TITLE_LENGTH} characters"
        )
    if content and len(content) > MAX_CONTENT_LENGTH:
        raise ValueError(
            f"Content exceeds maximum length of {MAX_CONTENT_LENGTH} characters"
        )


def _split_tags(tags: Optional[str]) -> List[str]:
    if not tags:
        return []
    return [t.strip() for t in tags.split(",") if t.strip()]


class JotVaultMcpServer:
    """MCP server for one open vault."""

    def __init__(self, session: VaultSession, save_delay: Optional[float] = None):
        """Initialize the MCP server.

        Args:
            session: A session whose vault is already loaded
            save_delay: Debounce window for body saves; defaults to config
        """
        self.mcp = FastMCP(config.server_name)
        self.session = session
        self.saves = SaveScheduler(
            session.save_body,
            config.save_debounce if save_delay is None else save_delay,
        )
        atexit.register(self._shutdown)
        self._register_tools()
        logger.info("Jot Vault MCP server initialized")

    def _shutdown(self) -> None:
        """Write pending body saves on exit."""
        self.saves.flush()

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Args:
            error: The exception that occurred

        Returns:
            Formatted error message with appropriate level of detail
        """
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, JotVaultError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            retry = " (server unavailable, retry later)" if getattr(error, "retryable", False) else ""
            return f"Error: {error.message}{retry}"
        elif isinstance(error, ValueError):
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        elif isinstance(error, (IOError, OSError)):
            logger.error(f"File system error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: A file system error occurred (ref: {error_id})"
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _resolve(self, identifier: str) -> Optional[Document]:
        """Find a document by id, then by exact title."""
        identifier = identifier.strip()
        document = self.session.get_document(identifier)
        if document is None and self.session.index is not None:
            entry = find_by_title(self.session.index, identifier)
            if entry is not None:
                document = self.session.get_document(entry.id)
        return document

    def _render_tree(self) -> List[str]:
        placements = self.session.placements()
        children = {}
        for doc_id, (parent, order) in placements.items():
            children.setdefault(parent, []).append((order, doc_id))

        lines: List[str] = []

        def walk(parent: Optional[str], depth: int) -> None:
            for _, doc_id in sorted(children.get(parent, [])):
                doc = self.session.get_document(doc_id)
                marker = " [folder]" if doc.metadata.is_folder else ""
                icon = f"{doc.metadata.icon} " if doc.metadata.icon else ""
                lines.append(f"{'  ' * depth}- {icon}{doc.title}{marker} ({doc.id})")
                walk(doc_id, depth + 1)

        walk(None, 0)
        return lines

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="vault_status")
        def vault_status() -> str:
            """Show the state of the open vault."""
            session = self.session
            sync = session.sync_status
            index = session.index
            lines = [
                f"Vault: {session.location or '(none)'}",
                f"Backend: {session.backend.kind.value}",
                f"Documents: {len(session.documents)}",
                f"Index updated: {index.last_updated.isoformat() if index else 'never'}",
                f"Loading: {'yes' if session.is_loading else 'no'}",
                f"Sync: connected={sync.connected} synced={sync.synced}",
                f"Pending saves: {len(self.saves.pending_ids)}",
            ]
            if session.error:
                lines.append(f"Error: {session.error}")
            summary = metrics.get_summary()
            lines.append(
                f"Operations: {summary['total_operations']} "
                f"({summary['total_errors']} failed)"
            )
            return "\n".join(lines)

        @self.mcp.tool(name="vault_list_documents")
        def vault_list_documents() -> str:
            """List every document as a tree, in sibling order."""
            try:
                lines = self._render_tree()
                if not lines:
                    return "The vault is empty."
                return f"{len(lines)} documents:\n" + "\n".join(lines)
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="vault_get_document")
        def vault_get_document(identifier: str) -> str:
            """Open a document and show its metadata, outline, links and text.
            Args:
                identifier: The document ID or exact title
            """
            with timed_operation("vault_get_document", identifier=identifier[:30]) as op:
                try:
                    document = self._resolve(identifier)
                    if document is None:
                        op["found"] = False
                        return f"Document not found: {identifier}"
                    document = self.session.open_document(document.id)
                    meta = document.metadata

                    lines = [
                        f"# {meta.title}",
                        f"ID: {document.id}",
                        f"Type: {meta.type.value if meta.type else 'document'}",
                        f"Created: {meta.created.isoformat()}",
                        f"Modified: {meta.modified.isoformat()}",
                    ]
                    if meta.tags:
                        lines.append(f"Tags: {', '.join(sorted(meta.tags))}")
                    if meta.description:
                        lines.append(f"Description: {meta.description}")
                    if meta.parent_id:
                        lines.append(f"Parent: {meta.parent_id}")

                    try:
                        blocks = read_blocks(self.session.live_document(document.id))
                    except IndexParseError as e:
                        logger.warning(f"Unreadable content in {document.id}: {e}")
                        blocks = None

                    entry = self.session.index.get(document.id) if self.session.index else None
                    if blocks is not None:
                        headers = extract_headers(blocks)
                        if headers:
                            lines.append("\n## Outline")
                            for h in headers:
                                lines.append(f"{'  ' * (h.level - 1)}- {h.text} (#{h.slug})")
                    if entry and entry.links:
                        lines.append("\n## Links")
                        lines.extend(f"- [[{target}]]" for target in entry.links)
                    backlinks = backlinks_for(self.session.index, document.id) if self.session.index else []
                    if backlinks:
                        lines.append("\n## Backlinks")
                        lines.extend(f"- {title} ({source})" for source, title in backlinks)

                    lines.append("\n## Content")
                    if blocks is None:
                        lines.append("(content could not be read)")
                    else:
                        lines.append(plain_text(blocks) or "(empty)")
                    op["found"] = True
                    return "\n".join(lines)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="vault_search")
        def vault_search(query: str) -> str:
            """Find documents whose title contains the query (case-insensitive).
            Args:
                query: Text to look for in titles
            """
            try:
                if self.session.index is None:
                    return "The vault is not loaded."
                results = search_documents(self.session.index, query)
                if not results:
                    return f"No documents match '{query}'."
                lines = [f"Found {len(results)} documents:"]
                lines.extend(f"- {e.title} ({e.id})" for e in results)
                return "\n".join(lines)
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="vault_backlinks")
        def vault_backlinks(identifier: str) -> str:
            """List the documents that link to a document.
            Args:
                identifier: The document ID or exact title
            """
            try:
                document = self._resolve(identifier)
                if document is None:
                    return f"Document not found: {identifier}"
                pairs = backlinks_for(self.session.index, document.id)
                if not pairs:
                    return f"No documents link to '{document.title}'."
                lines = [f"{len(pairs)} documents link to '{document.title}':"]
                lines.extend(f"- {title} ({source})" for source, title in pairs)
                return "\n".join(lines)
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="vault_create_document")
        def vault_create_document(
            title: str,
            content: Optional[str] = None,
            folder: bool = False,
            parent_id: Optional[str] = None,
            tags: Optional[str] = None,
        ) -> str:
            """Create a document or folder.
            Args:
                title: Title of the new document
                content: Optional initial text; lines starting with '#' become headings
                folder: Create a folder instead of a document
                parent_id: Optional folder to create it in
                tags: Comma-separated list of tags (optional)
            """
            with timed_operation("vault_create_document", title=title[:30]) as op:
                try:
                    _validate_input_lengths(title=title, content=content)
                    document = self.session.create_document(
                        title,
                        doc_type=DocumentType.FOLDER if folder else None,
                        parent_id=parent_id or None,
                    )
                    tag_list = _split_tags(tags)
                    if tag_list:
                        document = self.session.update_metadata(document.id, {"tags": tag_list})
                    if content:
                        doc = self.session.live_document(document.id)
                        write_blocks(doc, paragraphs(content))
                        self.session.save_body(document.id, encode_state(doc))
                        # Index the links of the initial content
                        self.session.load()
                    op["document_id"] = document.id
                    kind = "Folder" if folder else "Document"
                    return f"{kind} created successfully with ID: {document.id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="vault_append_text")
        def vault_append_text(document_id: str, text: str) -> str:
            """Append text to a document. The save is debounced.
            Args:
                document_id: The document ID
                text: Text to append; lines starting with '#' become headings
            """
            try:
                _validate_input_lengths(content=text)
                if self.session.get_document(document_id) is None:
                    return f"Document not found: {document_id}"
                doc = self.session.live_document(document_id)
                write_blocks(doc, read_blocks(doc) + paragraphs(text))
                self.saves.schedule(document_id, encode_state(doc))
                return f"Appended {len(text.splitlines())} lines to {document_id}"
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="vault_update_metadata")
        def vault_update_metadata(
            document_id: str,
            title: Optional[str] = None,
            tags: Optional[str] = None,
            icon: Optional[str] = None,
            description: Optional[str] = None,
            parent_id: Optional[str] = None,
            move_to_root: bool = False,
        ) -> str:
            """Update metadata of a document. Omitted fields are unchanged.
            Args:
                document_id: The document ID
                title: New title
                tags: Comma-separated list of tags, replacing the current ones
                icon: Emoji or icon name
                description: Short summary
                parent_id: New parent document
                move_to_root: Move the document to the top level
            """
            with timed_operation("vault_update_metadata", document_id=document_id) as op:
                try:
                    _validate_input_lengths(title=title)
                    updates = {}
                    if title is not None:
                        updates["title"] = title
                    if tags is not None:
                        updates["tags"] = _split_tags(tags)
                    if icon is not None:
                        updates["icon"] = icon or None
                    if description is not None:
                        updates["description"] = description or None
                    if move_to_root:
                        updates["parent_id"] = None
                    elif parent_id:
                        updates["parent_id"] = parent_id
                    if not updates:
                        return "Nothing to update."
                    document = self.session.update_metadata(document_id, updates)
                    op["fields"] = ",".join(sorted(updates))
                    return f"Document {document.id} updated ({', '.join(sorted(updates))})"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="vault_move_document")
        def vault_move_document(
            document_id: str,
            target_id: Optional[str] = None,
            kind: str = "reorder",
        ) -> str:
            """Move a document in the tree.
            Args:
                document_id: The document to move
                target_id: For 'reorder', the sibling whose position it takes;
                    for 'reparent', the folder to move into (empty for the top level)
                kind: 'reorder' or 'reparent'
            """
            with timed_operation("vault_move_document", document_id=document_id):
                try:
                    try:
                        move_kind = MoveKind(kind.lower())
                    except ValueError:
                        return f"Invalid move kind: {kind}. Valid kinds are: {', '.join(k.value for k in MoveKind)}"
                    self.session.apply_structure_move(StructureMove(
                        active_id=document_id,
                        target_id=target_id or None,
                        kind=move_kind,
                    ))
                    parent, order = self.session.placements()[document_id]
                    return (
                        f"Moved {document_id}: parent={parent or 'root'}, position={order}"
                    )
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="vault_delete_document")
        def vault_delete_document(document_id: str) -> str:
            """Delete a document. Its children move up to its parent.
            Args:
                document_id: The document ID
            """
            with timed_operation("vault_delete_document", document_id=document_id):
                try:
                    self.saves.cancel(document_id)
                    lifted = self.session.delete_document(document_id)
                    message = f"Document {document_id} deleted"
                    if lifted:
                        message += f"; moved {len(lifted)} children up"
                    return message
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="vault_reload")
        def vault_reload() -> str:
            """Write pending saves, then reload the vault and rebuild its index."""
            try:
                failures = self.saves.flush()
                self.session.load()
                message = f"Reloaded {len(self.session.documents)} documents"
                if failures:
                    message += f" ({failures} pending saves failed)"
                return message
            except Exception as e:
                return self.format_error_response(e)

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
