"""Serialization of vault records on disk.

A document file (``<id>.jt``) is YAML frontmatter holding the id, schema
version and metadata, followed by the encoded replicated body::

    ---
    id: 0b6c...
    version: 1
    title: Meeting notes
    created: '2024-05-01T09:00:00+00:00'
    modified: '2024-05-01T09:30:00+00:00'
    tags: [work]
    parentId: 9f1e...
    ---
    AQLp6p...

The structure file and vault marker are plain JSON.
"""
import json
import logging
from typing import Any, Dict

import frontmatter

from jot_vault.models.schema import (
    DOCUMENT_VERSION,
    Document,
    DocumentMetadata,
    DocumentStructure,
    VaultStructure,
    utc_now,
)

logger = logging.getLogger(__name__)

# Frontmatter key -> DocumentMetadata field, where they differ
_METADATA_KEYS = {
    "title": "title",
    "created": "created",
    "modified": "modified",
    "tags": "tags",
    "icon": "icon",
    "description": "description",
    "parentId": "parent_id",
    "type": "type",
    "order": "order",
}


class DocumentFormat:
    """Parses and renders document, structure and vault marker files."""

    def parse_document(self, content: str) -> Document:
        """Parse a document file.

        Raises:
            ValueError: If the id or title is missing or a field is invalid
            yaml.YAMLError: If the frontmatter is not valid YAML
        """
        post = frontmatter.loads(content)
        meta = post.metadata

        document_id = meta.get("id")
        if not document_id:
            raise ValueError("Document ID missing from frontmatter")
        if not meta.get("title"):
            raise ValueError(f"Document {document_id} has no title")

        fields: Dict[str, Any] = {}
        for key, field_name in _METADATA_KEYS.items():
            value = meta.get(key)
            if value is not None:
                fields[field_name] = value

        unknown = set(meta) - set(_METADATA_KEYS) - {"id", "version"}
        if unknown:
            logger.warning(
                f"Ignoring unknown fields {sorted(unknown)} in document {document_id}"
            )

        return Document(
            id=str(document_id),
            version=int(meta.get("version", DOCUMENT_VERSION)),
            metadata=DocumentMetadata(**fields),
            body=post.content.strip(),
        )

    def render_document(self, document: Document) -> str:
        """Render a document file."""
        data = document.metadata.model_dump(mode="json", exclude_none=True)
        header: Dict[str, Any] = {"id": document.id, "version": document.version}
        for key, field_name in _METADATA_KEYS.items():
            if field_name in data:
                header[key] = data[field_name]

        post = frontmatter.Post(document.body, **header)
        return frontmatter.dumps(post) + "\n"

    def parse_structure(self, content: str) -> VaultStructure:
        """Parse a structure file.

        Raises:
            ValueError: If the JSON or an entry is malformed
        """
        data = json.loads(content)
        entries = [
            DocumentStructure(
                id=item["id"],
                parent_id=item.get("parentId"),
                order=item.get("order", 0),
            )
            for item in data.get("documents", [])
        ]
        return VaultStructure(documents=entries, version=data.get("version", 1))

    def render_structure(self, structure: VaultStructure) -> str:
        """Render a structure file."""
        entries = []
        for item in structure.documents:
            entry: Dict[str, Any] = {"id": item.id}
            if item.parent_id is not None:
                entry["parentId"] = item.parent_id
            entry["order"] = item.order
            entries.append(entry)
        return json.dumps({"documents": entries, "version": structure.version}, indent=2)

    def render_vault_marker(self, location: str) -> str:
        """Render the ``.vault.json`` marker for a new vault."""
        return json.dumps({"path": location, "created": utc_now().isoformat()}, indent=2)
