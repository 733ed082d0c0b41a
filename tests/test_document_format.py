"""Tests for the on-disk document and structure formats."""
import json

import pytest
import yaml

from tests.fakes import body_from_text
from jot_vault.models.schema import (
    Document,
    DocumentMetadata,
    DocumentStructure,
    DocumentType,
    VaultStructure,
)
from jot_vault.storage.document_format import DocumentFormat


@pytest.fixture
def fmt():
    return DocumentFormat()


def test_document_survives_render_and_parse(fmt):
    body = body_from_text("hello [[other]]")
    document = Document(
        id="doc-1",
        metadata=DocumentMetadata(
            title="Meeting notes",
            tags={"work", "weekly"},
            icon="📝",
            parent_id="folder-1",
            type=DocumentType.DOCUMENT,
            order=3,
        ),
        body=body,
    )
    parsed = fmt.parse_document(fmt.render_document(document))
    assert parsed.id == "doc-1"
    assert parsed.body == body
    assert parsed.metadata.title == "Meeting notes"
    assert parsed.metadata.tags == {"work", "weekly"}
    assert parsed.metadata.parent_id == "folder-1"
    assert parsed.metadata.type == DocumentType.DOCUMENT
    assert parsed.metadata.order == 3
    assert parsed.metadata.created == document.metadata.created


def test_rendered_frontmatter_uses_camel_case_parent(fmt):
    document = Document(id="d", metadata=DocumentMetadata(title="T", parent_id="p"))
    rendered = fmt.render_document(document)
    assert "parentId: p" in rendered
    assert "parent_id" not in rendered
    # Unset optional fields are left out
    assert "icon" not in rendered


def test_parse_requires_id_and_title(fmt):
    with pytest.raises(ValueError):
        fmt.parse_document("---\ntitle: No id\n---\n")
    with pytest.raises(ValueError):
        fmt.parse_document("---\nid: abc\n---\n")


def test_parse_rejects_broken_yaml(fmt):
    with pytest.raises((ValueError, yaml.YAMLError)):
        fmt.parse_document("---\nid: [unclosed\n---\nbody")


def test_unknown_frontmatter_keys_are_ignored(fmt, caplog):
    document = fmt.parse_document("---\nid: abc\ntitle: T\ncolor: red\n---\n")
    assert document.metadata.title == "T"
    assert "color" in caplog.text


def test_structure_round_trip_uses_parent_id_key(fmt):
    structure = VaultStructure(
        documents=[
            DocumentStructure(id="a", order=0),
            DocumentStructure(id="b", parent_id="a", order=0),
        ]
    )
    rendered = fmt.render_structure(structure)
    data = json.loads(rendered)
    assert data["documents"][0] == {"id": "a", "order": 0}
    assert data["documents"][1] == {"id": "b", "parentId": "a", "order": 0}
    assert fmt.parse_structure(rendered) == structure


def test_parse_structure_rejects_bad_json(fmt):
    with pytest.raises(ValueError):
        fmt.parse_structure("{not json")


def test_vault_marker_records_path(fmt):
    marker = json.loads(fmt.render_vault_marker("/tmp/vault"))
    assert marker["path"] == "/tmp/vault"
    assert "created" in marker
