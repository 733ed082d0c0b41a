"""Builds the link graph and heading outline of a vault.

The index is always rebuilt from a full snapshot of the documents. A
document whose body cannot be read still gets an entry with its title and
no links or headers, so one damaged note never hides the rest.
"""
import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

from pycrdt import Doc

from jot_vault.exceptions import CodecDecodeError, IndexParseError
from jot_vault.models.schema import (
    Document,
    DocumentHeader,
    DocumentIndex,
    VaultIndex,
    utc_now,
)
from jot_vault.replication.blocks import Block, headings, plain_text, read_blocks
from jot_vault.replication.codec import apply_state

logger = logging.getLogger(__name__)

# [[target]] or [[target#heading-slug]]
WIKI_LINK_PATTERN = re.compile(r"\[\[([^\]#|]+)(?:#([^\]]*))?\]\]")


def slugify(text: str) -> str:
    """Lowercase, hyphenate whitespace and strip non-word characters."""
    slug = text.lower()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^\w-]+", "", slug)
    slug = re.sub(r"-{2,}", "-", slug)
    return slug.strip("-")


def extract_links(text: str) -> List[str]:
    """Get link target ids in order of first appearance."""
    links: List[str] = []
    seen = set()
    for match in WIKI_LINK_PATTERN.finditer(text):
        target = match.group(1).strip()
        if target and target not in seen:
            seen.add(target)
            links.append(target)
    return links


def extract_headers(blocks: List[Block]) -> List[DocumentHeader]:
    """Get the headings of parsed block content."""
    return [
        DocumentHeader(level=level, text=text, slug=slugify(text))
        for level, text in headings(blocks)
    ]


def index_document(document: Document) -> DocumentIndex:
    """Index one document; parse failures degrade to an empty entry."""
    entry = DocumentIndex(id=document.id, title=document.title)
    doc = Doc()
    try:
        apply_state(document.body, doc)
        blocks = read_blocks(doc)
    except CodecDecodeError as e:
        logger.warning(f"Cannot decode body of document {document.id}: {e}")
        return entry
    except IndexParseError as e:
        logger.warning(f"Cannot parse blocks of document {document.id}: {e}")
        return entry

    entry.links = extract_links(plain_text(blocks))
    entry.headers = extract_headers(blocks)
    return entry


def build_index(documents: Iterable[Document]) -> VaultIndex:
    """Build a complete index for a snapshot of documents."""
    entries: Dict[str, DocumentIndex] = {}
    for document in documents:
        entries[document.id] = index_document(document)

    # Dangling targets stay in links but get no backlink entry
    for source_id, entry in entries.items():
        for target_id in entry.links:
            target = entries.get(target_id)
            if target is not None:
                target.backlinks.append(source_id)

    index = VaultIndex(documents=entries, last_updated=utc_now())
    logger.debug(
        f"Built index: {len(entries)} documents, "
        f"{sum(len(e.links) for e in entries.values())} links"
    )
    return index


def search_documents(index: VaultIndex, query: str) -> List[DocumentIndex]:
    """Case-insensitive substring match on titles, sorted by title."""
    needle = query.lower()
    results = [e for e in index.documents.values() if needle in e.title.lower()]
    return sorted(results, key=lambda e: (e.title.lower(), e.id))


def find_by_title(index: VaultIndex, title: str) -> Optional[DocumentIndex]:
    """Exact case-insensitive title match."""
    wanted = title.strip().lower()
    for entry in search_documents(index, wanted):
        if entry.title.strip().lower() == wanted:
            return entry
    return None


def resolve_link(
    index: VaultIndex, token: str
) -> Tuple[Optional[DocumentIndex], Optional[DocumentHeader]]:
    """Resolve ``"<id>"`` or ``"<id>#<slug>"`` (brackets optional).

    Returns the target entry and, when a slug is given, its first header
    with that slug. Unresolved parts are None.
    """
    token = token.strip()
    if token.startswith("[[") and token.endswith("]]"):
        token = token[2:-2]
    target_id, _, slug = token.partition("#")
    entry = index.get(target_id.strip())
    if entry is None or not slug:
        return entry, None
    slug = slug.strip()
    header = next((h for h in entry.headers if h.slug == slug), None)
    return entry, header


def backlinks_for(index: VaultIndex, document_id: str) -> List[Tuple[str, str]]:
    """``(id, title)`` of every document linking to ``document_id``."""
    pairs = []
    for source_id in index.backlinks(document_id):
        source = index.get(source_id)
        if source is not None:
            pairs.append((source.id, source.title))
    return pairs
