"""Reading and writing block content of a replicated document.

The editor stores its blocks as a JSON array inside the first text node
of the ``content`` XML fragment. Each block looks like::

    {"type": "heading", "props": {"level": 2},
     "content": [{"type": "text", "text": "Intro"}],
     "children": [...]}
"""
import json
import logging
from typing import Any, Dict, Iterator, List, Tuple

from pycrdt import Doc, XmlFragment, XmlText

from jot_vault.exceptions import IndexParseError

logger = logging.getLogger(__name__)

CONTENT_KEY = "content"

Block = Dict[str, Any]


def _content_fragment(doc: Doc) -> XmlFragment:
    return doc.get(CONTENT_KEY, type=XmlFragment)


def read_blocks(doc: Doc) -> List[Block]:
    """Get the top-level blocks of ``doc``.

    A document without block content yields an empty list.

    Raises:
        IndexParseError: If the stored block JSON is malformed
    """
    children = list(_content_fragment(doc).children)
    if not children or not isinstance(children[0], XmlText):
        return []

    raw = str(children[0])
    if not raw.strip():
        return []
    try:
        blocks = json.loads(raw)
    except json.JSONDecodeError as e:
        raise IndexParseError("Block content is not valid JSON", original_error=e)
    if not isinstance(blocks, list):
        raise IndexParseError("Block content is not a list of blocks")
    return [b for b in blocks if isinstance(b, dict)]


def write_blocks(doc: Doc, blocks: List[Block]) -> None:
    """Replace the block content of ``doc`` with ``blocks``."""
    fragment = _content_fragment(doc)
    with doc.transaction():
        while len(fragment.children):
            del fragment.children[0]
        fragment.children.append(XmlText(json.dumps(blocks)))


def iter_blocks(blocks: List[Block]) -> Iterator[Block]:
    """Walk blocks depth-first in document order, including nested children."""
    for block in blocks:
        yield block
        children = block.get("children")
        if isinstance(children, list):
            yield from iter_blocks([c for c in children if isinstance(c, dict)])


def inline_text(content: Any) -> str:
    """Flatten the inline content of one block to plain text."""
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    parts = []
    for inline in content:
        if isinstance(inline, str):
            parts.append(inline)
        elif isinstance(inline, dict):
            if isinstance(inline.get("text"), str):
                parts.append(inline["text"])
            elif "content" in inline:
                # Links wrap their own inline content
                parts.append(inline_text(inline["content"]))
    return "".join(parts)


def plain_text(blocks: List[Block]) -> str:
    """Join the text of every block, one line per block."""
    return "\n".join(inline_text(b.get("content")) for b in iter_blocks(blocks))


def headings(blocks: List[Block]) -> List[Tuple[int, str]]:
    """Get ``(level, text)`` for every heading block with text."""
    found = []
    for block in iter_blocks(blocks):
        if block.get("type") != "heading":
            continue
        props = block.get("props") or {}
        try:
            level = int(props.get("level", 1) or 1)
        except (TypeError, ValueError):
            level = 1
        if not 1 <= level <= 6:
            logger.debug(f"Skipping heading with out-of-range level {level}")
            continue
        text = inline_text(block.get("content"))
        if text:
            found.append((level, text))
    return found


def paragraphs(text: str) -> List[Block]:
    """Build paragraph blocks from plain text, one per line.

    Lines starting with ``#`` become headings of the matching level.
    """
    blocks: List[Block] = []
    for line in text.splitlines():
        stripped = line.lstrip("#")
        level = len(line) - len(stripped)
        if 1 <= level <= 6 and stripped.startswith(" "):
            blocks.append({
                "type": "heading",
                "props": {"level": level},
                "content": [{"type": "text", "text": stripped.strip()}],
                "children": [],
            })
        else:
            blocks.append({
                "type": "paragraph",
                "props": {},
                "content": [{"type": "text", "text": line}] if line else [],
                "children": [],
            })
    return blocks
