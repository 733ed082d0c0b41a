"""Parent and sibling-order assignment for the document tree.

Every function here is pure: it takes a snapshot of the documents and the
current structure and returns a complete replacement structure. Before any
change, each parent group is normalized to a dense order ``0..n-1``
(sorted by the stored order, ties broken by document order), so the
result is always dense in every group.
"""
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from jot_vault.exceptions import ErrorCode, StructureValidationError
from jot_vault.models.schema import (
    Document,
    DocumentStructure,
    MoveKind,
    StructureMove,
    VaultStructure,
)

logger = logging.getLogger(__name__)

# id -> (parent_id, order)
Placements = Dict[str, Tuple[Optional[str], int]]
# parent_id -> ordered child ids
Groups = Dict[Optional[str], List[str]]


def _raw_placements(
    documents: Sequence[Document], structure: Optional[VaultStructure]
) -> List[Tuple[str, Optional[str], Optional[int], int]]:
    """(id, parent, stored order, document position) for each document."""
    stored = {e.id: e for e in structure.documents} if structure else {}
    known = {doc.id for doc in documents}
    raw = []
    for position, doc in enumerate(documents):
        entry = stored.get(doc.id)
        if entry is not None:
            parent, order = entry.parent_id, entry.order
        else:
            parent, order = doc.metadata.parent_id, doc.metadata.order
        if parent is not None and (parent not in known or parent == doc.id):
            logger.debug(f"Document {doc.id} points at missing parent {parent}, placing at root")
            parent = None
        raw.append((doc.id, parent, order, position))
    return raw


def _break_cycles(raw, parents: Dict[str, Optional[str]]) -> None:
    """Lift documents caught in a parent cycle to the root."""
    for doc_id, *_ in raw:
        seen = set()
        current: Optional[str] = doc_id
        while current is not None:
            if current in seen:
                logger.warning(f"Parent cycle through {current}, placing it at root")
                parents[current] = None
                break
            seen.add(current)
            current = parents.get(current)


def build_groups(
    documents: Sequence[Document], structure: Optional[VaultStructure]
) -> Groups:
    """Get dense sibling lists for every parent group."""
    raw = _raw_placements(documents, structure)
    parents = {doc_id: parent for doc_id, parent, _, _ in raw}
    _break_cycles(raw, parents)

    keyed: Dict[Optional[str], List[Tuple[int, int, str]]] = {}
    for doc_id, _, order, position in raw:
        # Documents without any stored order go after ordered siblings
        sort_order = order if order is not None else len(raw) + position
        keyed.setdefault(parents[doc_id], []).append((sort_order, position, doc_id))

    return {
        parent: [doc_id for _, _, doc_id in sorted(items)]
        for parent, items in keyed.items()
    }


def resolve_placements(
    documents: Sequence[Document], structure: Optional[VaultStructure]
) -> Placements:
    """Get the effective ``{id: (parent_id, order)}`` used for presentation."""
    placements: Placements = {}
    for parent, children in build_groups(documents, structure).items():
        for order, doc_id in enumerate(children):
            placements[doc_id] = (parent, order)
    return placements


def _to_structure(
    documents: Sequence[Document], groups: Groups, version: int
) -> VaultStructure:
    placements: Placements = {}
    for parent, children in groups.items():
        for order, doc_id in enumerate(children):
            placements[doc_id] = (parent, order)
    entries = [
        DocumentStructure(id=doc.id, parent_id=placements[doc.id][0], order=placements[doc.id][1])
        for doc in documents
        if doc.id in placements
    ]
    return VaultStructure(documents=entries, version=version)


def _parent_of(groups: Groups) -> Dict[str, Optional[str]]:
    return {doc_id: parent for parent, children in groups.items() for doc_id in children}


def is_descendant(groups: Groups, candidate: str, ancestor: str) -> bool:
    """Whether ``candidate`` lies below ``ancestor`` in the tree."""
    parents = _parent_of(groups)
    current = parents.get(candidate)
    while current is not None:
        if current == ancestor:
            return True
        current = parents.get(current)
    return False


def _require_known(by_id: Dict[str, Document], doc_id: str, move: StructureMove) -> Document:
    doc = by_id.get(doc_id)
    if doc is None:
        raise StructureValidationError(
            f"Unknown document '{doc_id}'",
            active_id=move.active_id,
            target_id=move.target_id,
            code=ErrorCode.STRUCTURE_UNKNOWN_DOCUMENT,
        )
    return doc


def _check_parent(groups: Groups, move: StructureMove) -> None:
    """Reject a new parent that would make the document its own ancestor."""
    if move.target_id is None:
        return
    if move.target_id == move.active_id or is_descendant(groups, move.target_id, move.active_id):
        raise StructureValidationError(
            "A document cannot be moved into itself or one of its descendants",
            active_id=move.active_id,
            target_id=move.target_id,
            code=ErrorCode.STRUCTURE_CYCLE,
        )


def _reorder(groups: Groups, move: StructureMove) -> None:
    parents = _parent_of(groups)
    parent = parents[move.active_id]
    if parents[move.target_id] != parent:
        raise StructureValidationError(
            "Reorder target is not a sibling",
            active_id=move.active_id,
            target_id=move.target_id,
            code=ErrorCode.STRUCTURE_NOT_SIBLING,
        )
    siblings = groups[parent]
    target_index = siblings.index(move.target_id)
    siblings.remove(move.active_id)
    siblings.insert(target_index, move.active_id)


def _reparent(groups: Groups, move: StructureMove) -> None:
    old_parent = _parent_of(groups)[move.active_id]
    groups[old_parent].remove(move.active_id)
    if not groups[old_parent]:
        del groups[old_parent]
    groups.setdefault(move.target_id, []).append(move.active_id)


def resolve_move(
    documents: Sequence[Document],
    structure: Optional[VaultStructure],
    move: StructureMove,
    require_folder: bool = True,
) -> VaultStructure:
    """Compute the structure after a drag gesture.

    REORDER puts the active document at the target sibling's position and
    renumbers that group. REPARENT appends it to the target folder (or to
    the root when the target is None) and compacts the group it left.

    Raises:
        StructureValidationError: If the move is invalid; nothing changes
    """
    by_id = {doc.id: doc for doc in documents}
    _require_known(by_id, move.active_id, move)
    groups = build_groups(documents, structure)
    version = structure.version if structure else 1

    if move.kind == MoveKind.REORDER:
        if move.target_id is None:
            raise StructureValidationError(
                "Reorder needs a target sibling",
                active_id=move.active_id,
                code=ErrorCode.STRUCTURE_INVALID_TARGET,
            )
        _require_known(by_id, move.target_id, move)
        if move.target_id != move.active_id:
            _reorder(groups, move)
    else:
        if move.target_id is not None:
            _require_known(by_id, move.target_id, move)
        _check_parent(groups, move)
        if move.target_id is not None:
            target = by_id[move.target_id]
            if require_folder and not target.metadata.is_folder:
                raise StructureValidationError(
                    f"'{target.title}' is not a folder",
                    active_id=move.active_id,
                    target_id=move.target_id,
                    code=ErrorCode.STRUCTURE_INVALID_TARGET,
                )
        _reparent(groups, move)

    return _to_structure(documents, groups, version)


def place_new(
    documents: Sequence[Document],
    structure: Optional[VaultStructure],
    document_id: str,
    parent_id: Optional[str] = None,
) -> VaultStructure:
    """Append a newly created document at the end of ``parent_id``'s group.

    ``documents`` must already include the new document.
    """
    existing = [doc for doc in documents if doc.id != document_id]
    groups = build_groups(existing, structure)
    groups.setdefault(parent_id, []).append(document_id)
    return _to_structure(documents, groups, structure.version if structure else 1)


def detach(
    documents: Sequence[Document],
    structure: Optional[VaultStructure],
    removed_id: str,
) -> Tuple[VaultStructure, List[str]]:
    """Remove a document from the tree, lifting its children.

    The children move to the removed document's parent and are appended
    to that group in their previous relative order.

    Returns:
        The new structure and the ids of the lifted children
    """
    groups = build_groups(documents, structure)
    parent = _parent_of(groups).get(removed_id)
    children = groups.pop(removed_id, [])

    if parent in groups and removed_id in groups[parent]:
        groups[parent].remove(removed_id)
    groups.setdefault(parent, []).extend(children)
    if not groups[parent]:
        del groups[parent]

    remaining = [doc for doc in documents if doc.id != removed_id]
    version = structure.version if structure else 1
    return _to_structure(remaining, groups, version), children
