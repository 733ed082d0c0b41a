"""Tests for parent and sibling-order resolution."""
import pytest

from tests.fakes import make_document
from jot_vault.exceptions import ErrorCode, StructureValidationError
from jot_vault.models.schema import (
    DocumentStructure,
    MoveKind,
    StructureMove,
    VaultStructure,
)
from jot_vault.services.structure_resolver import (
    build_groups,
    detach,
    is_descendant,
    place_new,
    resolve_move,
    resolve_placements,
)


def structure_of(*entries):
    """Build a structure from ``(id, parent_id, order)`` tuples."""
    return VaultStructure(
        documents=[DocumentStructure(id=i, parent_id=p, order=o) for i, p, o in entries]
    )


def orders(structure, parent_id=None):
    return {e.id: e.order for e in structure.children_of(parent_id)}


def assert_dense(structure):
    groups = {}
    for entry in structure.documents:
        groups.setdefault(entry.parent_id, []).append(entry.order)
    for values in groups.values():
        assert sorted(values) == list(range(len(values)))


@pytest.fixture
def siblings():
    documents = [make_document("X"), make_document("Y"), make_document("Z")]
    structure = structure_of(("X", None, 0), ("Y", None, 1), ("Z", None, 2))
    return documents, structure


@pytest.fixture
def tree():
    """Root: X, F. F (folder) holds C1 and C2."""
    documents = [
        make_document("X"),
        make_document("F", folder=True),
        make_document("C1"),
        make_document("C2"),
    ]
    structure = structure_of(
        ("X", None, 0), ("F", None, 1), ("C1", "F", 0), ("C2", "F", 1)
    )
    return documents, structure


class TestReorder:
    """Tests for REORDER moves."""

    def test_move_first_to_last_position(self, siblings):
        documents, structure = siblings
        result = resolve_move(documents, structure, StructureMove(active_id="X", target_id="Z"))
        assert orders(result) == {"Y": 0, "Z": 1, "X": 2}

    def test_move_last_to_first_position(self, siblings):
        documents, structure = siblings
        result = resolve_move(documents, structure, StructureMove(active_id="Z", target_id="X"))
        assert orders(result) == {"Z": 0, "X": 1, "Y": 2}

    def test_move_onto_itself_changes_nothing(self, siblings):
        documents, structure = siblings
        result = resolve_move(documents, structure, StructureMove(active_id="Y", target_id="Y"))
        assert orders(result) == {"X": 0, "Y": 1, "Z": 2}

    def test_reorder_needs_target(self, siblings):
        documents, structure = siblings
        with pytest.raises(StructureValidationError) as exc_info:
            resolve_move(documents, structure, StructureMove(active_id="X"))
        assert exc_info.value.code == ErrorCode.STRUCTURE_INVALID_TARGET

    def test_reorder_across_groups_is_rejected(self, tree):
        documents, structure = tree
        with pytest.raises(StructureValidationError) as exc_info:
            resolve_move(documents, structure, StructureMove(active_id="X", target_id="C1"))
        assert exc_info.value.code == ErrorCode.STRUCTURE_NOT_SIBLING

    def test_unknown_document_is_rejected(self, siblings):
        documents, structure = siblings
        with pytest.raises(StructureValidationError) as exc_info:
            resolve_move(documents, structure, StructureMove(active_id="nope", target_id="X"))
        assert exc_info.value.code == ErrorCode.STRUCTURE_UNKNOWN_DOCUMENT

        with pytest.raises(StructureValidationError):
            resolve_move(documents, structure, StructureMove(active_id="X", target_id="nope"))

    def test_input_structure_is_not_modified(self, siblings):
        documents, structure = siblings
        before = structure.model_copy(deep=True)
        resolve_move(documents, structure, StructureMove(active_id="X", target_id="Z"))
        assert structure == before


class TestReparent:
    """Tests for REPARENT moves."""

    def test_append_into_folder(self, tree):
        documents, structure = tree
        result = resolve_move(
            documents, structure,
            StructureMove(active_id="X", target_id="F", kind=MoveKind.REPARENT),
        )
        entry = result.entry("X")
        assert entry.parent_id == "F"
        assert entry.order == 2
        # The root group left behind is compacted
        assert orders(result) == {"F": 0}
        assert_dense(result)

    def test_move_to_root(self, tree):
        documents, structure = tree
        result = resolve_move(
            documents, structure,
            StructureMove(active_id="C1", target_id=None, kind=MoveKind.REPARENT),
        )
        assert orders(result) == {"X": 0, "F": 1, "C1": 2}
        assert orders(result, "F") == {"C2": 0}

    def test_folder_into_own_child_is_rejected(self, tree):
        documents, structure = tree
        move = StructureMove(active_id="F", target_id="C1", kind=MoveKind.REPARENT)
        with pytest.raises(StructureValidationError) as exc_info:
            resolve_move(documents, structure, move)
        assert exc_info.value.code == ErrorCode.STRUCTURE_CYCLE
        assert structure.entry("F").parent_id is None

    def test_into_itself_is_rejected(self, tree):
        documents, structure = tree
        move = StructureMove(active_id="F", target_id="F", kind=MoveKind.REPARENT)
        with pytest.raises(StructureValidationError) as exc_info:
            resolve_move(documents, structure, move)
        assert exc_info.value.code == ErrorCode.STRUCTURE_CYCLE

    def test_non_folder_target_is_rejected(self, tree):
        documents, structure = tree
        move = StructureMove(active_id="C1", target_id="X", kind=MoveKind.REPARENT)
        with pytest.raises(StructureValidationError) as exc_info:
            resolve_move(documents, structure, move)
        assert exc_info.value.code == ErrorCode.STRUCTURE_INVALID_TARGET

    def test_non_folder_target_allowed_when_not_required(self, tree):
        documents, structure = tree
        move = StructureMove(active_id="C1", target_id="X", kind=MoveKind.REPARENT)
        result = resolve_move(documents, structure, move, require_folder=False)
        assert result.entry("C1").parent_id == "X"


class TestPlacements:
    """Tests for placement resolution from partial or inconsistent input."""

    def test_missing_structure_falls_back_to_metadata(self):
        documents = [
            make_document("F", folder=True),
            make_document("B", parent_id="F", order=1),
            make_document("A", parent_id="F", order=0),
        ]
        placements = resolve_placements(documents, None)
        assert placements == {"F": (None, 0), "A": ("F", 0), "B": ("F", 1)}

    def test_unordered_documents_go_last(self):
        documents = [make_document("new"), make_document("old", order=0)]
        placements = resolve_placements(documents, VaultStructure())
        assert placements["old"] == (None, 0)
        assert placements["new"] == (None, 1)

    def test_sparse_orders_are_densified(self):
        documents = [make_document("A"), make_document("B")]
        structure = structure_of(("A", None, 5), ("B", None, 9))
        assert resolve_placements(documents, structure) == {"A": (None, 0), "B": (None, 1)}

    def test_duplicate_orders_break_ties_by_position(self):
        documents = [make_document("A"), make_document("B")]
        structure = structure_of(("B", None, 0), ("A", None, 0))
        assert resolve_placements(documents, structure) == {"A": (None, 0), "B": (None, 1)}

    def test_missing_parent_goes_to_root(self):
        documents = [make_document("A", parent_id="gone")]
        assert resolve_placements(documents, None) == {"A": (None, 0)}

    def test_parent_cycle_is_broken(self):
        documents = [make_document("A", parent_id="B"), make_document("B", parent_id="A")]
        groups = build_groups(documents, None)
        placed = [doc_id for children in groups.values() for doc_id in children]
        assert sorted(placed) == ["A", "B"]
        assert None in groups

    def test_is_descendant(self, tree):
        documents, structure = tree
        groups = build_groups(documents, structure)
        assert is_descendant(groups, "C1", "F")
        assert not is_descendant(groups, "F", "C1")
        assert not is_descendant(groups, "X", "F")


class TestPlaceNewAndDetach:
    """Tests for creation and deletion helpers."""

    def test_place_new_appends_to_group(self, tree):
        documents, structure = tree
        documents = documents + [make_document("N")]
        result = place_new(documents, structure, "N", "F")
        assert result.entry("N").parent_id == "F"
        assert result.entry("N").order == 2
        assert_dense(result)

    def test_place_new_at_root(self, tree):
        documents, structure = tree
        documents = documents + [make_document("N")]
        result = place_new(documents, structure, "N")
        assert orders(result) == {"X": 0, "F": 1, "N": 2}

    def test_detach_lifts_children_to_parent(self, tree):
        documents, structure = tree
        result, lifted = detach(documents, structure, "F")
        assert lifted == ["C1", "C2"]
        assert result.entry("F") is None
        assert orders(result) == {"X": 0, "C1": 1, "C2": 2}
        assert_dense(result)

    def test_detach_leaf_compacts_group(self, tree):
        documents, structure = tree
        result, lifted = detach(documents, structure, "C1")
        assert lifted == []
        assert orders(result, "F") == {"C2": 0}


@pytest.mark.parametrize(
    "move",
    [
        StructureMove(active_id="X", target_id="F"),
        StructureMove(active_id="C2", target_id="C1"),
        StructureMove(active_id="X", target_id="F", kind=MoveKind.REPARENT),
        StructureMove(active_id="C1", target_id=None, kind=MoveKind.REPARENT),
    ],
)
def test_every_accepted_move_is_dense(tree, move):
    documents, structure = tree
    result = resolve_move(documents, structure, move)
    assert_dense(result)
    assert {e.id for e in result.documents} == {d.id for d in documents}
