import numpy as np
import pytest

from linkage_api.src.adapters.generic_builder import GenericLinkageBuilder
from linkage_api.src.models.data_models import ChildRef, MergeEvent
from linkage_api.src.models.dendrogram import Dendrogram
from linkage_api.src.models.errors import MalformedInputError


def _event(node_id, left, right, height, size):
    return MergeEvent(
        node_id=node_id,
        left=ChildRef(kind=left[0], ref=left[1]),
        right=ChildRef(kind=right[0], ref=right[1]),
        height=height,
        size=size,
    )


@pytest.fixture
def example_dendrogram(example_distances) -> Dendrogram:
    return GenericLinkageBuilder().build(example_distances)


def test_events_reference_items_and_earlier_merges(example_dendrogram):
    # Act
    events = example_dendrogram.to_events()

    # Assert
    assert [(e.left.kind, e.left.ref, e.right.kind, e.right.ref) for e in events] == [
        ("leaf", 1, "leaf", 2),
        ("merge", 0, "leaf", 3),
        ("merge", 1, "leaf", 4),
    ]
    assert [e.members for e in events] == [[1, 2], [1, 2, 3], [1, 2, 3, 4]]
    assert [e.height for e in events] == [0.0, 2.0, 5.0]


def test_events_without_members(example_dendrogram):
    events = example_dendrogram.to_events(include_members=False)
    assert all(event.members == [] for event in events)


def test_from_events_round_trip(example_dendrogram):
    # Act
    rebuilt = Dendrogram.from_events([4, 3, 2, 1], example_dendrogram.to_events())

    # Assert
    assert rebuilt.items == (1, 2, 3, 4)
    assert rebuilt.merges == example_dendrogram.merges


def test_linkage_matrix_layout(example_dendrogram):
    matrix = example_dendrogram.to_linkage_matrix()

    assert matrix.shape == (3, 4)
    assert np.array_equal(
        matrix,
        np.array([[0, 1, 0.0, 2], [4, 2, 2.0, 3], [5, 3, 5.0, 4]], dtype=float),
    )


def test_navigation_helpers(example_dendrogram):
    assert example_dendrogram.root == 6
    assert example_dendrogram.children(6) == (5, 3)
    assert example_dendrogram.children(3) == ()
    assert example_dendrogram.members(5) == [1, 2, 3]
    assert example_dendrogram.height(2) == 0.0
    assert example_dendrogram.child_ref(5) == ChildRef(kind="merge", ref=1)
    assert example_dendrogram.child_ref(0) == ChildRef(kind="leaf", ref=1)


def test_empty_dendrogram_has_no_root():
    dendrogram = Dendrogram(items=(), merges=())

    assert dendrogram.root is None
    assert dendrogram.is_degenerate
    assert dendrogram.to_events() == []


@pytest.mark.parametrize(
    ("events", "message"),
    [
        ([_event(0, ("leaf", "a"), ("leaf", "b"), 1.0, 2)], "Expected 2 merges"),
        (
            [
                _event(0, ("leaf", "a"), ("leaf", "b"), 1.0, 2),
                _event(2, ("merge", 0), ("leaf", "c"), 2.0, 3),
            ],
            "contiguous",
        ),
        (
            [
                _event(0, ("leaf", "a"), ("leaf", "z"), 1.0, 2),
                _event(1, ("merge", 0), ("leaf", "c"), 2.0, 3),
            ],
            "unknown item",
        ),
        (
            [
                _event(0, ("leaf", "a"), ("leaf", "b"), 1.0, 2),
                _event(1, ("merge", 1), ("leaf", "c"), 2.0, 3),
            ],
            "not earlier",
        ),
        (
            [
                _event(0, ("leaf", "a"), ("leaf", "b"), 1.0, 2),
                _event(1, ("leaf", "a"), ("leaf", "c"), 2.0, 2),
            ],
            "reuses",
        ),
        (
            [
                _event(0, ("leaf", "a"), ("leaf", "b"), 3.0, 2),
                _event(1, ("merge", 0), ("leaf", "c"), 2.0, 3),
            ],
            "below its children",
        ),
        (
            [
                _event(0, ("leaf", "a"), ("leaf", "b"), 1.0, 2),
                _event(1, ("merge", 0), ("leaf", "c"), 2.0, 4),
            ],
            "declares size",
        ),
    ],
)
def test_from_events_rejects_invalid_trees(events, message):
    with pytest.raises(MalformedInputError, match=message):
        Dendrogram.from_events(["a", "b", "c"], events)
