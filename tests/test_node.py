import numpy as np
import pytest

from planetree.core.shards import PartitionShard
from planetree.errors import InvalidTransition
from planetree.node import Node, NodeState, Predicate, child_id, depth_of, is_ancestor, parent_id


def make_shard(n_rows: int = 10) -> PartitionShard:
    return PartitionShard.full([n_rows // 2, n_rows - n_rows // 2])


def test_node_ids_encode_the_path():
    assert child_id("r", "L") == "rL"
    assert child_id("rL", "R") == "rLR"
    assert parent_id("rLR") == "rL"
    assert parent_id("r") is None
    assert depth_of("r") == 0
    assert depth_of("rLRL") == 3
    assert is_ancestor("rL", "rLR")
    assert not is_ancestor("rL", "rL")
    assert not is_ancestor("rR", "rLR")
    with pytest.raises(ValueError):
        depth_of("rX")
    with pytest.raises(ValueError):
        child_id("r", "X")  # type: ignore[arg-type]


def test_unknown_node_tracks_subset_size():
    root = Node.unknown(make_shard(10))
    assert root.node_id == "r"
    assert root.state is NodeState.UNKNOWN
    assert root.n_samples == 10
    child = Node.unknown(make_shard(4), "r", "R")
    assert child.node_id == "rR"
    assert child.depth == 1
    with pytest.raises(ValueError):
        Node.unknown(make_shard(), None, "L")


def test_leaf_transition_happens_once():
    node = Node.unknown(make_shard())
    node.mark_leaf(2.5)
    assert node.is_leaf and node.is_terminal
    assert node.value == 2.5
    with pytest.raises(InvalidTransition):
        node.mark_leaf(2.5)
    with pytest.raises(InvalidTransition):
        node.mark_split(Predicate(0, 1.0), "rL", "rR")


def test_split_transition_requires_own_children():
    node = Node.unknown(make_shard())
    with pytest.raises(ValueError):
        node.mark_split(Predicate(0, 1.0), "rLL", "rR")
    assert node.is_unknown
    node.mark_split(Predicate(1, 0.5), "rL", "rR")
    assert node.children == ("rL", "rR")
    with pytest.raises(InvalidTransition):
        node.mark_leaf(0.0)


def test_copy_is_independent():
    node = Node.unknown(make_shard())
    clone = node.copy()
    clone.mark_leaf(1.0)
    assert node.is_unknown


def test_same_outcome_ignores_subset():
    a = Node.unknown(make_shard(10))
    b = Node.unknown(make_shard(10))
    a.mark_leaf(3.0)
    b.mark_leaf(3.0)
    assert a.same_outcome(b)
    c = Node.unknown(make_shard(10))
    c.mark_leaf(4.0)
    assert not a.same_outcome(c)


def test_node_serialisation():
    unknown = Node.unknown(make_shard(6), "r", "L")
    payload = unknown.to_dict()
    assert payload["state"] == "unknown"
    restored = Node.from_dict(payload)
    assert restored.subset == unknown.subset
    assert restored.n_samples == 6

    split = Node.unknown(make_shard(6))
    split.mark_split(Predicate(2, -0.25), "rL", "rR")
    payload = split.to_dict()
    assert "subset" not in payload
    restored = Node.from_dict(payload)
    assert restored.predicate == Predicate(2, -0.25)
    assert restored.same_outcome(split)


def test_predicate_routes_left_on_less_equal():
    X = np.array([[0.0], [1.0], [2.0]], dtype=np.float32)
    assert Predicate(0, 1.0).goes_left(X).tolist() == [True, True, False]
