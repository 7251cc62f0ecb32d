from __future__ import annotations

import operator

import jax.numpy as jnp
import pytest

from hybrid_fg.core.errors import KeySetMismatch, SizeMismatch
from hybrid_fg.core.types import DiscreteKey, NodeId
from hybrid_fg.discrete.decision_tree import Choice, DecisionTree, Leaf


A = DiscreteKey(NodeId(10), 2)
B = DiscreteKey(NodeId(11), 3)
C = DiscreteKey(NodeId(12), 2)


def test_from_leaves_first_key_is_outermost():
    """
    Leaves over (A, B) are read with A as the outer index:

        index = a * |B| + b
    """
    tree = DecisionTree.from_leaves([A, B], [0, 1, 2, 3, 4, 5])

    assert tree.keys == (A, B)
    assert tree({A.id: 0, B.id: 2}) == 2
    assert tree({A.id: 1, B.id: 0}) == 3
    assert tree({A.id: 1, B.id: 2}) == 5
    assert tree.leaves() == [0, 1, 2, 3, 4, 5]
    assert tree.assignments()[4] == {A.id: 1, B.id: 1}


def test_from_leaves_compresses_equal_siblings():
    # Leaves only depend on A: the B choices collapse
    tree = DecisionTree.from_leaves([A, B], [1, 1, 1, 2, 2, 2])

    assert tree.node_keys() == (A,)
    assert tree.num_leaves() == 2
    # The declared key set is kept
    assert tree.keys == (A, B)
    assert tree.leaves() == [1, 1, 1, 2, 2, 2]


def test_uniform_leaves_collapse_to_single_leaf():
    tree = DecisionTree.from_leaves([A, B], [7] * 6)

    assert tree.is_leaf()
    assert tree.num_leaves() == 1
    assert tree.leaves() == [7] * 6


def test_from_leaves_size_mismatch():
    with pytest.raises(SizeMismatch):
        DecisionTree.from_leaves([A, B], [0, 1, 2, 3, 4])


def test_from_leaves_duplicate_keys():
    with pytest.raises(KeySetMismatch):
        DecisionTree.from_leaves([A, A], [0, 1, 2, 3])


def test_from_choice_nested_branches():
    """
    A=0 -> branch on B: "a", "b", "c"
    A=1 -> "d" regardless of B
    """
    inner = DecisionTree.from_choice(B, ["a", "b", "c"])
    tree = DecisionTree.from_choice(A, [inner, "d"])

    assert tree.keys == (A, B)
    assert tree({A.id: 0, B.id: 1}) == "b"
    assert tree({A.id: 1, B.id: 2}) == "d"
    assert tree.leaves() == ["a", "b", "c", "d", "d", "d"]


def test_from_choice_branch_count_and_repeated_key():
    with pytest.raises(SizeMismatch):
        DecisionTree.from_choice(B, ["a", "b"])

    inner = DecisionTree.from_choice(A, [1, 2])
    with pytest.raises(KeySetMismatch):
        DecisionTree.from_choice(A, [inner, 3])


def test_constructor_rejects_node_key_outside_domain():
    with pytest.raises(KeySetMismatch):
        DecisionTree((), Choice(A, (Leaf(1), Leaf(2))))

    with pytest.raises(SizeMismatch):
        Choice(B, (Leaf(1), Leaf(2)))


def test_constructor_compresses_assembled_nodes():
    tree = DecisionTree((A,), Choice(A, (Leaf(1), Leaf(1))))

    assert tree.is_leaf()
    assert tree.keys == (A,)
    assert tree({A.id: 1}) == 1


def test_array_leaves_use_elementwise_equality():
    u, v = jnp.array([1.0, 2.0]), jnp.array([1.0, 3.0])

    distinct = DecisionTree.from_leaves([A], [u, v])
    same = DecisionTree.from_leaves([A], [u, jnp.array([1.0, 2.0])])

    assert distinct.num_leaves() == 2
    assert jnp.array_equal(distinct({A.id: 1}), v)
    assert same.is_leaf()
    assert distinct.map(lambda x: x * 2.0).num_leaves() == 2
    assert distinct.apply(same, lambda x, y: x + y).num_leaves() == 2
    assert distinct.equals(DecisionTree.from_choice(A, [u, v]))
    assert not distinct.equals(same)


def test_apply_broadcasts_keys_of_one_operand():
    """
    t1 depends on A only, t2 on B only. The sum must branch over the
    full product A x B with t1's leaf repeated across B and vice versa.
    """
    t1 = DecisionTree.from_leaves([A], [1, 2])
    t2 = DecisionTree.from_leaves([B], [10, 20, 30])

    result = t1.apply(t2, operator.add)

    assert result.keys == (A, B)
    assert result.num_leaves() == 6
    assert result.leaves() == [11, 21, 31, 12, 22, 32]


def test_apply_compresses_result():
    t1 = DecisionTree.from_leaves([A], [1, 2])
    t2 = DecisionTree.from_leaves([A], [2, 1])

    result = t1.apply(t2, operator.add)

    assert result.is_leaf()
    assert result.keys == (A,)
    assert result({A.id: 0}) == 3


def test_apply_does_not_mutate_operands():
    t1 = DecisionTree.from_leaves([A], [[1], [2]])
    t2 = DecisionTree.from_leaves([C], [[3], [4]])

    result = t1.apply(t2, operator.add)

    assert result({A.id: 1, C.id: 0}) == [2, 3]
    assert t1.leaves() == [[1], [2]]
    assert t2.leaves() == [[3], [4]]


def test_apply_rejects_conflicting_cardinality():
    t1 = DecisionTree.from_leaves([A], [1, 2])
    a3 = DiscreteKey(A.id, 3)
    t2 = DecisionTree.from_leaves([a3], [1, 2, 3])

    with pytest.raises(KeySetMismatch):
        t1.apply(t2, operator.add)
    assert not t1.equals(t2)


def test_equals_ignores_key_order_and_compression_shape():
    values_ab = [10 * a + b for a in range(2) for b in range(3)]
    values_ba = [10 * a + b for b in range(3) for a in range(2)]

    t_ab = DecisionTree.from_leaves([A, B], values_ab)
    t_ba = DecisionTree.from_leaves([B, A], values_ba)
    assert t_ab.equals(t_ba)
    assert t_ba.equals(t_ab)

    # A compressed constant and an explicit two-leaf tree agree everywhere
    assert DecisionTree.from_value(5, [A]).equals(DecisionTree.from_leaves([A], [5, 5]))
    assert DecisionTree.from_value(5).equals(DecisionTree.from_leaves([A, C], [5] * 4))


def test_equals_detects_single_difference():
    t1 = DecisionTree.from_leaves([A, B], [0, 1, 2, 3, 4, 5])
    t2 = DecisionTree.from_leaves([A, B], [0, 1, 2, 3, 4, 6])

    assert not t1.equals(t2)


def test_compression_uses_caller_predicate():
    def close(a, b):
        return abs(a - b) < 0.5

    tree = DecisionTree.from_leaves([A], [1.0, 1.2], equal=close)
    assert tree.is_leaf()

    strict = DecisionTree.from_leaves([A], [1.0, 1.2])
    assert not strict.is_leaf()

    # Distinct but equal-valued objects are merged: equality, not identity
    lists = DecisionTree.from_leaves([A], [[1, 2], [1, 2]])
    assert lists.is_leaf()


def test_map_recompresses():
    tree = DecisionTree.from_leaves([A], [1, -1])

    mapped = tree.map(abs)

    assert mapped.is_leaf()
    assert mapped.keys == (A,)
    assert tree.num_leaves() == 2


def test_choose_restricts_domain():
    tree = DecisionTree.from_leaves([A, B], [0, 1, 2, 3, 4, 5])

    row = tree.choose({A.id: 1})

    assert row.keys == (B,)
    assert row.leaves() == [3, 4, 5]

    # Partial restriction that removes the only varying key compresses
    only_a = DecisionTree.from_leaves([A, B], [1, 1, 1, 2, 2, 2])
    assert only_a.choose({A.id: 0}).is_leaf()


def test_evaluate_errors():
    tree = DecisionTree.from_leaves([A, B], [0, 1, 2, 3, 4, 5])

    with pytest.raises(KeyError):
        tree({A.id: 0})
    with pytest.raises(ValueError):
        tree({A.id: 0, B.id: 3})


def test_round_trip_through_leaves():
    tree = DecisionTree.from_choice(
        A, [DecisionTree.from_leaves([B, C], list(range(6))), "x"]
    )

    rebuilt = DecisionTree.from_leaves(tree.keys, tree.leaves())

    assert rebuilt.equals(tree)


def test_visit_and_format():
    tree = DecisionTree.from_leaves([A], ["left", "right"])

    seen = []
    tree.visit(seen.append)
    assert seen == ["left", "right"]

    text = tree.format()
    assert text.splitlines()[0] == "Choice(10)"
    assert "Leaf right" in text
