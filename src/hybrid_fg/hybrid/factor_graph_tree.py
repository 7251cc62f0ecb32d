# Copyright (c) 2025.
# This file is part of HybridFG, released under the MIT License.
"""
Decision trees of Gaussian factor graphs.

A factor-graph-tree maps every discrete assignment to the collection of
linear factors active under it. Mixtures derive one (zero or one factor per
leaf) and elimination accumulates contributions from sibling mixtures by
merging trees, concatenating the factor graphs assignment by assignment.

Merging is ``DecisionTree.apply`` with :func:`concatenate`. Keys known to
only one operand are broadcast; keys in neither operand never enter the
result. The empty tree from :func:`empty_factor_graph_tree` is the identity
of the merge, and the per-assignment factor multisets are independent of
operand order and grouping (see :func:`same_factor_multisets`).
"""

from __future__ import annotations
import logging
from functools import partial, reduce
from typing import Iterable, List, Sequence

from hybrid_fg.core.types import DiscreteKey, enumerate_assignments
from hybrid_fg.discrete.decision_tree import DecisionTree, LeafEqual, union_keys
from hybrid_fg.linear.factor_graph import GaussianFactorGraph
from hybrid_fg.linear.jacobian_factor import JacobianFactor

HYBRID_FG_LOGGER = logging.getLogger("hybrid_fg")


def concatenate(a: GaussianFactorGraph, b: GaussianFactorGraph) -> GaussianFactorGraph:
    """New graph holding the factors of ``a`` followed by those of ``b``."""
    return a + b


def factor_graphs_equal(a: GaussianFactorGraph, b: GaussianFactorGraph, tol: float = 0.0) -> bool:
    return a.equals(b, tol)


def graph_equality(tol: float = 0.0) -> LeafEqual:
    """Leaf predicate comparing factor graphs at ``tol``."""
    return partial(factor_graphs_equal, tol=tol)


def empty_factor_graph_tree(keys: Sequence[DiscreteKey] = ()) -> DecisionTree:
    return DecisionTree.from_value(GaussianFactorGraph(), keys)


def merge_factor_graph_trees(a: DecisionTree, b: DecisionTree, tol: float = 0.0) -> DecisionTree:
    """
    Concatenate the factor graphs of ``a`` and ``b`` per joint assignment.

    The result's domain is ``a``'s keys followed by the keys only ``b``
    declares. Neither operand is modified.
    """
    result = a.apply(b, concatenate, equal=graph_equality(tol))
    HYBRID_FG_LOGGER.debug(
        "Merged factor-graph trees over keys %s and %s: %d leaves over keys %s",
        [int(k.id) for k in a.keys],
        [int(k.id) for k in b.keys],
        result.num_leaves(),
        [int(k.id) for k in result.keys],
    )
    return result


def merge_all(trees: Iterable[DecisionTree], tol: float = 0.0) -> DecisionTree:
    """Left fold of :func:`merge_factor_graph_trees`, starting from the empty tree."""
    return reduce(partial(merge_factor_graph_trees, tol=tol), trees, empty_factor_graph_tree())


def _same_multiset(fa: Sequence[JacobianFactor], fb: Sequence[JacobianFactor], tol: float) -> bool:
    if len(fa) != len(fb):
        return False
    unmatched: List[JacobianFactor] = list(fb)
    for f in fa:
        for i, g in enumerate(unmatched):
            if f.equals(g, tol):
                del unmatched[i]
                break
        else:
            return False
    return True


def same_factor_multisets(a: DecisionTree, b: DecisionTree, tol: float = 1e-9) -> bool:
    """
    True iff at every assignment over the union of both domains the two
    trees hold the same factors, ignoring order.
    """
    keys = union_keys(a.keys, b.keys)
    for assignment in enumerate_assignments(keys):
        if not _same_multiset(a(assignment).factors, b(assignment).factors, tol):
            return False
    return True
