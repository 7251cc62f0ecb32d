# Copyright (c) 2025.
# This file is part of HybridFG, released under the MIT License.
"""
HybridFG: decision-tree-indexed Gaussian mixtures for hybrid factor graphs.

The package is layered bottom-up:

    • ``hybrid_fg.core``      keys, errors and configuration
    • ``hybrid_fg.discrete``  the generic ``DecisionTree`` container
    • ``hybrid_fg.linear``    JAX-backed linear factors and conditionals
    • ``hybrid_fg.hybrid``    ``GaussianMixtureConditional`` and the
                              factor-graph-tree merge used by elimination
"""

from hybrid_fg.core.config import MixtureConfig, TreeConfig
from hybrid_fg.core.errors import DimensionMismatch, HybridError, KeySetMismatch, SizeMismatch
from hybrid_fg.core.types import Assignment, DiscreteKey, NodeId
from hybrid_fg.discrete.decision_tree import DecisionTree
from hybrid_fg.hybrid.factor_graph_tree import empty_factor_graph_tree, merge_factor_graph_trees
from hybrid_fg.hybrid.gaussian_mixture import ABSENT, Absent, GaussianMixtureConditional
from hybrid_fg.linear.factor_graph import GaussianFactorGraph
from hybrid_fg.linear.gaussian_conditional import GaussianConditional
from hybrid_fg.linear.jacobian_factor import JacobianFactor

__all__ = [
    "ABSENT",
    "Absent",
    "Assignment",
    "DecisionTree",
    "DimensionMismatch",
    "DiscreteKey",
    "GaussianConditional",
    "GaussianFactorGraph",
    "GaussianMixtureConditional",
    "HybridError",
    "JacobianFactor",
    "KeySetMismatch",
    "MixtureConfig",
    "NodeId",
    "SizeMismatch",
    "TreeConfig",
    "empty_factor_graph_tree",
    "merge_factor_graph_trees",
]
