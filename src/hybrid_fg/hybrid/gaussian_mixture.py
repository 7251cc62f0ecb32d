# Copyright (c) 2025.
# This file is part of HybridFG, released under the MIT License.
"""
Conditional Gaussian mixture for hybrid factor graphs.

``GaussianMixtureConditional`` represents the conditional density
P(X | M, Z), where X are continuous frontal variables, Z their continuous
parents and M a set of discrete parents selecting one linear-Gaussian
hypothesis (e.g. a data-association or mode hypothesis) per assignment.

The negative log-density at an assignment m is the squared error of the
selected conditional:

    0.5 * || R_m x − (d_m − S_m z) ||² / σ_m²

Structure
---------
The hypotheses live in a ``DecisionTree`` over the discrete parents. A leaf
is either a ``GaussianConditional`` over exactly the declared frontals and
parents, or the explicit ``ABSENT`` marker when no hypothesis is valid for
that assignment. Absence is a normal state: it derives to an empty factor
graph and only compares equal to another absence.

Capabilities
------------
The mixture satisfies two independent protocols from
``hybrid_fg.hybrid.interfaces``:

    • ``HybridFactor``: continuous/discrete keys and ``error(values, m)``,
      backed by a composed ``HybridKeys`` value.
    • ``Conditional``: frontals, parents and ``likelihood``, backed by a
      composed ``ConditionalKeys`` value.

Elimination support
-------------------
``as_factor_graph_tree()`` turns each hypothesis into a one-factor graph
(empty for ``ABSENT``), and ``add(sum)`` merges that tree with a tree
accumulated from sibling factors, concatenating graphs per assignment.

Notes
-----
Mixtures are immutable. Trees returned by ``conditionals``,
``as_factor_graph_tree`` and ``add`` are new or immutable objects; nothing
handed out can change the mixture.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import jax.numpy as jnp

from hybrid_fg.core.config import MixtureConfig
from hybrid_fg.core.errors import DimensionMismatch, KeySetMismatch, SizeMismatch
from hybrid_fg.core.types import (
    Assignment,
    DiscreteKey,
    DiscreteKeys,
    KeyFormatter,
    NodeId,
    cardinality_product,
    default_key_formatter,
    enumerate_assignments,
    format_assignment,
)
from hybrid_fg.discrete.decision_tree import DecisionTree, LeafEqual
from hybrid_fg.hybrid.factor_graph_tree import graph_equality, merge_factor_graph_trees
from hybrid_fg.hybrid.hybrid_keys import ConditionalKeys, HybridKeys
from hybrid_fg.linear.factor_graph import GaussianFactorGraph
from hybrid_fg.linear.gaussian_conditional import GaussianConditional

HYBRID_FG_LOGGER = logging.getLogger("hybrid_fg")


@dataclass(frozen=True)
class Absent:
    """No valid Gaussian hypothesis for a discrete assignment."""

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = Absent()

Hypothesis = Union[GaussianConditional, Absent]


def hypotheses_equal(a: Hypothesis, b: Hypothesis, tol: float = 1e-9) -> bool:
    if isinstance(a, Absent) or isinstance(b, Absent):
        return isinstance(a, Absent) and isinstance(b, Absent)
    return a.equals(b, tol)


def hypothesis_equality(tol: float) -> LeafEqual:
    return partial(hypotheses_equal, tol=tol)


# Compression only merges hypotheses that are numerically identical
_exact_hypotheses = hypothesis_equality(0.0)


def _check_hypothesis(leaf: Any) -> None:
    if not isinstance(leaf, (GaussianConditional, Absent)):
        raise TypeError(
            f"Mixture leaves must be GaussianConditional or ABSENT, got {type(leaf).__name__}"
        )


def _hypothesis_to_graph(h: Hypothesis) -> GaussianFactorGraph:
    if isinstance(h, Absent):
        return GaussianFactorGraph()
    return GaussianFactorGraph.of(h.to_factor())


class GaussianMixtureConditional:
    """
    Decision tree of Gaussian conditionals indexed by discrete parents.

    :param continuous_frontals: Frontal continuous keys X.
    :param continuous_parents: Parent continuous keys Z.
    :param discrete_parents: Non-empty discrete parents M; their order is
        the canonical order of the mixture.
    :param conditionals: Tree over exactly ``discrete_parents`` whose leaves
        are ``GaussianConditional`` or ``ABSENT``.
    :param cfg: Tolerances, see :class:`MixtureConfig`.
    :raises KeySetMismatch: if the tree's key set differs from
        ``discrete_parents`` or no discrete parent is given.
    :raises DimensionMismatch: if a present leaf's frontals or parents
        differ from the declared continuous keys.
    """

    __slots__ = ("_hybrid_keys", "_conditional_keys", "_conditionals", "_cfg")

    def __init__(
        self,
        continuous_frontals: Sequence[NodeId],
        continuous_parents: Sequence[NodeId],
        discrete_parents: Sequence[DiscreteKey],
        conditionals: DecisionTree,
        cfg: Optional[MixtureConfig] = None,
    ) -> None:
        cfg = cfg or MixtureConfig()
        frontals = tuple(continuous_frontals)
        parents = tuple(continuous_parents)
        discrete_parents = tuple(discrete_parents)

        continuous = frontals + parents
        if len(set(continuous)) != len(continuous):
            HYBRID_FG_LOGGER.debug("Rejected mixture: repeated continuous keys %s", list(continuous))
            raise DimensionMismatch(
                f"Frontals {list(frontals)} and parents {list(parents)} must be distinct keys"
            )

        if not discrete_parents:
            HYBRID_FG_LOGGER.debug("Rejected mixture over frontals %s: no discrete parents", frontals)
            raise KeySetMismatch("GaussianMixtureConditional needs at least one discrete parent")

        hybrid_keys = HybridKeys.of(continuous, discrete_parents)
        declared = {k.id: k for k in discrete_parents}
        in_tree = {k.id: k for k in conditionals.keys}
        if declared != in_tree:
            HYBRID_FG_LOGGER.debug(
                "Rejected mixture: tree keys %s, declared discrete parents %s",
                sorted(int(i) for i in in_tree),
                sorted(int(i) for i in declared),
            )
            raise KeySetMismatch(
                f"Conditionals tree keys {sorted(int(i) for i in in_tree)} differ from "
                f"discrete parents {sorted(int(i) for i in declared)}"
            )

        frontal_set, parent_set = set(frontals), set(parents)

        def _check_leaf(leaf: Any) -> None:
            _check_hypothesis(leaf)
            if isinstance(leaf, Absent):
                return
            if set(leaf.frontals) != frontal_set or set(leaf.parents) != parent_set:
                HYBRID_FG_LOGGER.debug("Rejected mixture leaf %r", leaf)
                raise DimensionMismatch(
                    f"Conditional over frontals {list(leaf.frontals)} and parents "
                    f"{list(leaf.parents)} does not match mixture frontals "
                    f"{list(frontals)} and parents {list(parents)}"
                )

        conditionals.visit(_check_leaf)

        self._hybrid_keys = hybrid_keys
        self._conditional_keys = ConditionalKeys(frontals, parents)
        self._conditionals = DecisionTree(discrete_parents, conditionals.root, _exact_hypotheses)
        self._cfg = cfg

        HYBRID_FG_LOGGER.debug(
            "Built GaussianMixtureConditional on %s | %s, %s: %d distinct hypotheses",
            list(frontals),
            list(parents),
            [int(k.id) for k in discrete_parents],
            self._conditionals.num_leaves(),
        )

    @classmethod
    def from_conditionals(
        cls,
        continuous_frontals: Sequence[NodeId],
        continuous_parents: Sequence[NodeId],
        discrete_parents: Sequence[DiscreteKey],
        conditionals: Sequence[Hypothesis],
        cfg: Optional[MixtureConfig] = None,
    ) -> "GaussianMixtureConditional":
        """
        Build a mixture from a flat list of hypotheses.

        The list is read in canonical order: the first discrete parent is the
        outermost index. Its length must be the product of the discrete
        parents' cardinalities, otherwise ``SizeMismatch`` is raised.
        """
        discrete_parents = tuple(discrete_parents)
        conditionals = list(conditionals)

        expected = cardinality_product(discrete_parents)
        if len(conditionals) != expected:
            HYBRID_FG_LOGGER.debug(
                "Rejected flat mixture: %d conditionals for %d assignments",
                len(conditionals),
                expected,
            )
            raise SizeMismatch(
                f"Expected {expected} conditionals for discrete parents "
                f"{[int(k.id) for k in discrete_parents]}, got {len(conditionals)}"
            )
        for c in conditionals:
            _check_hypothesis(c)

        tree = DecisionTree.from_leaves(
            discrete_parents, conditionals, equal=_exact_hypotheses
        )
        return cls(continuous_frontals, continuous_parents, discrete_parents, tree, cfg)

    # --- Introspection ---

    @property
    def conditionals(self) -> DecisionTree:
        return self._conditionals

    @property
    def config(self) -> MixtureConfig:
        return self._cfg

    @property
    def frontals(self) -> Tuple[NodeId, ...]:
        return self._conditional_keys.frontals

    @property
    def parents(self) -> Tuple[NodeId, ...]:
        return self._conditional_keys.parents

    @property
    def nr_frontals(self) -> int:
        return self._conditional_keys.nr_frontals

    @property
    def keys(self) -> Tuple[NodeId, ...]:
        return self._conditional_keys.keys

    @property
    def continuous_keys(self) -> Tuple[NodeId, ...]:
        return self._hybrid_keys.continuous

    @property
    def discrete_keys(self) -> DiscreteKeys:
        return self._hybrid_keys.discrete

    @property
    def discrete_parents(self) -> DiscreteKeys:
        return self._hybrid_keys.discrete

    @property
    def is_discrete(self) -> bool:
        return self._hybrid_keys.is_discrete

    @property
    def is_continuous(self) -> bool:
        return self._hybrid_keys.is_continuous

    @property
    def is_hybrid(self) -> bool:
        return self._hybrid_keys.is_hybrid

    def choose(self, assignment: Assignment) -> Hypothesis:
        """Hypothesis selected by a full assignment of the discrete parents."""
        return self._conditionals(assignment)

    # --- Factor / conditional capabilities ---

    def error(self, values: Dict[NodeId, jnp.ndarray], assignment: Assignment) -> float:
        """Squared error of the selected hypothesis; 0.0 when it is absent."""
        h = self.choose(assignment)
        if isinstance(h, Absent):
            return 0.0
        return h.error(values)

    def likelihood(self, frontal_values: Dict[NodeId, jnp.ndarray]) -> DecisionTree:
        """
        Tree over the discrete parents of factor graphs on the continuous
        parents, obtained by fixing the frontals. Absent hypotheses give
        empty graphs.
        """
        def _leaf(h: Hypothesis) -> GaussianFactorGraph:
            if isinstance(h, Absent):
                return GaussianFactorGraph()
            return GaussianFactorGraph.of(h.likelihood(frontal_values))

        return self._conditionals.map(_leaf, equal=graph_equality())

    # --- Elimination support ---

    def as_factor_graph_tree(self) -> DecisionTree:
        """
        Derive a fresh tree of factor graphs: ``ABSENT`` maps to an empty
        graph, a conditional to a one-factor graph holding its factor.
        """
        return self._conditionals.map(_hypothesis_to_graph, equal=graph_equality())

    def add(self, sum_tree: DecisionTree) -> DecisionTree:
        """
        Merge this mixture's factor graphs with ``sum_tree`` per joint assignment.

        The result is keyed on the discrete parents plus whatever keys
        ``sum_tree`` declares; each leaf holds this mixture's factor (if any)
        followed by ``sum_tree``'s factors at that assignment.
        """
        return merge_factor_graph_trees(self.as_factor_graph_tree(), sum_tree)

    # --- Testable ---

    def equals(self, other: Any, tol: Optional[float] = None) -> bool:
        if not isinstance(other, GaussianMixtureConditional):
            return False
        tol = self._cfg.tol if tol is None else tol
        if set(self.frontals) != set(other.frontals) or set(self.parents) != set(other.parents):
            return False
        if set(self.discrete_parents) != set(other.discrete_parents):
            return False
        return self._conditionals.equals(other._conditionals, hypothesis_equality(tol))

    def format(self, s: str = "GaussianMixtureConditional\n", formatter: KeyFormatter = default_key_formatter) -> str:
        lines = [s.rstrip("\n")]
        lines.append(" frontals: " + " ".join(formatter(k) for k in self.frontals))
        if self.parents:
            lines.append(" parents: " + " ".join(formatter(k) for k in self.parents))
        lines.append(
            " discrete parents: "
            + " ".join(f"{formatter(k.id)}({k.cardinality})" for k in self.discrete_parents)
        )
        for assignment in enumerate_assignments(self.discrete_parents):
            h = self.choose(assignment)
            shown = "ABSENT" if isinstance(h, Absent) else h.format(formatter)
            lines.append(f" ({format_assignment(assignment, formatter)}): {shown}")
        return "\n".join(lines)

    def print(self, s: str = "GaussianMixtureConditional\n", formatter: KeyFormatter = default_key_formatter) -> None:
        print(self.format(s, formatter))

    def __str__(self) -> str:
        return self.format()

    def __repr__(self) -> str:
        return (
            f"GaussianMixtureConditional(frontals={list(self.frontals)}, "
            f"parents={list(self.parents)}, "
            f"discrete_parents={[int(k.id) for k in self.discrete_parents]})"
        )
