# Copyright (c) 2025.
# This file is part of HybridFG, released under the MIT License.
"""
Generic decision-tree container for HybridFG.

A :class:`DecisionTree` is a compressed representation of a *total* function
from assignments over a set of discrete keys to a leaf value of arbitrary
type. It is the indexing structure behind every hybrid object in the
package: Gaussian mixtures store one conditional per discrete assignment in a
decision tree, and the merge of mixtures during elimination is a decision
tree of factor graphs.

Key Concepts
------------
Domain
    Every tree carries a declared, ordered tuple of ``DiscreteKey``. This is
    the tree's *key set*. The node structure may branch on any subset of it;
    a key the nodes never branch on means the function does not depend on
    that key.

Leaf / Choice
    Nodes are either a ``Leaf`` holding a value, or a ``Choice`` branching on
    one key with exactly ``cardinality`` children. No key appears twice on a
    root-to-leaf path.

Compression
    After every tree-producing operation the explicit normalization pass
    :func:`compress` collapses any ``Choice`` whose branches induce the same
    function. Sameness is decided by a caller-supplied leaf predicate
    ``equal(a, b) -> bool``, never by identity. This bounds tree size by the
    number of distinct reachable leaves and lets :meth:`DecisionTree.equals`
    compare trees by assignment rather than by shape.

apply(other, combine)
    Binary leaf-wise combination over the union of both domains. Keys known
    to only one operand are broadcast: the other operand's leaf is repeated
    across all their states.

Canonical Order
---------------
``from_leaves(keys, leaves)`` reads a flat list with the *first* key as the
outermost branch. ``leaves()`` and ``assignments()`` enumerate in that same
order, so ``from_leaves(t.keys, t.leaves())`` reproduces ``t``.

Notes
-----
Trees are immutable. All operations return new trees and share unchanged
subtrees freely. Recursion depth is bounded by the number of keys on a path.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar, Union

import jax.numpy as jnp

from hybrid_fg.core.config import TreeConfig
from hybrid_fg.core.errors import KeySetMismatch, SizeMismatch
from hybrid_fg.core.types import (
    Assignment,
    DiscreteKey,
    DiscreteKeys,
    KeyFormatter,
    NodeId,
    cardinality_product,
    default_key_formatter,
    enumerate_assignments,
)

L = TypeVar("L")
R = TypeVar("R")

LeafEqual = Callable[[Any, Any], bool]


def default_equal(a: Any, b: Any) -> bool:
    if a is b:
        return True
    # Array leaves compare elementwise
    if hasattr(a, "shape") and hasattr(b, "shape"):
        return bool(jnp.array_equal(a, b))
    return bool(a == b)


@dataclass(frozen=True, eq=False)
class Leaf:
    value: Any


@dataclass(frozen=True, eq=False)
class Choice:
    key: DiscreteKey
    branches: Tuple["Node", ...]

    def __post_init__(self) -> None:
        if len(self.branches) != self.key.cardinality:
            raise SizeMismatch(
                f"Choice on key {self.key.id} needs {self.key.cardinality} "
                f"branches, got {len(self.branches)}"
            )


Node = Union[Leaf, Choice]


# --- Node-level primitives ---

def _restrict(node: Node, key_id: NodeId, state: int) -> Node:
    """Sub-function obtained by fixing ``key_id`` to ``state``."""
    if isinstance(node, Leaf):
        return node
    if node.key.id == key_id:
        return node.branches[state]
    return Choice(node.key, tuple(_restrict(b, key_id, state) for b in node.branches))


def _apply(f: Node, g: Node, combine: Callable[[Any, Any], Any]) -> Node:
    if isinstance(f, Leaf) and isinstance(g, Leaf):
        return Leaf(combine(f.value, g.value))

    # Branch on f's top key first, so the result follows f's nesting order
    key = f.key if isinstance(f, Choice) else g.key
    return Choice(
        key,
        tuple(
            _apply(_restrict(f, key.id, s), _restrict(g, key.id, s), combine)
            for s in range(key.cardinality)
        ),
    )


def _map(node: Node, fn: Callable[[Any], Any]) -> Node:
    if isinstance(node, Leaf):
        return Leaf(fn(node.value))
    return Choice(node.key, tuple(_map(b, fn) for b in node.branches))


def _equivalent(f: Node, g: Node, equal: LeafEqual) -> bool:
    """True iff ``f`` and ``g`` induce the same function, whatever their shape."""
    if isinstance(f, Leaf) and isinstance(g, Leaf):
        return equal(f.value, g.value)
    key = f.key if isinstance(f, Choice) else g.key
    return all(
        _equivalent(_restrict(f, key.id, s), _restrict(g, key.id, s), equal)
        for s in range(key.cardinality)
    )


def compress(node: Node, equal: LeafEqual = default_equal) -> Node:
    """
    Normalization pass: collapse every ``Choice`` whose branches are equal.

    Children are compressed first, so a collapse can cascade upwards.
    """
    if isinstance(node, Leaf):
        return node
    branches = tuple(compress(b, equal) for b in node.branches)
    first = branches[0]
    if all(_equivalent(first, b, equal) for b in branches[1:]):
        return first
    return Choice(node.key, branches)


def _evaluate(node: Node, assignment: Assignment) -> Any:
    while isinstance(node, Choice):
        state = assignment[node.key.id]
        node.key.check_state(state)
        node = node.branches[state]
    return node.value


def _collect_node_keys(node: Node, out: Dict[NodeId, DiscreteKey], path: Tuple[NodeId, ...]) -> None:
    if isinstance(node, Leaf):
        return
    if node.key.id in path:
        raise KeySetMismatch(f"Key {node.key.id} appears twice on one path")
    out.setdefault(node.key.id, node.key)
    for b in node.branches:
        _collect_node_keys(b, out, path + (node.key.id,))


def union_keys(a: Sequence[DiscreteKey], b: Sequence[DiscreteKey]) -> DiscreteKeys:
    by_id: Dict[NodeId, DiscreteKey] = {k.id: k for k in a}
    out = list(a)
    for k in b:
        known = by_id.get(k.id)
        if known is None:
            by_id[k.id] = k
            out.append(k)
        elif known.cardinality != k.cardinality:
            raise KeySetMismatch(
                f"Key {k.id} declared with cardinality {known.cardinality} "
                f"and {k.cardinality}"
            )
    return tuple(out)


def _build_from_leaves(keys: DiscreteKeys, leaves: Sequence[Any]) -> Node:
    if not keys:
        return Leaf(leaves[0])
    head, rest = keys[0], keys[1:]
    stride = len(leaves) // head.cardinality
    return Choice(
        head,
        tuple(
            _build_from_leaves(rest, leaves[s * stride:(s + 1) * stride])
            for s in range(head.cardinality)
        ),
    )


class DecisionTree(Generic[L]):
    """
    Immutable, compressed function from discrete assignments to leaves.

    Use the ``from_*`` class methods to build trees. The constructor
    validates an assembled node structure against its domain and compresses
    it with ``equal``.
    """

    __slots__ = ("_keys", "_root")

    def __init__(
        self,
        keys: Sequence[DiscreteKey],
        root: Node,
        equal: LeafEqual = default_equal,
    ) -> None:
        keys = tuple(keys)
        domain: Dict[NodeId, DiscreteKey] = {}
        for k in keys:
            if k.id in domain:
                raise KeySetMismatch(f"Key {k.id} listed twice in tree domain")
            domain[k.id] = k

        used: Dict[NodeId, DiscreteKey] = {}
        _collect_node_keys(root, used, ())
        for key_id, k in used.items():
            if domain.get(key_id) != k:
                raise KeySetMismatch(
                    f"Tree branches on key {key_id} outside its declared domain"
                )

        self._keys = keys
        self._root = compress(root, equal)

    # --- Construction ---

    @classmethod
    def from_value(cls, value: L, keys: Sequence[DiscreteKey] = ()) -> "DecisionTree[L]":
        """Constant tree: ``value`` at every assignment over ``keys``."""
        return cls(keys, Leaf(value))

    @classmethod
    def from_choice(
        cls,
        key: DiscreteKey,
        branches: Sequence[Union["DecisionTree[L]", L]],
        equal: LeafEqual = default_equal,
    ) -> "DecisionTree[L]":
        """
        Explicit nested construction: one branch per state of ``key``.

        Each branch is either a ``DecisionTree`` or a raw leaf value. The
        result's domain is ``key`` followed by the branches' keys.
        """
        if len(branches) != key.cardinality:
            raise SizeMismatch(
                f"Key {key.id} has cardinality {key.cardinality}, "
                f"got {len(branches)} branches"
            )
        subtrees = [b if isinstance(b, DecisionTree) else cls.from_value(b) for b in branches]

        keys: DiscreteKeys = (key,)
        for sub in subtrees:
            if any(k.id == key.id for k in sub.keys):
                raise KeySetMismatch(f"Key {key.id} is repeated inside its own branch")
            keys = union_keys(keys, sub.keys)

        root = Choice(key, tuple(sub._root for sub in subtrees))
        return cls(keys, root, equal)

    @classmethod
    def from_leaves(
        cls,
        keys: Sequence[DiscreteKey],
        leaves: Sequence[L],
        equal: LeafEqual = default_equal,
    ) -> "DecisionTree[L]":
        """
        Build from a flat list of leaves in canonical order.

        The first key in ``keys`` is the outermost branch; later keys are
        nested inside it.
        """
        keys = tuple(keys)
        expected = cardinality_product(keys)
        if len(leaves) != expected:
            raise SizeMismatch(
                f"Expected {expected} leaves for keys "
                f"{[k.id for k in keys]}, got {len(leaves)}"
            )
        if len({k.id for k in keys}) != len(keys):
            raise KeySetMismatch(f"Duplicate key ids in {[k.id for k in keys]}")
        return cls(keys, _build_from_leaves(keys, list(leaves)), equal)

    # --- Accessors ---

    @property
    def keys(self) -> DiscreteKeys:
        return self._keys

    @property
    def root(self) -> Node:
        return self._root

    def node_keys(self) -> DiscreteKeys:
        """Keys the compressed structure actually branches on, in domain order."""
        used: Dict[NodeId, DiscreteKey] = {}
        _collect_node_keys(self._root, used, ())
        return tuple(k for k in self._keys if k.id in used)

    def is_leaf(self) -> bool:
        return isinstance(self._root, Leaf)

    def num_leaves(self) -> int:
        count = 0

        def _count(node: Node) -> None:
            nonlocal count
            if isinstance(node, Leaf):
                count += 1
            else:
                for b in node.branches:
                    _count(b)

        _count(self._root)
        return count

    def evaluate(self, assignment: Assignment) -> L:
        return _evaluate(self._root, assignment)

    def __call__(self, assignment: Assignment) -> L:
        return _evaluate(self._root, assignment)

    def assignments(self) -> List[Assignment]:
        return list(enumerate_assignments(self._keys))

    def leaves(self) -> List[L]:
        """Leaf value at every assignment over the domain, in canonical order."""
        return [_evaluate(self._root, a) for a in enumerate_assignments(self._keys)]

    def visit(self, fn: Callable[[L], None]) -> None:
        """Call ``fn`` on each stored leaf, depth first, branches in state order."""
        def _visit(node: Node) -> None:
            if isinstance(node, Leaf):
                fn(node.value)
            else:
                for b in node.branches:
                    _visit(b)

        _visit(self._root)

    # --- Tree-producing operations ---

    def apply(
        self,
        other: "DecisionTree[R]",
        combine: Callable[[L, R], Any],
        equal: LeafEqual = default_equal,
    ) -> "DecisionTree[Any]":
        """
        Combine leaf-wise with ``other`` over the union of both domains.

        The result leaf at assignment ``a`` is ``combine(self(a), other(a))``.
        Neither operand is modified.
        """
        keys = union_keys(self._keys, other._keys)
        root = _apply(self._root, other._root, combine)
        return DecisionTree(keys, root, equal)

    def map(self, fn: Callable[[L], R], equal: LeafEqual = default_equal) -> "DecisionTree[R]":
        return DecisionTree(self._keys, _map(self._root, fn), equal)

    def choose(self, assignment: Assignment, equal: LeafEqual = default_equal) -> "DecisionTree[L]":
        """
        Restrict to a partial assignment.

        Entries for keys outside the domain are ignored; the result's domain
        drops every assigned key.
        """
        root = self._root
        remaining = []
        for k in self._keys:
            if k.id in assignment:
                state = assignment[k.id]
                k.check_state(state)
                root = _restrict(root, k.id, state)
            else:
                remaining.append(k)
        return DecisionTree(remaining, root, equal)

    # --- Testable ---

    def equals(self, other: "DecisionTree[Any]", equal: LeafEqual = default_equal) -> bool:
        """Assignment-based equality over the union of both domains."""
        if not isinstance(other, DecisionTree):
            return False
        try:
            union_keys(self._keys, other._keys)
        except KeySetMismatch:
            return False
        return _equivalent(self._root, other._root, equal)

    def format(
        self,
        leaf_formatter: Callable[[L], str] = str,
        key_formatter: KeyFormatter = default_key_formatter,
        cfg: Optional[TreeConfig] = None,
    ) -> str:
        cfg = cfg or TreeConfig()
        lines: List[str] = []

        def _fmt(node: Node, indent: str, depth: int) -> None:
            if isinstance(node, Leaf):
                lines.append(f"{indent}Leaf {leaf_formatter(node.value)}")
                return
            lines.append(f"{indent}Choice({key_formatter(node.key.id)})")
            if cfg.max_format_depth is not None and depth >= cfg.max_format_depth:
                lines.append(f"{indent}  ...")
                return
            for s, b in enumerate(node.branches):
                lines.append(f"{indent}{s}:")
                _fmt(b, indent + "  ", depth + 1)

        _fmt(self._root, "", 0)
        return "\n".join(lines)

    def __repr__(self) -> str:
        ids = [int(k.id) for k in self._keys]
        return f"DecisionTree(keys={ids}, leaves={self.num_leaves()})"
