# Copyright (c) 2025.
# This file is part of HybridFG, released under the MIT License.
"""
Ordered collection of linear Gaussian factors.

``GaussianFactorGraph`` is the leaf type of every factor-graph-tree in the
hybrid layer: deriving a mixture's tree yields graphs of zero or one factor,
and merging trees concatenates graphs per discrete assignment.

The graph stores:
    - factors: ordered list of ``JacobianFactor``

Key Features
------------
• Value-style concatenation
    ``a + b`` returns a new graph holding a's factors followed by b's. Merge
    code only ever concatenates, so graphs stored in trees are never mutated.

• JIT-compiled residual graph
    As for the nonlinear engine, the graph can be turned into a single fused
    residual function ``r(x) : ℝ^N → ℝ^M`` over a packed state vector, and a
    scalar objective ``f(x) = 0.5 ||r(x)||²``.

Primary Methods
---------------
push_back(factor)
    Append a factor (building phase only).

pack_values(values)
    Concatenate per-key values into a flat JAX array plus an index.

unpack_state(x, index)
    Split a flat state vector back into per-key blocks.

build_residual_function(index) / build_objective(index)
    JIT-compiled residual and objective over the packed state.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Tuple

import jax
import jax.numpy as jnp

from hybrid_fg.core.types import NodeId
from hybrid_fg.linear.jacobian_factor import JacobianFactor

StateIndex = Dict[NodeId, Tuple[int, int]]


@dataclass
class GaussianFactorGraph:
    """
    Linear factor graph.

    - factors: ordered list of JacobianFactor

    Factor order is preserved by every operation; equality compares factors
    position by position.
    """
    factors: List[JacobianFactor] = field(default_factory=list)

    @classmethod
    def of(cls, *factors: JacobianFactor) -> "GaussianFactorGraph":
        return cls(list(factors))

    def push_back(self, factor: JacobianFactor) -> None:
        self.factors.append(factor)

    def __len__(self) -> int:
        return len(self.factors)

    def __iter__(self) -> Iterator[JacobianFactor]:
        return iter(self.factors)

    def __getitem__(self, i: int) -> JacobianFactor:
        return self.factors[i]

    def __add__(self, other: "GaussianFactorGraph") -> "GaussianFactorGraph":
        return GaussianFactorGraph(self.factors + list(other.factors))

    def empty(self) -> bool:
        return not self.factors

    def keys(self) -> Tuple[NodeId, ...]:
        """Continuous keys touched by the graph, in first-seen order."""
        seen: Dict[NodeId, None] = {}
        for f in self.factors:
            for k in f.keys:
                seen.setdefault(k, None)
        return tuple(seen)

    def error(self, values: Dict[NodeId, jnp.ndarray]) -> float:
        return float(sum(f.error(values) for f in self.factors))

    def equals(self, other: "GaussianFactorGraph", tol: float = 1e-9) -> bool:
        if not isinstance(other, GaussianFactorGraph) or len(self) != len(other):
            return False
        return all(a.equals(b, tol) for a, b in zip(self.factors, other.factors))

    # --- State packing/unpacking ---

    def _build_state_index(self, dims: Dict[NodeId, int]) -> StateIndex:
        """
        Returns a mapping: NodeId -> (start_index, dim)
        Keys are laid out in sorted order.
        """
        index: StateIndex = {}
        offset = 0
        for node_id in sorted(dims):
            index[node_id] = (offset, dims[node_id])
            offset += dims[node_id]
        return index

    def dims(self) -> Dict[NodeId, int]:
        result: Dict[NodeId, int] = {}
        for f in self.factors:
            for k in f.keys:
                result.setdefault(k, f.dim(k))
        return result

    def pack_values(self, values: Dict[NodeId, jnp.ndarray]) -> Tuple[jnp.ndarray, StateIndex]:
        index = self._build_state_index(self.dims())
        chunks = [jnp.atleast_1d(jnp.asarray(values[nid])) for nid in index]
        if not chunks:
            return jnp.zeros((0,)), index
        return jnp.concatenate(chunks), index

    def unpack_state(self, x: jnp.ndarray, index: StateIndex) -> Dict[NodeId, jnp.ndarray]:
        result: Dict[NodeId, jnp.ndarray] = {}
        for node_id, (start, dim) in index.items():
            result[node_id] = x[start:start + dim]
        return result

    # --- Objective ---

    def build_residual_function(self, index: StateIndex):
        """
        Returns a JIT-compiled function r(x) -> stacked whitened residuals,
        where x is packed according to ``index``.
        """
        # Freeze the factor list inside the closure
        factors = tuple(self.factors)

        def residual(x: jnp.ndarray) -> jnp.ndarray:
            var_values = self.unpack_state(x, index)
            res_list = [f.residual(var_values) for f in factors]
            if not res_list:
                return jnp.zeros((0,), dtype=x.dtype)
            return jnp.concatenate(res_list)

        return jax.jit(residual)

    def build_objective(self, index: StateIndex):
        """
        Returns a JIT-compiled function f(x) -> 0.5 * ||r(x)||^2, the same
        quantity as ``error``.
        """
        residual = self.build_residual_function(index)

        def objective(x: jnp.ndarray) -> jnp.ndarray:
            r = residual(x)
            return 0.5 * jnp.sum(r ** 2)

        return jax.jit(objective)

    def __repr__(self) -> str:
        return f"GaussianFactorGraph({self.factors!r})"

