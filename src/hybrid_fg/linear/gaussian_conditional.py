# Copyright (c) 2025.
# This file is part of HybridFG, released under the MIT License.
"""
Linear-Gaussian conditional density.

A ``GaussianConditional`` encodes p(x | y) over frontal variables x given
parent variables y in square-root information form:

    R x + S y = d + noise,   noise ~ N(0, diag(sigmas²))

where R (one block per frontal) is square and upper triangular in the
eliminated ordering, and S holds one block per parent. It is the leaf type of
``GaussianMixtureConditional``; the hybrid layer treats it as opaque and only
relies on its key bookkeeping, ``equals`` and ``to_factor``.

Main operations
---------------
to_factor()
    Whitened ``JacobianFactor`` over frontals + parents with the same
    squared error as the conditional.

error(values)
    0.5 * || (R x + S y − d) / sigmas ||².

likelihood(frontal_values)
    Fix the frontals and return the induced factor on the parents.

solve(parent_values)
    Back-substitute: x = R⁻¹ (d − S y).
"""

from __future__ import annotations
from typing import Dict, Optional, Sequence, Tuple

import jax.numpy as jnp

from hybrid_fg.core.errors import DimensionMismatch
from hybrid_fg.core.types import NodeId, KeyFormatter, default_key_formatter
from hybrid_fg.linear.jacobian_factor import JacobianFactor

Block = Tuple[NodeId, jnp.ndarray]


def _as_block(A) -> jnp.ndarray:
    return jnp.atleast_2d(jnp.asarray(A, dtype=jnp.float32))


def _close(a: jnp.ndarray, b: jnp.ndarray, tol: float) -> bool:
    return a.shape == b.shape and bool(jnp.all(jnp.abs(a - b) <= tol))


class GaussianConditional:
    """Linear-Gaussian conditional p(frontals | parents)."""

    __slots__ = ("_frontals", "_parents", "_R", "_S", "_d", "_sigmas")

    def __init__(
        self,
        frontals: Sequence[Block],
        d: jnp.ndarray,
        parents: Sequence[Block] = (),
        sigmas: Optional[jnp.ndarray] = None,
    ) -> None:
        if not frontals:
            raise DimensionMismatch("GaussianConditional needs at least one frontal")

        d = jnp.atleast_1d(jnp.asarray(d, dtype=jnp.float32))
        rows = d.shape[0]

        R_blocks = tuple(_as_block(R) for _, R in frontals)
        S_blocks = tuple(_as_block(S) for _, S in parents)
        for key, blk in zip([k for k, _ in frontals] + [k for k, _ in parents], R_blocks + S_blocks):
            if blk.shape[0] != rows:
                raise DimensionMismatch(
                    f"Block for key {key} has {blk.shape[0]} rows, d has {rows}"
                )
        frontal_dim = sum(int(R.shape[1]) for R in R_blocks)
        if frontal_dim != rows:
            raise DimensionMismatch(
                f"R must be square: {rows} rows but {frontal_dim} frontal columns"
            )

        if sigmas is None:
            sigmas = jnp.ones((rows,), dtype=jnp.float32)
        else:
            sigmas = jnp.broadcast_to(jnp.asarray(sigmas, dtype=jnp.float32), (rows,))
            if not bool(jnp.all(sigmas > 0)):
                raise ValueError("GaussianConditional sigmas must be positive")

        keys = [k for k, _ in frontals] + [k for k, _ in parents]
        if len(set(keys)) != len(keys):
            raise DimensionMismatch(f"GaussianConditional keys {keys} contain duplicates")

        self._frontals: Tuple[NodeId, ...] = tuple(k for k, _ in frontals)
        self._parents: Tuple[NodeId, ...] = tuple(k for k, _ in parents)
        self._R = R_blocks
        self._S = S_blocks
        self._d = d
        self._sigmas = sigmas

    @classmethod
    def from_mean(cls, key: NodeId, mean: jnp.ndarray, sigma: float = 1.0) -> "GaussianConditional":
        """Unary conditional N(mean, sigma² I) on a single frontal."""
        mean = jnp.atleast_1d(jnp.asarray(mean, dtype=jnp.float32))
        n = mean.shape[0]
        return cls([(key, jnp.eye(n))], mean, sigmas=jnp.full((n,), sigma))

    # --- Introspection ---

    @property
    def frontals(self) -> Tuple[NodeId, ...]:
        return self._frontals

    @property
    def parents(self) -> Tuple[NodeId, ...]:
        return self._parents

    @property
    def keys(self) -> Tuple[NodeId, ...]:
        return self._frontals + self._parents

    @property
    def nr_frontals(self) -> int:
        return len(self._frontals)

    @property
    def d(self) -> jnp.ndarray:
        return self._d

    @property
    def sigmas(self) -> jnp.ndarray:
        return self._sigmas

    def rows(self) -> int:
        return int(self._d.shape[0])

    def R(self) -> jnp.ndarray:
        return jnp.hstack(self._R)

    def S(self, parent: NodeId) -> jnp.ndarray:
        return self._S[self._parents.index(parent)]

    # --- Conversions ---

    def to_factor(self) -> JacobianFactor:
        """Whitened factor with the same squared error as this conditional."""
        w = 1.0 / self._sigmas
        blocks = [w[:, None] * blk for blk in self._R + self._S]
        return JacobianFactor(self.keys, blocks, w * self._d)

    def error(self, values: Dict[NodeId, jnp.ndarray]) -> float:
        return self.to_factor().error(values)

    def likelihood(self, frontal_values: Dict[NodeId, jnp.ndarray]) -> JacobianFactor:
        """Factor on the parents: S y = d − R x, whitened, with x fixed."""
        w = 1.0 / self._sigmas
        rhs = self._d
        for key, R in zip(self._frontals, self._R):
            rhs = rhs - R @ jnp.atleast_1d(frontal_values[key])
        return JacobianFactor(self._parents, [w[:, None] * S for S in self._S], w * rhs)

    def solve(self, parent_values: Optional[Dict[NodeId, jnp.ndarray]] = None) -> Dict[NodeId, jnp.ndarray]:
        """Back-substitution for the frontals given parent values."""
        parent_values = parent_values or {}
        rhs = self._d
        for key, S in zip(self._parents, self._S):
            rhs = rhs - S @ jnp.atleast_1d(parent_values[key])
        x = jnp.linalg.solve(self.R(), rhs)

        result: Dict[NodeId, jnp.ndarray] = {}
        offset = 0
        for key, R in zip(self._frontals, self._R):
            dim = int(R.shape[1])
            result[key] = x[offset:offset + dim]
            offset += dim
        return result

    # --- Testable ---

    def equals(self, other: "GaussianConditional", tol: float = 1e-9) -> bool:
        if not isinstance(other, GaussianConditional):
            return False
        if self._frontals != other._frontals or self._parents != other._parents:
            return False
        if not _close(self._d, other._d, tol) or not _close(self._sigmas, other._sigmas, tol):
            return False
        return all(_close(a, b, tol) for a, b in zip(self._R + self._S, other._R + other._S))

    def format(self, formatter: KeyFormatter = default_key_formatter) -> str:
        frontals = " ".join(formatter(k) for k in self._frontals)
        if not self._parents:
            return f"p({frontals}) d={self._d.tolist()}"
        parents = " ".join(formatter(k) for k in self._parents)
        return f"p({frontals} | {parents}) d={self._d.tolist()}"

    def __repr__(self) -> str:
        return f"GaussianConditional({self.format()})"
