# Copyright (c) 2025.
# This file is part of HybridFG, released under the MIT License.
"""
Linear (whitened) Gaussian factor.

A ``JacobianFactor`` represents the squared-error term

    error(x) = 0.5 * || Σ_j A_j x_j − b ||²

over an ordered tuple of continuous keys. It is the factor produced by
``GaussianConditional.to_factor`` and the element type of
``GaussianFactorGraph``.
"""

from __future__ import annotations
from typing import Dict, Sequence, Tuple

import jax.numpy as jnp

from hybrid_fg.core.errors import DimensionMismatch
from hybrid_fg.core.types import NodeId


class JacobianFactor:
    """Whitened linear factor ``A x = b`` over continuous keys."""

    __slots__ = ("_keys", "_matrices", "_rhs")

    def __init__(
        self,
        keys: Sequence[NodeId],
        matrices: Sequence[jnp.ndarray],
        rhs: jnp.ndarray,
    ) -> None:
        keys = tuple(keys)
        if len(keys) != len(matrices):
            raise DimensionMismatch(
                f"JacobianFactor got {len(keys)} keys but {len(matrices)} blocks"
            )
        if len(set(keys)) != len(keys):
            raise DimensionMismatch(f"JacobianFactor keys {keys} contain duplicates")

        rhs = jnp.atleast_1d(jnp.asarray(rhs, dtype=jnp.float32))
        blocks = []
        for key, A in zip(keys, matrices):
            A = jnp.atleast_2d(jnp.asarray(A, dtype=jnp.float32))
            if A.shape[0] != rhs.shape[0]:
                raise DimensionMismatch(
                    f"Block for key {key} has {A.shape[0]} rows, rhs has {rhs.shape[0]}"
                )
            blocks.append(A)

        self._keys: Tuple[NodeId, ...] = keys
        self._matrices: Tuple[jnp.ndarray, ...] = tuple(blocks)
        self._rhs = rhs

    @property
    def keys(self) -> Tuple[NodeId, ...]:
        return self._keys

    @property
    def matrices(self) -> Tuple[jnp.ndarray, ...]:
        return self._matrices

    @property
    def rhs(self) -> jnp.ndarray:
        return self._rhs

    def rows(self) -> int:
        return int(self._rhs.shape[0])

    def dim(self, key: NodeId) -> int:
        return int(self._matrices[self._keys.index(key)].shape[1])

    def residual(self, values: Dict[NodeId, jnp.ndarray]) -> jnp.ndarray:
        """Whitened residual ``A x − b`` at ``values``."""
        r = -self._rhs
        for key, A in zip(self._keys, self._matrices):
            r = r + A @ jnp.atleast_1d(values[key])
        return r

    def error(self, values: Dict[NodeId, jnp.ndarray]) -> float:
        r = self.residual(values)
        return float(0.5 * jnp.dot(r, r))

    def equals(self, other: "JacobianFactor", tol: float = 1e-9) -> bool:
        if not isinstance(other, JacobianFactor):
            return False
        if self._keys != other._keys or self._rhs.shape != other._rhs.shape:
            return False
        if not bool(jnp.all(jnp.abs(self._rhs - other._rhs) <= tol)):
            return False
        for A, B in zip(self._matrices, other._matrices):
            if A.shape != B.shape or not bool(jnp.all(jnp.abs(A - B) <= tol)):
                return False
        return True

    def __repr__(self) -> str:
        return f"JacobianFactor(keys={[int(k) for k in self._keys]}, rows={self.rows()})"
