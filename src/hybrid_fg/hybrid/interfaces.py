# Copyright (c) 2025.
# This file is part of HybridFG, released under the MIT License.
"""
Capability protocols for hybrid objects.

A hybrid conditional is both a *factor* (it has keys and an error for a given
continuous + discrete assignment) and a *conditional* (it has frontal and
parent variables and can produce a likelihood once the frontals are known).
The two capability sets are expressed as independent structural protocols,
so an object opts in by providing the members rather than by inheriting from
base classes, and each capability can be checked on its own.
"""

from __future__ import annotations
from typing import Any, Dict, Protocol, Tuple, runtime_checkable

import jax.numpy as jnp

from hybrid_fg.core.types import Assignment, DiscreteKeys, NodeId


@runtime_checkable
class HybridFactor(Protocol):
    """Factor capability: keys plus error at a hybrid assignment."""

    @property
    def continuous_keys(self) -> Tuple[NodeId, ...]: ...

    @property
    def discrete_keys(self) -> DiscreteKeys: ...

    def error(self, values: Dict[NodeId, jnp.ndarray], assignment: Assignment) -> float: ...


@runtime_checkable
class Conditional(Protocol):
    """Conditional capability: frontals, parents and likelihood."""

    @property
    def frontals(self) -> Tuple[NodeId, ...]: ...

    @property
    def parents(self) -> Tuple[NodeId, ...]: ...

    @property
    def nr_frontals(self) -> int: ...

    def likelihood(self, frontal_values: Dict[NodeId, jnp.ndarray]) -> Any: ...
