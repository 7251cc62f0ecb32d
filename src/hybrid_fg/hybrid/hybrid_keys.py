# Copyright (c) 2025.
# This file is part of HybridFG, released under the MIT License.
"""
Key bookkeeping shared by hybrid factors and conditionals.

``HybridKeys`` tracks continuous and discrete keys of a factor;
``ConditionalKeys`` splits continuous keys into frontals and parents.
Hybrid types hold one of each and delegate to them.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Sequence, Tuple

from hybrid_fg.core.errors import KeySetMismatch
from hybrid_fg.core.types import DiscreteKey, DiscreteKeys, NodeId


@dataclass(frozen=True)
class HybridKeys:
    continuous: Tuple[NodeId, ...] = ()
    discrete: DiscreteKeys = ()

    @classmethod
    def of(cls, continuous: Sequence[NodeId], discrete: Sequence[DiscreteKey]) -> "HybridKeys":
        discrete = tuple(discrete)
        if len({k.id for k in discrete}) != len(discrete):
            raise KeySetMismatch(f"Duplicate discrete keys {[k.id for k in discrete]}")
        return cls(tuple(continuous), discrete)

    @property
    def is_discrete(self) -> bool:
        return bool(self.discrete) and not self.continuous

    @property
    def is_continuous(self) -> bool:
        return bool(self.continuous) and not self.discrete

    @property
    def is_hybrid(self) -> bool:
        return bool(self.continuous) and bool(self.discrete)

    def all_keys(self) -> Tuple[NodeId, ...]:
        """Continuous keys followed by discrete key ids."""
        return self.continuous + tuple(k.id for k in self.discrete)


@dataclass(frozen=True)
class ConditionalKeys:
    frontals: Tuple[NodeId, ...] = ()
    parents: Tuple[NodeId, ...] = ()

    @property
    def nr_frontals(self) -> int:
        return len(self.frontals)

    @property
    def keys(self) -> Tuple[NodeId, ...]:
        return self.frontals + self.parents
