# Copyright (c) 2025.
# This file is part of HybridFG, released under the MIT License.
"""
Core typed data structures for HybridFG.

This module defines the lightweight key types shared by the discrete,
linear and hybrid layers. They carry only identity and structural
information; all numerical work happens in the JAX-backed linear layer.

Classes
-------
NodeId
    Identifier of a continuous variable (an integer key).

DiscreteKey
    Identifier plus cardinality of a finite-valued variable. A discrete key
    contains:
    - id: Unique identifier (shares the integer key space with NodeId)
    - cardinality: Number of states, at least 2

Assignment
    Mapping from discrete key ids to chosen state indices.

Notes
-----
Keys are frozen dataclasses so they can be used as dictionary keys, stored in
decision trees and shared freely between immutable structures.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, NewType, Sequence, Tuple
import itertools

NodeId = NewType("NodeId", int)

# Discrete key id -> chosen state index
Assignment = Dict[NodeId, int]

KeyFormatter = Callable[[int], str]


@dataclass(frozen=True)
class DiscreteKey:
    """Finite-valued variable: key id plus number of states."""
    id: NodeId
    cardinality: int

    def __post_init__(self) -> None:
        if self.cardinality < 2:
            raise ValueError(
                f"DiscreteKey {self.id} needs cardinality >= 2, got {self.cardinality}"
            )

    def check_state(self, state: int) -> None:
        if not 0 <= state < self.cardinality:
            raise ValueError(
                f"State {state} out of range for key {self.id} "
                f"with cardinality {self.cardinality}"
            )


DiscreteKeys = Tuple[DiscreteKey, ...]


def default_key_formatter(key: int) -> str:
    return str(int(key))


def cardinality_product(keys: Iterable[DiscreteKey]) -> int:
    total = 1
    for k in keys:
        total *= k.cardinality
    return total


def enumerate_assignments(keys: Sequence[DiscreteKey]) -> Iterator[Assignment]:
    """
    Yield every assignment over ``keys`` in canonical order.

    The first key is the outermost (slowest varying) index, matching the
    leaf order expected by ``DecisionTree.from_leaves``.
    """
    ids = [k.id for k in keys]
    for states in itertools.product(*(range(k.cardinality) for k in keys)):
        yield dict(zip(ids, states))


def format_assignment(assignment: Assignment, formatter: KeyFormatter = default_key_formatter) -> str:
    return ", ".join(f"{formatter(k)}={v}" for k, v in assignment.items())
