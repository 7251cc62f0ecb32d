# Copyright (c) 2025.
# This file is part of HybridFG, released under the MIT License.
"""
Configuration dataclasses for HybridFG.

TreeConfig
    Display options for decision trees:
    - max_format_depth: stop expanding nested choices below this depth
      (``None`` formats the whole tree)

MixtureConfig
    Tolerances used by ``GaussianMixtureConditional``:
    - tol: default tolerance of ``equals``. Tree compression always uses
      exact equality, so no tolerance can change a hypothesis.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional


@dataclass
class TreeConfig:
    max_format_depth: Optional[int] = None


@dataclass
class MixtureConfig:
    tol: float = 1e-9
