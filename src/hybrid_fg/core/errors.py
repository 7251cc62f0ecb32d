# Copyright (c) 2025.
# This file is part of HybridFG, released under the MIT License.
"""
Error kinds raised while building hybrid structures.

All errors are raised at the point of construction or call; no partially
built object is ever returned. They derive from ``ValueError`` so callers
that already guard graph construction with ``except ValueError`` keep
working.
"""


class HybridError(ValueError):
    """Base class for structural errors in HybridFG."""


class KeySetMismatch(HybridError):
    """A decision tree's discrete key set disagrees with the declared keys."""


class DimensionMismatch(HybridError):
    """Continuous variable sets or block shapes disagree."""


class SizeMismatch(HybridError):
    """A flat list or branch list has the wrong number of entries."""
