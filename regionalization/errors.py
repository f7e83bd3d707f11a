"""
Typed errors raised by the regionalization pipeline.
"""

from __future__ import annotations


class RegionalizationError(ValueError):
    """Base class for all regionalization input and feasibility errors."""


class InvalidParameterError(RegionalizationError):
    """Bad argument: non-positive K or min_size, empty or non-finite features, unknown ids."""


class DisconnectedGraphError(RegionalizationError):
    """One or more units have no neighbors, so no spanning tree can include them."""


class DisconnectedInputError(RegionalizationError):
    """The adjacency graph has more than one connected component."""


class InfeasiblePartitionError(RegionalizationError):
    """The requested number of regions cannot be reached under the minimum size."""
