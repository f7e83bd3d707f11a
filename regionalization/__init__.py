"""
Regionalization package for Census areal units.

This package provides SKATER regionalization built on a minimum spanning tree
of the contiguity graph, plus feature preparation, segregation indices, and
evaluation metrics.
"""

from .errors import (
    RegionalizationError,
    InvalidParameterError,
    DisconnectedGraphError,
    DisconnectedInputError,
    InfeasiblePartitionError,
)
from .adjacency import (
    contiguity_graph,
    graph_from_neighbors,
    reorder_w_to_unit_order,
    check_connectivity,
    connected_components,
)
from .costs import edge_costs
from .mst import minimum_spanning_tree, tree_edges, total_cost
from .skater import Skater, SkaterConfig, Cut, Unit, prune_tree, run_skater, regionalize
from .evaluation import within_ssd, quality_scores, contiguity_score, partition_stability, region_summary
from .features import reduce_features, kmeans_labels
from .indices import dissimilarity_index, entropy_index, mutual_information_index

__all__ = [
    'RegionalizationError',
    'InvalidParameterError',
    'DisconnectedGraphError',
    'DisconnectedInputError',
    'InfeasiblePartitionError',
    'contiguity_graph',
    'graph_from_neighbors',
    'reorder_w_to_unit_order',
    'check_connectivity',
    'connected_components',
    'edge_costs',
    'minimum_spanning_tree',
    'tree_edges',
    'total_cost',
    'Skater',
    'SkaterConfig',
    'Cut',
    'Unit',
    'prune_tree',
    'run_skater',
    'regionalize',
    'within_ssd',
    'quality_scores',
    'contiguity_score',
    'partition_stability',
    'region_summary',
    'reduce_features',
    'kmeans_labels',
    'dissimilarity_index',
    'entropy_index',
    'mutual_information_index',
]
