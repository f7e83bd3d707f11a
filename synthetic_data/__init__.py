"""
Synthetic data generators for testing and development.

This module provides deterministic generators for creating unit grids and
chains with known ground truth regions.
"""

from .lattice import lattice_grid, make_block_features, chain_graph

__all__ = ['lattice_grid', 'make_block_features', 'chain_graph']
