"""
Minimum spanning tree over the cost-weighted adjacency graph.
"""

from __future__ import annotations

import logging
import math
from typing import Hashable, Iterable, List, Sequence, Tuple, Union

import networkx as nx
import pandas as pd
from networkx.utils import UnionFind

from .errors import DisconnectedInputError, InvalidParameterError

logger = logging.getLogger(__name__)

Edge = Tuple[Hashable, Hashable, float]


def _as_edge_list(edges: Union[pd.DataFrame, Iterable[Edge]]) -> List[Edge]:
    if isinstance(edges, pd.DataFrame):
        missing = {"source", "target", "cost"} - set(edges.columns)
        if missing:
            raise InvalidParameterError(f"Edge table missing columns: {sorted(missing)}")
        return list(edges[["source", "target", "cost"]].itertuples(index=False, name=None))
    return [tuple(edge) for edge in edges]


def minimum_spanning_tree(
    edges: Union[pd.DataFrame, Iterable[Edge]],
    unit_ids: Sequence[Hashable],
) -> nx.Graph:
    """
    Kruskal's minimum spanning tree with a reproducible tie-break.

    Parameters
    ----------
    edges : pd.DataFrame or iterable of (source, target, cost)
        Weighted adjacency, typically the output of ``edge_costs``.
    unit_ids : sequence
        All units the tree must span.

    Returns
    -------
    nx.Graph
        Tree with exactly len(unit_ids) - 1 edges. Each edge has ``cost`` and
        ``index``, its position in acceptance order.

    Raises
    ------
    InvalidParameterError
        If an edge names a unit outside ``unit_ids`` or has a negative or
        non-finite cost.
    DisconnectedInputError
        If the edges do not connect every unit.

    Notes
    -----
    Edges are processed in order of (cost, position in ``edges``), so equal-cost
    edges are taken in input order.
    """
    edge_list = _as_edge_list(edges)
    unit_set = set(unit_ids)

    for source, target, cost in edge_list:
        if source not in unit_set or target not in unit_set:
            raise InvalidParameterError(f"Edge ({source}, {target}) references an unknown unit")
        if not math.isfinite(cost) or cost < 0:
            raise InvalidParameterError(f"Edge ({source}, {target}) has invalid cost {cost}")

    # Connectivity is checked up front so a failed call never yields a partial forest
    graph = nx.Graph()
    graph.add_nodes_from(unit_ids)
    graph.add_edges_from((source, target) for source, target, _ in edge_list)
    n_components = nx.number_connected_components(graph) if len(unit_ids) else 0
    if n_components > 1:
        raise DisconnectedInputError(
            f"Cannot span {len(unit_ids)} units: the graph has {n_components} connected components"
        )

    ordered = sorted(range(len(edge_list)), key=lambda k: (edge_list[k][2], k))

    tree = nx.Graph()
    tree.add_nodes_from(unit_ids)
    subtrees = UnionFind(unit_ids)
    for k in ordered:
        source, target, cost = edge_list[k]
        if subtrees[source] == subtrees[target]:
            continue
        subtrees.union(source, target)
        tree.add_edge(source, target, cost=float(cost), index=tree.number_of_edges())
        if tree.number_of_edges() == len(unit_ids) - 1:
            break

    logger.info(f"Minimum spanning tree: {tree.number_of_nodes()} units, total cost {total_cost(tree):.4f}")
    return tree


def tree_edges(tree: nx.Graph) -> List[Edge]:
    """Tree edges as (source, target, cost), ordered by their ``index`` attribute."""
    edges = sorted(tree.edges(data=True), key=lambda e: e[2]["index"])
    return [(source, target, data["cost"]) for source, target, data in edges]


def total_cost(graph: nx.Graph) -> float:
    return float(sum(cost for _, _, cost in graph.edges(data="cost", default=0.0)))
