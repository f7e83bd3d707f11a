"""
Spatial adjacency graphs for areal units (tracts, block groups, ZIPs).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Hashable, Iterable, List, Mapping, Sequence

import numpy as np
from libpysal import weights
from libpysal.weights import contiguity
from scipy.sparse import csgraph

from .errors import DisconnectedGraphError, DisconnectedInputError, InvalidParameterError

logger = logging.getLogger(__name__)

_RULES = {
    "queen": contiguity.Queen,
    "rook": contiguity.Rook,
}


def contiguity_graph(source, rule: str = "queen", id_column: str = None) -> weights.W:
    """
    Build a polygon contiguity graph using libpysal.

    Parameters
    ----------
    source : GeoDataFrame or str
        Polygons, or a path readable by ``geopandas.read_file``.
    rule : str
        'queen' (shared corner counts) or 'rook' (shared edge only); default 'queen'.
    id_column : str, optional
        Column holding unit identifiers (e.g. 'GEOID'). If omitted, units are
        keyed by row position.

    Returns
    -------
    weights.W
        Binary contiguity graph with id_order matching the row order of ``source``.

    Notes
    -----
    Units with no neighbors are kept as islands; ``check_connectivity`` reports them.
    """
    try:
        builder = _RULES[rule.lower()]
    except KeyError:
        raise InvalidParameterError(f"Unsupported contiguity rule: {rule}") from None

    if isinstance(source, str):
        import geopandas as gpd

        logger.info(f"Reading polygons from {source}")
        source = gpd.read_file(source)

    if id_column is not None:
        if id_column not in source.columns:
            raise InvalidParameterError(f"ID column '{id_column}' not found in polygons")
        if source[id_column].duplicated().any():
            raise InvalidParameterError(f"ID column '{id_column}' contains duplicate values")
        ids = source[id_column].tolist()
    else:
        ids = list(range(len(source)))

    w = builder.from_dataframe(source, ids=ids, silence_warnings=True)
    w.transform = "b"

    logger.info(
        f"Built {rule.lower()} contiguity graph: {w.n} units, "
        f"{w.s0 / 2:.0f} adjacent pairs, {len(w.islands)} islands"
    )
    return w


def graph_from_neighbors(
    adjacency: Mapping[Hashable, Iterable[Hashable]],
    unit_ids: Sequence[Hashable],
) -> weights.W:
    """
    Build a symmetric binary W from a neighbor mapping.

    Relations are symmetrized (a lists b implies b lists a), self-loops are dropped
    and units missing from ``adjacency`` get no neighbors.
    """
    unit_set = set(unit_ids)
    if len(unit_set) != len(unit_ids):
        raise InvalidParameterError("unit_ids contains duplicates")

    unknown = set(adjacency) - unit_set
    neighbors = defaultdict(set)
    for unit, linked in adjacency.items():
        for other in linked:
            if other not in unit_set:
                unknown.add(other)
                continue
            if other == unit:
                continue
            neighbors[unit].add(other)
            neighbors[other].add(unit)

    if unknown:
        shown = sorted(map(str, unknown))[:5]
        raise InvalidParameterError(f"Adjacency references unknown unit ids: {shown}")

    # Neighbor lists follow unit order so downstream edge order is reproducible
    position = {unit: i for i, unit in enumerate(unit_ids)}
    ordered = {
        unit: sorted(neighbors.get(unit, ()), key=position.__getitem__)
        for unit in unit_ids
    }

    w = weights.W(ordered, id_order=list(unit_ids), silence_warnings=True)
    w.transform = "b"
    return w


def reorder_w_to_unit_order(w: weights.W, unit_order: List[Hashable]) -> weights.W:
    """
    Align W to a specific unit order so labels[i] corresponds to unit_order[i].

    Parameters
    ----------
    w : weights.W
        Input graph whose keys include every id in unit_order.
    unit_order : list
        Exact row order used for regionalization and evaluation.

    Returns
    -------
    weights.W
        Graph with id_order == unit_order. Units of ``w`` absent from
        ``unit_order`` are dropped together with their links.
    """
    w_ids = set(w.neighbors.keys())
    order_set = set(unit_order)

    missing = order_set - w_ids
    if missing:
        raise InvalidParameterError(f"Units not found in weights graph: {sorted(map(str, missing))[:5]}")

    extra = w_ids - order_set
    if extra:
        logger.warning(f"Weights graph contains {len(extra)} units not in unit_order; dropping them")

    if not extra and list(w.id_order) == list(unit_order):
        logger.debug("No reordering needed - id_order already matches")
        return w

    reordered = weights.w_subset(w, list(unit_order), silence_warnings=True)
    reordered.transform = "b"
    return reordered


def connected_components(w: weights.W) -> List[List[Hashable]]:
    """Connected components of W, ordered by first appearance in ``w.id_order``."""
    if w.n == 0:
        return []
    _, component_labels = csgraph.connected_components(w.sparse, directed=False)

    components = {}
    for unit, label in zip(w.id_order, component_labels):
        components.setdefault(label, []).append(unit)
    return list(components.values())


def check_connectivity(w: weights.W) -> None:
    """
    Reject graphs a single spanning tree cannot cover.

    Raises
    ------
    DisconnectedGraphError
        If any unit has no neighbors (only checked when there is more than one unit).
    DisconnectedInputError
        If the graph splits into more than one connected component.
    """
    if w.n <= 1:
        return

    islands = [unit for unit in w.id_order if len(w.neighbors.get(unit, ())) == 0]
    if islands:
        shown = [str(unit) for unit in islands[:5]] + (["..."] if len(islands) > 5 else [])
        raise DisconnectedGraphError(
            f"{len(islands)} unit(s) have no neighbors: {shown}. "
            "Drop them or use a more permissive adjacency rule."
        )

    components = connected_components(w)
    logger.debug(f"Adjacency graph has {len(components)} connected component(s)")
    if len(components) > 1:
        sizes = sorted((len(c) for c in components), reverse=True)
        raise DisconnectedInputError(
            f"Adjacency graph has {len(components)} connected components (sizes {sizes}); "
            "regionalize each component separately."
        )


def adjacency_pairs(w: weights.W) -> np.ndarray:
    """
    Positional (i, j) pairs with i < j for every undirected link in W.

    Pairs are ordered by i then j, where positions index ``w.id_order``.
    """
    position = {unit: i for i, unit in enumerate(w.id_order)}
    pairs = []
    for unit in w.id_order:
        i = position[unit]
        for j in sorted(position[other] for other in w.neighbors.get(unit, ())):
            if j > i:
                pairs.append((i, j))
    return np.asarray(pairs, dtype=np.int64).reshape(-1, 2)
