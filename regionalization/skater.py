"""
SKATER regionalization: minimum spanning tree construction plus greedy tree-edge removal.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Hashable, List, Mapping, Iterable, NamedTuple, Optional, Sequence, Tuple, TypedDict

import networkx as nx
import numpy as np
import pandas as pd
from libpysal import weights

from .adjacency import check_connectivity, graph_from_neighbors
from .costs import edge_costs
from .errors import InfeasiblePartitionError, InvalidParameterError
from .mst import minimum_spanning_tree

logger = logging.getLogger(__name__)

# Relative tolerance under which two cut scores count as tied
SCORE_RTOL = 1e-9


class SkaterConfig(TypedDict):
    """Configuration for SKATER algorithm."""
    n_clusters: int
    min_size: int
    metric: str
    n_jobs: int


DEFAULT_CONFIG: SkaterConfig = {
    "n_clusters": 2,
    "min_size": 1,
    "metric": "euclidean",
    "n_jobs": 1,
}


class Unit(NamedTuple):
    unit_id: Hashable
    features: Sequence[float]


class Cut(NamedTuple):
    """One tree-edge removal and the heterogeneity reduction it achieved."""
    edge_index: int
    source: Hashable
    target: Hashable
    score: float
    sizes: Tuple[int, int]


def _validate_parameters(n_clusters, min_size) -> None:
    if not isinstance(n_clusters, (int, np.integer)) or isinstance(n_clusters, bool) or n_clusters < 1:
        raise InvalidParameterError(f"n_clusters must be a positive integer, got {n_clusters!r}")
    if not isinstance(min_size, (int, np.integer)) or isinstance(min_size, bool) or min_size < 1:
        raise InvalidParameterError(f"min_size must be a positive integer, got {min_size!r}")


def _resolve_n_jobs(n_jobs) -> int:
    # -1 means one thread per CPU, as in scikit-learn
    if n_jobs == -1:
        return os.cpu_count() or 1
    if not isinstance(n_jobs, (int, np.integer)) or isinstance(n_jobs, bool) or n_jobs < 1:
        raise InvalidParameterError(f"n_jobs must be a positive integer or -1, got {n_jobs!r}")
    return int(n_jobs)


def _check_feasible(n_units: int, n_clusters: int, min_size: int) -> None:
    if n_clusters * min_size > n_units:
        raise InfeasiblePartitionError(
            f"{n_clusters} regions of at least {min_size} units need {n_clusters * min_size} units, "
            f"but only {n_units} are available"
        )


def _as_feature_matrix(features, n_units: Optional[int] = None) -> np.ndarray:
    try:
        X = np.asarray(features, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidParameterError(f"Features must form a numeric (N, D) matrix: {e}") from e

    if X.ndim == 1:
        X = X.reshape(-1, 1)
    if X.ndim != 2 or X.shape[0] == 0 or X.shape[1] == 0:
        raise InvalidParameterError(f"Feature matrix is empty or malformed (shape {X.shape})")
    if n_units is not None and X.shape[0] != n_units:
        raise InvalidParameterError(f"Feature matrix has {X.shape[0]} rows but there are {n_units} units")
    if not np.isfinite(X).all():
        raise InvalidParameterError("Features must be finite (no NaN/Inf values)")
    return X


def _rowdot(a: np.ndarray) -> np.ndarray:
    return np.einsum("ij,ij->i", a, a)


def _component_cuts(
    forest: nx.Graph,
    component: Sequence[Hashable],
    X: np.ndarray,
    position: Mapping[Hashable, int],
    min_size: int,
) -> List[Cut]:
    """
    Score every edge of one subtree by the SSD reduction its removal achieves.

    Rooting the subtree once gives, for each edge, the child side as a subtree;
    per-side counts and sums then give both SSDs without revisiting nodes.
    """
    root = min(component, key=position.__getitem__)
    edges = list(nx.bfs_edges(forest, root))
    nodes = [root] + [child for _, child in edges]
    local = {node: k for k, node in enumerate(nodes)}

    block = X[[position[node] for node in nodes]]
    block = block - block.mean(axis=0)

    counts = np.ones(len(nodes))
    sums = block.copy()
    squares = _rowdot(block)
    parents = [local[parent] for parent, _ in edges]

    # BFS order lists parents before children, so a reverse sweep accumulates subtrees
    for k in range(len(edges), 0, -1):
        p = parents[k - 1]
        counts[p] += counts[k]
        sums[p] += sums[k]
        squares[p] += squares[k]

    n = counts[0]
    ssd_whole = squares[0] - sums[0] @ sums[0] / n

    child_counts = counts[1:]
    rest_counts = n - child_counts
    ssd_child = squares[1:] - _rowdot(sums[1:]) / child_counts
    ssd_rest = (squares[0] - squares[1:]) - _rowdot(sums[0] - sums[1:]) / rest_counts
    scores = ssd_whole - ssd_child - ssd_rest

    cuts = []
    for k, (parent, child) in enumerate(edges):
        if child_counts[k] < min_size or rest_counts[k] < min_size:
            continue
        cuts.append(Cut(
            edge_index=forest[parent][child]["index"],
            source=parent,
            target=child,
            score=float(scores[k]),
            sizes=(int(rest_counts[k]), int(child_counts[k])),
        ))
    return cuts


def _select_cut(candidates: List[Cut]) -> Optional[Cut]:
    """Largest score wins; scores within SCORE_RTOL of the best go to the lowest edge index."""
    if not candidates:
        return None
    best = max(cut.score for cut in candidates)
    tol = SCORE_RTOL * max(1.0, abs(best))
    tied = [cut for cut in candidates if cut.score >= best - tol]
    return min(tied, key=lambda cut: cut.edge_index)


def prune_tree(
    tree: nx.Graph,
    features,
    unit_ids: Sequence[Hashable],
    n_clusters: int,
    min_size: int = 1,
    n_jobs: int = 1,
) -> Tuple[np.ndarray, List[Cut]]:
    """
    Split a spanning tree into ``n_clusters`` contiguous regions.

    Parameters
    ----------
    tree : nx.Graph
        Spanning tree from ``minimum_spanning_tree``; edges need an ``index`` attribute.
        The tree itself is not modified.
    features : array-like
        (N, D) attributes aligned with ``unit_ids``.
    unit_ids : sequence
        Unit order for the returned labels.
    n_clusters : int
        Number of regions K; K - 1 edges are removed.
    min_size : int
        Minimum number of units per region.
    n_jobs : int
        Threads used to score independent subtrees within one iteration.
        -1 uses one thread per CPU; 0 and other negative values are rejected.
        Labels and cuts do not depend on the thread count.

    Returns
    -------
    labels : np.ndarray
        Region IDs (0..K-1) aligned to unit_ids, numbered by first appearance.
    cuts : list[Cut]
        Removed edges in removal order.

    Raises
    ------
    InfeasiblePartitionError
        If K * min_size exceeds N, or no remaining edge can be cut without
        leaving a region smaller than min_size.
    InvalidParameterError
        If n_clusters, min_size or n_jobs is invalid, or the tree does not span unit_ids.
    """
    _validate_parameters(n_clusters, min_size)
    n_jobs = _resolve_n_jobs(n_jobs)
    n_units = len(unit_ids)
    X = _as_feature_matrix(features, n_units)

    if set(tree.nodes) != set(unit_ids) or not nx.is_tree(tree):
        raise InvalidParameterError("tree must be a spanning tree over exactly the given units")
    _check_feasible(n_units, n_clusters, min_size)

    position = {unit: i for i, unit in enumerate(unit_ids)}
    forest = tree.copy()
    cuts: List[Cut] = []
    scored: Dict[frozenset, List[Cut]] = {}

    executor = ThreadPoolExecutor(max_workers=n_jobs) if n_jobs > 1 else None
    try:
        for step in range(n_clusters - 1):
            components = [
                frozenset(c) for c in nx.connected_components(forest) if len(c) >= 2 * min_size
            ]
            pending = [c for c in components if c not in scored]
            if executor is not None and len(pending) > 1:
                results = executor.map(lambda c: _component_cuts(forest, c, X, position, min_size), pending)
            else:
                results = (_component_cuts(forest, c, X, position, min_size) for c in pending)
            for component, component_cuts in zip(pending, results):
                scored[component] = component_cuts

            candidates = [cut for c in components for cut in scored[c]]
            cut = _select_cut(candidates)
            if cut is None:
                raise InfeasiblePartitionError(
                    f"No edge can be removed at cut {step + 1} of {n_clusters - 1} "
                    f"without creating a region smaller than {min_size} units"
                )

            split = next(c for c in components if cut.source in c)
            del scored[split]
            forest.remove_edge(cut.source, cut.target)
            cuts.append(cut)
            logger.debug(
                f"Cut {step + 1}: removed edge {cut.edge_index} ({cut.source}, {cut.target}), "
                f"SSD reduction {cut.score:.4f}, sizes {cut.sizes}"
            )
    finally:
        if executor is not None:
            executor.shutdown()

    regions = sorted(nx.connected_components(forest), key=lambda c: min(position[u] for u in c))
    labels = np.empty(n_units, dtype=np.int64)
    for label, region in enumerate(regions):
        for unit in region:
            labels[position[unit]] = label

    return labels, cuts


class Skater:
    """
    Spatially constrained clustering by tree edge removal.

    Fits on a feature matrix aligned to ``w.id_order`` and exposes ``labels_``,
    ``tree_`` and ``cuts_`` afterwards.
    """

    def __init__(self, n_clusters: int, min_size: int = 1, metric: str = "euclidean", n_jobs: int = 1):
        self.n_clusters = n_clusters
        self.min_size = min_size
        self.metric = metric
        self.n_jobs = n_jobs

    @classmethod
    def from_config(cls, cfg: SkaterConfig) -> "Skater":
        merged = {**DEFAULT_CONFIG, **cfg}
        return cls(merged["n_clusters"], merged["min_size"], merged["metric"], merged["n_jobs"])

    def fit(self, features, w: weights.W) -> "Skater":
        _validate_parameters(self.n_clusters, self.min_size)
        _resolve_n_jobs(self.n_jobs)
        X = _as_feature_matrix(features, w.n)
        check_connectivity(w)
        _check_feasible(w.n, self.n_clusters, self.min_size)

        unit_ids = list(w.id_order)
        logger.info(
            f"Running SKATER on {len(unit_ids)} units, {X.shape[1]} features, "
            f"{self.n_clusters} regions (min_size={self.min_size})"
        )

        costs = edge_costs(w, X, metric=self.metric)
        self.tree_ = minimum_spanning_tree(costs, unit_ids)
        self.labels_, self.cuts_ = prune_tree(
            self.tree_, X, unit_ids, self.n_clusters, self.min_size, n_jobs=self.n_jobs
        )

        logger.info(f"SKATER completed, created {len(np.unique(self.labels_))} regions")
        return self


def run_skater(
    df: pd.DataFrame,
    w: weights.W,
    cfg: SkaterConfig,
    feature_cols: List[str],
    id_column: str = "unit",
) -> Tuple[pd.DataFrame, np.ndarray]:
    """
    Run SKATER and return a mapping DataFrame and labels aligned to df order.

    Parameters
    ----------
    df : pd.DataFrame
        One row per unit with ``id_column`` and the feature columns.
    w : weights.W
        Spatial graph aligned to df[id_column] via reorder_w_to_unit_order.
    cfg : SkaterConfig
        Algorithm parameters; missing keys fall back to DEFAULT_CONFIG.
    feature_cols : list[str]
        Columns used for edge costs and heterogeneity, e.g. principal components.
    id_column : str
        Unit identifier column; default 'unit'.

    Returns
    -------
    mapping : pd.DataFrame
        Columns [id_column, 'region'] in the same order as df.
    labels : np.ndarray
        Region IDs (0..K-1) aligned to df rows.
    """
    if id_column not in df.columns:
        raise InvalidParameterError(f"ID column '{id_column}' not found in DataFrame")

    if df[id_column].duplicated().any():
        duplicated = df.loc[df[id_column].duplicated(), id_column].unique()
        raise InvalidParameterError(f"Duplicate unit ids found in DataFrame: {list(duplicated[:5])}")

    if not feature_cols:
        raise InvalidParameterError("At least one feature column is required")

    missing = [col for col in feature_cols if col not in df.columns]
    if missing:
        raise InvalidParameterError(f"Missing feature columns: {missing}")

    for col in feature_cols:
        if not pd.api.types.is_numeric_dtype(df[col]):
            raise InvalidParameterError(f"Feature column '{col}' must be numeric")

    if list(w.id_order) != df[id_column].tolist():
        raise InvalidParameterError(f"Weights id_order doesn't match df['{id_column}'] order")

    model = Skater.from_config(cfg).fit(df[feature_cols].to_numpy(), w)

    mapping = pd.DataFrame({
        id_column: df[id_column].to_numpy(),
        "region": model.labels_,
    })
    return mapping, model.labels_


def regionalize(
    units: Iterable[Tuple[Hashable, Sequence[float]]],
    adjacency: Mapping[Hashable, Iterable[Hashable]],
    num_groups: int,
    min_size: int = 1,
    metric: str = "euclidean",
    n_jobs: int = 1,
) -> Dict[Hashable, int]:
    """
    Partition units into ``num_groups`` contiguous, internally homogeneous regions.

    ``units`` is an ordered sequence of (unit_id, feature_vector) records and
    ``adjacency`` maps each unit id to its neighbor ids. Returns unit_id -> region
    label in 0..num_groups-1.
    """
    unit_ids = []
    vectors = []
    for i, record in enumerate(units):
        try:
            record = Unit(*record)
            # A scalar feature is a one-dimensional vector
            vector = np.atleast_1d(np.asarray(record.features, dtype=np.float64))
        except (TypeError, ValueError) as e:
            raise InvalidParameterError(
                f"Unit record {i} must be (unit_id, feature_vector) with numeric features: {e}"
            ) from e
        if vector.ndim != 1:
            raise InvalidParameterError(f"Unit record {i} features must be a flat vector, got shape {vector.shape}")
        unit_ids.append(record.unit_id)
        vectors.append(vector)

    _validate_parameters(num_groups, min_size)
    if not vectors:
        raise InvalidParameterError("No units supplied")

    lengths = {len(vector) for vector in vectors}
    if len(lengths) != 1:
        raise InvalidParameterError(f"Feature vectors have differing lengths: {sorted(lengths)}")
    X = _as_feature_matrix(np.vstack(vectors))

    w = graph_from_neighbors(adjacency, unit_ids)
    model = Skater(num_groups, min_size=min_size, metric=metric, n_jobs=n_jobs).fit(X, w)
    return {unit: int(label) for unit, label in zip(unit_ids, model.labels_)}
