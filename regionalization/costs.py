"""
Dissimilarity costs on adjacency edges.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd
from libpysal import weights
from sklearn.metrics.pairwise import paired_distances

from .adjacency import adjacency_pairs
from .errors import InvalidParameterError

logger = logging.getLogger(__name__)

SUPPORTED_METRICS = ("euclidean", "manhattan", "sqeuclidean")


def edge_costs(w: weights.W, features: np.ndarray, metric: str = "euclidean") -> pd.DataFrame:
    """
    Attach a dissimilarity cost to every adjacent pair of units.

    Parameters
    ----------
    w : weights.W
        Adjacency graph; rows of ``features`` follow ``w.id_order``.
    features : np.ndarray
        (N, D) attribute matrix, e.g. principal component scores.
    metric : str
        'euclidean' (default), 'manhattan' or 'sqeuclidean'.

    Returns
    -------
    pd.DataFrame
        Columns ['source', 'target', 'cost'], one row per undirected pair with
        source preceding target in id_order. Rows are sorted by source position,
        then target position.
    """
    if metric not in SUPPORTED_METRICS:
        raise InvalidParameterError(f"Unsupported cost metric '{metric}'; use one of {SUPPORTED_METRICS}")

    X = np.asarray(features, dtype=np.float64)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    if X.shape[0] != w.n:
        raise InvalidParameterError(f"Feature matrix has {X.shape[0]} rows but graph has {w.n} units")

    pairs = adjacency_pairs(w)
    ids = np.asarray(w.id_order, dtype=object)

    if len(pairs) == 0:
        return pd.DataFrame({"source": [], "target": [], "cost": np.array([], dtype=np.float64)})

    base_metric = "euclidean" if metric == "sqeuclidean" else metric
    cost = paired_distances(X[pairs[:, 0]], X[pairs[:, 1]], metric=base_metric)
    if metric == "sqeuclidean":
        cost = cost ** 2

    logger.debug(f"Computed {len(cost)} {metric} edge costs")

    return pd.DataFrame({
        "source": ids[pairs[:, 0]],
        "target": ids[pairs[:, 1]],
        "cost": cost,
    })
