"""
Evaluation metrics for region homogeneity, contiguity, and stability.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from libpysal import weights
from sklearn.metrics import adjusted_rand_score, davies_bouldin_score, silhouette_score
from sklearn.metrics.cluster import pair_confusion_matrix

logger = logging.getLogger(__name__)


def within_ssd(features: np.ndarray, labels: np.ndarray) -> float:
    """Total within-region sum of squared deviations from each region's mean."""
    X = np.asarray(features, dtype=np.float64)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    labels = np.asarray(labels)
    if len(labels) != len(X):
        raise ValueError("Labels length doesn't match feature rows")

    total = 0.0
    for label in np.unique(labels):
        block = X[labels == label]
        total += float(((block - block.mean(axis=0)) ** 2).sum())
    return total


def quality_scores(
    df: pd.DataFrame,
    labels: np.ndarray,
    feature_cols: List[str],
    max_samples: int = 10000,
    random_state: int = 42,
) -> Dict[str, float]:
    """
    Compute compactness/separation metrics in attribute space.

    Parameters
    ----------
    df : pd.DataFrame
        Contains the feature columns, one row per unit.
    labels : np.ndarray
        Region assignment for each row of df.
    feature_cols : list[str]
        Columns the regionalization was run on.
    max_samples : int
        Maximum rows used for the O(N^2) silhouette computation.
    random_state : int
        Seed for reproducible subsampling.

    Returns
    -------
    dict
        {'silhouette': float | nan, 'davies_bouldin': float | nan, 'within_ssd': float}
    """
    missing = [col for col in feature_cols if col not in df.columns]
    if missing:
        raise ValueError(f"Missing feature columns: {missing}")

    X = df[feature_cols].to_numpy(dtype=np.float64)
    labels = np.asarray(labels)

    if not np.isfinite(X).all():
        logger.warning("Non-finite values found in features - returning NaN scores")
        return {'silhouette': np.nan, 'davies_bouldin': np.nan, 'within_ssd': np.nan}

    scores = {'silhouette': np.nan, 'davies_bouldin': np.nan, 'within_ssd': within_ssd(X, labels)}

    _, label_counts = np.unique(labels, return_counts=True)
    if len(label_counts) <= 1:
        return scores

    if label_counts.min() == 1:
        logger.warning("Singleton regions detected - returning NaN silhouette/Davies-Bouldin")
        return scores

    rng = np.random.RandomState(random_state)
    if len(X) > max_samples:
        logger.info(f"Subsampling {max_samples} units for silhouette score computation")
        indices = rng.choice(len(X), max_samples, replace=False)
        X_sample, labels_sample = X[indices], labels[indices]
    else:
        X_sample, labels_sample = X, labels

    try:
        scores['silhouette'] = silhouette_score(X_sample, labels_sample)
    except (ValueError, RuntimeError) as e:
        logger.warning(f"Silhouette score computation failed: {e}")

    try:
        scores['davies_bouldin'] = davies_bouldin_score(X, labels)
    except (ValueError, RuntimeError) as e:
        logger.warning(f"Davies-Bouldin score computation failed: {e}")

    return scores


def contiguity_score(labels: np.ndarray, w: weights.W) -> Dict[str, float]:
    """
    Verify each region is a single connected component under W.

    Returns
    -------
    dict
        {'connected_fraction': float in [0,1], 'violating_regions': int, 'n_regions': int}
    """
    if len(labels) != len(w.id_order):
        raise ValueError("Labels length doesn't match weights graph size")

    labels = np.asarray(labels)
    unique_labels = np.unique(labels)
    violating = 0

    for label in unique_labels:
        members = [w.id_order[i] for i in np.flatnonzero(labels == label)]
        if len(members) <= 1:
            continue

        member_set = set(members)
        visited = {members[0]}
        queue = deque([members[0]])
        while queue:
            unit = queue.popleft()
            for neighbor in w.neighbors.get(unit, []):
                if neighbor in member_set and neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)

        if len(visited) < len(members):
            violating += 1

    n_regions = len(unique_labels)
    return {
        'connected_fraction': (n_regions - violating) / n_regions if n_regions > 0 else 1.0,
        'violating_regions': violating,
        'n_regions': n_regions,
    }


def partition_stability(labels_a: np.ndarray, labels_b: np.ndarray) -> Dict[str, float]:
    """
    Compare two partitions of the same units.

    ARI is permutation-invariant; Jaccard is TP/(TP+FP+FN) over co-membership pairs.
    """
    if len(labels_a) != len(labels_b):
        raise ValueError("Label arrays must have same length")

    ari = adjusted_rand_score(labels_a, labels_b)

    # cm[1,1]: pairs together in both, cm[0,1]/cm[1,0]: together in only one
    cm = pair_confusion_matrix(labels_a, labels_b)
    tp, fp, fn = cm[1, 1], cm[0, 1], cm[1, 0]
    jaccard = tp / (tp + fp + fn) if (tp + fp + fn) > 0 else 1.0

    return {'ari': ari, 'jaccard': jaccard}


def region_summary(
    mapping: pd.DataFrame,
    df: pd.DataFrame,
    mean_attrs: Optional[List[str]] = None,
    sum_attrs: Optional[List[str]] = None,
    id_column: str = "unit",
) -> pd.DataFrame:
    """
    Per-region unit counts plus optional attribute means and sums.

    Parameters
    ----------
    mapping : pd.DataFrame
        [id_column, 'region'] assignment from run_skater.
    df : pd.DataFrame
        Unit table with id_column and attributes.
    mean_attrs : list[str] | None
        Columns averaged per region (e.g. principal components, median age).
    sum_attrs : list[str] | None
        Columns summed per region (e.g. population counts); all-NaN groups stay NaN.

    Returns
    -------
    pd.DataFrame
        One row per region with ['region', 'n_units', <means as mean_<col>>, <sums...>].
    """
    if id_column not in mapping.columns or 'region' not in mapping.columns:
        raise ValueError(f"mapping must contain '{id_column}' and 'region' columns")
    if id_column not in df.columns:
        raise ValueError(f"df must contain '{id_column}' column")

    requested = list(mean_attrs or []) + list(sum_attrs or [])
    missing_attrs = [col for col in requested if col not in df.columns]
    if missing_attrs:
        raise ValueError(f"Missing attribute columns in df: {missing_attrs}")

    merged = mapping.merge(df, on=id_column, how='left', indicator=True)
    if (merged['_merge'] != 'both').any():
        missing = merged.loc[merged['_merge'] != 'both', id_column].unique()
        missing_display = list(missing[:5]) + (['...'] if len(missing) > 5 else [])
        raise ValueError(f"Units in mapping missing from df: {missing_display}")
    merged = merged.drop(columns=['_merge'])

    grouped = merged.groupby('region', sort=True)
    summary = grouped.size().rename('n_units').reset_index()

    if mean_attrs:
        means = grouped[list(mean_attrs)].mean().add_prefix('mean_').reset_index()
        summary = summary.merge(means, on='region', how='left')

    if sum_attrs:
        sums = grouped[list(sum_attrs)].sum(min_count=1).reset_index()
        summary = summary.merge(sums, on='region', how='left')

    return summary.reset_index(drop=True)
