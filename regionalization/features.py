"""
Feature preparation for regionalization: standardization, PCA, and an aspatial k-means baseline.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Tuple

import numpy as np
import pandas as pd
from sklearn.cluster import KMeans
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from .errors import InvalidParameterError

logger = logging.getLogger(__name__)


class FeatureReducer(Protocol):
    """Anything with an sklearn-style fit_transform, e.g. PCA or TruncatedSVD."""

    def fit_transform(self, X: np.ndarray) -> np.ndarray:
        ...


def reduce_features(
    df: pd.DataFrame,
    feature_cols: List[str],
    n_components: Optional[int] = None,
    standardize: bool = True,
    reducer: Optional[FeatureReducer] = None,
    prefix: str = "PC",
) -> Tuple[pd.DataFrame, Optional[np.ndarray]]:
    """
    Project demographic attributes onto a smaller set of components.

    Parameters
    ----------
    df : pd.DataFrame
        One row per unit.
    feature_cols : list[str]
        Numeric columns to reduce (e.g. percent White, median age, percent college).
    n_components : int, optional
        Components kept by the default PCA; all of them if omitted.
    standardize : bool
        Scale columns to zero mean and unit variance first.
    reducer : FeatureReducer, optional
        Replaces the default PCA.
    prefix : str
        Output column prefix; columns are named PC1, PC2, ...

    Returns
    -------
    scores : pd.DataFrame
        Component scores indexed like df.
    explained_variance_ratio : np.ndarray | None
        Taken from the reducer when it exposes one.
    """
    missing = [col for col in feature_cols if col not in df.columns]
    if missing:
        raise InvalidParameterError(f"Missing feature columns: {missing}")
    if len(df) == 0 or not feature_cols:
        raise InvalidParameterError("Cannot reduce an empty feature table")

    data = df[feature_cols]
    if data.isna().any().any():
        bad = data.columns[data.isna().any()].tolist()
        raise InvalidParameterError(f"Feature columns contain missing values: {bad}; drop or impute first")

    X = data.to_numpy(dtype=np.float64)
    if standardize:
        X = StandardScaler().fit_transform(X)

    if reducer is None:
        reducer = PCA(n_components=n_components, svd_solver="full")

    scores = reducer.fit_transform(X)
    columns = [f"{prefix}{i + 1}" for i in range(scores.shape[1])]
    explained = getattr(reducer, "explained_variance_ratio_", None)

    if explained is not None:
        logger.info(
            f"Reduced {len(feature_cols)} columns to {len(columns)} components "
            f"explaining {explained.sum():.1%} of variance"
        )

    return pd.DataFrame(scores, columns=columns, index=df.index), explained


def kmeans_labels(
    features: np.ndarray,
    n_clusters: int,
    random_state: int,
    n_init: int = 10,
) -> np.ndarray:
    """
    Aspatial k-means labels, used as a baseline against contiguous regions.

    The seed is required and only a local RandomState is used, so the global
    numpy random state is left untouched.
    """
    X = np.asarray(features, dtype=np.float64)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    if n_clusters < 1 or n_clusters > len(X):
        raise InvalidParameterError(f"n_clusters must be in [1, {len(X)}], got {n_clusters}")

    model = KMeans(n_clusters=n_clusters, n_init=n_init, random_state=random_state)
    return model.fit_predict(X)
