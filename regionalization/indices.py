"""
Segregation and diversity indices over long-form group counts.

Input tables hold one row per (unit, group) with a count, e.g. tract x race/ethnicity
population estimates.
"""

from __future__ import annotations

import math
from typing import Dict, Optional

import numpy as np
import pandas as pd

from .errors import InvalidParameterError


def _validate_counts(df: pd.DataFrame, unit_col: str, group_col: str, count_col: str) -> None:
    missing = [col for col in (unit_col, group_col, count_col) if col not in df.columns]
    if missing:
        raise InvalidParameterError(f"Missing columns: {missing}")
    if (df[count_col] < 0).any():
        raise InvalidParameterError(f"Column '{count_col}' contains negative counts")


def _xlogx_ratio(p: np.ndarray, q: np.ndarray, base: float) -> np.ndarray:
    # 0 * log(0 / q) contributes nothing
    out = np.zeros_like(p, dtype=np.float64)
    mask = p > 0
    out[mask] = p[mask] * np.log(p[mask] / q[mask]) / math.log(base)
    return out


def dissimilarity_index(
    df: pd.DataFrame,
    group_col: str,
    count_col: str,
    group_a: str,
    group_b: str,
    unit_col: str = "unit",
    by: Optional[str] = None,
):
    """
    Dissimilarity index D = 1/2 * sum_i |a_i / A - b_i / B| between two groups.

    With ``by`` (e.g. an urban area column), D is computed within each value of
    ``by`` and returned as a Series sorted descending; otherwise a float.
    """
    _validate_counts(df, unit_col, group_col, count_col)
    if by is not None and by not in df.columns:
        raise InvalidParameterError(f"Missing column: {by}")

    def _d(frame: pd.DataFrame) -> float:
        wide = (
            frame[frame[group_col].isin([group_a, group_b])]
            .pivot_table(index=unit_col, columns=group_col, values=count_col, aggfunc="sum", fill_value=0)
            .reindex(columns=[group_a, group_b], fill_value=0)
        )
        totals = wide.sum()
        if (totals == 0).any():
            return np.nan
        shares = wide / totals
        return float(0.5 * (shares[group_a] - shares[group_b]).abs().sum())

    if by is None:
        return _d(df)

    values = {key: _d(frame) for key, frame in df.groupby(by, sort=True)}
    return pd.Series(values, name="dissimilarity").sort_values(ascending=False)


def entropy_index(
    df: pd.DataFrame,
    group_col: str,
    count_col: str,
    unit_col: str = "unit",
    base: float = math.e,
    normalize: bool = False,
) -> pd.Series:
    """
    Per-unit Shannon diversity -sum_g p_g log p_g.

    With ``normalize`` the value is divided by log(K) for K groups, giving [0, 1].
    Units with zero total population get NaN.
    """
    _validate_counts(df, unit_col, group_col, count_col)
    wide = df.pivot_table(index=unit_col, columns=group_col, values=count_col, aggfunc="sum", fill_value=0)

    totals = wide.sum(axis=1)
    shares = wide.div(totals.replace(0, np.nan), axis=0).to_numpy()
    with np.errstate(divide="ignore", invalid="ignore"):
        terms = np.where(shares > 0, -shares * np.log(shares) / math.log(base), 0.0)
    entropy = pd.Series(terms.sum(axis=1), index=wide.index, name="entropy")
    entropy[totals == 0] = np.nan

    if normalize:
        n_groups = wide.shape[1]
        entropy = entropy / (math.log(n_groups) / math.log(base)) if n_groups > 1 else entropy * 0.0
    return entropy


def mutual_information_index(
    df: pd.DataFrame,
    group_col: str,
    count_col: str,
    unit_col: str = "unit",
    base: float = math.e,
) -> Dict[str, float]:
    """
    Theil's mutual information index M and the normalized entropy index H.

    M = sum_u sum_g p_ug * log(p_ug / (p_u * p_g)); H = M / E, where E is the
    entropy of the overall group distribution. H is NaN when E is 0.
    """
    _validate_counts(df, unit_col, group_col, count_col)
    wide = df.pivot_table(index=unit_col, columns=group_col, values=count_col, aggfunc="sum", fill_value=0)
    counts = wide.to_numpy(dtype=np.float64)

    total = counts.sum()
    if total == 0:
        raise InvalidParameterError("Counts sum to zero")

    p_ug = counts / total
    p_u = p_ug.sum(axis=1, keepdims=True)
    p_g = p_ug.sum(axis=0, keepdims=True)

    M = float(_xlogx_ratio(p_ug, np.broadcast_to(p_u * p_g, p_ug.shape), base).sum())
    E = float(-_xlogx_ratio(p_g.ravel(), np.ones(p_g.size), base).sum())
    H = M / E if E > 0 else np.nan
    return {"M": M, "H": H}
