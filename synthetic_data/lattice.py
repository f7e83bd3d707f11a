"""
Deterministic lattice and chain generators for tests and end-to-end validation.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from libpysal import weights
from libpysal.weights import lat2W

logger = logging.getLogger(__name__)


def lattice_grid(
    width: int,
    height: int,
    block_w: int,
    block_h: int,
    rule: str = "rook",
) -> Tuple[pd.DataFrame, weights.W]:
    """
    Build a grid of square units with a coarse block layout as ground truth.

    Parameters
    ----------
    width : int
        Number of columns.
    height : int
        Number of rows.
    block_w : int
        Number of columns per coarse block.
    block_h : int
        Number of rows per coarse block.
    rule : str
        'rook' (4 neighbors) or 'queen' (8 neighbors).

    Returns
    -------
    df : pd.DataFrame
        Columns ['unit','row','col','block_id'] in row-major order.
    w : weights.W
        Contiguity over the grid with id_order matching df['unit'].

    Notes
    -----
    Unit IDs follow the format T{row:03d}{col:03d} (e.g. T000001, T001002).
    """
    if width <= 0 or height <= 0:
        raise ValueError("width and height must be positive")

    if block_w <= 0 or block_h <= 0:
        raise ValueError("block_w and block_h must be positive")

    if rule not in ("rook", "queen"):
        raise ValueError(f"Unsupported contiguity rule: {rule}")

    n_block_cols = math.ceil(width / block_w)
    logger.info(f"Creating {width}x{height} {rule} lattice with {n_block_cols}x{math.ceil(height / block_h)} blocks")

    rows, cols = np.indices((height, width))
    rows_flat = rows.flatten()
    cols_flat = cols.flatten()
    block_ids = (rows_flat // block_h) * n_block_cols + (cols_flat // block_w)
    unit_ids = [f"T{row:03d}{col:03d}" for row, col in zip(rows_flat, cols_flat)]

    df = pd.DataFrame({
        'unit': unit_ids,
        'row': rows_flat,
        'col': cols_flat,
        'block_id': block_ids,
    })

    # lat2W numbers cells row-major, matching df
    w_grid = lat2W(nrows=height, ncols=width, rook=(rule == "rook"))
    neighbors = {
        unit_ids[i]: [unit_ids[j] for j in sorted(w_grid.neighbors.get(i, []))]
        for i in range(len(unit_ids))
    }

    w = weights.W(neighbors, id_order=unit_ids, silence_warnings=True)
    w.transform = 'b'
    return df, w


def make_block_features(
    df: pd.DataFrame,
    n_features: int = 2,
    separation: float = 10.0,
    noise: float = 0.1,
    random_state: Optional[int] = 42,
    prefix: str = "x",
) -> pd.DataFrame:
    """
    Attach features that are constant per block plus Gaussian noise.

    Each block gets a distinct mean vector spaced ``separation`` apart, so a
    correct regionalization with K = number of blocks recovers block_id.

    Returns
    -------
    pd.DataFrame
        Copy of df plus columns x0..x{n_features-1}.
    """
    if 'block_id' not in df.columns:
        raise ValueError("df must contain 'block_id' column")

    if noise < 0:
        raise ValueError("noise must be non-negative")

    if n_features < 1:
        raise ValueError("n_features must be positive")

    df = df.copy()
    rng = np.random.default_rng(random_state)

    blocks = df['block_id'].to_numpy()
    # Spread block means along a ramp so every pair of blocks differs in each feature
    steps = np.arange(1, n_features + 1)
    means = blocks[:, None] * separation * steps[None, :]
    values = means + (rng.normal(0.0, noise, means.shape) if noise > 0 else 0.0)

    for d in range(n_features):
        df[f'{prefix}{d}'] = values[:, d]

    logger.info(f"Generated {n_features} block features for {len(df)} units, noise={noise}, random_state={random_state}")
    return df


def chain_graph(values: Sequence[float]) -> Tuple[pd.DataFrame, weights.W]:
    """
    Units 1..n on a line, each adjacent only to its immediate neighbors.

    Returns a df with columns ['unit', 'x0'] and the matching W.
    """
    n = len(values)
    if n == 0:
        raise ValueError("values must not be empty")

    unit_ids = list(range(1, n + 1))
    neighbors = {
        unit: [other for other in (unit - 1, unit + 1) if 1 <= other <= n]
        for unit in unit_ids
    }

    df = pd.DataFrame({'unit': unit_ids, 'x0': np.asarray(values, dtype=np.float64)})
    w = weights.W(neighbors, id_order=unit_ids, silence_warnings=True)
    w.transform = 'b'
    return df, w
