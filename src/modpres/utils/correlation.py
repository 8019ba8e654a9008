"""
Correlation helpers built on precomputed standardized columns.

Standardizing each feature once lets every correlation block be computed as
a dot product:

    corr(i, j) = sum(Z_i * Z_j) / n_samples,   Z = (X - mean) / std

so a permutation that draws k random features only pays O(k × p × n) for
the k × p block it needs, never the full p × p matrix.

Spearman correlation is Pearson correlation of within-feature ranks
(average ranks for ties, via scipy.stats.rankdata).
"""

from __future__ import annotations

from typing import Literal

import numpy as np
from scipy.stats import rankdata

__all__ = [
    'CorrelationMethod',
    'standardize_columns',
    'correlation_block',
    'pearson_vector_correlation',
]

CorrelationMethod = Literal["pearson", "spearman"]

# Relative scale below which a feature is treated as constant.
_ZERO_VARIANCE_TOL = 1e-10


def standardize_columns(
    data: np.ndarray,
    method: CorrelationMethod = "pearson",
) -> tuple[np.ndarray, np.ndarray]:
    """
    Standardize every column of a samples × features matrix.

    Args:
        data: Matrix (n_samples × n_features)
        method: "pearson" or "spearman"

    Returns:
        (standardized, variable_mask). Zero-variance columns are left as
        zeros in ``standardized`` and marked False in ``variable_mask``;
        their correlations are undefined and callers must exclude them.

    Raises:
        ValueError: If method is unknown or data contains NaN
    """
    if method not in ("pearson", "spearman"):
        raise ValueError(f"Unknown correlation method: {method!r}")
    if np.isnan(data).any():
        raise ValueError("Correlation input contains NaN values")

    values = rankdata(data, axis=0) if method == "spearman" else np.asarray(data, dtype=np.float64)

    mean = values.mean(axis=0)
    centered = values - mean
    std = np.sqrt((centered ** 2).mean(axis=0))
    scale = np.maximum(np.abs(mean), 1.0)
    variable = std > _ZERO_VARIANCE_TOL * scale

    standardized = np.zeros_like(centered)
    standardized[:, variable] = centered[:, variable] / std[variable]
    return standardized, variable


def correlation_block(
    standardized: np.ndarray,
    rows: np.ndarray,
    cols: np.ndarray | None = None,
) -> np.ndarray:
    """
    Correlations between feature sets ``rows`` and ``cols`` (default: all).

    Args:
        standardized: Output of :func:`standardize_columns`
        rows: Feature indices forming the block's rows
        cols: Feature indices forming the block's columns

    Returns:
        len(rows) × len(cols) correlation block clipped to [-1, 1]
    """
    n_samples = standardized.shape[0]
    left = standardized[:, rows]
    right = standardized if cols is None else standardized[:, cols]
    block = (left.T @ right) / n_samples
    return np.clip(block, -1.0, 1.0)


def pearson_vector_correlation(x: np.ndarray, y: np.ndarray) -> float | None:
    """Pearson correlation of two vectors; None if undefined (length < 3 or constant)."""
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if x.shape != y.shape or x.size < 3:
        return None
    xc = x - x.mean()
    yc = y - y.mean()
    denom = np.sqrt((xc ** 2).sum() * (yc ** 2).sum())
    if denom <= _ZERO_VARIANCE_TOL:
        return None
    return float(np.clip((xc * yc).sum() / denom, -1.0, 1.0))
