"""
Expression matrix container for preservation analysis.

ExpressionMatrix couples a numeric matrix with its sample and feature
identifiers. Orientation follows the co-expression network convention:

    - Rows = samples (cells, metacells, patients)
    - Columns = features (genes, proteins)

Engineering Design:
    - Immutable: the underlying array is marked read-only and operations
      return new instances
    - Validated: constructor checks shape and identifier consistency
    - Cheap subsetting by feature identifier, preserving column order

Examples:
    >>> import numpy as np
    >>> import pandas as pd
    >>> from modpres.core.expression import ExpressionMatrix
    >>>
    >>> data = np.random.default_rng(0).normal(size=(10, 3))
    >>> matrix = ExpressionMatrix(
    ...     data=data,
    ...     sample_ids=pd.Index([f"S{i}" for i in range(10)]),
    ...     feature_ids=pd.Index(["GENE_A", "GENE_B", "GENE_C"]),
    ... )
    >>> subset = matrix.select_features(["GENE_A", "GENE_C"])
    >>> subset.shape
    (10, 2)
"""

from __future__ import annotations

from typing import Iterable

import numpy as np
import pandas as pd

__all__ = ['ExpressionMatrix']


class ExpressionMatrix:
    """
    Immutable samples × features expression matrix.

    Attributes:
        data: Numerical matrix (samples × features), read-only float64
        sample_ids: Row identifiers
        feature_ids: Column identifiers (unique)

    Shape Invariants:
        - data.shape[0] == len(sample_ids)
        - data.shape[1] == len(feature_ids)
    """

    def __init__(
        self,
        data: np.ndarray,
        sample_ids: pd.Index | Iterable | None = None,
        feature_ids: pd.Index | Iterable | None = None,
    ):
        """
        Initialize ExpressionMatrix with validation.

        Args:
            data: Expression matrix (samples × features)
            sample_ids: Row identifiers. Defaults to "S0", "S1", ...
            feature_ids: Column identifiers. Defaults to "F0", "F1", ...

        Raises:
            TypeError: If data is not array-like numeric
            ValueError: If shapes are inconsistent or feature ids repeat
        """
        try:
            array = np.array(data, dtype=np.float64, copy=True)
        except (TypeError, ValueError) as e:
            raise TypeError(f"data must be numeric array-like, got {type(data)}") from e

        if array.ndim != 2:
            raise ValueError(f"data must be 2D, got shape {array.shape}")

        n_samples, n_features = array.shape

        if sample_ids is None:
            sample_ids = pd.Index([f"S{i}" for i in range(n_samples)])
        if feature_ids is None:
            feature_ids = pd.Index([f"F{j}" for j in range(n_features)])

        sample_ids = pd.Index(sample_ids).astype(str)
        feature_ids = pd.Index(feature_ids).astype(str)

        if len(sample_ids) != n_samples:
            raise ValueError(
                f"sample_ids length ({len(sample_ids)}) must match data rows ({n_samples})"
            )
        if len(feature_ids) != n_features:
            raise ValueError(
                f"feature_ids length ({len(feature_ids)}) must match data columns ({n_features})"
            )
        if feature_ids.has_duplicates:
            dupes = feature_ids[feature_ids.duplicated()].unique().tolist()[:5]
            raise ValueError(f"feature_ids must be unique, duplicated: {dupes}")

        array.setflags(write=False)

        self._data = array
        self._sample_ids = sample_ids
        self._feature_ids = feature_ids
        self._feature_to_idx = {f: i for i, f in enumerate(feature_ids)}

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> ExpressionMatrix:
        """Build from a DataFrame with samples as rows and features as columns."""
        return cls(frame.to_numpy(dtype=np.float64), frame.index, frame.columns)

    @property
    def data(self) -> np.ndarray:
        """Expression matrix (samples × features), read-only."""
        return self._data

    @property
    def sample_ids(self) -> pd.Index:
        return self._sample_ids

    @property
    def feature_ids(self) -> pd.Index:
        return self._feature_ids

    @property
    def shape(self) -> tuple[int, int]:
        """Matrix dimensions (n_samples, n_features)."""
        return self._data.shape

    @property
    def n_samples(self) -> int:
        return self._data.shape[0]

    @property
    def n_features(self) -> int:
        return self._data.shape[1]

    def has_feature(self, feature_id: str) -> bool:
        return feature_id in self._feature_to_idx

    def feature_indices(self, feature_ids: Iterable[str]) -> np.ndarray:
        """
        Column indices for the given feature identifiers, in the given order.

        Raises:
            KeyError: If any identifier is not a column of this matrix
        """
        missing = [f for f in feature_ids if f not in self._feature_to_idx]
        if missing:
            raise KeyError(f"Features not in matrix: {missing[:5]}")
        return np.array([self._feature_to_idx[f] for f in feature_ids], dtype=np.intp)

    def select_features(self, feature_ids: Iterable[str]) -> ExpressionMatrix:
        """Return a new matrix restricted to the given features (in that order)."""
        feature_ids = list(feature_ids)
        idx = self.feature_indices(feature_ids)
        return ExpressionMatrix(
            data=self._data[:, idx],
            sample_ids=self._sample_ids,
            feature_ids=pd.Index(feature_ids),
        )

    def to_frame(self) -> pd.DataFrame:
        """Copy of the matrix as a DataFrame (samples × features)."""
        return pd.DataFrame(
            self._data.copy(), index=self._sample_ids, columns=self._feature_ids
        )

    def __repr__(self) -> str:
        if self.n_features == 0 or self.n_samples == 0:
            return f"ExpressionMatrix({self.n_samples} samples × {self.n_features} features)"
        return (
            f"ExpressionMatrix({self.n_samples} samples × {self.n_features} features)\n"
            f"  Samples: {self.sample_ids[0]}...{self.sample_ids[-1]}\n"
            f"  Features: {self.feature_ids[0]}...{self.feature_ids[-1]}"
        )
