"""
Feature → module assignments.

A ModuleAssignment maps feature identifiers to categorical module labels, as
produced by co-expression module detection (and projected onto a query
dataset). One reserved label marks unassigned features ("grey" in WGCNA
convention); it never forms a module of its own.
"""

from __future__ import annotations

from typing import Iterable, Mapping

import numpy as np
import pandas as pd

__all__ = ['ModuleAssignment', 'DEFAULT_UNASSIGNED_LABEL']

DEFAULT_UNASSIGNED_LABEL = "grey"


class ModuleAssignment:
    """
    Immutable mapping from feature identifier to module label.

    Attributes:
        unassigned_label: Reserved label excluded from the module set

    Examples:
        >>> assignment = ModuleAssignment.from_mapping(
        ...     {"G1": "blue", "G2": "blue", "G3": "grey"}
        ... )
        >>> assignment.labels
        ('blue',)
        >>> assignment.features("blue")
        ('G1', 'G2')
    """

    def __init__(
        self,
        labels: pd.Series,
        unassigned_label: str = DEFAULT_UNASSIGNED_LABEL,
    ):
        if not isinstance(labels, pd.Series):
            raise TypeError(f"labels must be pd.Series, got {type(labels)}")
        if labels.index.has_duplicates:
            dupes = labels.index[labels.index.duplicated()].unique().tolist()[:5]
            raise ValueError(f"Feature assigned more than once: {dupes}")
        if labels.isna().any():
            raise ValueError(
                f"{int(labels.isna().sum())} features have a missing module label; "
                f"use '{unassigned_label}' for unassigned features"
            )

        series = labels.astype(str).copy()
        series.index = series.index.astype(str)
        series.index.name = "feature"
        series.name = "module"

        self._labels = series
        self._unassigned = str(unassigned_label)

        members: dict[str, list[str]] = {}
        for feature, module in series.items():
            if module != self._unassigned:
                members.setdefault(module, []).append(feature)
        self._members = {m: tuple(f) for m, f in members.items()}

    @classmethod
    def from_mapping(
        cls,
        mapping: Mapping[str, str],
        unassigned_label: str = DEFAULT_UNASSIGNED_LABEL,
    ) -> ModuleAssignment:
        return cls(pd.Series(dict(mapping), dtype=object), unassigned_label)

    @classmethod
    def from_series(
        cls,
        labels: pd.Series,
        unassigned_label: str = DEFAULT_UNASSIGNED_LABEL,
    ) -> ModuleAssignment:
        return cls(labels, unassigned_label)

    @property
    def unassigned_label(self) -> str:
        return self._unassigned

    @property
    def labels(self) -> tuple[str, ...]:
        """Sorted distinct module labels, excluding the unassigned label."""
        return tuple(sorted(self._members))

    @property
    def feature_ids(self) -> pd.Index:
        """Every feature covered by this assignment, including unassigned ones."""
        return self._labels.index

    def features(self, module: str) -> tuple[str, ...]:
        """Features labeled ``module`` (empty for unknown labels)."""
        return self._members.get(module, ())

    def size(self, module: str) -> int:
        return len(self.features(module))

    def label_of(self, feature_id: str) -> str:
        """Module label of a feature; features not covered are unassigned."""
        return self._labels.get(feature_id, self._unassigned)

    def restrict(self, feature_ids: Iterable[str]) -> ModuleAssignment:
        """
        Assignment over exactly ``feature_ids``.

        Features absent from this assignment become unassigned; assigned
        features outside ``feature_ids`` are dropped.
        """
        index = pd.Index(list(feature_ids)).astype(str)
        restricted = self._labels.reindex(index).fillna(self._unassigned)
        return ModuleAssignment(restricted, self._unassigned)

    def shuffled(self, rng: np.random.Generator) -> ModuleAssignment:
        """Same features with labels randomly permuted (destroys module structure)."""
        permuted = pd.Series(
            rng.permutation(self._labels.to_numpy()), index=self._labels.index
        )
        return ModuleAssignment(permuted, self._unassigned)

    def to_series(self) -> pd.Series:
        return self._labels.copy()

    def __len__(self) -> int:
        return len(self._labels)

    def __repr__(self) -> str:
        sizes = ", ".join(f"{m}={self.size(m)}" for m in self.labels[:6])
        more = "..." if len(self.labels) > 6 else ""
        return (
            f"ModuleAssignment({len(self._labels)} features, "
            f"{len(self.labels)} modules: {sizes}{more})"
        )
