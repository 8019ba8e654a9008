"""
Named storage for preservation results.

A PreservationResultSet holds the two tables produced by a run:

    Z    rows = modules; columns ``module_size``, ``ref_module_size``,
         ``z.<statistic>``, ``summary.<group>`` and ``summary``
    obs  rows = modules; columns ``module_size``, ``ref_module_size``,
         ``ref.<statistic>``, ``obs.<statistic>``, ``rank.<group>`` and
         ``rank.summary``

plus a long-form ``details`` table (module, statistic, observed values,
null moments, Z). NA cells are ``pd.NA`` in nullable ``Float64`` columns.

ResultStore maps analysis names to result sets. Writes replace a name's
entry wholesale under a lock; a result set is never partially updated and
never deleted implicitly.
"""

from __future__ import annotations

import re
import threading
from datetime import datetime
from typing import Any, Iterator, Literal

import pandas as pd

from modpres.core.errors import ResultLookupError

__all__ = [
    'SIZE_COLUMNS',
    'PreservationResultSet',
    'ResultStore',
]

SIZE_COLUMNS = ("module_size", "ref_module_size")

TableName = Literal["Z", "obs", "details"]


class PreservationResultSet:
    """
    Immutable outcome of one preservation run.

    Tables are copied on access so callers cannot alter a stored result.

    Attributes:
        name: Analysis name the result is stored under
        n_permutations: Permutations per module
        seed: Master random seed
        min_module_size: Size threshold used for scoring
        low_confidence: True if fewer than the recommended permutations ran
        config: Snapshot of the run configuration
        created_at: ISO timestamp
    """

    def __init__(
        self,
        name: str,
        Z: pd.DataFrame,
        obs: pd.DataFrame,
        details: pd.DataFrame | None = None,
        n_permutations: int = 0,
        seed: int | None = None,
        min_module_size: int = 5,
        low_confidence: bool = False,
        config: dict[str, Any] | None = None,
        created_at: str | None = None,
    ):
        for label, table in (("Z", Z), ("obs", obs)):
            if not isinstance(table, pd.DataFrame):
                raise TypeError(f"{label} must be pd.DataFrame, got {type(table)}")
            if "module_size" not in table.columns:
                raise ValueError(f"{label} table must carry a 'module_size' column")
        if not Z.index.equals(obs.index):
            raise ValueError("Z and obs tables must list the same modules")

        self.name = name
        self._Z = Z.copy()
        self._obs = obs.copy()
        self._details = details.copy() if details is not None else pd.DataFrame()
        self.n_permutations = n_permutations
        self.seed = seed
        self.min_module_size = min_module_size
        self.low_confidence = low_confidence
        self.config = dict(config or {})
        self.created_at = created_at or datetime.now().isoformat(timespec="seconds")

    @property
    def Z(self) -> pd.DataFrame:
        return self._Z.copy()

    @property
    def obs(self) -> pd.DataFrame:
        return self._obs.copy()

    @property
    def details(self) -> pd.DataFrame:
        return self._details.copy()

    @property
    def modules(self) -> list[str]:
        return list(self._Z.index)

    @property
    def scored_modules(self) -> list[str]:
        """Modules at or above the minimum size in both datasets."""
        sizes = self._Z[list(SIZE_COLUMNS)].fillna(0)
        mask = (sizes >= self.min_module_size).all(axis=1)
        return list(self._Z.index[mask.to_numpy(dtype=bool)])

    def table(self, table: TableName) -> pd.DataFrame:
        if table == "Z":
            return self.Z
        if table == "obs":
            return self.obs
        if table == "details":
            return self.details
        raise ResultLookupError(f"Unknown table {table!r}; expected 'Z', 'obs' or 'details'")

    def __getitem__(self, table: TableName) -> pd.DataFrame:
        return self.table(table)

    def select(self, table: TableName, pattern: str) -> pd.DataFrame:
        """
        Columns of ``table`` matching regex ``pattern``, led by ``module_size``.

        Size columns take part in matching; ``module_size`` appears once.

        Raises:
            ResultLookupError: Unknown table or no column matches
        """
        frame = self.table(table)
        regex = re.compile(pattern)
        matched = [c for c in frame.columns if regex.search(c)]
        if not matched:
            raise ResultLookupError(
                f"No column of table {table!r} in result {self.name!r} matches {pattern!r}"
            )
        return frame[["module_size"] + [c for c in matched if c != "module_size"]]

    def series(self, mode: Literal["summary", "rank", "all"] = "summary") -> pd.DataFrame:
        """
        Long-form (module, module_size, statistic, value) rows for plotting.

        ``summary`` selects summary composites, ``rank`` the rank scores and
        ``all`` every Z-score plus the summary composites.
        """
        if mode == "summary":
            frame = self.select("Z", r"^summary")
        elif mode == "rank":
            frame = self.select("obs", r"^rank\.")
        elif mode == "all":
            frame = self.select("Z", r"^(z\.|summary)")
        else:
            raise ResultLookupError(f"Unknown mode {mode!r}; expected 'summary', 'rank' or 'all'")

        long = frame.reset_index().melt(
            id_vars=[frame.index.name or "index", "module_size"],
            var_name="statistic",
            value_name="value",
        )
        return long.rename(columns={frame.index.name or "index": "module"})

    def to_manifest(self) -> dict[str, Any]:
        """JSON-serializable run metadata."""
        return {
            'name': self.name,
            'n_permutations': self.n_permutations,
            'seed': self.seed,
            'min_module_size': self.min_module_size,
            'low_confidence': self.low_confidence,
            'config': self.config,
            'created_at': self.created_at,
            'modules': self.modules,
        }

    def with_name(self, name: str) -> PreservationResultSet:
        return PreservationResultSet(
            name, self._Z, self._obs, self._details,
            n_permutations=self.n_permutations,
            seed=self.seed,
            min_module_size=self.min_module_size,
            low_confidence=self.low_confidence,
            config=self.config,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return (
            f"PreservationResultSet({self.name!r}, {len(self.modules)} modules, "
            f"{self.n_permutations} permutations, seed={self.seed})"
        )


class ResultStore:
    """
    Name → PreservationResultSet mapping with atomic full-replace writes.

    Examples:
        >>> store = ResultStore()
        >>> store.set("astro_vs_ref", result)
        >>> store.get("astro_vs_ref").Z
    """

    def __init__(self):
        self._results: dict[str, PreservationResultSet] = {}
        self._lock = threading.Lock()

    def set(self, name: str, result: PreservationResultSet) -> None:
        """Store ``result`` under ``name``, replacing any previous entry."""
        if not isinstance(name, str) or not name:
            raise ValueError(f"Result name must be a non-empty string, got {name!r}")
        if not isinstance(result, PreservationResultSet):
            raise TypeError(f"result must be PreservationResultSet, got {type(result)}")
        if result.name != name:
            result = result.with_name(name)
        with self._lock:
            self._results[name] = result

    def get(self, name: str) -> PreservationResultSet:
        with self._lock:
            try:
                return self._results[name]
            except KeyError:
                available = sorted(self._results)
        raise ResultLookupError(
            f"No preservation result named {name!r}; available: {available}"
        )

    def delete(self, name: str) -> None:
        with self._lock:
            if name not in self._results:
                raise ResultLookupError(f"No preservation result named {name!r}")
            del self._results[name]

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._results)

    def __getitem__(self, name: str) -> PreservationResultSet:
        return self.get(name)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._results

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())
