"""
Export and import of preservation result sets.

Output files for a result named ``NAME`` in directory ``DIR``:

    DIR/NAME.Z.csv        Z table (modules × columns)
    DIR/NAME.obs.csv      observed statistics and rank scores
    DIR/NAME.details.csv  long-form per-statistic results with null moments
    DIR/NAME.json         run manifest (permutations, seed, config, ...)

Every file is written atomically; the manifest is written last so a
directory never holds a manifest pointing at incomplete tables.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

import pandas as pd

from modpres.core.errors import ResultLookupError
from modpres.store import SIZE_COLUMNS, PreservationResultSet
from modpres.utils.fileio import atomic_write_csv, atomic_write_json

logger = logging.getLogger(__name__)

__all__ = ['result_file_stem', 'write_result_set', 'read_result_set']


def result_file_stem(name: str) -> str:
    """Filesystem-safe file stem for a result name."""
    stem = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
    if not stem:
        raise ValueError(f"Result name {name!r} has no filesystem-safe characters")
    return stem


def write_result_set(result: PreservationResultSet, directory: Path) -> dict[str, Path]:
    """
    Write a result set's tables and manifest.

    Args:
        result: Result set to export
        directory: Output directory (created if needed)

    Returns:
        Mapping of file role ("Z", "obs", "details", "manifest") to path
    """
    if not isinstance(result, PreservationResultSet):
        raise TypeError(f"result must be PreservationResultSet, got {type(result)}")

    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    stem = result_file_stem(result.name)

    paths = {
        'Z': directory / f"{stem}.Z.csv",
        'obs': directory / f"{stem}.obs.csv",
        'details': directory / f"{stem}.details.csv",
        'manifest': directory / f"{stem}.json",
    }

    atomic_write_csv(paths['Z'], result.Z)
    atomic_write_csv(paths['obs'], result.obs)
    atomic_write_csv(paths['details'], result.details, index=False)
    atomic_write_json(paths['manifest'], result.to_manifest())

    logger.info(f"Wrote preservation result {result.name!r} to {directory}")
    return paths


def _read_table(path: Path) -> pd.DataFrame:
    frame = pd.read_csv(path, index_col="module")
    frame.index = frame.index.astype(str)
    dtypes = {c: ("Int64" if c in SIZE_COLUMNS else "Float64") for c in frame.columns}
    return frame.astype(dtypes)


def read_result_set(directory: Path, name: str) -> PreservationResultSet:
    """
    Load a result set previously written by :func:`write_result_set`.

    Raises:
        ResultLookupError: If no manifest for ``name`` exists in ``directory``
    """
    directory = Path(directory)
    stem = result_file_stem(name)
    manifest_path = directory / f"{stem}.json"
    if not manifest_path.exists():
        raise ResultLookupError(f"No stored result {name!r} in {directory}")

    with open(manifest_path, 'r') as f:
        manifest = json.load(f)

    details_path = directory / f"{stem}.details.csv"
    try:
        details = pd.read_csv(details_path)
    except (FileNotFoundError, pd.errors.EmptyDataError):
        details = pd.DataFrame()

    return PreservationResultSet(
        name=manifest['name'],
        Z=_read_table(directory / f"{stem}.Z.csv"),
        obs=_read_table(directory / f"{stem}.obs.csv"),
        details=details,
        n_permutations=manifest.get('n_permutations', 0),
        seed=manifest.get('seed'),
        min_module_size=manifest.get('min_module_size', 5),
        low_confidence=manifest.get('low_confidence', False),
        config=manifest.get('config', {}),
        created_at=manifest.get('created_at'),
    )
