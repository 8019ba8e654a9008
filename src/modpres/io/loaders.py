"""
CSV loaders for expression matrices and module assignments.

Expected expression CSV (``orientation="samples"``, the default):

    ```
    "",GENE_A,GENE_B,GENE_C
    metacell_1,2.31,0.00,5.12
    metacell_2,1.98,0.47,4.80
    ```

Feature-row files (genes × samples, as most count tables are written) are
read with ``orientation="features"`` and transposed.

Expected module assignment CSV:

    ```
    feature,module
    GENE_A,blue
    GENE_B,grey
    ```

Examples:
    >>> from pathlib import Path
    >>> from modpres.io.loaders import load_expression_csv, load_module_assignment_csv
    >>> matrix = load_expression_csv(Path("reference_metacells.csv"))
    >>> modules = load_module_assignment_csv(Path("reference_modules.csv"))
"""

from __future__ import annotations

import warnings
from pathlib import Path
from typing import Literal, Optional

import numpy as np
import pandas as pd

from modpres.core.expression import ExpressionMatrix
from modpres.core.modules import DEFAULT_UNASSIGNED_LABEL, ModuleAssignment

__all__ = ['load_expression_csv', 'load_module_assignment_csv']


def _read_csv(path: Path, **kwargs) -> pd.DataFrame:
    if not isinstance(path, Path):
        path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"CSV file not found: {path}")

    if not path.is_file():
        raise ValueError(f"Path is not a file: {path}")

    try:
        return pd.read_csv(path, **kwargs)
    except pd.errors.EmptyDataError as e:
        raise ValueError(f"CSV file is empty: {path}") from e
    except Exception as e:
        raise ValueError(f"Failed to read CSV file {path}: {e}") from e


def load_expression_csv(
    path: Path,
    orientation: Literal["samples", "features"] = "samples",
) -> ExpressionMatrix:
    """
    Load an expression matrix from CSV.

    Args:
        path: Path to CSV file; first column holds row identifiers
        orientation: "samples" if rows are samples, "features" if rows are
            features (the file is transposed on load)

    Returns:
        ExpressionMatrix (samples × features)

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If the CSV is empty, non-numeric or contains NaN
    """
    if orientation not in ("samples", "features"):
        raise ValueError(f"orientation must be 'samples' or 'features', got {orientation!r}")

    df = _read_csv(path, index_col=0)

    if df.empty:
        raise ValueError(f"CSV contains no data: {path}")

    if orientation == "features":
        df = df.T

    # Check for duplicate identifiers
    if df.index.duplicated().any():
        n_duplicates = df.index.duplicated().sum()
        warnings.warn(
            f"Found {n_duplicates} duplicate sample IDs. Using first occurrence of each.",
            UserWarning,
        )
        df = df[~df.index.duplicated(keep='first')]

    if df.columns.duplicated().any():
        n_duplicates = df.columns.duplicated().sum()
        warnings.warn(
            f"Found {n_duplicates} duplicate feature IDs. Using first occurrence of each.",
            UserWarning,
        )
        df = df.loc[:, ~df.columns.duplicated(keep='first')]

    try:
        data = df.to_numpy(dtype=float)
    except ValueError as e:
        non_numeric = df.apply(pd.to_numeric, errors="coerce").isna() & df.notna()
        rows, cols = np.nonzero(non_numeric.to_numpy())
        examples = [
            f"row '{df.index[i]}', col '{df.columns[j]}': {df.iat[i, j]}"
            for i, j in list(zip(rows, cols))[:5]
        ]
        raise ValueError(
            "CSV contains non-numeric values:\n" + "\n".join(f"  - {x}" for x in examples)
        ) from e

    if np.isnan(data).any():
        n_nan = int(np.isnan(data).sum())
        raise ValueError(
            f"Found {n_nan:,} NaN values ({100 * n_nan / data.size:.2f}% of data) in {path}. "
            "Impute or filter before preservation analysis."
        )

    return ExpressionMatrix(data, df.index, df.columns)


def load_module_assignment_csv(
    path: Path,
    feature_column: Optional[str] = None,
    module_column: str = "module",
    unassigned_label: str = DEFAULT_UNASSIGNED_LABEL,
) -> ModuleAssignment:
    """
    Load a feature → module assignment from CSV.

    Args:
        path: Path to CSV file
        feature_column: Column with feature identifiers (default: first column)
        module_column: Column with module labels
        unassigned_label: Label reserved for unassigned features

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If required columns are missing
    """
    df = _read_csv(path, dtype=str)

    if df.empty:
        raise ValueError(f"CSV contains no assignments: {path}")

    if feature_column is None:
        feature_column = df.columns[0]
    for column in (feature_column, module_column):
        if column not in df.columns:
            raise ValueError(
                f"Column {column!r} not found in {path}; available: {list(df.columns)}"
            )

    if df[feature_column].duplicated().any():
        n_duplicates = int(df[feature_column].duplicated().sum())
        warnings.warn(
            f"Found {n_duplicates} duplicate feature IDs. Using first occurrence of each.",
            UserWarning,
        )
        df = df.drop_duplicates(subset=feature_column, keep="first")

    labels = df[module_column].fillna(unassigned_label)
    labels.index = pd.Index(df[feature_column])
    return ModuleAssignment(labels, unassigned_label)
