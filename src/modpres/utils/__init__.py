"""Utility modules for correlation computation and safe file output."""

from modpres.utils.correlation import (
    correlation_block,
    pearson_vector_correlation,
    standardize_columns,
)
from modpres.utils.fileio import (
    atomic_write_csv,
    atomic_write_json,
)

__all__ = [
    # Correlation utilities
    'standardize_columns',
    'correlation_block',
    'pearson_vector_correlation',
    # Atomic file-write utilities
    'atomic_write_csv',
    'atomic_write_json',
]
