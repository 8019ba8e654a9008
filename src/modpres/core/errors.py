"""
Error taxonomy for module preservation analysis.

Four outcomes can interrupt or degrade a preservation run:

    ConfigurationError       - invalid inputs, fails fast before computation
    InsufficientDataWarning  - non-fatal; the affected cells become NA
    ResultLookupError        - unknown result name, table or column
    PreservationCancelled    - cooperative abort; nothing is published

Examples:
    >>> import warnings
    >>> from modpres.core.errors import InsufficientDataWarning
    >>> with warnings.catch_warnings():
    ...     warnings.simplefilter("error", InsufficientDataWarning)
    ...     # run strictly, promoting NA cells to failures
"""

from __future__ import annotations

__all__ = [
    'ConfigurationError',
    'InsufficientDataWarning',
    'ResultLookupError',
    'PreservationCancelled',
]


class ConfigurationError(ValueError):
    """Raised when run inputs or settings cannot produce a meaningful result."""


class InsufficientDataWarning(UserWarning):
    """A module is too small or lacks variance; its statistics are reported as NA."""


class ResultLookupError(LookupError):
    """Raised when a named result set, table or column does not exist."""


class PreservationCancelled(Exception):
    """Raised when a run is aborted through its cancellation token."""
