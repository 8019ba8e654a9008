"""
Core data structures for module preservation analysis.

1. ExpressionMatrix: immutable samples × features matrix
2. ModuleAssignment: feature → module label mapping with a reserved
   unassigned label
3. Error taxonomy shared by every layer of the package
4. CancellationToken: cooperative abort flag for long runs
"""

from modpres.core.cancellation import CancellationToken
from modpres.core.errors import (
    ConfigurationError,
    InsufficientDataWarning,
    PreservationCancelled,
    ResultLookupError,
)
from modpres.core.expression import ExpressionMatrix
from modpres.core.modules import DEFAULT_UNASSIGNED_LABEL, ModuleAssignment

__all__ = [
    'ExpressionMatrix',
    'ModuleAssignment',
    'DEFAULT_UNASSIGNED_LABEL',
    'CancellationToken',
    'ConfigurationError',
    'InsufficientDataWarning',
    'PreservationCancelled',
    'ResultLookupError',
]
