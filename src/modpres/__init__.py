"""
modpres - Module Preservation Statistics for Co-expression Networks

Quantifies, with a permutation null, how well co-expression modules defined
in a reference dataset reproduce in a query dataset onto which the module
labels were projected.
"""

__version__ = "0.1.0"

from modpres.config import PreservationConfig, load_config
from modpres.core.cancellation import CancellationToken
from modpres.core.errors import (
    ConfigurationError,
    InsufficientDataWarning,
    PreservationCancelled,
    ResultLookupError,
)
from modpres.core.expression import ExpressionMatrix
from modpres.core.modules import ModuleAssignment
from modpres.preservation import ModulePreservationRunner, PreservationSession, RunState
from modpres.stats.adjacency import AdjacencyTransform
from modpres.store import PreservationResultSet, ResultStore

__all__ = [
    "ExpressionMatrix",
    "ModuleAssignment",
    "AdjacencyTransform",
    "PreservationConfig",
    "load_config",
    "ModulePreservationRunner",
    "PreservationSession",
    "RunState",
    "PreservationResultSet",
    "ResultStore",
    "CancellationToken",
    "ConfigurationError",
    "InsufficientDataWarning",
    "PreservationCancelled",
    "ResultLookupError",
]
