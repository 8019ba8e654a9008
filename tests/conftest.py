"""
Pytest configuration and shared fixtures.

This module provides synthetic co-expression data generators shared by all
test suites. Modules are simulated with a one-factor model:

    x_j = w_j * f + sqrt(1 - w_j^2) * e_j

so features j, l of the same module have expected correlation w_j * w_l,
while unassigned ("grey") features are independent noise.
"""

import numpy as np
import pandas as pd
import pytest

from modpres.core.expression import ExpressionMatrix
from modpres.core.modules import ModuleAssignment


def generate_module_expression(
    module_sizes: dict[str, int],
    n_noise: int = 10,
    n_samples: int = 60,
    loadings: tuple[float, float] = (0.95, 0.6),
    seed: int = 42,
) -> tuple[ExpressionMatrix, ModuleAssignment]:
    """
    Generate an expression matrix with block-correlated modules.

    Args:
        module_sizes: Module label → number of features
        n_noise: Number of unassigned independent features
        n_samples: Number of samples
        loadings: (highest, lowest) factor loading within each module
        seed: Random seed for reproducibility

    Returns:
        (matrix, assignment). Features are named G001, G002, ... with the
        modules first (in the given order) followed by the noise features.
    """
    rng = np.random.default_rng(seed)

    columns = []
    labels = []
    for module, size in module_sizes.items():
        factor = rng.normal(size=n_samples)
        for w in np.linspace(loadings[0], loadings[1], size):
            noise = rng.normal(size=n_samples)
            columns.append(w * factor + np.sqrt(1 - w ** 2) * noise)
            labels.append(module)

    for _ in range(n_noise):
        columns.append(rng.normal(size=n_samples))
        labels.append("grey")

    data = np.column_stack(columns)
    feature_ids = [f"G{j + 1:03d}" for j in range(data.shape[1])]
    sample_ids = [f"S{i + 1:03d}" for i in range(n_samples)]

    matrix = ExpressionMatrix(data, sample_ids, feature_ids)
    assignment = ModuleAssignment(pd.Series(labels, index=feature_ids))
    return matrix, assignment


@pytest.fixture
def preserved_pair():
    """
    Reference and query sharing one 10-feature module ("blue") and 10 grey
    features, simulated independently from the same structure.
    """
    ref_matrix, ref_modules = generate_module_expression({"blue": 10}, seed=1)
    query_matrix, query_modules = generate_module_expression({"blue": 10}, seed=2)
    return ref_matrix, ref_modules, query_matrix, query_modules


@pytest.fixture
def two_module_pair():
    """Reference and query with modules "blue" (10) and "turquoise" (8)."""
    sizes = {"blue": 10, "turquoise": 8}
    ref_matrix, ref_modules = generate_module_expression(sizes, n_noise=12, seed=11)
    query_matrix, query_modules = generate_module_expression(sizes, n_noise=12, seed=12)
    return ref_matrix, ref_modules, query_matrix, query_modules


def save_expression_csv(matrix: ExpressionMatrix, path):
    """Save an ExpressionMatrix as samples × features CSV."""
    matrix.to_frame().to_csv(path)


def save_assignment_csv(assignment: ModuleAssignment, path):
    """Save a ModuleAssignment as a two-column (feature, module) CSV."""
    assignment.to_series().reset_index().to_csv(path, index=False)


def generate_reference_query_scenario(
    n_samples: int = 40,
    n_module: int = 10,
    n_noise: int = 10,
    correlation: float = 0.8,
    query_noise: float = 0.2,
    seed: int = 42,
) -> tuple[ExpressionMatrix, ExpressionMatrix, ModuleAssignment]:
    """
    Reference with one module of pairwise correlation ≈ ``correlation`` plus
    independent noise features, and a query made of the same features
    perturbed with small Gaussian noise (correlation structure preserved).

    Returns:
        (reference, query, assignment) with module label "blue"
    """
    rng = np.random.default_rng(seed)
    loading = np.sqrt(correlation)

    factor = rng.normal(size=n_samples)
    module = loading * factor[:, None] + np.sqrt(1 - correlation) * rng.normal(
        size=(n_samples, n_module)
    )
    noise = rng.normal(size=(n_samples, n_noise))
    reference = np.hstack([module, noise])
    query = reference + query_noise * rng.normal(size=reference.shape)

    feature_ids = [f"F{j + 1:02d}" for j in range(n_module + n_noise)]
    sample_ids = [f"S{i + 1:02d}" for i in range(n_samples)]
    labels = ["blue"] * n_module + ["grey"] * n_noise

    return (
        ExpressionMatrix(reference, sample_ids, feature_ids),
        ExpressionMatrix(query, sample_ids, feature_ids),
        ModuleAssignment(pd.Series(labels, index=feature_ids)),
    )
