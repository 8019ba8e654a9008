"""
modpres run command - Module preservation analysis.

Loads a reference and a query expression matrix with their module
assignments, computes observed preservation statistics, builds the
permutation null and writes the Z and obs tables.

Usage:
    modpres run --ref-expr ref.csv --ref-modules ref_modules.csv \\
                --query-expr query.csv --query-modules query_modules.csv \\
                --name astro --output results/preservation
"""

import argparse
import logging
from datetime import datetime
from pathlib import Path

from modpres.cli._validators import (
    _module_size,
    _non_negative_int,
    _positive_float,
    _positive_int,
)
from modpres.stats.adjacency import NETWORK_TYPES
from modpres.stats.scoring import SUMMARY_POLICIES


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the run subcommand."""
    parser = subparsers.add_parser(
        "run",
        help="Score reference module preservation in a query dataset",
        description=(
            "Compute module preservation statistics of reference modules in a "
            "query dataset and convert them to Z-scores against a competitive "
            "permutation null (random feature sets of the same size)."
        )
    )

    # Input/output
    parser.add_argument("--ref-expr", type=Path, required=True,
                        help="Reference expression CSV")
    parser.add_argument("--ref-modules", type=Path, required=True,
                        help="Reference module assignment CSV (feature, module)")
    parser.add_argument("--query-expr", type=Path, required=True,
                        help="Query expression CSV")
    parser.add_argument("--query-modules", type=Path, required=True,
                        help="Query module assignment CSV (reference labels projected)")
    parser.add_argument("--orientation", choices=["samples", "features"], default="samples",
                        help="Rows of the expression CSVs are samples or features (default: samples)")
    parser.add_argument("--module-column", default="module",
                        help="Module label column in the assignment CSVs (default: module)")
    parser.add_argument("--name", required=True,
                        help="Analysis name; output files are named after it")
    parser.add_argument("--output", "-o", type=Path, default=Path("results/preservation"),
                        help="Output directory for result tables")
    parser.add_argument("--config", type=Path, default=None,
                        help="YAML/JSON config file (CLI arguments take precedence)")

    # Network construction
    parser.add_argument("--network-type", choices=list(NETWORK_TYPES), default=None,
                        help="Adjacency transform (default: unsigned)")
    parser.add_argument("--power", type=_positive_float, default=None,
                        help="Soft-threshold power (default: 6 unsigned, 12 signed)")
    parser.add_argument("--correlation-method", choices=["pearson", "spearman"], default=None,
                        help="Correlation method (default: pearson)")
    parser.add_argument("--min-module-size", type=_module_size, default=None,
                        help="Modules smaller than this in either dataset are reported as NA (default: 5)")
    parser.add_argument("--unassigned-label", default=None,
                        help="Label of unassigned features (default: grey)")

    # Permutation null
    parser.add_argument("--n-permutations", type=_positive_int, default=None,
                        help="Permutations per module (default: 250)")
    parser.add_argument("--seed", type=_non_negative_int, default=None,
                        help="Master random seed (default: 12345)")
    parser.add_argument("--workers", type=_positive_int, default=None,
                        help="Worker threads for the permutation null (default: 1)")
    parser.add_argument("--progress", action="store_true",
                        help="Show a progress bar over permutation batches")

    # Summary
    parser.add_argument("--summary-policy", choices=sorted(SUMMARY_POLICIES), default=None,
                        help="Summary Z composition (default: standard)")
    parser.add_argument("--na-policy", choices=["strict", "available"], default=None,
                        help="NA handling in summaries (default: strict)")

    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Debug logging")

    parser.set_defaults(func=run_preservation)


def run_preservation(args: argparse.Namespace) -> int:
    """Execute the run command."""
    from modpres.config import PreservationConfig, load_config, merge_cli_overrides
    from modpres.core.errors import ConfigurationError
    from modpres.io.loaders import load_expression_csv, load_module_assignment_csv
    from modpres.io.writers import write_result_set
    from modpres.preservation import PreservationSession

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logger = logging.getLogger(__name__)

    try:
        config = load_config(args.config) if args.config else PreservationConfig()
        config = merge_cli_overrides(config, args)
    except (FileNotFoundError, ConfigurationError) as e:
        logger.error(f"Config error: {e}")
        return 1

    start_time = datetime.now()
    print(f"\n{'='*70}")
    print("  Module Preservation Analysis")
    print(f"{'='*70}\n")

    try:
        ref_matrix = load_expression_csv(args.ref_expr, orientation=args.orientation)
        query_matrix = load_expression_csv(args.query_expr, orientation=args.orientation)
        ref_modules = load_module_assignment_csv(
            args.ref_modules, module_column=args.module_column,
            unassigned_label=config.unassigned_label,
        )
        query_modules = load_module_assignment_csv(
            args.query_modules, module_column=args.module_column,
            unassigned_label=config.unassigned_label,
        )
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Input error: {e}")
        return 1

    logger.info(f"Reference: {ref_matrix.n_samples} samples x {ref_matrix.n_features} features, "
                f"{len(ref_modules.labels)} modules")
    logger.info(f"Query: {query_matrix.n_samples} samples x {query_matrix.n_features} features, "
                f"{len(query_modules.labels)} modules")
    logger.info(f"Network: {config.adjacency().describe()}; "
                f"{config.permutation.n_permutations} permutations, seed {config.permutation.seed}")

    session = PreservationSession(config)
    try:
        result = session.run(
            ref_matrix, ref_modules, query_matrix, query_modules, name=args.name,
        )
    except ConfigurationError as e:
        logger.error(f"Preservation run failed: {e}")
        return 1

    paths = write_result_set(result, args.output)

    summary = result.select("Z", r"^summary$")
    print(f"\n{'='*70}")
    print(f"  Results: {args.name}")
    print(f"{'='*70}")
    print(summary.to_string())
    if result.low_confidence:
        print(f"\n  Warning: only {result.n_permutations} permutations; Z-scores are low-confidence")
    print()
    for role, path in paths.items():
        print(f"  {role}: {path}")
    print(f"\nCompleted in {(datetime.now() - start_time).total_seconds():.1f}s")
    return 0
