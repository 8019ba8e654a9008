"""
modpres show command - Print a stored preservation table.

Usage:
    modpres show --input results/preservation --name astro --table Z --pattern summary
"""

import argparse
from pathlib import Path


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the show subcommand."""
    parser = subparsers.add_parser(
        "show",
        help="Print a stored Z or obs table",
        description="Print a result table written by 'modpres run'.",
    )
    parser.add_argument("--input", "-i", type=Path, required=True,
                        help="Directory holding the result files")
    parser.add_argument("--name", required=True,
                        help="Analysis name")
    parser.add_argument("--table", choices=["Z", "obs"], default="Z",
                        help="Table to print (default: Z)")
    parser.add_argument("--pattern", default=None,
                        help="Regular expression selecting columns (module_size is always kept)")
    parser.set_defaults(func=run_show)


def run_show(args: argparse.Namespace) -> int:
    """Execute the show command."""
    from modpres.core.errors import ResultLookupError
    from modpres.io.writers import read_result_set

    try:
        result = read_result_set(args.input, args.name)
        if args.pattern:
            table = result.select(args.table, args.pattern)
        else:
            table = result.table(args.table)
    except ResultLookupError as e:
        print(f"ERROR: {e}")
        return 1

    print(f"{result.name} ({args.table}; {result.n_permutations} permutations, seed {result.seed})")
    print(table.to_string())
    return 0
