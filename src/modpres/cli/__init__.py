"""
modpres CLI - Command-line interface for module preservation analysis.

Commands:
    modpres run   - Score reference module preservation in a query dataset
    modpres show  - Print a stored result table
"""

import argparse
import sys
from typing import Optional, List

from modpres import __version__


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI dispatcher for modpres."""
    parser = argparse.ArgumentParser(
        prog="modpres",
        description="Permutation-based preservation statistics for co-expression modules",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  run   Score how well reference modules reproduce in a query dataset
  show  Print a stored Z or obs table

Examples:
  modpres run --ref-expr ref.csv --ref-modules ref_modules.csv \\
              --query-expr query.csv --query-modules query_modules.csv \\
              --name astro --n-permutations 250 --workers 4
  modpres show --input results/preservation --name astro --pattern summary
        """
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    from modpres.cli import run, show
    run.register_parser(subparsers)
    show.register_parser(subparsers)

    parsed_args = parser.parse_args(args)

    if parsed_args.command is None:
        parser.print_help()
        return 0

    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
