"""
I/O for preservation inputs and results.

Key Functions:
    - load_expression_csv: Load an expression matrix (samples × features)
    - load_module_assignment_csv: Load a feature → module assignment
    - write_result_set / read_result_set: Export and restore result sets

The statistical core never touches the filesystem; these functions are
used by the CLI and by callers persisting results between sessions.
"""

from modpres.io.loaders import load_expression_csv, load_module_assignment_csv
from modpres.io.writers import read_result_set, result_file_stem, write_result_set

__all__ = [
    'load_expression_csv',
    'load_module_assignment_csv',
    'write_result_set',
    'read_result_set',
    'result_file_stem',
]
