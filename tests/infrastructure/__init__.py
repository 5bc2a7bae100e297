"""
Shared test infrastructure for wclip.

Modules:
- file_utils: Utilities for creating template and variables files
- cli_utils: Running the CLI in a subprocess and parsing its JSON output
"""

from .file_utils import write, write_vars
from .cli_utils import run_cli, jload

__all__ = [
    # File utilities
    "write", "write_vars",

    # CLI utilities
    "run_cli", "jload",
]
