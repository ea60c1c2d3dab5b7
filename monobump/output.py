"""Terminal output helpers.

Phase headers and progress lines go to stdout; warnings and errors go to
stderr so they stay visible when stdout is piped.
"""

from __future__ import annotations

import sys
from typing import NoReturn


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate the phases of a command in terminal output.
    """
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")


def warn(msg: str) -> None:
    """Print a non-fatal warning, e.g. a pre-release target drift."""
    print(f"⚠ Warning: {msg}", file=sys.stderr)


def fatal(msg: str, code: int = 1) -> NoReturn:
    """Print an error message and exit.

    Use for unrecoverable errors that should halt the command.
    """
    print(f"ERROR: {msg}", file=sys.stderr)
    sys.exit(code)
