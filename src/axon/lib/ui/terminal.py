"""Terminal detection for progress output."""

import os
import sys


def use_color() -> bool:
    """Decide whether progress lines should be colored.

    Colors are used on an interactive stdout unless ``NO_COLOR`` is set.
    CI logs (no TTY) get plain text.
    """
    if os.environ.get("NO_COLOR"):
        return False
    return sys.stdout.isatty()
