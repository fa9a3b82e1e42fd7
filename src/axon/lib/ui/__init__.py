"""UI utilities for terminal progress display during deployments."""

from axon.lib.ui.progress import ProgressReporter
from axon.lib.ui.terminal import use_color

__all__ = [
    "ProgressReporter",
    "use_color",
]
