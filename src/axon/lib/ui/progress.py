"""Progress reporting for deployment state transitions.

Deployers report each state transition through a :class:`ProgressReporter`
so the CLI controls how (and whether) progress is printed.
"""

from __future__ import annotations

import click

from axon.lib.ui.terminal import use_color


class ProgressReporter:
    """Print one line per deployment step.

    Args:
        quiet: Suppress everything except warnings and failures
        color: Force colors on or off. None uses ``use_color()``.
    """

    def __init__(self, quiet: bool = False, color: bool | None = None) -> None:
        self.quiet = quiet
        self.color = color if color is not None else use_color()
        self.lines: list[str] = []

    def _emit(self, text: str, err: bool = False, **style: object) -> None:
        self.lines.append(text)
        click.secho(text, err=err, color=self.color, **style)  # type: ignore[arg-type]

    def step(self, message: str) -> None:
        """Announce the start of a step."""
        if not self.quiet:
            self._emit(f"==> {message}", bold=True)

    def info(self, message: str) -> None:
        """Print a detail line under the current step."""
        if not self.quiet:
            self._emit(f"    {message}")

    def success(self, message: str) -> None:
        """Report a completed step."""
        if not self.quiet:
            self._emit(f"    {message}", fg="green")

    def warning(self, message: str) -> None:
        """Report a non-fatal problem."""
        self._emit(f"    Warning: {message}", err=True, fg="yellow")

    def failure(self, message: str) -> None:
        """Report a step failure."""
        self._emit(f"    Failed: {message}", err=True, fg="red")
