"""Numbered step reporting for provisioning workflows.

Prints ``01. Creating blank Datamodel: starting`` / ``...: done | detail``
lines through a Rich console, mirroring each line to the module logger so
runs without a terminal still leave a trace.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console
from rich.markup import escape

logger = logging.getLogger(__name__)


class Step:
    """Handle for one running step; call :meth:`done` with a summary."""

    def __init__(self, log: StepLog, number: int, title: str) -> None:
        self._log = log
        self.number = number
        self.title = title
        self.detail: str | None = None

    def done(self, detail: str | None = None) -> None:
        self.detail = detail

    def note(self, message: str) -> None:
        """Print an indented sub-line (``  -> message``)."""
        self._log.print(f"  [dim]->[/dim] {message}")


class StepLog:
    """Sequential step counter bound to a Rich console.

    Usage::

        steps = StepLog(console)
        with steps.step("Uploading file demo.csv") as step:
            result = await uploader.upload("demo.csv")
            step.done(f"Uploaded file path: {result.storage_path}")
    """

    def __init__(self, console: Console | None = None, quiet: bool = False) -> None:
        self._console = console or Console()
        self._quiet = quiet
        self._counter = 0

    def print(self, message: str) -> None:
        if not self._quiet:
            self._console.print(message, highlight=False)

    @contextmanager
    def step(self, title: str) -> Iterator[Step]:
        self._counter += 1
        step = Step(self, self._counter, title)
        prefix = f"{step.number:02d}. {title}"

        logger.info("%s: starting", prefix)
        self.print(f"[bold]{prefix}[/bold]: starting")
        try:
            yield step
        except Exception as exc:
            logger.error("%s: failed | %s", prefix, exc)
            self.print(f"[bold]{prefix}[/bold]: [red]failed[/red] | {escape(str(exc))}")
            raise

        suffix = f" | {step.detail}" if step.detail else ""
        logger.info("%s: done%s", prefix, suffix)
        self.print(f"[bold]{prefix}[/bold]: [green]done[/green]{escape(suffix)}")
