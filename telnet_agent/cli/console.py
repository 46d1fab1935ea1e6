"""Console and logging configuration module for the telnet agent.

This module sets up a single Rich console shared by log output, received
session text and the progress bar shown while a command script is replayed.

Key features:
1. Rich-formatted logging that appears above any progress bar
2. Received lines printed verbatim (no markup, no highlighting)
3. Thread-safe operations for concurrent updates
"""

from __future__ import annotations

import logging
import threading
import time
from logging import INFO, getLogger
from typing import Any

from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.traceback import Traceback

# Shared Rich console for logs and session output
console = Console()

# Progress bar for script replay, one step per line sent
progress_lock = threading.RLock()
progress = Progress(
    SpinnerColumn(),
    TextColumn("[bold blue]{task.description}"),
    BarColumn(),
    MofNCompleteColumn(),
    TimeElapsedColumn(),
    TimeRemainingColumn(),
    console=console,
    expand=True,
)

live_display = Live(
    progress,
    console=console,
    refresh_per_second=10,
    transient=False,
    auto_refresh=False,  # Refreshed manually under progress_lock
)

# Active progress tasks by caller-facing id
_active_tasks: dict[str, TaskID] = {}


def _print_above_progress(target: Console, renderable: Any, **kwargs: Any) -> None:
    """Print to a console, keeping any live progress bar pinned below."""
    with progress_lock:
        if live_display.is_started:
            live_display.refresh()
            target.print(renderable, **kwargs)
            live_display.refresh()
        else:
            target.print(renderable, **kwargs)


class LiveDisplayHandler(RichHandler):
    """A Rich logging handler that cooperates with the live progress display."""

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a log record above the progress bar when one is shown.

        Failures are passed to ``handleError`` so logging can never raise into
        the caller.
        """
        try:
            traceback = None
            if self.rich_tracebacks and record.exc_info and record.exc_info[0] is not None:
                exc_type, exc_value, exc_traceback = record.exc_info
                traceback = Traceback.from_exception(
                    exc_type,
                    exc_value,
                    exc_traceback,
                    width=self.tracebacks_width,
                    show_locals=self.tracebacks_show_locals,
                )
                message = record.getMessage()
            else:
                message = self.format(record)
            renderable = self.render(
                record=record, traceback=traceback, message_renderable=self.render_message(record, message)
            )
            _print_above_progress(self.console, renderable)
        except Exception:
            self.handleError(record)


logging.basicConfig(
    level=INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[LiveDisplayHandler(console=console, rich_tracebacks=True, show_time=True)],
    force=True,
)

log = getLogger("telnet_agent")


def print_line(text: str) -> None:
    """Print one line received from the remote side.

    The text is printed literally: Rich markup, emoji codes and syntax
    highlighting are all disabled so remote content cannot restyle the console.
    """
    _print_above_progress(console, text, markup=False, highlight=False, emoji=False, soft_wrap=True)


def set_verbosity(verbose: int) -> None:
    """Set the package log level from a -v count.

    Args:
        verbose: 0 for warnings only, 1 for info, 2 or more for debug
    """
    if verbose >= 2:  # noqa: PLR2004
        log.setLevel("DEBUG")
    elif verbose == 1:
        log.setLevel("INFO")
    else:
        log.setLevel("WARNING")


def start_live_display() -> None:
    """Start the live display; called automatically by create_progress."""
    with progress_lock:
        if not live_display.is_started:
            live_display.start()


def stop_live_display() -> None:
    """Stop the live display once no progress tasks remain."""
    with progress_lock:
        if live_display.is_started and not _active_tasks:
            live_display.stop()


def create_progress(description: str, total: int = 100, task_id: str | None = None) -> str:
    """Create a new progress bar task.

    Args:
        description: Description of the task
        total: Total number of steps
        task_id: Optional identifier for the task (generated if not provided)

    Returns:
        String identifier for the task
    """
    with progress_lock:
        if not live_display.is_started:
            start_live_display()

        if task_id is None:
            task_id = f"task_{time.time()}"

        _active_tasks[task_id] = progress.add_task(description, total=total)
        live_display.refresh()
        return task_id


def update_progress(
    task_id: str,
    advance: float | None = None,
    completed: float | None = None,
    description: str | None = None,
    **kwargs: Any,
) -> None:
    """Update a progress bar task.

    Args:
        task_id: Identifier for the task
        advance: Number of steps to advance
        completed: Set the absolute completed value
        description: Update the task description
        **kwargs: Additional arguments to pass to progress.update
    """
    with progress_lock:
        if task_id not in _active_tasks:
            log.warning("Attempted to update non-existent progress task: %s", task_id)
            return

        update_kwargs: dict[str, Any] = {}
        if advance is not None:
            update_kwargs["advance"] = advance
        if completed is not None:
            update_kwargs["completed"] = completed
        if description is not None:
            update_kwargs["description"] = description
        update_kwargs.update(kwargs)

        progress.update(_active_tasks[task_id], **update_kwargs)
        if live_display.is_started:
            live_display.refresh()


def complete_progress(task_id: str, description: str | None = None) -> None:
    """Mark a progress bar task as complete and drop it.

    Args:
        task_id: Identifier for the task
        description: Final description for the completed task
    """
    with progress_lock:
        if task_id not in _active_tasks:
            log.warning("Attempted to complete non-existent progress task: %s", task_id)
            return

        progress_task_id = _active_tasks[task_id]
        if description is not None:
            progress.update(progress_task_id, description=description)
        progress.update(progress_task_id, completed=progress.tasks[progress_task_id].total)

        if live_display.is_started:
            live_display.refresh()

        del _active_tasks[task_id]
        if not _active_tasks and live_display.is_started:
            stop_live_display()
