"""Unit tests for the console and logging implementation."""

from __future__ import annotations

import logging
import sys
import threading
from io import StringIO
from typing import TYPE_CHECKING
from unittest.mock import ANY, MagicMock, call, patch

import pytest
from rich.console import Console

from telnet_agent.cli.console import (
    LiveDisplayHandler,
    _active_tasks,  # noqa: PLC2701
    complete_progress,
    create_progress,
    live_display,
    log,
    print_line,
    progress_lock,
    set_verbosity,
    start_live_display,
    stop_live_display,
    update_progress,
)

if TYPE_CHECKING:
    from collections.abc import Generator


@pytest.fixture(autouse=True)
def reset_progress_state() -> Generator[None]:
    """Reset progress-related global state between tests."""
    original_active_tasks = _active_tasks.copy()
    _active_tasks.clear()
    if live_display.is_started:
        live_display.stop()

    yield

    if live_display.is_started:
        live_display.stop()
    _active_tasks.clear()
    _active_tasks.update(original_active_tasks)


@pytest.fixture
def mock_console() -> Generator[MagicMock]:
    """Fixture providing a mock console for testing."""
    with patch("telnet_agent.cli.console.console") as mock:
        yield mock


@pytest.fixture
def mock_live() -> Generator[MagicMock]:
    """Fixture providing a mock live display for testing."""
    with patch("telnet_agent.cli.console.live_display") as mock:
        mock.is_started = False
        yield mock


@pytest.fixture
def mock_log() -> Generator[MagicMock]:
    """Fixture providing a mock logger for testing."""
    with patch("telnet_agent.cli.console.log") as mock:
        yield mock


@pytest.fixture
def mock_progress() -> Generator[MagicMock]:
    """Fixture providing a mock progress bar for testing."""
    with patch("telnet_agent.cli.console.progress") as mock:
        mock.tasks = {}
        yield mock


def test_progress_lock_is_rlock() -> None:
    """Test that progress_lock is an RLock instance."""
    if not isinstance(progress_lock, type(threading.RLock())):
        pytest.fail(f"Expected progress_lock to be threading.RLock, got {type(progress_lock)}")


def make_record(msg: str = "Connecting to %s:%d", args: tuple = ("192.168.1.20", 23)) -> logging.LogRecord:
    """Build a real log record from the package logger."""
    return logging.LogRecord("telnet_agent", logging.INFO, __file__, 1, msg, args, None)


def test_live_display_handler_emit_display_not_started(mock_console: MagicMock, mock_live: MagicMock) -> None:
    """Test LiveDisplayHandler.emit when live display is not started."""
    handler = LiveDisplayHandler(console=mock_console)
    record = make_record()
    rendered = MagicMock()

    with patch.object(handler, "render", return_value=rendered) as mock_render:
        handler.emit(record)

    mock_render.assert_called_once_with(record=record, traceback=None, message_renderable=ANY)
    mock_console.print.assert_called_once_with(rendered)
    mock_live.refresh.assert_not_called()


def test_live_display_handler_emit_display_started(mock_console: MagicMock, mock_live: MagicMock) -> None:
    """Test LiveDisplayHandler.emit refreshes around the print when live."""
    mock_live.is_started = True
    handler = LiveDisplayHandler(console=mock_console)
    rendered = MagicMock()

    with patch.object(handler, "render", return_value=rendered):
        handler.emit(make_record())

    mock_console.print.assert_called_once_with(rendered)
    if mock_live.refresh.call_count != 2:
        pytest.fail(f"Expected 2 refresh calls, got {mock_live.refresh.call_count}")


def test_live_display_handler_renders_message(mock_live: MagicMock) -> None:
    """Test a record logged through the handler reaches the console output."""
    output = StringIO()
    handler = LiveDisplayHandler(console=Console(file=output, width=120), show_time=False, show_path=False)
    logger = logging.getLogger("telnet_agent.test_handler")
    logger.addHandler(handler)
    logger.propagate = False
    logger.setLevel(logging.INFO)
    try:
        logger.info("Connecting to %s:%d", "192.168.1.20", 23)
    finally:
        logger.removeHandler(handler)
        logger.propagate = True

    if "Connecting to 192.168.1.20:23" not in output.getvalue():
        pytest.fail(f"Log message missing from output: {output.getvalue()!r}")


def test_live_display_handler_renders_rich_traceback(mock_live: MagicMock) -> None:
    """Test exceptions logged with a traceback are rendered, not raised."""
    output = StringIO()
    handler = LiveDisplayHandler(console=Console(file=output, width=120), rich_tracebacks=True)
    try:
        msg = "socket closed"
        raise OSError(msg)
    except OSError:
        record = logging.LogRecord("telnet_agent", logging.ERROR, __file__, 1, "Send failed", (), sys.exc_info())

    handler.emit(record)

    if "socket closed" not in output.getvalue():
        pytest.fail(f"Traceback missing from output: {output.getvalue()!r}")


def test_live_display_handler_emit_failure_is_handled(mock_console: MagicMock, mock_live: MagicMock) -> None:
    """Test a rendering failure goes to handleError instead of the caller."""
    handler = LiveDisplayHandler(console=mock_console)
    record = make_record()

    with (
        patch.object(handler, "render", side_effect=RuntimeError("render failed")),
        patch.object(handler, "handleError") as mock_handle_error,
    ):
        handler.emit(record)

    mock_handle_error.assert_called_once_with(record)
    mock_console.print.assert_not_called()


def test_installed_handler_accepts_package_logs() -> None:
    """Test the root handler installed at import renders package log records."""
    handlers = [handler for handler in logging.getLogger().handlers if isinstance(handler, LiveDisplayHandler)]
    if not handlers:
        pytest.fail("LiveDisplayHandler should be installed on the root logger")

    with (
        patch("telnet_agent.cli.console._print_above_progress") as mock_print,
        patch.object(handlers[0], "handleError") as mock_handle_error,
    ):
        handlers[0].handle(make_record())

    mock_handle_error.assert_not_called()
    mock_print.assert_called_once()


def test_print_line_disables_markup(mock_console: MagicMock, mock_live: MagicMock) -> None:
    """Test received text is printed literally."""
    print_line("[bold]not markup[/bold] :smile:")

    mock_console.print.assert_called_once_with(
        "[bold]not markup[/bold] :smile:", markup=False, highlight=False, emoji=False, soft_wrap=True
    )
    mock_live.refresh.assert_not_called()


@pytest.mark.parametrize(("verbose", "level"), [(0, "WARNING"), (1, "INFO"), (2, "DEBUG"), (5, "DEBUG")])
def test_set_verbosity(verbose: int, level: str) -> None:
    """Test -v counts map to log levels."""
    original = log.level
    try:
        set_verbosity(verbose)
        if log.getEffectiveLevel() != logging.getLevelName(level):
            pytest.fail(f"Expected {level} for verbose={verbose}, got {log.getEffectiveLevel()}")
    finally:
        log.setLevel(original)


def test_start_live_display_not_started(mock_live: MagicMock) -> None:
    """Test start_live_display when display is not already started."""
    start_live_display()

    mock_live.start.assert_called_once()


def test_start_live_display_already_started(mock_live: MagicMock) -> None:
    """Test start_live_display when display is already started."""
    mock_live.is_started = True

    start_live_display()

    mock_live.start.assert_not_called()


def test_stop_live_display_with_tasks(mock_live: MagicMock) -> None:
    """Test stop_live_display keeps the display while tasks remain."""
    mock_live.is_started = True
    _active_tasks["test_task"] = 1

    stop_live_display()

    mock_live.stop.assert_not_called()


def test_create_progress_custom_task_id(mock_progress: MagicMock, mock_live: MagicMock) -> None:
    """Test create_progress with a custom task ID starts the display."""
    mock_progress.add_task.return_value = 123

    returned_task_id = create_progress("Sending 3 lines", 3, "script")

    mock_live.start.assert_called_once()
    mock_progress.add_task.assert_called_once_with("Sending 3 lines", total=3)
    if returned_task_id != "script":
        pytest.fail(f"Expected task ID 'script', got {returned_task_id}")
    if _active_tasks["script"] != 123:
        pytest.fail(f"Expected progress task 123, got {_active_tasks['script']}")


def test_update_progress_nonexistent_task(mock_progress: MagicMock, mock_log: MagicMock) -> None:
    """Test update_progress with non-existent task ID."""
    update_progress("nonexistent_task", advance=1)

    mock_progress.update.assert_not_called()
    mock_log.warning.assert_called_once_with(
        "Attempted to update non-existent progress task: %s", "nonexistent_task"
    )


def test_script_progress_workflow(mock_progress: MagicMock, mock_live: MagicMock) -> None:
    """Test the create, advance and complete cycle used for script replay."""
    mock_progress.add_task.return_value = 7
    task = MagicMock()
    task.total = 2
    mock_progress.tasks = {7: task}

    task_id = create_progress("Sending 2 lines", total=2)
    mock_live.is_started = True
    update_progress(task_id, advance=1)
    update_progress(task_id, advance=1)
    complete_progress(task_id, "Sent 2 of 2 lines")

    mock_progress.update.assert_has_calls([
        call(7, advance=1),
        call(7, advance=1),
        call(7, description="Sent 2 of 2 lines"),
        call(7, completed=2),
    ])
    if task_id in _active_tasks:
        pytest.fail(f"Task {task_id} should not be in _active_tasks")
    mock_live.stop.assert_called_once()


def test_complete_progress_nonexistent_task(mock_progress: MagicMock, mock_log: MagicMock) -> None:
    """Test complete_progress with non-existent task ID."""
    complete_progress("nonexistent_task")

    mock_progress.update.assert_not_called()
    mock_log.warning.assert_called_once_with(
        "Attempted to complete non-existent progress task: %s", "nonexistent_task"
    )
