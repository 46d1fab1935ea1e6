"""Command line interface components for the telnet agent.

This module provides the console and logging setup, argument parsing, script
and transcript file handling, and the entry point that drives one session
from the terminal.
"""

from __future__ import annotations

from .args import parse_args
from .console import complete_progress, console, create_progress, log, print_line, update_progress
from .files import FileReader, FileWriter
from .main import main

__all__ = [
    "FileReader",
    "FileWriter",
    "complete_progress",
    "console",
    "create_progress",
    "log",
    "main",
    "parse_args",
    "print_line",
    "update_progress",
]
