"""Command line argument parser for the telnet agent.

Arguments are declared in ``telnet_agent.constants.CLI_ARGUMENTS`` and added
here group by group, so the help output mirrors that table.
"""

from __future__ import annotations

from argparse import (
    ArgumentParser,
    Namespace as Arguments,
    RawDescriptionHelpFormatter as Formatter,
)
from sys import argv as sys_argv, exit as sys_exit

from telnet_agent.constants import (
    CLI_ARGUMENTS,
    CLI_HELP_DESCRIPTION,
    CLI_HELP_EPILOGUE,
    CLI_HELP_NAME,
    MAX_PORT,
    MIN_PORT,
)

from .console import set_verbosity


def build_parser() -> ArgumentParser:
    """Create the argument parser with every group from CLI_ARGUMENTS.

    Returns:
        Configured ArgumentParser instance
    """
    parser = ArgumentParser(
        description=CLI_HELP_DESCRIPTION,
        epilog=CLI_HELP_EPILOGUE,
        prog=CLI_HELP_NAME,
        formatter_class=Formatter,
    )
    for category_name, args in CLI_ARGUMENTS.items():
        category = parser.add_argument_group(category_name)
        [category.add_argument(*flags, **kwargs) for flags, kwargs in args]
    return parser


def parse_proxy(value: str) -> tuple[str, int]:
    """Split a host:port proxy address.

    Returns:
        The proxy host and port

    Raises:
        ValueError: If the value has no port or the port is out of range
    """
    host, sep, port_text = value.rpartition(":")
    if not sep or not host or not port_text.isdigit():
        msg = f"Invalid proxy address: {value!r}, expected host:port"
        raise ValueError(msg)
    port = int(port_text)
    if not MIN_PORT <= port <= MAX_PORT:
        msg = f"Invalid proxy port: {port}"
        raise ValueError(msg)
    return host.strip("[]"), port


def parse_args(argv: list[str] | None = None) -> Arguments:
    """Parse command line arguments and apply the requested verbosity.

    Args:
        argv: Arguments to parse, defaults to sys.argv[1:]

    Returns:
        The parsed arguments, with ``proxy`` split into (host, port) when given
    """
    parser = build_parser()
    if argv is None:
        # Show help rather than an error when run with no arguments
        if len(sys_argv) == 1:
            parser.print_help()
            sys_exit(0)
        argv = sys_argv[1:]

    parsed_args = parser.parse_args(argv)

    if not MIN_PORT <= parsed_args.port <= MAX_PORT:
        parser.error(f"port must be between {MIN_PORT} and {MAX_PORT}")
    if parsed_args.proxy is not None:
        try:
            parsed_args.proxy = parse_proxy(parsed_args.proxy)
        except ValueError as e:
            parser.error(str(e))

    set_verbosity(parsed_args.verbose)
    return parsed_args
