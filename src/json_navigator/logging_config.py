"""Logging setup for the json-navigator CLI and MCP server."""

import sys

from loguru import logger


def configure_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Route loguru output to stderr.

    stdout stays clean for command output and the MCP stdio transport.
    ``quiet`` wins over ``verbose`` and keeps only warnings and errors.
    """
    logger.remove()
    if quiet:
        level = "WARNING"
    elif verbose:
        level = "DEBUG"
    else:
        level = "INFO"
    fmt = "{level.icon} {message}"
    if verbose:
        fmt = "<dim>{time:HH:mm:ss.SSS}</dim> {level.icon} <cyan>{name}</cyan> {message}"
    logger.add(sys.stderr, level=level, format=fmt)
