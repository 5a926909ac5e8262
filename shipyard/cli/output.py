"""Exit codes, stderr helpers and logging setup for the CLI."""

from __future__ import annotations

import logging
import sys
from enum import IntEnum
from typing import TYPE_CHECKING

import click

from shipyard.errors import DeployError

if TYPE_CHECKING:
    from typing import NoReturn


class ExitCode(IntEnum):
    """Process exit codes, one per error category.

    Each :class:`~shipyard.errors.DeployError` subclass carries the code
    of its category in ``exit_code``.
    """

    SUCCESS = 0
    GENERAL_ERROR = 1
    USAGE_ERROR = 2
    FILE_NOT_FOUND = 3
    VALIDATION_ERROR = 5
    INSTALL_ERROR = 6
    HEALTH_CHECK_ERROR = 7
    NETWORK_ERROR = 8
    SUPERVISOR_ERROR = 9
    ROLLBACK_ERROR = 10


def error(message: str, **context: str | int | bool | None) -> None:
    """Print ``Error: <message> (k=v, ...)`` to stderr."""
    context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
    if context_str:
        click.echo(f"Error: {message} ({context_str})", err=True)
    else:
        click.echo(f"Error: {message}", err=True)


def error_exit(
    message: str,
    exit_code: int = ExitCode.GENERAL_ERROR,
    **context: str | int | bool | None,
) -> NoReturn:
    error(message, **context)
    sys.exit(int(exit_code))


def fail(exc: DeployError) -> NoReturn:
    """Report a pipeline error and exit with its category's code."""
    context: dict[str, str | bool | None] = {"state": exc.state}
    if exc.pointer_swapped:
        context["pointer_swapped"] = True
    error(exc.message, **context)
    if exc.pointer_swapped:
        warn("The current pointer names a release the ledger does not record; "
             "run 'shipyard status' and redeploy or roll back.")
    sys.exit(int(exc.exit_code))


def warn(message: str) -> None:
    click.echo(f"Warning: {message}", err=True)


def info(message: str) -> None:
    """Progress text, to stderr so stdout stays parseable."""
    click.echo(message, err=True)


def success(message: str) -> None:
    click.echo(message)


def configure_logging(level: str = "INFO", verbose: bool = False) -> None:
    """Route library logging to stderr; ``verbose`` forces DEBUG."""
    resolved = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
        force=True,
    )
