"""Command line interface."""

from shipyard.cli.main import cli, main

__all__ = ["cli", "main"]
