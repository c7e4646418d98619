"""``python -m iacgate.cli`` runs the same program as the ``iacgate`` console script."""

from cli.main import EXIT_INTERRUPTED, CLIError, app, build_parser, main

__all__ = ["EXIT_INTERRUPTED", "CLIError", "app", "build_parser", "main"]
