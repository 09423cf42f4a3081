"""
CLI layer for cronspine.

Provides a Typer application whose commands delegate to
``cronspine.core.scheduling``. This package handles only terminal
transport: argument parsing, coloured output and table formatting.

Entry point::

    cronspine --help
"""

from cronspine.cli.app import app

__all__ = ["app"]
