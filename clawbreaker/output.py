"""Rendering command results as human-readable text or JSON envelopes.

JSON mode writes exactly one document to stdout per command:
{"success": true, "data": ...} or {"success": false, "error": {...}}.
Human mode writes plain text, with errors in red on stderr.
"""

import json
import sys
from typing import Any, NoReturn

import click

from .errors import APIError


def format_json(data: Any, success: bool = True) -> str:
    """Wrap data in the success envelope (or pass an error envelope through)."""
    envelope = {"success": True, "data": data} if success else data
    return json.dumps(envelope, indent=2, default=str)


def error_details(
    error: Exception,
    error_type: str | None = None,
    help_text: str | None = None,
) -> dict[str, Any]:
    """Describe an error for the JSON error envelope."""
    details: dict[str, Any] = {
        "type": error_type or type(error).__name__,
        "message": str(error),
        "help": help_text or "",
    }
    if isinstance(error, APIError) and error.status is not None:
        details["status"] = error.status
    return details


def format_error_json(
    error: Exception,
    error_type: str | None = None,
    help_text: str | None = None,
) -> str:
    return json.dumps({"success": False, "error": error_details(error, error_type, help_text)}, indent=2)


class OutputHandler:
    """Writes command output in the mode chosen by --json."""

    def __init__(self, json_mode: bool = False):
        self.json_mode = json_mode

    def success(self, data: Any, human_message: str | None = None) -> None:
        """Report a result: the envelope in JSON mode, else the message or pretty JSON."""
        if self.json_mode:
            click.echo(format_json(data))
        elif human_message is not None:
            click.echo(human_message)
        else:
            click.echo(json.dumps(data, indent=2, default=str))

    def error(
        self,
        error: Exception,
        error_type: str | None = None,
        help_text: str | None = None,
    ) -> NoReturn:
        """Report an error and exit with status 1."""
        if self.json_mode:
            click.echo(format_error_json(error, error_type, help_text))
        else:
            click.secho(f"Error: {error}", fg="red", err=True)
            if help_text:
                click.echo(f"\n{help_text}", err=True)
        sys.exit(1)

    def status(self, message: str) -> None:
        """Progress line; goes to stderr in JSON mode to keep stdout parseable."""
        click.echo(message, err=self.json_mode)

    def stream_text(self, text: str) -> None:
        """Write streamed model output as it arrives (human mode only)."""
        if not self.json_mode:
            click.echo(text, nl=False)

    def note(self, message: str) -> None:
        """Highlighted aside between streamed text, such as a tool call."""
        if not self.json_mode:
            click.secho(message, fg="yellow")

    def table(self, headers: list[str], rows: list[list[str]]) -> None:
        """Print aligned columns; JSON mode emits a list of row objects."""
        if self.json_mode:
            click.echo(format_json([dict(zip(headers, row)) for row in rows]))
            return

        if not rows:
            click.echo("(none)")
            return

        widths = [max(len(str(cell)) for cell in column) for column in zip(headers, *rows)]
        header_line = "  ".join(h.ljust(w) for h, w in zip(headers, widths))
        click.secho(header_line, bold=True)
        click.echo("-" * len(header_line))
        for row in rows:
            click.echo("  ".join(str(cell).ljust(w) for cell, w in zip(row, widths)))
