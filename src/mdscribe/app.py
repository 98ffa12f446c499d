"""Typer application and CLI entry point for mdscribe.

Builds the root Typer app and registers the built-in commands (``format``,
``config``, ``provider``, ``auth``, ``models``). :func:`main` is the
console-script entry point declared in ``pyproject.toml``: it installs a
SIGINT handler, runs the app, turns :class:`~mdscribe.exceptions.MdscribeError`
into its exit code, and writes a crash log for anything else.

See Also:
    :mod:`mdscribe.config`: configuration resolution.
    :mod:`mdscribe.output`: output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from mdscribe import __version__
from mdscribe.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INTERRUPTED

app = typer.Typer(
    name="mdscribe",
    help="Format transcripts into readable markdown with a local or hosted language model.",
    no_args_is_help=True,
    add_completion=True,
    rich_markup_mode="rich",
)

from mdscribe.commands.auth import auth_app  # noqa: E402
from mdscribe.commands.config import config_app  # noqa: E402
from mdscribe.commands.format import format_command  # noqa: E402
from mdscribe.commands.models import models_app  # noqa: E402
from mdscribe.commands.provider import provider_app  # noqa: E402

app.command("format")(format_command)
app.add_typer(config_app, name="config", help="View and change settings.")
app.add_typer(provider_app, name="provider", help="Manage named providers.")
app.add_typer(auth_app, name="auth", help="Manage API keys and OAuth logins.")
app.add_typer(models_app, name="models", help="Manage models on the local Ollama server.")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"mdscribe {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool, console: Any) -> None:  # noqa: ANN401
    """Route library logging to stderr. DEBUG with ``--verbose``, else WARNING."""
    from rich.logging import RichHandler

    root = logging.getLogger("mdscribe")
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = RichHandler(console=console, show_time=False, show_path=verbose)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.propagate = False


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    provider: Optional[str] = typer.Option(
        None,
        "--provider",
        "-p",
        help="Registry entry or provider kind to use.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmations."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~mdscribe.output.OutputManager`, wires
    library logging to stderr, and stores shared options in ``ctx.obj``.
    """
    from mdscribe.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    _configure_logging(verbose, output.stderr_console)

    ctx.ensure_object(dict)
    ctx.obj["provider"] = provider
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback under the data directory and return its path."""
    from mdscribe.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``mdscribe`` console script.

    :class:`~mdscribe.exceptions.MdscribeError` exits with the error's
    ``exit_code``. Any other exception writes a crash log and exits with
    :data:`~mdscribe.exit_codes.EXIT_GENERIC_FAILURE`.
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as exc:
        from mdscribe.exceptions import MdscribeError
        from mdscribe.output import error

        if isinstance(exc, MdscribeError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
