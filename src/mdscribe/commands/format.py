"""Format command -- turn a transcript into markdown.

Reads the transcript from a file or stdin, sends it to the resolved
provider through :class:`~mdscribe.dispatcher.ProviderDispatcher`, and
writes the markdown to stdout. Status goes to stderr so the result can be
piped or redirected::

    mdscribe format talk.txt > talk.md
    cat talk.txt | mdscribe format --provider work
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import typer

from mdscribe.commands.common import (
    build_credentials,
    cli_provider,
    exit_on_error,
    format_once,
    run,
)
from mdscribe.output import print_markdown, progress, success


def _read_transcript(file: Optional[Path]) -> str:
    from mdscribe.exceptions import InvalidUsageError

    if file is None or str(file) == "-":
        if sys.stdin.isatty():
            raise InvalidUsageError(
                "No transcript given. Pass a file or pipe text on stdin: mdscribe format talk.txt"
            )
        text = sys.stdin.read()
    else:
        try:
            text = file.read_text(encoding="utf-8")
        except OSError as exc:
            raise InvalidUsageError(f"Cannot read {file}: {exc}") from exc

    if not text.strip():
        raise InvalidUsageError("Transcript is empty")
    return text


def format_command(
    ctx: typer.Context,
    file: Optional[Path] = typer.Argument(
        None, help="Transcript file. Reads stdin when omitted or '-'."
    ),
    provider: Optional[str] = typer.Option(
        None,
        "--provider",
        "-p",
        help="Registry entry or provider kind to use for this run.",
    ),
) -> None:
    """Format a transcript into readable markdown.

    The provider is, in order: ``--provider``, the active registry entry,
    then the configured provider kind (``MDSCRIBE_PROVIDER`` overrides it).

    Example::

        mdscribe format talk.txt
        mdscribe format talk.txt --provider anthropic
    """
    from mdscribe.config import resolve_config
    from mdscribe.dispatcher import ProviderDispatcher

    override = cli_provider(ctx, provider)
    with exit_on_error():
        text = _read_transcript(file)
        config = resolve_config(override)
        dispatcher = ProviderDispatcher(config, build_credentials(config))
        target = dispatcher.resolve(override)
        progress(f"Formatting with {target.name} ({target.kind.display_name}, {target.model})...")
        markdown = run(format_once(dispatcher, text, override))

    print_markdown(markdown)
    success("Done.")
