"""Provider commands -- manage named provider entries.

A named provider pairs a provider kind with a model and an optional
endpoint, so several configurations of the same kind can coexist::

    mdscribe provider add work --type openai --model gpt-4o
    mdscribe provider add lab --type custom --model llama3 --endpoint http://lab:8000/v1
    mdscribe provider use work
    mdscribe provider test
"""

from __future__ import annotations

from typing import Optional

import typer

from mdscribe.commands.common import (
    build_credentials,
    cli_provider,
    confirm_or_exit,
    exit_on_error,
    format_once,
    run,
)
from mdscribe.output import (
    info,
    print_markdown,
    print_record,
    print_table,
    progress,
    success,
    suggest,
)

provider_app = typer.Typer(no_args_is_help=True)

SAMPLE_TRANSCRIPT = (
    "so um today we're going to talk about uh testing and why it matters "
    "basically you write the test first and then you know the code follows"
)


@provider_app.command("add")
def provider_add(
    name: str = typer.Argument(help="Unique name for the provider."),
    provider_type: str = typer.Option(
        ..., "--type", "-t", help="Provider kind: local, openai, anthropic, deepseek, custom."
    ),
    model: str = typer.Option(..., "--model", "-m", help="Model name sent to the provider."),
    endpoint: Optional[str] = typer.Option(
        None, "--endpoint", "-e", help="Base URL. Required for the custom kind."
    ),
    use: bool = typer.Option(False, "--use", help="Make this the active provider."),
) -> None:
    """Register a named provider.

    Example::

        mdscribe provider add work --type openai --model gpt-4o --use
    """
    from pydantic import ValidationError

    from mdscribe.config import load_config, parse_kind, save_config
    from mdscribe.exceptions import ConfigurationError
    from mdscribe.models import ProviderConfig, ProviderKind

    with exit_on_error():
        kind = parse_kind(provider_type, source="--type")
        if kind is ProviderKind.CUSTOM and not endpoint:
            raise ConfigurationError(
                "The custom provider kind requires --endpoint, "
                "e.g. --endpoint http://localhost:8000/v1"
            )
        try:
            entry = ProviderConfig(
                name=name, provider_type=kind, model=model, endpoint=endpoint or None
            )
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid provider: {exc}") from None

        config = load_config()
        config.registry.add(entry)
        if use:
            config.registry.set_active(entry.name)
        save_config(config)

    success(f'Provider "{entry.name}" added ({kind.display_name}, {model}).')
    if kind.is_hosted:
        suggest(f"Store its API key: mdscribe auth set-key {entry.name}")
    if not use:
        suggest(f"Make it active: mdscribe provider use {entry.name}")


@provider_app.command("remove")
def provider_remove(
    ctx: typer.Context,
    name: str = typer.Argument(help="Provider to remove."),
) -> None:
    """Remove a named provider. Clears the active selection if it pointed here.

    Stored secrets are kept; delete them with ``mdscribe auth delete-key``.
    """
    from mdscribe.config import load_config, save_config

    with exit_on_error():
        config = load_config()
        config.registry.get(name)
        confirm_or_exit(ctx, f'Remove provider "{name}"?')
        was_active = config.registry.active_provider == name
        config.registry.remove(name)
        save_config(config)

    success(f'Provider "{name}" removed.')
    if was_active:
        info("No provider is active now.")
    suggest(f"Delete its stored key: mdscribe auth delete-key {name}")


@provider_app.command("list")
def provider_list() -> None:
    """List registered providers, sorted by name."""
    from mdscribe.config import load_config

    with exit_on_error():
        config = load_config()

    registry = config.registry
    entries = sorted(registry.list(), key=lambda e: e.name)
    if not entries:
        info("No providers registered.")
        suggest("Add one: mdscribe provider add <name> --type openai --model gpt-4o")
        return

    headers = ["Name", "Type", "Model", "Endpoint", "Active"]
    rows = [
        [
            entry.name,
            entry.provider_type.value,
            entry.model,
            entry.endpoint or "-",
            "*" if entry.name == registry.active_provider else "",
        ]
        for entry in entries
    ]
    print_table(headers, rows, title="Providers")


@provider_app.command("use")
def provider_use(name: str = typer.Argument(help="Provider to make active.")) -> None:
    """Make a registered provider the active one."""
    from mdscribe.config import load_config, save_config

    with exit_on_error():
        config = load_config()
        config.registry.set_active(name)
        save_config(config)
    success(f'Active provider: "{name}".')


@provider_app.command("show")
def provider_show(name: str = typer.Argument(help="Provider to show.")) -> None:
    """Show one provider entry."""
    from mdscribe.config import load_config

    with exit_on_error():
        config = load_config()
        entry = config.registry.get(name)

    record = entry.model_dump(mode="json")
    record["active"] = config.registry.active_provider == entry.name
    print_record(record)


@provider_app.command("test")
def provider_test(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(
        None, help="Provider or kind to test. Defaults to the one 'format' would use."
    ),
) -> None:
    """Send a short sample transcript and print the result.

    Example::

        mdscribe provider test work
    """
    from mdscribe.config import resolve_config
    from mdscribe.dispatcher import ProviderDispatcher

    override = cli_provider(ctx, name)
    with exit_on_error():
        config = resolve_config(override)
        dispatcher = ProviderDispatcher(config, build_credentials(config))
        target = dispatcher.resolve(override)
        progress(f"Testing {target.name} ({target.kind.display_name}, {target.model})...")
        result = run(format_once(dispatcher, SAMPLE_TRANSCRIPT, override))

    print_markdown(result)
    success(f'Provider "{target.name}" is working.')
