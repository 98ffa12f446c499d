"""Models commands -- manage models on the local Ollama server.

The server address defaults to ``llm.local.endpoint`` from the config::

    mdscribe models list
    mdscribe models pull mistral-nemo:12b-instruct-2407-q5_0
    mdscribe models remove llama3 --endpoint http://gpu-box:11434
"""

from __future__ import annotations

from typing import Optional

import typer

from mdscribe.commands.common import confirm_or_exit, exit_on_error, run
from mdscribe.output import info, print_table, progress, success, suggest

models_app = typer.Typer(no_args_is_help=True)

_ENDPOINT_OPTION = typer.Option(
    None, "--endpoint", "-e", help="Ollama server URL. Defaults to llm.local.endpoint."
)


def _catalog(endpoint: Optional[str]):  # noqa: ANN202
    from mdscribe.config import load_config
    from mdscribe.providers.local import LocalModelCatalog

    if endpoint is None:
        endpoint = load_config().llm.local.endpoint
    return LocalModelCatalog(endpoint)


@models_app.command("list")
def models_list(endpoint: Optional[str] = _ENDPOINT_OPTION) -> None:
    """List models installed on the local server."""

    async def _list() -> list[str]:
        async with _catalog(endpoint) as catalog:
            await catalog.ensure_available()
            return await catalog.list_models()

    with exit_on_error():
        models = run(_list())

    if not models:
        info("No models installed.")
        suggest("Install one: mdscribe models pull mistral-nemo:12b-instruct-2407-q5_0")
        return
    print_table(["Model"], [[name] for name in sorted(models)], title="Local models")


@models_app.command("pull")
def models_pull(
    name: str = typer.Argument(help="Model to download, e.g. 'llama3:8b'."),
    endpoint: Optional[str] = _ENDPOINT_OPTION,
) -> None:
    """Download a model to the local server."""

    async def _pull() -> None:
        async with _catalog(endpoint) as catalog:
            await catalog.ensure_available()
            await catalog.pull_model(name, on_status=progress)

    info(f"Pulling {name}...")
    with exit_on_error():
        run(_pull())
    success(f'Model "{name}" is installed.')


@models_app.command("remove")
def models_remove(
    ctx: typer.Context,
    name: str = typer.Argument(help="Model to delete."),
    endpoint: Optional[str] = _ENDPOINT_OPTION,
) -> None:
    """Delete a model from the local server."""

    async def _remove() -> None:
        async with _catalog(endpoint) as catalog:
            await catalog.remove_model(name)

    confirm_or_exit(ctx, f'Delete model "{name}"?')
    with exit_on_error():
        run(_remove())
    success(f'Model "{name}" removed.')
