"""Config commands -- view and modify settings.

Provides the ``mdscribe config`` group for reading, updating, and resetting
the configuration file (:class:`~mdscribe.models.AppConfig`). The provider
registry lives in the same file but is edited with ``mdscribe provider``.
"""

from __future__ import annotations

from typing import Any

import typer

from mdscribe.commands.common import confirm_or_exit, exit_on_error
from mdscribe.output import error, info, print_data, print_record, success

config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the effective configuration.

    Example::

        mdscribe config show
        mdscribe --json config show
    """
    from mdscribe.config import get_config_path, resolve_config

    with exit_on_error():
        config = resolve_config()
    info(f"Config file: {get_config_path()}")
    print_record(config.model_dump(mode="json"))


@config_app.command("path")
def config_path() -> None:
    """Print the path of the configuration file."""
    from mdscribe.config import get_config_path

    print_data(str(get_config_path()))


def _coerce(current: Any, value: str) -> Any:
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes", "on")
    if isinstance(current, int):
        return int(value)
    if current is None and value.lower() in ("none", "null", ""):
        return None
    return value


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key in dot notation, e.g. 'llm.provider' or 'llm.openai.model'."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    The value is coerced to the type of the current field (bool, int, or
    str) and the whole document is validated before saving.

    Example::

        mdscribe config set llm.provider anthropic
        mdscribe config set llm.local.endpoint http://gpu-box:11434
        mdscribe config set secret_backend file
    """
    from pydantic import ValidationError

    from mdscribe.config import load_config, save_config
    from mdscribe.models import AppConfig

    with exit_on_error():
        config = load_config()
    data = config.model_dump(mode="json")

    keys = key.split(".")
    if keys[0] == "registry":
        error("The provider registry is managed with 'mdscribe provider'.")
        raise typer.Exit(code=2)

    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=2)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target or isinstance(target[final_key], dict):
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    try:
        coerced = _coerce(target[final_key], value)
    except ValueError:
        error(f"Expected integer for {key}, got: {value}")
        raise typer.Exit(code=2) from None
    target[final_key] = coerced

    try:
        new_config = AppConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    with exit_on_error():
        save_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset configuration to defaults, including the provider registry.

    Stored API keys and OAuth tokens are left alone.

    Example::

        mdscribe config reset --force
    """
    from mdscribe.config import save_config
    from mdscribe.models import AppConfig

    confirm_or_exit(ctx, "Reset all config to defaults?")
    with exit_on_error():
        save_config(AppConfig())
    success("Configuration reset to defaults.")
