"""Auth commands -- manage provider secrets.

API keys and OAuth tokens are kept in the secret backend selected by
``secret_backend`` (the system keyring by default), never in the config
file. A key in ``MDSCRIBE_<NAME>_API_KEY`` overrides the stored one
without changing it.

Typical workflow::

    mdscribe auth set-key work          # prompts without echo
    mdscribe auth login work --client-id <id>
    mdscribe auth status
"""

from __future__ import annotations

from typing import Optional

import typer

from mdscribe.commands.common import build_credentials, confirm_or_exit, exit_on_error, run
from mdscribe.output import info, print_table, success, suggest, warning

auth_app = typer.Typer(no_args_is_help=True)


def _provider_kind(config, name: str):  # noqa: ANN001, ANN202
    """Kind of *name*: a registry entry's type, or *name* itself as a kind."""
    from mdscribe.exceptions import ConfigurationError
    from mdscribe.models import ProviderKind

    if name in config.registry:
        return config.registry.get(name).provider_type
    try:
        return ProviderKind(name.lower())
    except ValueError:
        raise ConfigurationError(
            f"Unknown provider '{name}'. Register it first: "
            f"mdscribe provider add {name} --type <kind> --model <model>"
        ) from None


@auth_app.command("set-key")
def auth_set_key(
    name: str = typer.Argument(help="Registry entry or provider kind."),
    key: Optional[str] = typer.Option(
        None, "--key", "-k", help="The API key. Prompted without echo when omitted."
    ),
) -> None:
    """Store an API key for a provider.

    Example::

        mdscribe auth set-key work
        mdscribe auth set-key openai --key "$OPENAI_API_KEY"
    """
    from mdscribe.config import load_config

    with exit_on_error():
        config = load_config()
        _provider_kind(config, name)
        if key is None:
            key = typer.prompt(f"API key for {name}", hide_input=True)
        credentials = build_credentials(config)
        credentials.set_api_key(name, key)

    success(f'API key stored for "{name}".')
    env_var = credentials.env_var_name(name)
    suggest(f"{env_var} overrides the stored key when set.")


@auth_app.command("delete-key")
def auth_delete_key(
    ctx: typer.Context,
    name: str = typer.Argument(help="Provider whose stored key to delete."),
) -> None:
    """Delete a stored API key."""
    from mdscribe.config import load_config

    with exit_on_error():
        config = load_config()
        credentials = build_credentials(config)
        confirm_or_exit(ctx, f'Delete the stored API key for "{name}"?')
        credentials.delete_api_key(name)
    success(f'API key deleted for "{name}".')


def _show_device_code(authorization) -> None:  # noqa: ANN001
    info("")
    info(f"Go to: {authorization.verification_uri}")
    info(f"Enter code: {authorization.user_code}")
    info("")
    info("Waiting for authorization...")


@auth_app.command("login")
def auth_login(
    name: str = typer.Argument(help="Registry entry or provider kind to log in."),
    client_id: str = typer.Option(
        ...,
        "--client-id",
        envvar="MDSCRIBE_OAUTH_CLIENT_ID",
        help="OAuth client ID registered with the provider.",
    ),
) -> None:
    """Log in with the OAuth device flow and store the token.

    Only OpenAI supports device login; other kinds use API keys.

    Example::

        mdscribe auth login work --client-id abc123
    """
    from mdscribe.auth.oauth import OAuthManager
    from mdscribe.config import load_config

    with exit_on_error():
        config = load_config()
        kind = _provider_kind(config, name)
        credentials = build_credentials(config)
        token = run(
            OAuthManager().login(
                credentials, name, kind, client_id, on_prompt=_show_device_code
            )
        )

    success(f'Logged in "{name}".')
    if token.expires_at is not None:
        info(f"Token expires at {token.expires_at:%Y-%m-%d %H:%M} UTC.")


@auth_app.command("logout")
def auth_logout(name: str = typer.Argument(help="Provider to log out.")) -> None:
    """Delete the stored OAuth token. Any API key is kept."""
    from mdscribe.config import load_config

    with exit_on_error():
        config = load_config()
        build_credentials(config).delete_oauth_token(name)
    success(f'Logged out "{name}".')


@auth_app.command("status")
def auth_status() -> None:
    """Show which secret each provider would use.

    Lists every registry entry plus every provider kind, with the source of
    its API key and the state of its OAuth token.
    """
    from mdscribe.config import load_config
    from mdscribe.models import ProviderKind

    with exit_on_error():
        config = load_config()
        credentials = build_credentials(config)

        entries = sorted(config.registry.list(), key=lambda e: e.name)
        targets = [(e.name, e.provider_type) for e in entries]
        targets += [
            (k.value, k)
            for k in ProviderKind
            if k is not ProviderKind.LOCAL and k.value not in config.registry
        ]

        rows: list[list[str]] = []
        for name, kind in targets:
            source = credentials.api_key_source(name)
            if source == "env":
                key_source = f"env ({credentials.env_var_name(name)})"
            else:
                key_source = source or "-"

            token = credentials.get_oauth_token(name)
            if token is None:
                token_state = "-"
            elif token.is_expired():
                token_state = "expired"
            elif token.expires_at is None:
                token_state = "valid"
            else:
                token_state = f"valid until {token.expires_at:%Y-%m-%d %H:%M}"

            rows.append([name, kind.value, key_source, token_state])

    print_table(["Provider", "Type", "API key", "OAuth token"], rows, title="Credentials")
    if config.secret_backend == "file":
        warning("Secrets are stored in a file, not the system keyring.")
