"""Helpers shared by the command modules."""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Coroutine, Iterator, Optional, TypeVar

import typer

from mdscribe.auth.credentials import CredentialManager
from mdscribe.exceptions import MdscribeError
from mdscribe.models import AppConfig
from mdscribe.output import error

if TYPE_CHECKING:
    from mdscribe.dispatcher import ProviderDispatcher

T = TypeVar("T")


@contextmanager
def exit_on_error() -> Iterator[None]:
    """Print any :class:`MdscribeError` and exit with its code."""
    try:
        yield
    except MdscribeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


async def format_once(
    dispatcher: ProviderDispatcher, text: str, override: Optional[str]
) -> str:
    """Format *text* and close the dispatcher's local catalogs afterwards."""
    async with dispatcher:
        return await dispatcher.format(text, override)


def is_forced(ctx: typer.Context) -> bool:
    return bool(ctx.obj.get("force", False)) if ctx.obj else False


def build_credentials(config: AppConfig) -> CredentialManager:
    """Credential manager over the secret backend named in *config*."""
    from mdscribe.config import create_secret_store

    return CredentialManager(create_secret_store(config))


def confirm_or_exit(ctx: typer.Context, question: str) -> None:
    """Ask *question* unless ``--force`` is set. Exit quietly on "no"."""
    from mdscribe.output import info

    if is_forced(ctx):
        return
    if not typer.confirm(question):
        info("Cancelled.")
        raise typer.Exit()


def cli_provider(ctx: typer.Context, override: Optional[str] = None) -> Optional[str]:
    """Command-level ``--provider`` wins over the global one."""
    if override is not None:
        return override
    return ctx.obj.get("provider") if ctx.obj else None
