"""trakt-manage command line interface."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, TypeVar

import click

from . import __version__
from .config import Settings, get_settings
from .exceptions import AuthError, TransportError, UserCancelled
from .main import lifespan
from .models import HISTORY_KINDS, HistoryKind
from .prompt import ConsolePrompt
from .services.manager import HistoryManager

logger = logging.getLogger(__name__)

T = TypeVar("T")

KIND = click.Choice(HISTORY_KINDS)
KIND_OR_ALL = click.Choice((*HISTORY_KINDS, "all"))


def _setup_logging(verbose: bool, level: str) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(name)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def _expand_kinds(value: str) -> tuple[HistoryKind, ...]:
    if value == "all":
        return HISTORY_KINDS
    return (value,)  # type: ignore[return-value]


def _validate_date(ctx: click.Context, param: click.Parameter, value: str) -> str:
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise click.BadParameter("expected a date in YYYY-MM-DD format") from exc
    return value


def _run(
    ctx: click.Context, command: Callable[[HistoryManager], Awaitable[T]]
) -> T | None:
    """Run ``command`` against a fully wired manager and map failures to exit codes."""

    settings: Settings = ctx.obj["settings"]

    async def _runner() -> T:
        async with lifespan(settings, ctx.obj["prompt"]) as manager:
            return await command(manager)

    try:
        return asyncio.run(_runner())
    except UserCancelled as exc:
        logger.debug("Command cancelled: %s", exc)
        click.echo("Cancelled.")
        return None
    except (AuthError, TransportError) as exc:
        raise click.ClickException(str(exc)) from exc


@click.group()
@click.version_option(version=__version__, prog_name="trakt-manage")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Show debug logging.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Manage your Trakt watch history: cache it locally and prune duplicate plays."""

    ctx.ensure_object(dict)
    if "settings" not in ctx.obj:
        ctx.obj["settings"] = get_settings()
    ctx.obj.setdefault("prompt", ConsolePrompt())
    _setup_logging(verbose, ctx.obj["settings"].log_level)


@main.command()
@click.pass_context
def auth(ctx: click.Context) -> None:
    """Authenticate with Trakt using a PIN."""

    async def _command(manager: HistoryManager) -> Any:
        return await manager.trakt.authenticate()

    if _run(ctx, _command) is not None:
        click.echo("Authenticated successfully.")


@main.command()
@click.argument("kind", type=KIND_OR_ALL, default="all", required=False)
@click.pass_context
def sync(ctx: click.Context, kind: str) -> None:
    """Fetch and cache history (movies, episodes or all)."""

    async def _command(manager: HistoryManager) -> Any:
        return await manager.sync(_expand_kinds(kind))

    outcomes = _run(ctx, _command)
    if outcomes and any(not outcome.ok for outcome in outcomes):
        ctx.exit(1)


@main.command()
@click.argument("kind", type=KIND)
@click.option("--fix", is_flag=True, help="Remove the duplicates found (asks first).")
@click.option(
    "--daily",
    is_flag=True,
    help="Keep one play per day instead of one play ever.",
)
@click.option("--grouped", is_flag=True, help="Show each kept play with its duplicates.")
@click.pass_context
def duplicates(
    ctx: click.Context, kind: HistoryKind, fix: bool, daily: bool, grouped: bool
) -> None:
    """List duplicate plays of KIND."""

    async def _command(manager: HistoryManager) -> Any:
        return await manager.review_duplicates(
            kind, "daily" if daily else "global", fix=fix, grouped=grouped
        )

    _run(ctx, _command)


@main.command("remove-date")
@click.argument("date", callback=_validate_date)
@click.argument("kind", type=KIND)
@click.pass_context
def remove_date(ctx: click.Context, date: str, kind: HistoryKind) -> None:
    """Remove plays of KIND watched on DATE (YYYY-MM-DD)."""

    async def _command(manager: HistoryManager) -> Any:
        return await manager.remove_date(date, kind)

    _run(ctx, _command)


@main.command()
@click.argument("kind", type=KIND_OR_ALL, default="all", required=False)
@click.option("--days", type=click.IntRange(min=1), default=7, show_default=True)
@click.pass_context
def recent(ctx: click.Context, kind: str, days: int) -> None:
    """Show cached plays from the last few days."""

    async def _command(manager: HistoryManager) -> Any:
        return await manager.recent(_expand_kinds(kind), days)

    _run(ctx, _command)


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show how many plays are cached and when they were synced."""

    async def _command(manager: HistoryManager) -> Any:
        return await manager.status(HISTORY_KINDS)

    _run(ctx, _command)


@main.command("help")
@click.pass_context
def help_cmd(ctx: click.Context) -> None:
    """Show this help."""

    click.echo(ctx.parent.get_help() if ctx.parent else ctx.get_help())
