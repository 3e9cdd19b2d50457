"""
Weights Admin - operator commands for the statement weight cache

Commands:
- init-schema: create the statement_weights table (idempotent)
- show: dump cached weights for a poll, highest weight first
- invalidate: drop cached weights for a poll after clustering or moderation
"""

import asyncio
import json
import sys

import click

from config import config, get_logger
from database.db_postgres import Database
from exceptions import PollwiseError
from pipeline.click_types import INVALIDATION_REASON, POLL_ID
from weighting.service import REASON_CLUSTERING_RECOMPUTED, invalidate_poll_weights

logger = get_logger(__name__).bind(component="weights_admin")


def _run(coro):
    """Run a command coroutine, turning Pollwise errors into a CLI failure"""
    try:
        return asyncio.run(coro)
    except PollwiseError as e:
        logger.error("command failed", error=str(e), retryable=e.is_retryable)
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.group(invoke_without_command=True)
@click.option("--verbose", "-v", is_flag=True, help="Print the active configuration first")
@click.pass_context
def cli(ctx, verbose):
    """Statement weight cache administration"""
    if verbose:
        click.echo(json.dumps(config.summary(), indent=2), err=True)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command("init-schema")
def init_schema():
    """Create the statement_weights table if it does not exist"""
    async def run():
        db = await Database.create()
        try:
            await db.init_schema()
        finally:
            await db.close()

    _run(run())
    click.echo("Schema initialized")


@cli.command("show")
@click.argument("poll_id", type=POLL_ID)
def show(poll_id):
    """Show cached weights for a poll, highest weight first"""
    async def run():
        db = await Database.create()
        try:
            return await db.weights.get_cached_statement_weights(poll_id)
        finally:
            await db.close()

    records = _run(run())
    if not records:
        click.echo(f"No cached weights for poll {poll_id}")
        return
    click.echo(json.dumps([r.to_dict() for r in records], indent=2))


@cli.command("invalidate")
@click.argument("poll_id", type=POLL_ID)
@click.option(
    "--reason",
    type=INVALIDATION_REASON,
    default=REASON_CLUSTERING_RECOMPUTED,
    show_default=True,
    help="Event that made the cached weights stale",
)
def invalidate(poll_id, reason):
    """Drop every cached weight for a poll"""
    async def run():
        db = await Database.create()
        try:
            return await invalidate_poll_weights(db.weights, poll_id, reason)
        finally:
            await db.close()

    deleted = _run(run())
    click.echo(f"Invalidated {deleted} cached weights for poll {poll_id} ({reason})")


def main():
    """Entry point for pollwise-weights CLI"""
    cli()


if __name__ == "__main__":
    main()
