"""
One-shot Stock sync for cron jobs and manual runs.

Drives pagination the same way the dashboard does: one page per call to the
sync driver, accumulating totals until the Stock API reports no more pages.

    python -m scripts.run_sync_once products --mode incremental
    python -m scripts.run_sync_once product SHIRT-01
    python -m scripts.run_sync_once stock
"""

import asyncio
import sys
from datetime import datetime
from typing import Optional

import click
import structlog

from app.models.sync import PageSyncResult
from app.services.credentials import StockNotConfiguredError, require_stock_client
from app.services.stock_api_client import StockAPIError
from app.services.stock_sync import (
    RemoteProductNotFoundError,
    StockSyncDriver,
    SyncInProgressError,
    sync_all_pages,
)
from app.services.supabase_service import SupabaseService
from app.utils.logger import configure_logging

configure_logging()
logger = structlog.get_logger()


def _fail(message: str) -> None:
    click.echo(message, err=True)
    sys.exit(1)


def _print_page(result: PageSyncResult) -> None:
    click.echo(
        f"Page {result.page}/{result.total_pages}: "
        f"+{result.products_created} products, ~{result.products_updated} updated, "
        f"+{result.variants_created} variants, ~{result.variants_updated} updated, "
        f"{len(result.errors)} errors"
    )


@click.group()
def cli():
    """Stock ERP sync commands."""


@cli.command()
@click.option("--mode", type=click.Choice(["full", "incremental"]), default="full", show_default=True)
@click.option("--updated-after", type=click.DateTime(), default=None, help="Incremental cutoff (default: last sync)")
@click.option("--max-pages", type=int, default=None, help="Stop after this many pages")
def products(mode: str, updated_after: Optional[datetime], max_pages: Optional[int]):
    """Sync products and variants page by page."""

    async def _run():
        store = SupabaseService()
        driver = StockSyncDriver(store)
        async with require_stock_client(store) as client:
            return await sync_all_pages(
                driver,
                client,
                mode=mode,
                updated_after=updated_after,
                max_pages=max_pages,
                on_page=_print_page,
            )

    try:
        totals = asyncio.run(_run())
    except (StockNotConfiguredError, StockAPIError, SyncInProgressError) as e:
        logger.error("Stock product sync failed", error=str(e))
        _fail(str(e))
        return

    click.echo(
        f"Done: {totals.pages} pages, {totals.products_created} products created, "
        f"{totals.products_updated} updated, {totals.variants_created} variants created, "
        f"{totals.variants_updated} updated"
    )
    for error in totals.errors:
        click.echo(f"  ! {error}", err=True)


@cli.command()
@click.argument("sku")
def product(sku: str):
    """Refresh a single product by SKU."""

    async def _run():
        store = SupabaseService()
        driver = StockSyncDriver(store)
        async with require_stock_client(store) as client:
            return await driver.sync_product(client, sku)

    try:
        result = asyncio.run(_run())
    except (StockNotConfiguredError, StockAPIError, SyncInProgressError, RemoteProductNotFoundError) as e:
        logger.error("Stock product refresh failed", sku=sku, error=str(e))
        _fail(str(e))
        return

    _print_page(result)
    for error in result.errors:
        click.echo(f"  ! {error}", err=True)


@cli.command()
def stock():
    """Refresh stock quantities only."""

    async def _run():
        store = SupabaseService()
        driver = StockSyncDriver(store)
        async with require_stock_client(store) as client:
            return await driver.sync_stock_levels(client)

    try:
        result = asyncio.run(_run())
    except (StockNotConfiguredError, StockAPIError, SyncInProgressError) as e:
        logger.error("Stock level sync failed", error=str(e))
        _fail(str(e))
        return

    click.echo(f"Updated {result.updated} stock levels, {len(result.errors)} errors")
    for error in result.errors:
        click.echo(f"  ! {error}", err=True)


@cli.command()
def status():
    """Show the last sync time and product counts."""
    sync_status = StockSyncDriver(SupabaseService()).get_status()
    last_sync = sync_status.last_sync_at.isoformat() if sync_status.last_sync_at else "never"
    click.echo(f"Last sync:      {last_sync}")
    click.echo(f"Stock products: {sync_status.total_stock_products}")
    click.echo(f"Local products: {sync_status.total_local_products}")
    click.echo(f"Total products: {sync_status.total_products}")


@cli.command("test-connection")
def test_connection():
    """Check the saved Stock API credentials."""

    async def _run():
        async with require_stock_client(SupabaseService()) as client:
            return await client.test_connection()

    try:
        result = asyncio.run(_run())
    except StockNotConfiguredError as e:
        _fail(e.message)
        return

    if not result.connected:
        _fail(f"Not connected: {result.error}")
        return
    click.echo(f"Connected to {result.name or 'Stock API'}")


if __name__ == "__main__":
    cli()
