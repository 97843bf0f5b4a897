import asyncio
import logging
import json
from pathlib import Path
from typing import Optional

import typer

from equiptrack.log import open_event_log
from equiptrack.seed import seed_default_inventory
from equiptrack.service import InventoryService
from equiptrack.settings import settings
from equiptrack.utils.logging import setup_logging

app = typer.Typer(help="equiptrack ledger control interface")


def _open_service(data_dir: Path, backend: Optional[str]) -> InventoryService:
    config = settings.model_copy(update={"LOG_BACKEND": backend}) if backend else settings
    return InventoryService(open_event_log(config, data_dir=str(data_dir)), config=config)


def _require_dir(data_dir: Path) -> None:
    if not data_dir.exists():
        typer.echo(f"Error: Directory {data_dir} does not exist.")
        raise typer.Exit(code=1)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level")):
    setup_logging(level=logging.DEBUG if verbose else None)


@app.command()
def inspect(
    data_dir: Path = typer.Argument(..., help="Path to the ledger data directory"),
    backend: Optional[str] = typer.Option(None, help="Log backend (file/sqlite); defaults to settings"),
    limit: int = typer.Option(10, help="Number of records to show"),
    tail: bool = typer.Option(False, help="Show last N records instead of first N"),
):
    """
    Prints raw events from the ledger log.
    """
    _require_dir(data_dir)

    async def _inspect():
        service = _open_service(data_dir, backend)
        await service.log.start()
        try:
            hw = await service.log.high_watermark()
            typer.echo(f"High Watermark = {hw}")

            start_seq = max(1, hw - limit + 1) if tail else 1
            typer.echo(f"--- Records (seq {start_seq} to {min(hw, start_seq + limit - 1)}) ---")

            records = await service.log.read_all(start_seq)
            for record in records[:limit]:
                payload = json.dumps(record.event.model_dump(mode="json"))
                typer.echo(f"[{record.seq}] {record.timestamp.isoformat()} | {record.actor_id} | {payload}")
        finally:
            await service.log.stop()

    asyncio.run(_inspect())


@app.command()
def replay(
    data_dir: Path = typer.Argument(..., help="Path to the ledger data directory"),
    backend: Optional[str] = typer.Option(None, help="Log backend (file/sqlite)"),
):
    """
    Rebuilds the projection twice from the log and verifies both replays agree.
    """
    _require_dir(data_dir)

    async def _replay() -> bool:
        service = _open_service(data_dir, backend)
        await service.start()
        try:
            first = await service.rebuild_snapshot()
            second = await service.rebuild_snapshot()
        finally:
            await service.stop()
        typer.echo(f"Replayed {first['last_seq']} events: {len(first['items'])} items, "
                   f"{len(first['issuances'])} issuances")
        return first == second and first == service.projector.snapshot()

    if not asyncio.run(_replay()):
        typer.echo("❌ Replays diverged")
        raise typer.Exit(code=1)
    typer.echo("✅ Replay is deterministic")


@app.command()
def items(
    data_dir: Path = typer.Argument(..., help="Path to the ledger data directory"),
    backend: Optional[str] = typer.Option(None, help="Log backend (file/sqlite)"),
    search: Optional[str] = typer.Option(None, help="Filter by name or category"),
    include_deleted: bool = typer.Option(False, help="Include tombstoned items"),
):
    """
    Lists current item counts.
    """
    _require_dir(data_dir)

    async def _items():
        service = _open_service(data_dir, backend)
        await service.start()
        try:
            for item in service.list_items(include_deleted=include_deleted, search=search):
                marker = " (deleted)" if item.deleted else ""
                typer.echo(f"[{item.item_id}] {item.name} | {item.category} | {item.count}{marker}")
        finally:
            await service.stop()

    asyncio.run(_items())


@app.command()
def analytics(
    data_dir: Path = typer.Argument(..., help="Path to the ledger data directory"),
    backend: Optional[str] = typer.Option(None, help="Log backend (file/sqlite)"),
):
    """
    Prints the analytics snapshot as JSON.
    """
    _require_dir(data_dir)

    async def _analytics():
        service = _open_service(data_dir, backend)
        await service.start()
        try:
            snapshot = await service.get_analytics()
        finally:
            await service.stop()
        typer.echo(snapshot.model_dump_json(indent=2))

    asyncio.run(_analytics())


@app.command()
def overdue(
    data_dir: Path = typer.Argument(..., help="Path to the ledger data directory"),
    backend: Optional[str] = typer.Option(None, help="Log backend (file/sqlite)"),
):
    """
    Lists open temporary issuances past their return date.
    """
    _require_dir(data_dir)

    async def _overdue():
        service = _open_service(data_dir, backend)
        await service.start()
        try:
            rows = service.overdue()
        finally:
            await service.stop()
        if not rows:
            typer.echo("No overdue issuances")
        for row in rows:
            i = row.issuance
            typer.echo(f"[{i.issuance_id}] {row.item_name} x{i.quantity} | {i.recipient_department} | "
                       f"{row.days_overdue} day(s) overdue")

    asyncio.run(_overdue())


@app.command()
def seed(
    data_dir: Path = typer.Argument(..., help="Path to the ledger data directory"),
    backend: Optional[str] = typer.Option(None, help="Log backend (file/sqlite)"),
    actor: Optional[str] = typer.Option(None, help="Actor id recorded for the seeded items"),
):
    """
    Writes the default starting inventory into an empty ledger.
    """
    data_dir.mkdir(parents=True, exist_ok=True)

    async def _seed() -> int:
        service = _open_service(data_dir, backend)
        await service.start()
        try:
            created = await seed_default_inventory(service, actor_id=actor)
        finally:
            await service.stop()
        return len(created)

    created = asyncio.run(_seed())
    if created:
        typer.echo(f"✅ Seeded {created} items")
    else:
        typer.echo("Ledger already has items; nothing seeded")


if __name__ == "__main__":
    app()
