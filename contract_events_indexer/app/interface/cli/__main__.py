import asyncio
import inspect
import logging
from typing import Any, Awaitable

import typer
from dotenv import load_dotenv
from InquirerPy import inquirer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from contract_events_indexer.app.config import Settings
from contract_events_indexer.app.domain.errors import IndexerError
from contract_events_indexer.app.infrastructure.db.engine import create_app_async_engine
from contract_events_indexer.app.infrastructure.reports.query_files import (
    QueryFile,
    QueryResult,
    discover_query_files,
    run_query_file,
)
from contract_events_indexer.app.interface.tasks import TASKS
from contract_events_indexer.app.interface.tasks.backfill_contract_events_task import (
    backfill_contract_events_task,
)
from contract_events_indexer.app.interface.tasks.follow_contract_events_task import (
    follow_contract_events_task,
)
from contract_events_indexer.app.interface.tasks.register_event_signatures_task import (
    register_event_signatures_task,
)
from contract_events_indexer.app.interface.tasks.reset_cursor_task import reset_cursor_task


load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger("contract_events_indexer.cli")

app = typer.Typer()
indexer_app = typer.Typer(help="cli for indexing contract events.")
query_app = typer.Typer(help="cli for running saved SQL reports.")
app.add_typer(indexer_app, name="indexer")
app.add_typer(query_app, name="query")

console = Console()


def _load_settings() -> Settings:
    try:
        settings = Settings()
    except ValidationError as exc:
        logger.error("Invalid configuration: %s", exc)
        raise typer.Exit(code=1) from exc

    if settings.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    return settings


def _run(coro: Awaitable[Any]) -> Any:
    try:
        return asyncio.run(coro)  # type: ignore[arg-type]
    except IndexerError as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=1) from exc
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        raise typer.Exit(code=130)


# ---------------------------------------------------------------------
# indexer
# ---------------------------------------------------------------------


@indexer_app.command("follow")
def follow() -> None:
    """Index the configured contract and keep following the chain head."""
    settings = _load_settings()
    logger.info("Database: %s", settings.safe_database_url)
    _run(follow_contract_events_task(settings=settings))


@indexer_app.command("register-abis")
def register_abis() -> None:
    """Store every event definition found in ABI_DIR."""
    settings = _load_settings()
    added = _run(register_event_signatures_task(settings=settings))
    typer.echo(f"Registered {added} new event signatures")


@indexer_app.command("backfill")
def backfill(
    from_block: str = typer.Option("earliest", "--from-block", help="Block number or 'earliest'."),
    to_block: str = typer.Option("latest", "--to-block", help="Block number or 'latest'."),
) -> None:
    """Re-index a fixed block range once."""
    settings = _load_settings()
    stored = _run(
        backfill_contract_events_task(
            settings=settings,
            from_block=from_block,
            to_block=to_block,
        )
    )
    typer.echo(f"Stored {stored} events")


@indexer_app.command("reset-cursor")
def reset_cursor(block_number: int = typer.Argument(..., min=0)) -> None:
    """Set the last processed block number."""
    settings = _load_settings()
    _run(reset_cursor_task(settings=settings, block_number=block_number))
    typer.echo(f"Cursor set to {block_number}")


@indexer_app.command("run")
def run() -> None:
    task_name = inquirer.select(
        message="Select task:",
        choices=list(TASKS.keys()),
        pointer="❯",
        instruction="Use ↑/↓ to move, Enter to select",
    ).execute()

    task = TASKS[task_name]
    settings = _load_settings()

    kwargs: dict[str, object] = {"settings": settings}
    params = inspect.signature(task).parameters

    if "from_block" in params:
        kwargs["from_block"] = inquirer.text(
            message="From block (inclusive):",
            default="earliest",
        ).execute()
    if "to_block" in params:
        kwargs["to_block"] = inquirer.text(
            message="To block (inclusive):",
            default="latest",
        ).execute()
    if "block_number" in params:
        kwargs["block_number"] = int(
            inquirer.text(
                message="Last processed block number:",
                validate=lambda value: value.strip().isdigit(),
                invalid_message="Expected a non-negative integer",
            ).execute()
        )

    _run(task(**kwargs))


# ---------------------------------------------------------------------
# query
# ---------------------------------------------------------------------


@query_app.command("list")
def list_queries() -> None:
    """List the available report queries and their descriptions."""
    settings = _load_settings()
    query_files = discover_query_files(settings.query_dir)
    if not query_files:
        typer.echo(f"No query files found in {settings.query_dir}")
        return

    table = Table(title="Available queries")
    table.add_column("Query")
    table.add_column("Description")
    for query_file in query_files:
        table.add_row(query_file.label, query_file.description())
    console.print(table)


@query_app.command("run")
def run_query(number: int = typer.Argument(..., help="Query number (queryN.sql).")) -> None:
    """Run one report query and print its rows."""
    settings = _load_settings()
    query_files = [q for q in discover_query_files(settings.query_dir) if q.number == number]
    if not query_files:
        logger.error("query%s.sql not found in %s", number, settings.query_dir)
        raise typer.Exit(code=1)
    _run(_run_and_print(settings, query_files))


@query_app.command("all")
def run_all_queries() -> None:
    """Run every report query in order."""
    settings = _load_settings()
    query_files = discover_query_files(settings.query_dir)
    if not query_files:
        typer.echo(f"No query files found in {settings.query_dir}")
        return
    _run(_run_and_print(settings, query_files))


async def _run_and_print(settings: Settings, query_files: list[QueryFile]) -> None:
    engine = create_app_async_engine(settings.database_url, echo=settings.verbose)
    try:
        for query_file in query_files:
            try:
                result = await run_query_file(engine, query_file)
            except SQLAlchemyError as exc:
                logger.error("%s failed: %s", query_file.label, exc)
                continue
            _print_result(query_file, result)
    finally:
        await engine.dispose()


def _print_result(query_file: QueryFile, result: QueryResult) -> None:
    title = query_file.label
    if result.description:
        title = f"{title}: {' '.join(result.description)}"
    table = Table(title=title)
    for column in result.columns:
        table.add_column(column)
    for row in result.rows:
        table.add_row(*("NULL" if value is None else str(value) for value in row))
    console.print(table)
    console.print(f"({len(result.rows)} rows)")


LOGO = r"""
   ____            _                  _     _____                 _
  / ___|___  _ __ | |_ _ __ __ _  ___| |_  | ____|_   _____ _ __ | |_ ___
 | |   / _ \| '_ \| __| '__/ _` |/ __| __| |  _| \ \ / / _ \ '_ \| __/ __|
 | |__| (_) | | | | |_| | | (_| | (__| |_  | |___ \ V /  __/ | | | |_\__ \
  \____\___/|_| |_|\__|_|  \__,_|\___|\__| |_____| \_/ \___|_| |_|\__|___/

      --- Contract Events Indexer CLI ---
"""


def main() -> None:
    typer.echo(LOGO)
    app()


if __name__ == "__main__":
    main()
