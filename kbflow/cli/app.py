# kbflow/cli/app.py
"""
kbflow CLI - Main application.

Commands:
    kbflow create        Create a knowledge base
    kbflow add-file      Index a file
    kbflow add-dir       Sync a directory (incremental with --incremental)
    kbflow add-url       Index a web page
    kbflow add-sitemap   Index every page of a sitemap
    kbflow add-note      Index a free-text note
    kbflow remove        Delete indexed artifacts by id
    kbflow reset         Clear a knowledge base
    kbflow delete        Delete a knowledge base and its storage
    kbflow search        Search a knowledge base
    kbflow records       List tracked files under a directory
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import typer
from pydantic import ValidationError

from kbflow.cli.context import CLIContext
from kbflow.cli.ui import ui
from kbflow.core.config import ConfigError
from kbflow.core.exceptions import KbflowError
from kbflow.knowledge.schema import EmbeddingConfig, ItemType, KnowledgeBaseParams, KnowledgeItem
from kbflow.logging.logger import configure_logging, get_logger
from kbflow.logging.tags import CLI
from kbflow.service import KnowledgeService

logger = get_logger(__name__)

T = TypeVar("T")

app = typer.Typer(
    name="kbflow",
    help="kbflow - incremental knowledge base ingestion.",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
) -> None:
    """Load configuration and set up logging for every command."""
    try:
        cli_ctx = CLIContext.load(config, verbose=verbose)
    except ConfigError as e:
        ui.error(str(e))
        raise typer.Exit(1)

    configure_logging("DEBUG" if verbose else cli_ctx.config.logging.level)
    ctx.obj = cli_ctx


# =============================================================================
# Helpers
# =============================================================================


def _run(ctx: typer.Context, operation: Callable[[KnowledgeService], Awaitable[T]]) -> T:
    """Run one async service operation, rendering kbflow errors and exiting non-zero."""
    cli_ctx: CLIContext = ctx.obj

    async def runner() -> T:
        service = cli_ctx.service()
        try:
            return await operation(service)
        finally:
            await service.aclose()

    try:
        return asyncio.run(runner())
    except (KbflowError, ConfigError) as e:
        logger.debug(f"{CLI} Command failed", exc_info=True)
        ui.error(str(e))
        raise typer.Exit(1)


def _load_base(ctx: typer.Context, base_id: str) -> KnowledgeBaseParams:
    try:
        return ctx.obj.load_base(base_id)
    except (ConfigError, KbflowError) as e:
        ui.error(str(e))
        raise typer.Exit(1)


def _add(
    ctx: typer.Context,
    base_id: str,
    item_type: ItemType,
    content: str,
    force: bool,
    incremental: bool,
) -> None:
    base = _load_base(ctx, base_id)
    item = KnowledgeItem(type=item_type.value, content=content, base_id=base.id)

    ui.header(f"Add {item_type.value}", content)

    async def operation(service: KnowledgeService):
        with ui.progress(f"Indexing {item_type.value}") as on_progress:
            return await service.add(
                item,
                base,
                force_reload=force,
                incremental_update=incremental,
                on_progress=on_progress,
            )

    result = _run(ctx, operation)

    if result.is_error:
        ui.error(f"Failed to index {content}")
        raise typer.Exit(1)

    ui.summary_panel(
        f"entries added: {result.entries_added}\n"
        f"unique id:     {result.unique_id}\n"
        f"artifacts:     {len(result.unique_ids)}\n"
        f"loader type:   {result.loader_type}",
        title="Indexed",
    )
    if ctx.obj.verbose:
        for uid in result.unique_ids:
            ui.info(uid)


FORCE_OPTION = typer.Option(False, "--force", "-f", help="Re-index even if unchanged.")
INCREMENTAL_OPTION = typer.Option(
    False, "--incremental", "-i", help="Skip files whose fingerprint is unchanged."
)


# =============================================================================
# Commands
# =============================================================================


@app.command("create")
def create(
    ctx: typer.Context,
    base_id: str = typer.Argument(..., help="Knowledge base id."),
    provider: str = typer.Option("openai", "--provider", help="Embedding provider."),
    model: str = typer.Option("text-embedding-3-small", "--model", help="Embedding model."),
    dimension: Optional[int] = typer.Option(None, "--dimension", help="Vector dimension."),
    chunk_size: Optional[int] = typer.Option(None, "--chunk-size", help="Chunk size."),
    chunk_overlap: Optional[int] = typer.Option(None, "--chunk-overlap", help="Chunk overlap."),
) -> None:
    """Create a knowledge base."""
    try:
        base = KnowledgeBaseParams(
            id=base_id,
            embedding=EmbeddingConfig.create(provider, model, dimension),
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
        )
    except ValidationError as e:
        ui.error(f"Invalid knowledge base parameters: {e}")
        raise typer.Exit(1)

    _run(ctx, lambda service: service.create(base))
    path = ctx.obj.save_base(base)
    ui.success(f"Created knowledge base '{base_id}'")
    ui.info(str(path.parent))


@app.command("add-file")
def add_file(
    ctx: typer.Context,
    base_id: str = typer.Argument(..., help="Knowledge base id."),
    path: Path = typer.Argument(..., help="File to index."),
    force: bool = FORCE_OPTION,
    incremental: bool = INCREMENTAL_OPTION,
) -> None:
    """Index a single file."""
    _add(ctx, base_id, ItemType.FILE, os.path.abspath(path), force, incremental)


@app.command("add-dir")
def add_dir(
    ctx: typer.Context,
    base_id: str = typer.Argument(..., help="Knowledge base id."),
    path: Path = typer.Argument(..., help="Directory to sync."),
    force: bool = FORCE_OPTION,
    incremental: bool = INCREMENTAL_OPTION,
) -> None:
    """Sync every file under a directory."""
    _add(ctx, base_id, ItemType.DIRECTORY, str(path.resolve()), force, incremental)


@app.command("add-url")
def add_url(
    ctx: typer.Context,
    base_id: str = typer.Argument(..., help="Knowledge base id."),
    url: str = typer.Argument(..., help="Web page URL."),
    force: bool = FORCE_OPTION,
    incremental: bool = INCREMENTAL_OPTION,
) -> None:
    """Index a web page."""
    _add(ctx, base_id, ItemType.URL, url, force, incremental)


@app.command("add-sitemap")
def add_sitemap(
    ctx: typer.Context,
    base_id: str = typer.Argument(..., help="Knowledge base id."),
    url: str = typer.Argument(..., help="Sitemap URL."),
    force: bool = FORCE_OPTION,
    incremental: bool = INCREMENTAL_OPTION,
) -> None:
    """Index every page listed in a sitemap."""
    _add(ctx, base_id, ItemType.SITEMAP, url, force, incremental)


@app.command("add-note")
def add_note(
    ctx: typer.Context,
    base_id: str = typer.Argument(..., help="Knowledge base id."),
    text: str = typer.Argument(..., help="Note text."),
    force: bool = FORCE_OPTION,
    incremental: bool = INCREMENTAL_OPTION,
) -> None:
    """Index a free-text note."""
    _add(ctx, base_id, ItemType.NOTE, text, force, incremental)


@app.command("remove")
def remove(
    ctx: typer.Context,
    base_id: str = typer.Argument(..., help="Knowledge base id."),
    unique_ids: List[str] = typer.Argument(..., help="Artifact ids to delete."),
    unique_id: str = typer.Option("", "--item-id", help="Id of the knowledge item (for logs)."),
) -> None:
    """Delete indexed artifacts and their file records."""
    base = _load_base(ctx, base_id)
    _run(ctx, lambda service: service.remove(base, unique_id, unique_ids))
    ui.success(f"Removed {len(unique_ids)} artifact(s) from '{base_id}'")


@app.command("reset")
def reset(
    ctx: typer.Context,
    base_id: str = typer.Argument(..., help="Knowledge base id."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation."),
) -> None:
    """Clear all indexed content of a knowledge base."""
    base = _load_base(ctx, base_id)
    if not yes and not typer.confirm(f"Reset knowledge base '{base_id}'?"):
        raise typer.Exit(0)
    _run(ctx, lambda service: service.reset(base))
    ui.success(f"Reset knowledge base '{base_id}'")


@app.command("delete")
def delete(
    ctx: typer.Context,
    base_id: str = typer.Argument(..., help="Knowledge base id."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation."),
) -> None:
    """Delete a knowledge base and its storage directory."""
    if not yes and not typer.confirm(f"Delete knowledge base '{base_id}'?"):
        raise typer.Exit(0)
    _run(ctx, lambda service: service.delete(base_id))
    ui.success(f"Deleted knowledge base '{base_id}'")


@app.command("search")
def search(
    ctx: typer.Context,
    base_id: str = typer.Argument(..., help="Knowledge base id."),
    query: str = typer.Argument(..., help="Search query."),
    rerank: bool = typer.Option(False, "--rerank", help="Rerank the results."),
    limit: int = typer.Option(10, "--limit", "-n", help="Results to show."),
) -> None:
    """Search a knowledge base."""
    base = _load_base(ctx, base_id)

    async def operation(service: KnowledgeService):
        results = await service.search(query, base)
        if rerank:
            results = await service.rerank(query, base, results)
        return results

    results = _run(ctx, operation)

    if not results:
        ui.warning("No results")
        return

    ui.table(
        ["Score", "Source", "Content"],
        [(f"{r.score:.3f}", r.source, r.content[:80]) for r in results[:limit]],
        title=f"Results for '{query}'",
    )


@app.command("records")
def records(
    ctx: typer.Context,
    base_id: str = typer.Argument(..., help="Knowledge base id."),
    directory: Optional[Path] = typer.Argument(None, help="Only records under this directory."),
) -> None:
    """List tracked files of a knowledge base."""
    base = _load_base(ctx, base_id)

    async def operation(service: KnowledgeService):
        store = service.get_store(base)
        if directory is None:
            return store.list_all()
        return store.list_under(directory.resolve())

    found = _run(ctx, operation)

    if not found:
        ui.info("No tracked files")
        return

    ui.table(
        ["File", "Size", "Hash", "Unique id", "Updated"],
        [
            (r.file_path, r.size, r.content_hash[7:19], r.external_unique_id, r.updated_at or "")
            for r in found
        ],
        title=f"Tracked files of '{base_id}'",
    )


if __name__ == "__main__":
    app()
