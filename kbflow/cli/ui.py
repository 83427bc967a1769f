# kbflow/cli/ui.py
"""
Shared UI helpers for CLI commands.

Usage:
    from kbflow.cli.ui import ui, console

    ui.header("Add directory")
    ui.success("Done!")

    with ui.progress("Indexing") as on_progress:
        await service.add(item, base, on_progress=on_progress)
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator, List, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

console = Console()


class UI:
    """Consistent styling for every kbflow command."""

    # -------------------------------------------------------------------------
    # Output Methods
    # -------------------------------------------------------------------------

    def header(self, title: str, subtitle: str = "") -> None:
        """Print a fitted command header box."""
        if subtitle:
            content = f"[bold]{title}[/bold]\n[dim]{escape(subtitle)}[/dim]"
        else:
            content = f"[bold]{title}[/bold]"
        console.print(Panel.fit(content, border_style="blue"))

    def success(self, msg: str) -> None:
        console.print(f"[green]✓[/green] {escape(msg)}")

    def error(self, msg: str) -> None:
        console.print(f"[red]✗[/red] {escape(msg)}")

    def warning(self, msg: str, detail: str = "") -> None:
        detail_str = f" [dim]({escape(detail)})[/dim]" if detail else ""
        console.print(f"[yellow]⚠[/yellow] {escape(msg)}{detail_str}")

    def info(self, msg: str) -> None:
        console.print(f"[dim]{escape(msg)}[/dim]")

    def summary_panel(self, content: str, title: str = "", style: str = "green") -> None:
        """Print a summary panel, typically at the end of a command."""
        console.print(Panel(content, title=title, border_style=style))

    def table(
        self,
        columns: Sequence[str],
        rows: List[Sequence[str]],
        title: str = "",
    ) -> None:
        """Print rows in a table; the first column is numbered and dimmed."""
        table = Table(title=title or None, show_header=True, header_style="bold")
        table.add_column("#", style="dim", width=3)
        for name in columns:
            table.add_column(name)
        for i, row in enumerate(rows, 1):
            table.add_row(str(i), *[escape(str(cell)) for cell in row])
        console.print(table)

    # -------------------------------------------------------------------------
    # Progress
    # -------------------------------------------------------------------------

    @contextmanager
    def progress(self, description: str) -> Iterator[Callable[[str, float], None]]:
        """
        Render a progress bar for one knowledge item.

        Yields an on_progress(item_id, percent) callback.
        """
        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        ) as progress:
            task_id = progress.add_task(description, total=100)

            def on_progress(_item_id: str, percent: float) -> None:
                progress.update(task_id, completed=percent)

            yield on_progress


ui = UI()

__all__ = ["UI", "ui", "console"]
