"""Terminal output helpers built on rich."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

console = Console()
err_console = Console(stderr=True)


def error(message: str) -> None:
    err_console.print(f"[bold red]error:[/] {message}")


def warning(message: str) -> None:
    err_console.print(f"[yellow]warning:[/] {message}")


def success(message: str) -> None:
    console.print(f"[green]{message}[/]")


def info(message: str) -> None:
    console.print(message)


def dim(message: str) -> None:
    console.print(f"[dim]{message}[/]")


def key_value(key: str, value: Any, indent: int = 0) -> None:
    console.print(f"{' ' * indent}[cyan]{key}:[/] {value}")


def progress(kind: str, message: str) -> None:
    """Render a progress/success/error update pushed by the worker."""
    if kind == "error":
        error(message)
    elif kind == "success":
        success(message)
    else:
        dim(message)


@contextmanager
def status(message: str) -> Iterator[None]:
    with err_console.status(message):
        yield


def items_table(items: Iterable[dict[str, Any]], title: str) -> None:
    table = Table(title=title, title_justify="left", show_edge=False)
    table.add_column("ID", justify="right", style="bold")
    table.add_column("Type")
    table.add_column("State")
    table.add_column("Title", overflow="fold")
    table.add_column("Assigned To")
    table.add_column("Iteration", style="dim")

    for item in items:
        color = item.get("state_color") or "#b2b2b2"
        table.add_row(
            str(item["id"]),
            item["type_name"],
            Text(item["state"], style=color),
            item["title"],
            item["assignee"],
            item["short_iteration_path"],
        )
    console.print(table)
