"""Terminal output for the slackauth CLI."""

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.markup import escape
from rich.text import Text
from rich import box

console = Console()

# Plain output for logs and pipes
_headless = False

_MARKS = {
    "success": ("✓", "bold green"),
    "error": ("✗", "bold red"),
    "warning": ("⚠", "bold yellow"),
    "info": ("ℹ", "bold blue"),
}

HEALTH_STYLES = {
    "healthy": "green",
    "warning": "yellow",
    "critical": "red",
    "no_tokens": "dim",
}


def set_headless(headless: bool):
    global _headless
    _headless = headless


def print_header(title: str, subtitle: Optional[str] = None):
    """Print a section header (a panel, or a plain line when headless)."""
    if _headless:
        console.print(f"== {title} ==" + (f" {subtitle}" if subtitle else ""), markup=False)
        return

    content = f"[bold]{title}[/bold]"
    if subtitle:
        content += f"\n[dim]{subtitle}[/dim]"
    console.print(Panel(content, box=box.ROUNDED, expand=False))


def key_value_table(title: str, rows: dict, styles: Optional[dict] = None) -> Table:
    """
    Build a two-column table.

    Args:
        title: Table title.
        rows: Label -> value; values are rendered with str().
        styles: Optional label -> rich style for individual values.
    """
    styles = styles or {}
    table = Table(title=title, box=None if _headless else box.ROUNDED, show_header=False)
    table.add_column("Property", style="cyan")
    table.add_column("Value")

    for label, value in rows.items():
        table.add_row(label, Text(str(value), style=styles.get(label, "green")))
    return table


def print_table(title: str, rows: dict, styles: Optional[dict] = None):
    console.print(key_value_table(title, rows, styles))


def print_status(kind: str, message: str):
    """Print a one-line message prefixed with a colored mark."""
    mark, style = _MARKS[kind]
    if _headless:
        console.print(f"{mark} {message}", markup=False, highlight=False)
    else:
        console.print(f"[{style}]{mark}[/{style}] {escape(message)}", highlight=False)


def print_success(message: str):
    print_status("success", message)


def print_error(message: str):
    print_status("error", message)


def print_warning(message: str):
    print_status("warning", message)


def print_info(message: str):
    print_status("info", message)
