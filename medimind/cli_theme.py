# medimind/cli_theme.py
"""Terminal theme for the MediMind CLI.

Coral & greige palette, shared by every command so results, schema
listings and configuration all read the same way.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.text import Text

BRAND = "M E D I M I N D"
TAGLINE = "Schema-constrained extraction for medical documents"

CORAL = "#E87461"
GREIGE = "#B5A89A"
MUTED = "dim"

# Response status -> (badge label, colour)
STATUS_STYLES: dict[str, tuple[str, str]] = {
    "success": ("SUCCESS", "green"),
    "success_empty": ("NOTHING FOUND", "yellow"),
    "failure": ("FAILURE", "red"),
}


def _rule() -> str:
    return "─" * len(TAGLINE)


def print_banner(version: str, console: Console, lm: str = "") -> None:
    """Brand, tagline, version and (optionally) the configured model."""
    console.print()
    console.print(Text(f"  {BRAND}", style=f"bold {CORAL}"))
    console.print(Text(f"  {TAGLINE}", style=GREIGE))
    footer = Text(f"  v{version}", style=MUTED)
    if lm:
        footer.append("  ·  ", style=MUTED)
        footer.append(lm.rsplit("/", 1)[-1], style=CORAL)
    console.print(footer)
    console.print()


def print_version(version: str, console: Console) -> None:
    console.print(Text.assemble((BRAND, f"bold {CORAL}"), (f"  v{version}", MUTED)))


def section(title: str, console: Console, number: str | None = None) -> None:
    """Print an upper-cased section header, optionally numbered ("01 · RESULT")."""
    heading = Text("  ")
    if number:
        heading.append(number, style=f"bold {CORAL}")
        heading.append(" · ", style=MUTED)
    heading.append(title.upper(), style="bold")
    console.print()
    console.print(heading)
    console.print(f"  {_rule()}", style=GREIGE)


def make_table(title: str | None = None, **kwargs: object) -> Table:
    return Table(
        title=title,
        box=box.ROUNDED,
        border_style=GREIGE,
        title_style=f"bold {CORAL}",
        header_style="bold",
        **kwargs,
    )


def make_kv_table() -> Table:
    """Headerless field/value table used for results and settings."""
    table = make_table(show_header=False)
    table.add_column("Field", style=f"bold {CORAL}", no_wrap=True)
    table.add_column("Value", overflow="fold")
    return table


def status_line(status: str, message: str) -> str:
    """Badge for a response status followed by its user-facing message."""
    label, colour = STATUS_STYLES.get(status, (status.upper(), CORAL))
    return f"  [reverse {colour}] {label} [/reverse {colour}] {escape(message)}"


def disclaimer_panel(text: str) -> Panel:
    return Panel(
        Text(text, style=MUTED),
        title="Disclaimer",
        title_align="left",
        border_style=GREIGE,
        box=box.ROUNDED,
    )


def note(msg: str) -> str:
    return f"  [{CORAL}]›[/{CORAL}] [{MUTED}]{escape(msg)}[/{MUTED}]"


@contextmanager
def spinner(label: str, console: Console) -> Generator[None, None, None]:
    """Transient spinner shown while the model call is in flight."""
    progress = Progress(
        SpinnerColumn("dots", style=CORAL),
        TextColumn(f"[{MUTED}]{escape(label)}[/{MUTED}]"),
        console=console,
        transient=True,
    )
    with progress:
        progress.add_task(label, total=None)
        yield
