"""Shared helpers for StackForge.

Name normalisation used when deriving project-scope variables, duration
formatting, and the Rich console output used for progress and reports.
"""

from __future__ import annotations

import re

from rich.console import Console
from rich.rule import Rule
from rich.table import Table

console = Console()

# ---------------------------------------------------------------------------
# String / name helpers
# ---------------------------------------------------------------------------


def sanitize_name(name: str) -> str:
    """Convert an arbitrary project name to a safe directory/slug name.

    * Lowercases the input.
    * Replaces spaces and non-alphanumeric characters with hyphens.
    * Collapses consecutive hyphens and strips leading/trailing hyphens.

    Examples::

        sanitize_name("My SaaS App") -> "my-saas-app"
        sanitize_name("  acme_api (v2)  ") -> "acme-api-v2"
    """
    result = re.sub(r"[^a-z0-9]+", "-", name.strip().lower())
    return result.strip("-")


def python_identifier(name: str) -> str:
    """Convert a project name to a valid Python package name.

    Examples::

        python_identifier("My SaaS App") -> "my_saas_app"
        python_identifier("2fa-service") -> "_2fa_service"
    """
    result = re.sub(r"[^a-z0-9]+", "_", name.strip().lower()).strip("_")
    if result and result[0].isdigit():
        result = "_" + result
    return result


def title_case(name: str) -> str:
    """``my-saas_app`` -> ``My Saas App``."""
    return " ".join(word.capitalize() for word in re.split(r"[-_\s]+", name) if word)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(0.25)   -> "0.2s"
        format_duration(65.2)   -> "1m 5s"
    """
    if seconds < 0:
        return "0.0s"

    minutes = int(seconds // 60)
    secs = seconds % 60
    if minutes > 0:
        return f"{minutes}m {int(secs)}s"
    return f"{secs:.1f}s"


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------

STAGE_COLORS: dict[str, str] = {
    "resolve": "cyan",
    "bind": "blue",
    "merge": "magenta",
    "materialize": "green",
}


def print_stage(name: str, detail: str = "") -> None:
    """Print a one-line rule announcing a generation stage."""
    color = STAGE_COLORS.get(name, "white")
    label = f"[bold {color}]{name.upper()}[/bold {color}]"
    if detail:
        label += f" [dim]{detail}[/dim]"
    console.print(Rule(label, style=color, align="left"))


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value summary table.

    Args:
        data: Mapping of label -> value.
        title: Table title.
    """
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{message}[/bold yellow]")
