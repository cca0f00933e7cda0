"""
PineProxy Terminal UI
=====================
Rich console, theme, banner and the small printing helpers used by the CLI.
"""

from __future__ import annotations

from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from pineproxy import __version__

# ── Theme ────────────────────────────────────────────────────────────────────

PINEPROXY_THEME = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "bold green",
    "title": "bold bright_green",
    "dim": "dim white",
    "log.error": "red",
    "log.warning": "yellow",
    "log.info": "default",
    "log.debug": "bright_black",
    "log.verb": "bright_blue",
    "status.2xx": "green",
    "status.3xx": "bright_black",
    "status.4xx": "yellow",
    "status.5xx": "red",
})

console = Console(theme=PINEPROXY_THEME)

# ── Banner ───────────────────────────────────────────────────────────────────

BANNER = (
    f"[bold bright_green]🌲 PineProxy[/] [dim]v{__version__}[/] "
    "[dim]|[/] [bold bright_cyan]Intercepting HTTP Proxy[/]"
)


def show_banner() -> None:
    """Display the PineProxy banner."""
    console.print(BANNER)


# ── Messages ─────────────────────────────────────────────────────────────────

def print_info(text: str) -> None:
    console.print(f"[info]ℹ {text}[/]")


def print_success(text: str) -> None:
    console.print(f"[success]✅ {text}[/]")


def print_warning(text: str) -> None:
    console.print(f"[warning]⚠️  {text}[/]")


def print_error(text: str) -> None:
    console.print(f"[error]❌ {text}[/]")


# ── Tables ───────────────────────────────────────────────────────────────────

def show_interceptors(interceptors: List[Dict[str, Any]], errors: List[Dict[str, str]]) -> None:
    """Display loaded interceptors in registration order, then load errors."""
    table = Table(title="Interceptors", show_lines=False)
    table.add_column("#", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Status")
    table.add_column("Description", style="dim")

    for i, item in enumerate(interceptors, 1):
        status = "[success]enabled[/]" if item["enabled"] else "[dim]disabled[/]"
        table.add_row(str(i), item["name"], status, item.get("description", ""))

    console.print(table)
    for err in errors:
        print_error(f"{err['file']}: {err['error']}")


def show_config_status(config: Dict[str, Any]) -> None:
    """Display configuration status."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="dim")
    table.add_column("Value")

    table.add_row("Listen", f"{config.get('address')}:{config.get('port')}")
    table.add_row("Modules", str(config.get("modules", "N/A")))
    table.add_row("Verbose", "✅ On" if config.get("verbose") else "Off")
    table.add_row("Logfile", config.get("logfile") or "—")

    console.print(Panel(table, title="[title]Configuration[/]", border_style="green"))
