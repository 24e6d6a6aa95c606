#!/usr/bin/env python3
"""
Bourbon Buddy launcher.
Starts the API server; run `bourbon-buddy init` (or `python -m admin_tool init`) first
to store Mux credentials.
"""
import sys

from rich.console import Console
from rich.panel import Panel

from shared.config import default_config_path, load_config
from shared.logging_setup import configure_logging

console = Console()


def main():
    configure_logging("DEBUG" if "--debug" in sys.argv else "INFO")
    config = load_config()

    if not default_config_path().exists() and not config.mux_configured:
        console.print(Panel(
            "[bold yellow]No configuration found.[/bold yellow]\n"
            "Collection features work out of the box; run [cyan]bourbon-buddy init[/cyan] "
            "to enable Mux video uploads.",
            border_style="yellow"
        ))

    console.print(Panel.fit(
        "[bold cyan]BOURBON BUDDY[/bold cyan] [white]Collection & Tasting Server[/white]\n"
        f"[dim]Database: {config.resolved_database_path}[/dim]",
        border_style="cyan"
    ))

    from shared.api import start_api
    start_api(port=config.port, debug="--debug" in sys.argv, config=config)


if __name__ == "__main__":
    main()
