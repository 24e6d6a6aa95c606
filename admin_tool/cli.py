"""
Command-line interface for running and administering Bourbon Buddy.

Provides the setup wizard, the API server and maintenance commands using
Click framework.
"""

import click
from rich.console import Console
from rich.prompt import Prompt, Confirm
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.panel import Panel
from rich.table import Table
from pathlib import Path

from shared.config import load_config, save_config, default_config_path
from shared.database import DatabaseManager
from shared.errors import NotFoundError
from shared.logging_setup import configure_logging
from shared.models import SecurityEventType, Severity

from . import __version__

console = Console()

SEVERITY_STYLES = {
    "low": "dim",
    "medium": "yellow",
    "high": "red",
    "critical": "bold red",
}

RESULT_STYLES = {
    "status_updated": "green",
    "playback_id_updated": "green",
    "metadata_updated": "green",
    "skipped": "dim",
    "no_asset_id": "yellow",
    "error": "red",
}


def _load(ctx):
    return load_config(ctx.obj.get('config_path'))


@click.group()
@click.version_option(version=__version__)
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='Path to config.json (default: ~/.config/bourbon-buddy/config.json)')
@click.option('--log-level', default='INFO', show_default=True,
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False))
@click.pass_context
def cli(ctx, config_path, log_level):
    """
    🥃 Bourbon Buddy

    Spirits collection server with video uploads and live tastings.
    """
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = Path(config_path) if config_path else None
    configure_logging(log_level)


@cli.command()
@click.pass_context
def init(ctx):
    """
    Configure Mux credentials and search keys.

    Secrets are encrypted before they are written to disk. Press Enter
    to keep an existing value.
    """
    config_path = ctx.obj.get('config_path') or default_config_path()
    config = _load(ctx)

    console.print(Panel.fit(
        "[bold cyan]🥃 Bourbon Buddy Setup[/bold cyan]\n\n"
        "You'll need a Mux access token (Settings → Access Tokens) and the\n"
        "webhook signing secret for your Mux webhook endpoint.",
        border_style="cyan"
    ))

    updates = {
        "mux_token_id": Prompt.ask("Mux Token ID", default=config.mux_token_id or "").strip(),
        "mux_token_secret": Prompt.ask("Mux Token Secret", password=True, default="").strip(),
        "mux_webhook_secret": Prompt.ask("Mux Webhook Signing Secret", password=True, default="").strip(),
        "serpapi_key": Prompt.ask("SerpApi key (optional)", password=True, default="").strip(),
        "database_path": Prompt.ask("Database path", default=str(config.resolved_database_path)).strip(),
    }
    # Blank secrets keep what is already configured
    updates = {k: v for k, v in updates.items() if v}
    config = config.merge(updates)

    saved = save_config(config, config_path)
    DatabaseManager(str(config.resolved_database_path))

    console.print(f"\n[green]✓[/green] Configuration saved to: [cyan]{saved}[/cyan]")
    console.print(f"[green]✓[/green] Database ready at: [cyan]{config.resolved_database_path}[/cyan]")
    if not config.mux_configured:
        console.print("[yellow]Mux credentials incomplete: video uploads stay disabled.[/yellow]")
    console.print(Panel.fit(
        "[cyan]Next steps:[/cyan]\n"
        "• Start the server: [yellow]bourbon-buddy serve[/yellow]\n"
        "• Reconcile videos: [yellow]bourbon-buddy sync-videos[/yellow]",
        border_style="green"
    ))


@cli.command()
@click.option('--port', type=int, help='Port to listen on (default from config)')
@click.option('--debug', is_flag=True, help='Enable Flask debug mode')
@click.pass_context
def serve(ctx, port, debug):
    """Start the HTTP API and realtime server."""
    from shared.api import start_api

    start_api(port=port, debug=debug, config=_load(ctx))


@cli.command('sync-videos')
@click.option('--video-id', help='Reconcile a single video instead of stale ones')
@click.pass_context
def sync_videos(ctx, video_id):
    """
    Reconcile local video rows with Mux.

    Picks up videos stuck in uploading/processing and ready videos
    without a real playback id.
    """
    from video.mux_client import MuxClient
    from video.sync import VideoStatusSync

    config = _load(ctx)
    if not config.mux_configured:
        console.print("[red]Error: Mux credentials not configured. Run 'init' first.[/red]")
        ctx.exit(1)

    db = DatabaseManager(str(config.resolved_database_path))
    syncer = VideoStatusSync(db, MuxClient(config.mux_token_id, config.mux_token_secret))

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console
        ) as progress:
            progress.add_task("Checking videos against Mux...", total=None)
            summary = syncer.sync(video_id)
    except NotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    console.print(f"\n[bold]{summary['message']}[/bold]")
    if not summary['results']:
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Video", style="cyan")
    table.add_column("Title")
    table.add_column("Result")
    table.add_column("Detail", style="dim")
    for result in summary['results']:
        status = result.get('status', '')
        detail = result.get('error') or ""
        if status == "status_updated":
            detail = f"{result.get('oldStatus')} → {result.get('newStatus')}"
        elif status == "playback_id_updated":
            detail = result.get('playbackId', "")
        elif status == "metadata_updated":
            detail = f"duration {result.get('duration')}, aspect {result.get('aspectRatio')}"
        style = RESULT_STYLES.get(status, "white")
        table.add_row(result.get('videoId', ''), result.get('title') or "", f"[{style}]{status}[/{style}]", detail)
    console.print(table)


@cli.command('security-events')
@click.option('--limit', default=50, show_default=True, type=click.IntRange(1, 1000))
@click.option('--min-severity', type=click.Choice([s.value for s in Severity]),
              help='Only show events at or above this severity')
@click.option('--type', 'event_types', multiple=True,
              type=click.Choice([t.value for t in SecurityEventType]),
              help='Filter by event type (repeatable)')
@click.pass_context
def security_events(ctx, limit, min_severity, event_types):
    """Show recent security events, newest first."""
    from shared.security import SecurityMonitor

    config = _load(ctx)
    monitor = SecurityMonitor(DatabaseManager(str(config.resolved_database_path)), config.security_log_dir)
    events = monitor.recent_events(limit=limit, types=list(event_types) or None, min_severity=min_severity)

    if not events:
        console.print("[green]No security events recorded.[/green]")
        return

    table = Table(title=f"Security events ({len(events)})", show_header=True, header_style="bold magenta")
    table.add_column("Time", style="dim")
    table.add_column("Severity")
    table.add_column("Type", style="cyan")
    table.add_column("IP")
    table.add_column("Details", overflow="fold")
    for event in events:
        style = SEVERITY_STYLES.get(event.severity, "white")
        details = ", ".join(f"{k}={v}" for k, v in (event.metadata or {}).items())
        table.add_row(event.timestamp[:19], f"[{style}]{event.severity}[/{style}]", event.type, event.ip or "-", details)
    console.print(table)


@cli.command('reset-security-logs')
@click.option('--yes', is_flag=True, help='Skip the confirmation prompt')
@click.pass_context
def reset_security_logs(ctx, yes):
    """Delete every stored security event and security log file."""
    from shared.security import SecurityMonitor

    if not yes and not Confirm.ask("[red]Delete ALL security events and log files?[/red]", default=False):
        console.print("[yellow]Cancelled.[/yellow]")
        return

    config = _load(ctx)
    monitor = SecurityMonitor(DatabaseManager(str(config.resolved_database_path)), config.security_log_dir)
    result = monitor.reset()
    console.print(f"[green]✓[/green] Removed {result['events_deleted']} events and {result['files_deleted']} log files")


@cli.command()
@click.argument('email')
@click.pass_context
def stats(ctx, email):
    """Show collection statistics for the user registered with EMAIL."""
    from collection.manager import CollectionManager

    config = _load(ctx)
    db = DatabaseManager(str(config.resolved_database_path))
    user = db.get_user_by_email(email.strip().lower())
    if user is None:
        console.print(f"[red]No user registered with {email}[/red]")
        ctx.exit(1)

    summary = CollectionManager(db).stats(user.id)
    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="bold magenta")
    table.add_column("Value", style="white")
    table.add_row("Bottles", str(summary['total_spirits']))
    table.add_row("Favorites", str(summary['favorites']))
    table.add_row("Categories", str(summary['categories']))
    table.add_row("Average rating", f"{summary['average_rating']:.1f}" if summary['average_rating'] else "-")
    table.add_row("Collection value", f"${summary['total_value']:,.2f}")
    table.add_row("Tasting videos", str(summary['tastings']))
    console.print(Panel(table, title=f"{user.name}'s collection", border_style="cyan"))


@cli.command('delete-all-videos')
@click.option('--yes', is_flag=True, help='Skip the confirmation prompt')
@click.pass_context
def delete_all_videos(ctx, yes):
    """Delete every video row and its Mux asset."""
    from video.manager import VideoManager
    from video.mux_client import MuxClient

    if not yes and not Confirm.ask("[red]Delete ALL videos (including Mux assets)?[/red]", default=False):
        console.print("[yellow]Cancelled.[/yellow]")
        return

    config = _load(ctx)
    manager = VideoManager(
        DatabaseManager(str(config.resolved_database_path)),
        MuxClient(config.mux_token_id, config.mux_token_secret),
    )
    deleted = manager.delete_all()
    console.print(f"[green]✓[/green] Deleted {deleted} videos")


if __name__ == '__main__':
    cli()
