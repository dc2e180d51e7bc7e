"""System status command"""

import asyncio
import json

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from compositor.config import settings
from compositor.encoder import check_ffmpeg_installed, encoder_from_settings
from compositor.graph_builder import find_font


console = Console()


def get_status_dict() -> dict:
    """Encoder, font and settings status as a plain dict"""
    encoder = encoder_from_settings(settings)
    ffmpeg = asyncio.run(check_ffmpeg_installed(encoder))
    return {
        "ffmpeg": ffmpeg,
        "font": find_font(),
        "settings": settings.model_dump(),
    }


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def status_cmd(as_json: bool):
    """Show encoder and configuration status"""
    status = get_status_dict()

    if as_json:
        click.echo(json.dumps(status, indent=2))
        return

    console.print(Panel.fit(
        "[bold blue]Promo Compositor[/bold blue]\n"
        "Layered FFmpeg promo clips",
        border_style="blue"
    ))

    ffmpeg = status["ffmpeg"]
    encoder_table = Table(title="Encoder", box=box.ROUNDED)
    encoder_table.add_column("Component", style="cyan")
    encoder_table.add_column("Status")

    if ffmpeg["installed"]:
        encoder_table.add_row("ffmpeg", f"[green]{ffmpeg['path']}[/green]")
        encoder_table.add_row("version", ffmpeg["version"])
        drawtext = "[green]yes[/green]" if ffmpeg["drawtext"] else "[yellow]no (text layers will fail)[/yellow]"
        encoder_table.add_row("drawtext", drawtext)
    else:
        encoder_table.add_row("ffmpeg", f"[red]{ffmpeg['error']}[/red]")

    probe = ffmpeg.get("probe_path")
    encoder_table.add_row("ffprobe", f"[green]{probe}[/green]" if probe else "[red]not found[/red]")
    font = status["font"]
    encoder_table.add_row("font", font or "[yellow]FFmpeg default[/yellow]")
    console.print(encoder_table)

    config_table = Table(title="Configuration", box=box.ROUNDED)
    config_table.add_column("Key", style="cyan")
    config_table.add_column("Value")
    for key, value in status["settings"].items():
        config_table.add_row(key, str(value))
    console.print(config_table)
