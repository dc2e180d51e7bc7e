"""Filters command - List style presets"""

import click
from rich.console import Console
from rich.table import Table
from rich import box

from compositor.filters import get_preset, list_filters

console = Console()


@click.command()
@click.argument("key", required=False)
@click.option("--width", "-w", type=int, default=720, help="Canvas width for the expression")
@click.option("--height", "-h", type=int, default=720, help="Canvas height for the expression")
def filters_cmd(key: str, width: int, height: int):
    """List looks, or print the filter chain for one look"""
    if key:
        preset = get_preset(key)
        if preset is None:
            console.print(f"[red]Unknown look: {key}[/red]")
            raise SystemExit(1)
        click.echo(preset.expression(width, height))
        return

    table = Table(title="Looks", box=box.ROUNDED)
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    table.add_column("Description", style="dim")

    for preset in list_filters():
        table.add_row(preset.key, preset.name, preset.description)

    console.print(table)
