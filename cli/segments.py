"""Segments command - Assemble a background video from pool directories"""

import asyncio
import random

import click
from rich.console import Console
from rich.table import Table
from rich import box

from compositor.config import settings
from compositor.encoder import encoder_from_settings
from compositor.executor import ProcessExecutor
from compositor.probe import MediaProbe
from compositor.segments import SegmentAssembler
from compositor.sources import load_pools

console = Console()


@click.command()
@click.argument("pool_root", type=click.Path(exists=True, file_okay=False))
@click.option("--category", "-c", "categories", multiple=True,
              help="Category folder to use (repeatable, default: all)")
@click.option("--duration", "-d", type=float, default=None, help="Target duration in seconds")
@click.option("--segment", "-s", type=float, default=None, help="Segment length in seconds")
@click.option("--output", "-o", type=click.Path(), required=True, help="Output video path")
@click.option("--seed", type=int, default=None, help="Random seed for reproducible picks")
def segments_cmd(pool_root: str, categories, duration: float, segment: float, output: str, seed: int):
    """Assemble a background video from random segments

    POOL_ROOT holds one folder of videos per category.
    """
    pools = load_pools(pool_root, categories or None)

    table = Table(title="Source pools", box=box.ROUNDED)
    table.add_column("Category", style="cyan")
    table.add_column("Videos", justify="right")
    for category, sources in pools.items():
        table.add_row(category, str(len(sources)))
    console.print(table)

    encoder = encoder_from_settings(settings)
    executor = ProcessExecutor(encoder)
    assembler = SegmentAssembler(
        executor,
        MediaProbe(encoder),
        temp_dir=settings.temp_dir,
        width=settings.width,
        height=settings.height,
        frame_rate=settings.frame_rate,
        rng=random.Random(seed),
    )

    with console.status("[bold]Assembling segments...[/bold]"):
        result = asyncio.run(assembler.create_video_from_segments(
            pools,
            duration or settings.duration,
            segment or settings.segment_duration,
            output_path=output,
        ))

    if result.success:
        console.print(f"\n[green]Background created:[/green] {result.output_path}")
        console.print(f"  Segments: {len(result.segments_used)}")
        for name in result.segments_used:
            console.print(f"    [dim]{name}[/dim]")
    else:
        console.print(f"\n[red]Segment assembly failed: {result.error_message}[/red]")
        raise SystemExit(1)
