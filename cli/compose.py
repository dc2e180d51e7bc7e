"""Compose command - Render a composition described by a JSON manifest"""

import asyncio
import json
import shlex
from pathlib import Path
from typing import Any, Dict

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TimeElapsedColumn
from rich.table import Table
from rich import box

from compositor.command_builder import CommandBuilder
from compositor.config import settings
from compositor.encoder import encoder_from_settings
from compositor.filters import get_filter
from compositor.graph import GraphError
from compositor.graph_builder import FilterGraphBuilder
from compositor.models.composition import (
    Composition,
    CompositionError,
    FadeEnvelope,
    Layer,
    LayerKind,
    Position,
    Size,
    TimeWindow,
    validate_composition,
)
from compositor.models.render import AudioPolicy, RenderConfig
from compositor.renderer import CompositionRenderer

console = Console()


def _resolve(base: Path, value: str) -> str:
    path = Path(value)
    return str(path if path.is_absolute() else base / path)


def layer_from_dict(data: Dict[str, Any], base: Path) -> Layer:
    """Build a Layer from its manifest entry"""
    kind = LayerKind(data["kind"])
    source = data["source"]
    if kind in (LayerKind.IMAGE, LayerKind.VIDEO, LayerKind.BACKGROUND):
        source = _resolve(base, source)

    window = None
    if data.get("start") is not None or data.get("duration") is not None:
        window = TimeWindow(float(data.get("start", 0.0)), float(data["duration"]))

    font_path = data.get("font_path")
    return Layer(
        kind=kind,
        source=source,
        position=Position(data.get("x", 0), data.get("y", 0)),
        size=Size(data.get("width", 0), data.get("height", 0)),
        opacity=float(data.get("opacity", 1.0)),
        stack_order=int(data.get("stack_order", 0)),
        scale=float(data.get("scale", 1.0)),
        time_window=window,
        blend_mode=data.get("blend_mode"),
        add_after_fade=bool(data.get("add_after_fade", False)),
        font_path=_resolve(base, font_path) if font_path else None,
        font_size=data.get("font_size"),
        text_color=data.get("text_color", "0xFFFFFF"),
        line_height=float(data.get("line_height", 1.0)),
    )


def load_manifest(manifest_path: Path) -> Composition:
    """
    Load a composition manifest.

    Relative paths are resolved against the manifest's directory. The
    "style" entry may be a look key or a raw filter chain.

    Raises:
        CompositionError: If the manifest is malformed
    """
    try:
        with open(manifest_path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise CompositionError(f"Cannot read manifest {manifest_path}: {e}") from e
    if not isinstance(data, dict):
        raise CompositionError(f"Manifest {manifest_path} must be a JSON object")

    base = manifest_path.parent
    try:
        width = int(data.get("width", settings.width))
        height = int(data.get("height", settings.height))
        fade = data.get("fade", {})

        style = data.get("style")
        if style:
            style = get_filter(style, width, height) or style

        return Composition(
            background_path=_resolve(base, data["background"]),
            audio_path=_resolve(base, data["audio"]),
            layers=[layer_from_dict(l, base) for l in data.get("layers", [])],
            output_path=_resolve(base, data.get("output", "output.mp4")),
            duration=float(data.get("duration", settings.duration)),
            width=width,
            height=height,
            style_filter=style,
            fade=FadeEnvelope(
                lead=float(fade.get("lead", settings.fade_lead)),
                duration=float(fade.get("duration", settings.fade_duration)),
            ),
            frame_rate=int(data.get("frame_rate", settings.frame_rate)),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise CompositionError(f"Invalid manifest {manifest_path}: {e!r}") from e


@click.command()
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", type=click.Path(), help="Output file path (overrides manifest)")
@click.option("--audio-policy", type=click.Choice(["require", "optional"]), default=None,
              help="What to do when the audio has no audio stream")
@click.option("--preset", default=None, help="x264 preset (default from settings)")
@click.option("--crf", type=int, default=None, help="x264 CRF (default from settings)")
@click.option("--dry-run", is_flag=True, help="Print the FFmpeg command without running it")
def compose_cmd(manifest: str, output: str, audio_policy: str, preset: str, crf: int, dry_run: bool):
    """Render a composition from a JSON manifest

    \b
    Examples:
      promo-compositor compose job.json
      promo-compositor compose job.json -o out.mp4 --dry-run
    """
    try:
        composition = load_manifest(Path(manifest))
    except CompositionError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)

    if output:
        composition.output_path = output

    encoder = encoder_from_settings(settings)
    config = RenderConfig(
        preset=preset or settings.preset,
        crf=crf if crf is not None else settings.crf,
        audio_bitrate=settings.audio_bitrate,
    )
    policy = AudioPolicy(audio_policy or settings.audio_policy)

    _print_layers(composition)

    if dry_run:
        try:
            validate_composition(composition)
            build = FilterGraphBuilder().build(composition)
            cmd = CommandBuilder(encoder, config, policy).build(composition, build)
        except (CompositionError, GraphError) as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(1)
        for skipped in build.skipped_layers:
            console.print(f"[yellow]Skipped layer:[/yellow] {skipped}")
        click.echo(shlex.join(cmd))
        return

    renderer = CompositionRenderer(encoder, config, policy)
    result = asyncio.run(_render(renderer, composition))

    for skipped in result.skipped_layers:
        console.print(f"[yellow]Skipped layer:[/yellow] {skipped}")

    if result.success:
        console.print(f"\n[green]Render complete![/green]")
        console.print(f"  Output: {result.output_path}")
        if result.duration:
            console.print(f"  Duration: {result.duration:.1f}s")
        if result.file_size:
            console.print(f"  Size: {result.file_size / (1024 * 1024):.1f} MB")
        console.print(f"  Render time: {result.render_time:.1f}s")
    else:
        console.print(f"\n[red]Render failed: {result.error_message}[/red]")
        if result.ffmpeg_command:
            console.print(f"[dim]{result.ffmpeg_command}[/dim]")
        raise SystemExit(1)


async def _render(renderer: CompositionRenderer, composition: Composition):
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        console=console
    ) as progress:
        task = progress.add_task("Rendering...", total=composition.duration)
        return await renderer.render(
            composition,
            on_progress=lambda seconds: progress.update(task, completed=min(seconds, composition.duration)),
        )


def _print_layers(composition: Composition) -> None:
    table = Table(title=f"Composition {composition.width}x{composition.height}, {composition.duration:.0f}s",
                  box=box.ROUNDED)
    table.add_column("Z", style="cyan", justify="right")
    table.add_column("Kind")
    table.add_column("Source")
    table.add_column("Window")
    table.add_column("After fade")

    for layer in sorted(composition.layers, key=lambda l: (l.add_after_fade, l.stack_order)):
        window = "-"
        if layer.time_window:
            window = f"{layer.time_window.start:g}-{layer.time_window.end:g}s"
        source = layer.source.replace("\n", " | ")
        table.add_row(
            str(layer.stack_order),
            layer.kind.value,
            source if len(source) <= 50 else source[:47] + "...",
            window,
            "yes" if layer.add_after_fade else "",
        )

    console.print(table)
