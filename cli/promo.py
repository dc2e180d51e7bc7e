"""Promo command - Generate a complete promo clip"""

import asyncio
import random

import click
from rich.console import Console

from compositor.config import settings
from compositor.encoder import encoder_from_settings
from compositor.models.render import AudioPolicy, RenderConfig
from compositor.promo import OVERLAY_CATEGORIES, AudioClip, PromoAssets, PromoRequest, PromoVideoGenerator
from compositor.sources import load_pools

console = Console()


@click.command()
@click.argument("audio", type=click.Path(exists=True, dir_okay=False))
@click.option("--artist", "-a", required=True, help="Artist name for the caption")
@click.option("--title", "-t", required=True, help="Mix title for the caption")
@click.option("--pools", "pool_root", type=click.Path(file_okay=False),
              help="Background pool root (one folder per category)")
@click.option("--category", "-c", "categories", multiple=True, help="Background category to use (repeatable)")
@click.option("--overlays", "overlay_root", type=click.Path(file_okay=False),
              help="Overlay pool root (analog_film, gritt, noise, retro_dust)")
@click.option("--background", "-b", type=click.Path(exists=True, dir_okay=False),
              help="Use this background instead of assembling segments")
@click.option("--main-logo", type=click.Path(exists=True, dir_okay=False), help="Full-canvas logo")
@click.option("--logo", "logos", multiple=True, type=click.Path(exists=True, dir_okay=False),
              help="Interstitial/end logo candidates (repeatable)")
@click.option("--style", "-s", help="Look key (see 'filters') or raw filter chain")
@click.option("--prompt", "-p", help="Background prompt for the static fallback")
@click.option("--duration", "-d", type=float, default=None, help="Clip duration in seconds")
@click.option("--overlay-opacity", type=float, default=None, help="Overlay video opacity (0-1)")
@click.option("--no-overlay", is_flag=True, help="Disable overlay videos")
@click.option("--no-end-logo", is_flag=True, help="Disable the closing logo")
@click.option("--output-dir", "-o", type=click.Path(file_okay=False), default=None, help="Output directory")
@click.option("--seed", type=int, default=None, help="Random seed for reproducible picks")
def promo_cmd(
    audio: str,
    artist: str,
    title: str,
    pool_root: str,
    categories,
    overlay_root: str,
    background: str,
    main_logo: str,
    logos,
    style: str,
    prompt: str,
    duration: float,
    overlay_opacity: float,
    no_overlay: bool,
    no_end_logo: bool,
    output_dir: str,
    seed: int
):
    """Generate a promo clip for an audio track

    \b
    Examples:
      promo-compositor promo mix.mp3 -a "DJ Name" -t "Mix Title" --pools videos/
      promo-compositor promo mix.mp3 -a X -t Y -b bg.png --style look_neon_nightclub
    """
    request = PromoRequest.from_settings(
        settings,
        duration=duration,
        prompt=prompt,
        style=style,
        selected_categories=list(categories),
        enable_overlay=not no_overlay,
        overlay_opacity=overlay_opacity,
        end_logo=not no_end_logo,
        output_dir=output_dir,
    )
    assets = PromoAssets(
        background_pools=load_pools(pool_root) if pool_root else {},
        overlay_pools=load_pools(overlay_root, OVERLAY_CATEGORIES) if overlay_root else {},
        main_logo=main_logo,
        interstitial_logos=list(logos),
        end_logos=list(logos),
        background_path=background,
    )

    encoder = encoder_from_settings(settings)
    generator = PromoVideoGenerator(
        encoder,
        temp_dir=settings.temp_dir,
        render_config=RenderConfig(
            preset=settings.preset,
            crf=settings.crf,
            audio_bitrate=settings.audio_bitrate,
        ),
        audio_policy=AudioPolicy(settings.audio_policy),
        rng=random.Random(seed),
    )

    console.print(f"[cyan]Generating promo:[/cyan] {artist} - {title} ({request.duration:.0f}s)")
    with console.status("[bold]Rendering...[/bold]"):
        result = asyncio.run(generator.generate(request, assets, AudioClip(audio, artist, title)))

    if result.success:
        console.print(f"\n[green]Promo complete![/green]")
        console.print(f"  Output: {result.output_path}")
        console.print(f"  Background: {result.background_source.value}")
        if result.duration_seconds:
            console.print(f"  Duration: {result.duration_seconds:.1f}s")
        console.print(f"  Size: {result.size_bytes / (1024 * 1024):.2f} MB")
    else:
        console.print(f"\n[red]Promo failed: {result.error_message}[/red]")
        raise SystemExit(1)
