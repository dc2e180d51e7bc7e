"""
Stylistic filter presets ("looks") for the background

Each preset is an FFmpeg filter chain templated on the canvas size so it
can be passed as a Composition.style_filter.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional


FIT = "scale={w}:{h}:force_original_aspect_ratio=decrease,pad={w}:{h}:({w}-iw)/2:({h}-ih)/2:black"


@dataclass(frozen=True)
class StylePreset:
    """
    A named look.

    Attributes:
        key: Lookup key (look_*)
        name: Display name
        description: What the look is for
        template: Filter chain with {w}, {h}, {pw}, {ph} placeholders
    """
    key: str
    name: str
    description: str
    template: str

    def expression(self, width: int, height: int) -> str:
        """Filter chain for a canvas of width x height"""
        return self.template.format(
            w=width,
            h=height,
            pw=max(1, width // 3),
            ph=max(1, height // 3),
        )


PRESETS: Dict[str, StylePreset] = {p.key: p for p in [
    StylePreset(
        key="look_gritty_neon_club",
        name="Gritty Neon Club",
        description="Punchy contrast, slight neon saturation, dirty grain",
        template=FIT + ",eq=contrast=1.2:brightness=-0.03:saturation=1.15,"
                       "curves=preset=medium_contrast,noise=alls=8:allf=t+u,vignette=0.35",
    ),
    StylePreset(
        key="look_faded_90s_tape",
        name="Faded 90s Tape",
        description="Washed, low-contrast tape feel with motion smear",
        template=FIT + ",eq=contrast=0.95:brightness=0.02:saturation=1.05,"
                       "curves=preset=washed_out,noise=alls=12:allf=t+u,tmix=frames=3:weights='1 2 1'",
    ),
    StylePreset(
        key="look_hard_bw_street_doc",
        name="Hard B&W Street Doc",
        description="Aggro black & white, doc-style club footage",
        template=FIT + ",format=gray,eq=contrast=1.45:brightness=-0.02,"
                       "unsharp=7:7:0.9:7:7:0.0,vignette=0.4",
    ),
    StylePreset(
        key="look_camcorder_ghost",
        name="Camcorder Ghost",
        description="Cheap DV / camcorder vibe, great for crowd shots",
        template=FIT + ",eq=contrast=1.05:saturation=0.85,noise=alls=10:allf=t+u,tblend=all_mode=lighten",
    ),
    StylePreset(
        key="look_club_cinematic_dirty",
        name="Club Cinematic Dirty",
        description="Cinematic contrast but still grimy",
        template=FIT + ",eq=contrast=1.18:brightness=-0.025:saturation=1.1,"
                       "curves=preset=medium_contrast,noise=alls=6:allf=t+u,vignette=0.32",
    ),
    StylePreset(
        key="look_neon_nightclub",
        name="Neon Nightclub",
        description="Crushed blacks, neon mids, for laser / LED-heavy shots",
        template=FIT + ",eq=brightness=-0.04:contrast=1.25:saturation=1.25,"
                       "curves=g='0/0 0.2/0.1 0.6/0.8 1/1',noise=alls=14:allf=t+u,vignette=0.6",
    ),
    StylePreset(
        key="look_zine_posterized_color",
        name="Zine Posterized Color",
        description="Posterized, graphic, zine / sticker-pack feel",
        template=FIT + ",eq=contrast=1.2:saturation=1.2,"
                       "lut=r=round(val/32)*32:g=round(val/32)*32:b=round(val/32)*32,unsharp=5:5:0.8",
    ),
    StylePreset(
        key="look_pixel_grit",
        name="Pixel Grit",
        description="Low-fi pixelated alley vibe, still readable faces",
        template="scale={pw}:{ph}:force_original_aspect_ratio=decrease:flags=neighbor,"
                 "scale={w}:{h}:flags=neighbor,eq=contrast=1.1:saturation=1.15,noise=alls=5:allf=t+u",
    ),
    StylePreset(
        key="look_sodium_streetlight",
        name="Sodium Streetlight",
        description="Warm orange club/street lighting, gritty and moody",
        template=FIT + ",eq=saturation=1.1:contrast=1.08,"
                       "curves=r='0/0 0.3/0.35 1/1':b='0/0 0.5/0.4 1/0.9',noise=alls=10:allf=t+u,vignette=0.5",
    ),
]}

# Older job payloads use the vertical-format key
ALIASES = {
    "look_pixel_grit_vertical": "look_pixel_grit",
}


def get_preset(key: str) -> Optional[StylePreset]:
    return PRESETS.get(ALIASES.get(key, key))


def get_filter(key: str, width: int = 720, height: int = 720) -> Optional[str]:
    """
    Resolve a look key to a filter chain for the canvas.

    Returns:
        Filter chain, or None for unknown keys
    """
    preset = get_preset(key)
    if preset is None:
        return None
    return preset.expression(width, height)


def list_filters() -> List[StylePreset]:
    return list(PRESETS.values())
