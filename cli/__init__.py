"""Promo Compositor CLI"""

import click
from dotenv import load_dotenv

# Load .env file at CLI startup, before settings are read
load_dotenv()

from compositor.config import settings
from .log import setup_logging
from .status import status_cmd
from .compose import compose_cmd
from .segments import segments_cmd
from .promo import promo_cmd
from .filters import filters_cmd


@click.group()
@click.version_option(version="0.1.0")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def main(verbose: bool):
    """Promo Compositor - Layered FFmpeg promo clips

    \b
    Quick Start:
      promo-compositor status
      promo-compositor promo mix.mp3 -a "Artist" -t "Title" --pools videos/

    \b
    Commands:
      compose   Render a composition from a JSON manifest
      segments  Assemble a background video from pool folders
      promo     Generate a complete promo clip
      filters   List style looks
      status    Show encoder and configuration status
    """
    setup_logging(settings.log_level, verbose)


# Rendering commands
main.add_command(compose_cmd, name="compose")
main.add_command(segments_cmd, name="segments")
main.add_command(promo_cmd, name="promo")

# Info commands
main.add_command(filters_cmd, name="filters")
main.add_command(status_cmd, name="status")


if __name__ == "__main__":
    main()
