"""
Main entry point for the tile-prefetch application.

The download command reports its own interruption and session summary; this
module only catches what escapes the commands.
"""

import logging
import os
import sys

import typer
from rich.console import Console

from tile_prefetch.cli.app import CONFIG_FILE, app
from tile_prefetch.cli.formatters import format_error_with_suggestions
from tile_prefetch.exceptions import ConfigurationError, TilePrefetchError


def _error_context(error: Exception) -> dict | None:
    if isinstance(error, ConfigurationError):
        return {"config_file": str(CONFIG_FILE)}
    if not isinstance(error, TilePrefetchError):
        return {"type": "Unexpected"}
    return None


def main() -> None:
    """Main entry point function."""
    if os.name == "nt":
        # Tile counts and layer states are printed with non-ASCII symbols.
        for stream in (sys.stdout, sys.stderr):
            if hasattr(stream, "reconfigure"):
                stream.reconfigure(encoding="utf-8")

    log = logging.getLogger("tile_prefetch")
    console = Console(stderr=True)

    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except KeyboardInterrupt:
        # Outside a download nothing is running that needs stopping.
        sys.exit(130)
    except Exception as e:
        console.print(f"\n{format_error_with_suggestions(e, _error_context(e))}")
        log.debug("Full traceback:", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
