"""GeoTracker: continuous device location tracking with automatic recovery."""

from __future__ import annotations

import asyncio
import sys
from importlib import metadata
from typing import Optional, Sequence

try:
    __version__ = metadata.version("geotracker")
except metadata.PackageNotFoundError:  # pragma: no cover - local dev
    __version__ = "0.0.0"


def run(argv: Optional[Sequence[str]] = None) -> None:
    """Convenience wrapper that runs the async CLI entry point."""
    from .cli import main

    try:
        code = asyncio.run(main(list(argv) if argv is not None else None))
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


__all__ = ["__version__", "run"]
