"""Module entrypoint for running the PDF API server."""

from __future__ import annotations

import logging
import sys
from typing import Optional, Sequence

from .config import ConfigError, load_config
from .renderer import locate_renderer
from .server import run

logger = logging.getLogger("wkhtmltox_server")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: str) -> None:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(numeric)


def main(argv: Optional[Sequence[str]] = None) -> None:
    try:
        config = load_config(argv)
    except ConfigError as exc:
        setup_logging("INFO")
        logger.error("%s", exc)
        raise SystemExit(2) from exc

    setup_logging(config.log_level)
    executable = locate_renderer(config.renderer_path)
    if executable is None:
        logger.warning("Renderer %r not found; POST /pdf will answer 500", config.renderer_path)
    else:
        logger.info("Using renderer %s", executable)
    run(config)


if __name__ == "__main__":
    main()
