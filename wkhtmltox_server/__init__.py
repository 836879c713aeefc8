"""Public package API for the wkhtmltopdf HTTP service."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Mapping, Optional, Tuple

if TYPE_CHECKING:
    from .config import ServerConfig
    from .options import RenderOptions


def translate_request(query: Mapping[str, str]) -> Tuple[RenderOptions, List[str]]:
    from .options import translate_request as _translate_request

    return _translate_request(query)


def run(config: Optional[ServerConfig] = None) -> None:
    from .config import ServerConfig
    from .server import run as _run

    _run(config if config is not None else ServerConfig())


__all__ = ["translate_request", "run"]
