"""Runtime configuration loaded from command-line flags and environment variables."""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from .options import parse_atoi
from .renderer import DEFAULT_RENDERER, resolve_renderer_path

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_LOG_LEVEL = "INFO"


class ConfigError(ValueError):
    """Raised when a setting that has no safe fallback is malformed."""


def env_int(
    name: str,
    default: int,
    minimum: int = 1,
    environ: Optional[Mapping[str, str]] = None,
) -> int:
    env = os.environ if environ is None else environ
    raw = env.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


@dataclass(frozen=True)
class ServerConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    renderer_path: str = DEFAULT_RENDERER
    max_body_bytes: int = 256 * 1024 * 1024
    render_timeout_ms: int = 0
    listen_backlog: int = 512
    chunk_size: int = 64 * 1024
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def render_timeout(self) -> Optional[float]:
        if self.render_timeout_ms <= 0:
            return None
        return self.render_timeout_ms / 1000.0


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wkhtmltox-server",
        description="HTTP service converting HTML to PDF with wkhtmltopdf.",
    )
    parser.add_argument("--port", type=int, default=0, help="Port to listen on")
    parser.add_argument("--host", default=None, help="Interface to bind")
    parser.add_argument("--log-level", default=None, help="Logging level name")
    return parser


def resolve_port(flag_port: int, environ: Mapping[str, str]) -> int:
    """Pick the listening port: non-zero flag, then WKHTMLTOX_PORT, then 8080."""
    if flag_port:
        return flag_port
    raw = environ.get("WKHTMLTOX_PORT", "")
    if raw == "":
        return DEFAULT_PORT
    try:
        return parse_atoi(raw)
    except ValueError as exc:
        raise ConfigError(f"invalid WKHTMLTOX_PORT value: {raw!r}") from exc


def load_config(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ServerConfig:
    env = os.environ if environ is None else environ
    args = build_arg_parser().parse_args(argv)

    return ServerConfig(
        host=args.host or env.get("WKHTMLTOX_HOST") or DEFAULT_HOST,
        port=resolve_port(args.port, env),
        renderer_path=resolve_renderer_path(env),
        max_body_bytes=env_int("WKHTMLTOX_MAX_BODY_BYTES", 256 * 1024 * 1024, minimum=1024, environ=env),
        render_timeout_ms=env_int("WKHTMLTOX_RENDER_TIMEOUT_MS", 0, minimum=0, environ=env),
        listen_backlog=env_int("WKHTMLTOX_LISTEN_BACKLOG", 512, minimum=1, environ=env),
        chunk_size=env_int("WKHTMLTOX_CHUNK_SIZE", 64 * 1024, minimum=1024, environ=env),
        log_level=(args.log_level or env.get("WKHTMLTOX_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
    )
