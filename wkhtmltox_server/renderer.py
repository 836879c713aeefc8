"""Process plumbing around the external wkhtmltopdf binary."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import threading
from dataclasses import dataclass
from typing import BinaryIO, List, Mapping, Optional, Sequence

from .net import is_client_disconnect, relay

logger = logging.getLogger(__name__)

DEFAULT_RENDERER = "wkhtmltopdf"
RENDERER_PATH_ENV = "WKHTMLTOPDF_PATH"


class RendererStartError(RuntimeError):
    """Raised when the renderer process cannot be spawned."""


@dataclass(frozen=True)
class RenderOutcome:
    returncode: int
    bytes_written: int
    client_disconnected: bool = False
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not (self.client_disconnected or self.timed_out)


def resolve_renderer_path(environ: Optional[Mapping[str, str]] = None) -> str:
    env = os.environ if environ is None else environ
    return env.get(RENDERER_PATH_ENV) or DEFAULT_RENDERER


def locate_renderer(renderer_path: str) -> Optional[str]:
    """Return the absolute executable path, or None when it is not runnable."""
    return shutil.which(renderer_path)


def start_renderer(renderer_path: str, args: Sequence[str]) -> subprocess.Popen:
    command: List[str] = [renderer_path, *args]
    logger.info("Rendering PDF. Arguments: '%s'", " ".join(args))
    try:
        return subprocess.Popen(command, stdin=subprocess.PIPE, stdout=subprocess.PIPE)
    except OSError as exc:
        raise RendererStartError(f"could not start renderer {renderer_path!r}: {exc}") from exc


def _feed_stdin(stdin: BinaryIO, html: bytes) -> None:
    try:
        stdin.write(html)
        stdin.flush()
    except BrokenPipeError:
        logger.warning("Renderer closed its input after fewer than %d bytes", len(html))
    finally:
        try:
            stdin.close()
        except BrokenPipeError:
            logger.debug("Renderer input already closed")


def pipe_render(
    process: subprocess.Popen,
    html: bytes,
    sink: BinaryIO,
    chunk_size: int,
    timeout: Optional[float] = None,
) -> RenderOutcome:
    """Feed ``html`` to the renderer and relay its stdout into ``sink``.

    Stdin is written from a separate thread so a renderer that starts
    emitting output before consuming all of its input cannot deadlock us.
    The child is killed when the client goes away or ``timeout`` elapses.
    Other errors kill the child and propagate; the caller reaps it.
    """
    timed_out = threading.Event()

    def expire() -> None:
        if process.poll() is None:
            timed_out.set()
            logger.warning("Renderer pid %s exceeded %.3fs; killing it", process.pid, timeout)
            process.kill()

    timer: Optional[threading.Timer] = None
    if timeout:
        timer = threading.Timer(timeout, expire)
        timer.daemon = True
        timer.start()

    feeder = threading.Thread(
        target=_feed_stdin,
        args=(process.stdin, html),
        name=f"renderer-stdin-{process.pid}",
        daemon=True,
    )
    feeder.start()

    written = 0
    disconnected = False
    try:
        try:
            written = relay(process.stdout, sink, chunk_size)
        except Exception as exc:
            process.kill()
            if not is_client_disconnect(exc):
                raise
            disconnected = True
            logger.info("Client disconnected; killed renderer pid %s", process.pid)
        returncode = process.wait()
    finally:
        feeder.join()
        if timer is not None:
            timer.cancel()

    return RenderOutcome(
        returncode=returncode,
        bytes_written=written,
        client_disconnected=disconnected,
        timed_out=timed_out.is_set(),
    )
