"""Network and stream helpers shared by the HTTP layer and the renderer relay."""

from __future__ import annotations

import errno
from typing import BinaryIO

DISCONNECT_ERRNOS = {
    errno.EPIPE,
    errno.ECONNRESET,
    errno.ECONNABORTED,
    errno.ETIMEDOUT,
}
if hasattr(errno, "WSAECONNRESET"):
    DISCONNECT_ERRNOS.add(errno.WSAECONNRESET)  # pragma: no cover


def is_client_disconnect(exc: BaseException) -> bool:
    if isinstance(exc, (BrokenPipeError, ConnectionResetError, ConnectionAbortedError, TimeoutError)):
        return True
    return isinstance(exc, OSError) and exc.errno in DISCONNECT_ERRNOS


def relay(source: BinaryIO, sink: BinaryIO, chunk_size: int) -> int:
    """Copy ``source`` into ``sink`` until EOF, flushing every chunk.

    Uses ``read1`` when available so output is forwarded as soon as the
    producer emits it rather than once a full chunk has accumulated.
    Write errors propagate to the caller.
    """
    read = getattr(source, "read1", source.read)
    total = 0
    while True:
        chunk = read(chunk_size)
        if not chunk:
            return total
        sink.write(chunk)
        sink.flush()
        total += len(chunk)
