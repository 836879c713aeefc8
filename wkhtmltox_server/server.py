"""HTTP server exposing the HTML to PDF endpoint."""

from __future__ import annotations

import json
import logging
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlsplit

from .config import ServerConfig
from .net import is_client_disconnect
from .options import ValidationError, build_renderer_args, validate_render_options
from .payload import extract_html
from .renderer import RendererStartError, pipe_render, start_renderer

logger = logging.getLogger(__name__)

PDF_PATH = "/pdf"
HEALTH_PATHS = ("/health", "/healthz", "/ready")


def split_target(target: str) -> Tuple[str, Dict[str, str]]:
    """Split a request target into its path and first-value query mapping."""
    parts = urlsplit(target)
    query = {key: values[0] for key, values in parse_qs(parts.query, keep_blank_values=True).items()}
    return parts.path, query


class PdfHandler(BaseHTTPRequestHandler):
    server: "PdfHTTPServer"

    @property
    def config(self) -> ServerConfig:
        return self.server.config

    def _write_response(
        self,
        status: int,
        content_type: Optional[str],
        body: bytes,
        headers: Optional[Dict[str, str]] = None,
    ) -> bool:
        try:
            self.send_response(status)
            if content_type is not None:
                self.send_header("Content-Type", content_type)
            for name, value in (headers or {}).items():
                self.send_header(name, value)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            if body and self.command != "HEAD":
                self.wfile.write(body)
            return True
        except Exception as exc:
            if is_client_disconnect(exc):
                return False
            raise

    def _send_json(self, status: int, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> bool:
        body = json.dumps(payload).encode("utf-8")
        return self._write_response(status, "application/json", body, headers)

    def _send_validation_error(self, error: ValidationError) -> None:
        status, payload = error
        self._send_json(status, payload)

    def _send_not_found(self) -> None:
        self._send_json(404, {"error": "not_found", "detail": "Unsupported endpoint."})

    def _send_method_not_allowed(self) -> None:
        self._send_json(
            405,
            {"error": "method_not_allowed", "detail": f"{self.command} is not supported on {PDF_PATH}."},
            headers={"Allow": "POST"},
        )

    def _read_body(self) -> Optional[bytes]:
        if "chunked" in self.headers.get("Transfer-Encoding", "").lower():
            self._send_json(
                411,
                {"error": "length_required", "detail": "Chunked request bodies are not supported."},
            )
            return None

        header = self.headers.get("Content-Length")
        if header is None:
            return b""

        try:
            content_length = int(header)
        except ValueError:
            self._send_json(
                400,
                {"error": "invalid_content_length", "detail": "Content-Length must be an integer."},
            )
            return None

        if content_length <= 0:
            return b""

        if content_length > self.config.max_body_bytes:
            self._send_json(
                413,
                {
                    "error": "payload_too_large",
                    "detail": f"Body exceeds {self.config.max_body_bytes} bytes.",
                },
            )
            return None

        try:
            return self.rfile.read(content_length)
        except Exception as exc:
            if is_client_disconnect(exc):
                return None
            raise

    def do_OPTIONS(self) -> None:
        path, _ = split_target(self.path)
        if path != PDF_PATH:
            self._send_not_found()
            return
        self._write_response(
            200,
            None,
            b"",
            headers={
                "Access-Control-Allow-Methods": "POST, OPTIONS",
                "Access-Control-Allow-Headers": "Content-Type",
            },
        )

    def do_POST(self) -> None:
        path, query = split_target(self.path)
        if path != PDF_PATH:
            self._send_not_found()
            return

        body = self._read_body()
        if body is None:
            return

        html, validation_error = extract_html(self.headers.get("Content-Type"), body)
        if validation_error is not None:
            self._send_validation_error(validation_error)
            return

        options, validation_error = validate_render_options(query)
        if validation_error is not None:
            self._send_validation_error(validation_error)
            return

        if html is None or options is None:
            return
        self._render(html, build_renderer_args(options))

    def _render(self, html: bytes, args: List[str]) -> None:
        try:
            process = start_renderer(self.config.renderer_path, args)
        except RendererStartError as exc:
            logger.exception("An error occurred while starting the renderer")
            self._send_json(500, {"error": "renderer_unavailable", "detail": str(exc)})
            return

        with process:
            try:
                self.send_response(200)
                self.send_header("Content-Type", "application/pdf")
                self.end_headers()
            except Exception as exc:
                process.kill()
                if is_client_disconnect(exc):
                    return
                raise

            outcome = pipe_render(
                process,
                html,
                self.wfile,
                self.config.chunk_size,
                timeout=self.config.render_timeout,
            )

        if outcome.ok:
            logger.info("done (%d bytes)", outcome.bytes_written)
        elif not (outcome.client_disconnected or outcome.timed_out):
            # Headers are already sent; the failure can only be recorded here.
            logger.warning(
                "Renderer exited with status %s after %d bytes",
                outcome.returncode,
                outcome.bytes_written,
            )

    def do_GET(self) -> None:
        path, _ = split_target(self.path)
        if path in HEALTH_PATHS:
            self._send_json(200, {"status": "ok"})
            return
        if path == PDF_PATH:
            self._send_method_not_allowed()
            return
        self._send_not_found()

    def _reject_method(self) -> None:
        path, _ = split_target(self.path)
        if path == PDF_PATH:
            self._send_method_not_allowed()
            return
        self._send_not_found()

    do_HEAD = _reject_method
    do_PUT = _reject_method
    do_PATCH = _reject_method
    do_DELETE = _reject_method

    def handle_one_request(self) -> None:
        try:
            super().handle_one_request()
        except Exception as exc:
            if is_client_disconnect(exc):
                return
            raise

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


class PdfHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, config: ServerConfig, handler_class: type = PdfHandler) -> None:
        self.config = config
        self.request_queue_size = config.listen_backlog
        super().__init__((config.host, config.port), handler_class)


def run(config: ServerConfig) -> None:
    server = PdfHTTPServer(config)
    host, port = server.server_address[:2]
    logger.info("PDF server listening on http://%s:%s%s", host, port, PDF_PATH)
    try:
        server.serve_forever()
    finally:
        server.server_close()
