"""Extraction of the HTML document from a POST body."""

from __future__ import annotations

import io
from typing import Any, List, Optional, Tuple

from python_multipart import parse_form
from python_multipart.exceptions import FormParserError
from python_multipart.multipart import parse_options_header

from .options import ValidationError

HTML_FIELD = "htmlfile"


def is_multipart(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    mime, _ = parse_options_header(content_type)
    return mime.lower() == b"multipart/form-data"


def _field_name(upload: Any) -> str:
    name = upload.field_name
    if isinstance(name, bytes):
        return name.decode("latin-1")
    return name or ""


def read_uploaded_html(content_type: str, body: bytes) -> bytes:
    """Return the contents of the ``htmlfile`` upload, or b"" when absent.

    Raises FormParserError for bodies python-multipart cannot parse.
    """
    uploads: List[Any] = []
    headers = {"Content-Type": content_type, "Content-Length": str(len(body))}
    try:
        parse_form(headers, io.BytesIO(body), lambda field: None, uploads.append)
        for upload in uploads:
            if _field_name(upload) == HTML_FIELD:
                stream = upload.file_object
                stream.seek(0)
                return stream.read()
        return b""
    finally:
        for upload in uploads:
            upload.close()


def extract_html(
    content_type: Optional[str],
    body: bytes,
) -> Tuple[Optional[bytes], Optional[ValidationError]]:
    if is_multipart(content_type):
        try:
            html = read_uploaded_html(content_type or "", body)
        except FormParserError as exc:
            return None, (400, {"error": "invalid_upload", "detail": f"Could not read HTML upload: {exc}"})
    else:
        html = body

    if not html:
        return None, (
            400,
            {"error": "missing_html", "detail": f"Provide HTML in the request body or a '{HTML_FIELD}' upload."},
        )
    return html, None
