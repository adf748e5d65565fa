"""Turn raw transport results into :class:`~reqflow.models.ResponseState`.

Decoding follows the response Content-Type: JSON types are parsed, text
types (``text/*``, XML, YAML, JavaScript, form data) are decoded as text,
and everything else stays bytes. A JSON body that fails to parse falls
back to text, and an untyped body is tried as JSON, then text.
"""

from __future__ import annotations

import codecs
import json
from typing import Any, Optional

from reqflow.client.transport import TransportResult
from reqflow.models import KeyValueRow, RequestState, ResponseState

_TEXT_MARKERS = ("text/", "xml", "yaml", "javascript", "x-www-form-urlencoded", "html")


def _charset(content_type: Optional[str]) -> str:
    """Charset named in *content_type*, or ``utf-8`` when absent or unknown."""
    if content_type:
        for part in content_type.split(";")[1:]:
            name, _, value = part.strip().partition("=")
            if name.lower() == "charset" and value:
                try:
                    return codecs.lookup(value.strip('"')).name
                except LookupError:
                    return "utf-8"
    return "utf-8"


def decode_body(content: bytes, content_type: Optional[str]) -> Any:
    """Decode *content* according to *content_type*.

    Returns:
        A JSON value, a ``str``, ``bytes`` for binary types, or ``None``
        when there is no content.
    """
    if not content:
        return None
    lowered = (content_type or "").lower()
    charset = _charset(content_type)

    if "json" in lowered:
        try:
            return json.loads(content.decode(charset))
        except (UnicodeDecodeError, ValueError):
            return content.decode(charset, errors="replace")
    if any(marker in lowered for marker in _TEXT_MARKERS):
        return content.decode(charset, errors="replace")
    if not lowered:
        try:
            text = content.decode("utf-8")
        except UnicodeDecodeError:
            return content
        try:
            return json.loads(text)
        except ValueError:
            return text
    return content


def build_response_state(result: TransportResult, elapsed_ms: float) -> ResponseState:
    """Assemble the response descriptor for a completed dispatch."""
    headers = [KeyValueRow(key=k, value=v) for k, v in result.headers]
    response = ResponseState(
        status=result.status,
        status_text=result.reason,
        headers=headers,
        raw=result.content,
        url=result.url,
        elapsed_ms=round(elapsed_ms, 3),
        size_bytes=len(result.content),
    )
    response.content_type = response.get_header("Content-Type")
    response.body = decode_body(result.content, response.content_type)
    return response


def synthetic_error_response(request: RequestState, error: BaseException) -> ResponseState:
    """Response stand-in for a dispatch that produced no HTTP response."""
    return ResponseState(
        status=0,
        status_text="Error",
        url=request.url,
        error=str(error),
    )
