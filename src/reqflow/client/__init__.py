"""Transports and response decoding.

* :class:`Transport` -- abstract dispatch capability.
* :class:`HttpxTransport` -- default REST/GraphQL transport over httpx.
* :func:`build_response_state` -- raw result to :class:`~reqflow.models.ResponseState`.
"""

from reqflow.client.response import (
    build_response_state,
    decode_body,
    synthetic_error_response,
)
from reqflow.client.transport import HttpxTransport, Transport, TransportResult

__all__ = [
    "HttpxTransport",
    "Transport",
    "TransportResult",
    "build_response_state",
    "decode_body",
    "synthetic_error_response",
]
