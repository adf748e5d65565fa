"""Transports: the capability that actually puts a request on the wire.

:class:`Transport` is the abstract interface the execution coordinator is
constructed with. :class:`HttpxTransport` is the default implementation
for REST and GraphQL-over-HTTP, built on :class:`httpx.AsyncClient` with
retry and exponential backoff. WebSocket and gRPC requests compile fine but
need a transport supplied by the embedding application.

Body encoding by kind:

* ``json`` / ``xml`` / ``yaml`` -- the text as-is
* ``url-encoded`` -- ``key=value&...`` from the enabled rows
* ``multipart`` -- text rows as fields, file rows read from disk; httpx
  generates the boundary
* ``binary`` -- the file's bytes
* ``graphql`` -- ``{"query", "variables", "operationName"}`` as JSON

GET and HEAD requests are sent without a body.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional
from urllib.parse import quote, urlencode

import httpx
from pydantic import BaseModel, Field

from reqflow.exceptions import TransportError
from reqflow.models import (
    BinaryBody,
    GraphQLBody,
    JsonBody,
    MultipartBody,
    RequestConfig,
    RequestState,
    UrlEncodedBody,
    XmlBody,
    YamlBody,
)

if TYPE_CHECKING:
    from reqflow.pipeline.context import CancellationToken

logger = logging.getLogger(__name__)

HTTP_PROTOCOLS = ("rest", "graphql")
_BODYLESS_METHODS = ("GET", "HEAD")
_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")


class TransportResult(BaseModel):
    """Raw outcome of one dispatch, before decoding."""

    status: int
    reason: str = ""
    headers: list[tuple[str, str]] = Field(default_factory=list)
    content: bytes = b""
    url: str = ""


class Transport(ABC):
    """Dispatch capability injected into the execution coordinator."""

    protocols: tuple[str, ...] = HTTP_PROTOCOLS

    def supports(self, protocol: str) -> bool:
        return protocol in self.protocols

    @abstractmethod
    async def send(self, request: RequestState, token: CancellationToken) -> TransportResult:
        """Send *request* and return the raw result.

        Implementations are cancelled through asyncio task cancellation
        when *token* fires; they may also poll the token themselves.

        Raises:
            TransportError: On network failures or unsupported protocols.
        """

    async def aclose(self) -> None:
        """Release connections held by the transport."""


# ------------------------------------------------------------------ #
# Request building
# ------------------------------------------------------------------ #


def build_url(request: RequestState) -> str:
    """Apply ``{name}`` path parameters and default the scheme to ``http://``."""
    url = request.url.strip()
    for row in request.path_params:
        if row.enabled:
            url = url.replace(f"{{{row.key}}}", quote(row.value, safe=""))
    if url and not _SCHEME.match(url):
        url = f"http://{url}"
    return url


def build_headers(request: RequestState) -> list[tuple[str, str]]:
    """Enabled headers in order, keeping only the first Content-Type.

    A bare ``multipart/form-data`` Content-Type (no boundary) is dropped so
    that httpx can supply one.
    """
    headers: list[tuple[str, str]] = []
    seen_content_type = False
    for row in request.enabled_headers():
        if row.key.lower() == "content-type":
            if seen_content_type:
                continue
            seen_content_type = True
            if isinstance(request.body, MultipartBody) and "boundary=" not in row.value:
                continue
        headers.append((row.key, row.value))
    return headers


def _read_file(path: str) -> bytes:
    try:
        return Path(path).expanduser().read_bytes()
    except OSError as exc:
        raise TransportError(f"Cannot read file '{path}': {exc}") from exc


def build_body(request: RequestState) -> dict[str, Any]:
    """Return the httpx keyword arguments carrying the request body."""
    body = request.body
    if request.method.upper() in _BODYLESS_METHODS and not isinstance(body, GraphQLBody):
        return {}
    if isinstance(body, (JsonBody, XmlBody, YamlBody)):
        return {"content": body.text.encode("utf-8")} if body.text else {}
    if isinstance(body, UrlEncodedBody):
        return {"content": urlencode([(r.key, r.value) for r in body.rows if r.enabled])}
    if isinstance(body, MultipartBody):
        # Parts without a filename are sent as plain form fields.
        parts: list[tuple[str, tuple[Optional[str], Any]]] = []
        for row in body.rows:
            if not row.enabled:
                continue
            if row.type == "file":
                parts.append((row.key, (Path(row.value).name, _read_file(row.value))))
            else:
                parts.append((row.key, (None, row.value)))
        return {"files": parts} if parts else {}
    if isinstance(body, BinaryBody):
        return {"content": _read_file(body.file_path)}
    if isinstance(body, GraphQLBody):
        variables: Any = {}
        if body.variables.strip():
            try:
                variables = json.loads(body.variables)
            except ValueError as exc:
                raise TransportError(f"GraphQL variables are not valid JSON: {exc}") from exc
        payload: dict[str, Any] = {"query": body.query, "variables": variables}
        if body.operation_name:
            payload["operationName"] = body.operation_name
        return {"content": json.dumps(payload).encode("utf-8")}
    return {}


# ------------------------------------------------------------------ #
# httpx transport
# ------------------------------------------------------------------ #


class HttpxTransport(Transport):
    """REST and GraphQL over HTTP via :class:`httpx.AsyncClient`.

    Args:
        config: Timeout, TLS verification, redirect and retry settings.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`
            in tests.

    Example::

        async with HttpxTransport(RequestConfig(timeout=10)) as transport:
            result = await transport.send(request, token)
    """

    def __init__(
        self,
        config: Optional[RequestConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config or RequestConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> HttpxTransport:
        self._ensure_client()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._config.timeout,
                verify=self._config.verify_ssl,
                follow_redirects=self._config.follow_redirects,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(self, request: RequestState, token: CancellationToken) -> TransportResult:
        if not self.supports(request.protocol):
            raise TransportError(f"No transport available for protocol '{request.protocol}'")
        url = build_url(request)
        if not url:
            raise TransportError("Request has no URL")

        kwargs: dict[str, Any] = {
            "method": request.method.upper(),
            "url": url,
            "headers": build_headers(request),
            "params": [(q.key, q.value) for q in request.query_params if q.enabled],
        }
        kwargs.update(build_body(request))
        response = await self._execute_with_retry(kwargs, token)
        return TransportResult(
            status=response.status_code,
            reason=response.reason_phrase or "",
            headers=list(response.headers.multi_items()),
            content=response.content,
            url=str(response.url),
        )

    async def _execute_with_retry(
        self, kwargs: dict[str, Any], token: CancellationToken
    ) -> httpx.Response:
        """Send with exponential-backoff retry on 5xx and connection errors.

        The delay doubles each attempt: 1 s, 2 s, 4 s, ... No retry starts
        once the token is cancelled.
        """
        client = self._ensure_client()
        max_retries = self._config.max_retries

        for attempt in range(max_retries + 1):
            try:
                response = await client.request(**kwargs)
            except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
                if attempt < max_retries and not token.cancelled:
                    delay = 2 ** attempt
                    logger.debug(
                        "Connection error: %s, retrying in %ss (attempt %d/%d)",
                        exc, delay, attempt + 1, max_retries,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise TransportError(
                    f"Connection failed after {attempt + 1} attempts: {exc}"
                ) from exc
            except httpx.HTTPError as exc:
                raise TransportError(f"HTTP error: {exc}") from exc

            if response.status_code >= 500 and attempt < max_retries and not token.cancelled:
                delay = 2 ** attempt
                logger.debug(
                    "Server error %d, retrying in %ss (attempt %d/%d)",
                    response.status_code, delay, attempt + 1, max_retries,
                )
                await asyncio.sleep(delay)
                continue
            return response

        raise TransportError("Request failed after all retries")  # pragma: no cover
