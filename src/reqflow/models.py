"""Canonical Pydantic models shared across all reqflow modules.

The models fall into three groups:

**Pipeline identifiers** -- :class:`Stage` and the protocol constants used
to key hook registrations.

**Request/response state** -- :class:`KeyValueRow`, the body variants
collected in :data:`Body`, :class:`AuthSpec`, :class:`RequestState` and
:class:`ResponseState`. These are what the compiler produces, what hooks
read and write, and what the post-processor renders.

**Configuration models** -- serialised as JSON in the user's config
directory: :class:`PipelineConfig`, :class:`RequestConfig`,
:class:`OutputConfig`, :class:`ExtensionsConfig` and :class:`GlobalConfig`.
"""

from __future__ import annotations

import enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


ANY_PROTOCOL = "any"
"""Protocol scope matching every protocol in the hook registry."""

KNOWN_PROTOCOLS = ("rest", "graphql", "ws", "wss", "grpc", "grpcs")


# --- Stages ---


class Stage(str, enum.Enum):
    """Ordered phases of one request execution.

    The declaration order is the execution order. Extensions may hook
    every stage except :attr:`DISPATCH` and :attr:`RESPONSE_RECEIPT`,
    which belong to the execution coordinator.
    """

    DOCUMENT_COMPILATION = "document-compilation"
    PRE_RESOLUTION = "pre-resolution"
    SECURE_SUBSTITUTION = "secure-substitution"
    AUTH_INJECTION = "auth-injection"
    PRE_SEND = "pre-send"
    DISPATCH = "dispatch"
    RESPONSE_RECEIPT = "response-receipt"
    POST_PROCESSING = "post-processing"

    @property
    def number(self) -> int:
        """1-based position of the stage in the pipeline."""
        return list(Stage).index(self) + 1

    @property
    def hookable(self) -> bool:
        return self not in (Stage.DISPATCH, Stage.RESPONSE_RECEIPT)


HOOKABLE_STAGES = frozenset(stage for stage in Stage if stage.hookable)


# --- Request state ---


class KeyValueRow(BaseModel):
    """One row of a headers/query/path/form table."""

    key: str
    value: str = ""
    enabled: bool = True


class MultipartRow(KeyValueRow):
    """A multipart row; ``value`` is a file path when ``type`` is ``"file"``."""

    type: Literal["text", "file"] = "text"


class BodyKind(str, enum.Enum):
    """Tags of the :data:`Body` variant."""

    NONE = "none"
    JSON = "json"
    XML = "xml"
    YAML = "yaml"
    URL_ENCODED = "url-encoded"
    MULTIPART = "multipart"
    BINARY = "binary"
    GRAPHQL = "graphql"


class NoBody(BaseModel):
    kind: Literal["none"] = "none"


class JsonBody(BaseModel):
    kind: Literal["json"] = "json"
    text: str = ""


class XmlBody(BaseModel):
    kind: Literal["xml"] = "xml"
    text: str = ""


class YamlBody(BaseModel):
    kind: Literal["yaml"] = "yaml"
    text: str = ""


class UrlEncodedBody(BaseModel):
    kind: Literal["url-encoded"] = "url-encoded"
    rows: list[KeyValueRow] = Field(default_factory=list)


class MultipartBody(BaseModel):
    kind: Literal["multipart"] = "multipart"
    rows: list[MultipartRow] = Field(default_factory=list)


class BinaryBody(BaseModel):
    kind: Literal["binary"] = "binary"
    file_path: str


class GraphQLBody(BaseModel):
    """A GraphQL operation; ``variables`` is JSON text (may hold templates)."""

    kind: Literal["graphql"] = "graphql"
    query: str = ""
    variables: str = ""
    operation_name: Optional[str] = None
    operation_type: Literal["query", "mutation", "subscription"] = "query"


Body = Annotated[
    Union[
        NoBody,
        JsonBody,
        XmlBody,
        YamlBody,
        UrlEncodedBody,
        MultipartBody,
        BinaryBody,
        GraphQLBody,
    ],
    Field(discriminator="kind"),
]
"""Tagged body variant, discriminated on ``kind``."""


CANONICAL_CONTENT_TYPES: dict[BodyKind, str] = {
    BodyKind.JSON: "application/json",
    BodyKind.XML: "application/xml",
    BodyKind.YAML: "application/x-yaml",
    BodyKind.URL_ENCODED: "application/x-www-form-urlencoded",
    BodyKind.GRAPHQL: "application/json",
}
"""Content types the compiler stamps when no explicit header is present.

Multipart is absent on purpose: its boundary is chosen by the transport.
"""


class AuthSpec(BaseModel):
    """Authentication settings compiled from an ``auth`` block.

    Only template text lives here until secure substitution runs.

    Example::

        AuthSpec(type="bearer", params={"token": "{{API_TOKEN}}"})
    """

    type: str
    params: dict[str, str] = Field(default_factory=dict)


def _find_row(rows: list[KeyValueRow], name: str) -> Optional[KeyValueRow]:
    lowered = name.lower()
    for row in rows:
        if row.enabled and row.key.lower() == lowered:
            return row
    return None


class RequestState(BaseModel):
    """Protocol-agnostic description of the outgoing request.

    Mutable while the request stages run; the coordinator stores a deep
    copy at dispatch time and never touches the original again.

    Header lookups are case-insensitive and only consider enabled rows.
    When several enabled ``Content-Type`` rows exist, the first one is
    authoritative.
    """

    protocol: str = "rest"
    method: str = "GET"
    url: str = ""
    headers: list[KeyValueRow] = Field(default_factory=list)
    query_params: list[KeyValueRow] = Field(default_factory=list)
    path_params: list[KeyValueRow] = Field(default_factory=list)
    body: Body = Field(default_factory=NoBody)
    content_type: Optional[str] = None
    auth: Optional[AuthSpec] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def body_kind(self) -> BodyKind:
        return BodyKind(self.body.kind)

    def enabled_headers(self) -> list[KeyValueRow]:
        return [h for h in self.headers if h.enabled]

    def has_header(self, name: str) -> bool:
        """Return ``True`` if an enabled header named *name* exists (any case)."""
        return _find_row(self.headers, name) is not None

    def get_header(self, name: str) -> Optional[str]:
        row = _find_row(self.headers, name)
        return row.value if row is not None else None

    def add_header(self, key: str, value: str) -> None:
        self.headers.append(KeyValueRow(key=key, value=value))

    def set_header(self, key: str, value: str) -> None:
        """Replace the first enabled header named *key*, or append one."""
        row = _find_row(self.headers, key)
        if row is None:
            self.add_header(key, value)
        else:
            row.value = value

    def add_query_param(self, key: str, value: str) -> None:
        self.query_params.append(KeyValueRow(key=key, value=value))

    def trace(self) -> dict[str, Any]:
        """Return the method, URL, headers and query rows as plain data."""
        return {
            "method": self.method,
            "url": self.url,
            "headers": [{"key": h.key, "value": h.value} for h in self.enabled_headers()],
            "query": [
                {"key": q.key, "value": q.value} for q in self.query_params if q.enabled
            ],
        }


# --- Response state ---


class ResponseState(BaseModel):
    """Result of one dispatch, plus metadata contributed by post-processing.

    ``metadata`` maps an extension name to whatever that extension
    contributed; each extension owns exactly one namespace. A transport
    failure yields a synthetic response with ``status == 0`` and ``error``
    set instead of a status code.
    """

    status: int = 0
    status_text: str = ""
    headers: list[KeyValueRow] = Field(default_factory=list)
    body: Any = None
    raw: bytes = b""
    content_type: Optional[str] = None
    elapsed_ms: float = 0.0
    url: str = ""
    size_bytes: int = 0
    error: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None and self.status > 0

    def get_header(self, name: str) -> Optional[str]:
        row = _find_row(self.headers, name)
        return row.value if row is not None else None

    def capture_view(self) -> dict[str, Any]:
        """Plain-data view used by ``{{$res.*}}`` lookups and assertions."""
        return {
            "status": self.status,
            "statusText": self.status_text,
            "headers": {h.key: h.value for h in self.headers},
            "body": self.body if not isinstance(self.body, bytes) else None,
            "contentType": self.content_type,
            "time": self.elapsed_ms,
            "url": self.url,
        }


# --- Configuration ---


class PipelineConfig(BaseModel):
    """Pipeline behaviour settings."""

    default_priority: int = Field(
        default=100, description="Priority given to hooks registered without one"
    )
    cancel_grace_seconds: float = Field(
        default=2.0,
        description="How long to wait for the transport to abort after cancellation",
    )
    strict_substitution: bool = Field(
        default=True,
        description="Fail the execution when secure substitution leaves variables unresolved",
    )
    use_env_hierarchy: bool = Field(
        default=False,
        description="Layer .env.a.b over .env.a and .env when .env.a.b is active",
    )
    active_environment: Optional[str] = Field(
        default=None, description="Environment source to activate (e.g. '.env.staging')"
    )


class RequestConfig(BaseModel):
    """HTTP transport settings."""

    timeout: float = 30.0
    verify_ssl: bool = True
    follow_redirects: bool = True
    max_retries: int = 0


class OutputConfig(BaseModel):
    format: str = Field(default="auto", description="Output format: auto, json, plain, rich")


class ExtensionsConfig(BaseModel):
    enabled: list[str] = Field(
        default_factory=list, description="Only load these extensions (empty = all)"
    )
    disabled: list[str] = Field(default_factory=list, description="Never load these extensions")


class GlobalConfig(BaseModel):
    """Top-level configuration, stored as ``config.json`` in the config directory.

    Unknown keys are kept so that extensions can store their own settings.
    """

    model_config = ConfigDict(extra="allow")

    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    extensions: ExtensionsConfig = Field(default_factory=ExtensionsConfig)
