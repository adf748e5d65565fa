"""Compile a request document into a :class:`~reqflow.models.RequestState`.

The compiler walks the block list once, in document order, and dispatches
each block on its :class:`~reqflow.document.blocks.BlockType`. Every kind
has an ``_on_<kind>`` method; :attr:`BlockType.UNKNOWN` ignores the block.
Container blocks (``api``, ``request``, ``socket-request``) are walked
into, so their children compile as if they were top-level.

Rules applied while compiling:

* Disabled table rows and rows with an empty key are dropped.
* When several body blocks are present, the last one wins. A
  ``graphql-variables`` block attaches to the GraphQL body wherever it
  appears.
* JSON bodies may contain ``//`` and ``/* */`` comments; they are removed.
* A Content-Type header is stamped from the body kind only when the
  document sets none. Multipart bodies never get one, so the transport
  can add the boundary.
* The protocol is ``graphql`` for GraphQL bodies, the method itself for
  ``ws``/``wss``/``grpc``/``grpcs``, and ``rest`` otherwise.

Templates (``{{NAME}}``) are copied through untouched; substitution is a
later stage.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from pydantic import BaseModel, ValidationError

from reqflow.document.blocks import Block, BlockType, Document
from reqflow.exceptions import MalformedDocumentError
from reqflow.models import (
    CANONICAL_CONTENT_TYPES,
    AuthSpec,
    BinaryBody,
    Body,
    BodyKind,
    GraphQLBody,
    JsonBody,
    KeyValueRow,
    MultipartBody,
    MultipartRow,
    RequestState,
    UrlEncodedBody,
    XmlBody,
    YamlBody,
)

logger = logging.getLogger(__name__)

SOCKET_PROTOCOLS = ("ws", "wss", "grpc", "grpcs")

_METHOD_TOKEN = re.compile(r"[A-Za-z][A-Za-z-]*")
_GRAPHQL_OPERATION = re.compile(r"^\s*(query|mutation|subscription)\b\s*([_A-Za-z][_0-9A-Za-z]*)?")


def strip_json_comments(text: str) -> str:
    """Remove ``//`` line comments and ``/* */`` block comments outside strings."""
    out: list[str] = []
    i, n = 0, len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
        elif ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def _position_from_loc(loc: tuple[Any, ...]) -> tuple[int, ...]:
    return tuple(part for part in loc if isinstance(part, int))


def parse_document(document: Union[Document, dict[str, Any]]) -> Document:
    """Validate a raw document mapping into a :class:`Document`.

    Raises:
        MalformedDocumentError: If the structure is invalid; ``position``
            points at the first offending block.
    """
    if isinstance(document, Document):
        return document
    if not isinstance(document, dict):
        raise MalformedDocumentError(
            f"Document must be a mapping, got {type(document).__name__}"
        )
    try:
        return Document.model_validate(document)
    except ValidationError as exc:
        first = exc.errors()[0]
        raise MalformedDocumentError(
            f"Invalid document: {first['msg']}", _position_from_loc(tuple(first["loc"]))
        ) from exc


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _rows_from_table(block: Block) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    pending = list(block.content)
    while pending:
        node = pending.pop(0)
        if node.type != "tableRow":
            pending[:0] = node.content
            continue
        cells = [c for c in node.content if c.type in ("tableCell", "tableHeader")]
        if not cells or any(c.type == "tableHeader" for c in cells):
            continue
        row: dict[str, Any] = {
            "key": cells[0].plain_text().strip(),
            "value": cells[1].plain_text() if len(cells) > 1 else "",
            "enabled": not node.attrs.get("disabled", False),
        }
        if "type" in node.attrs:
            row["type"] = node.attrs["type"]
        rows.append(row)
    return rows


@dataclass
class _Draft:
    method: Optional[str] = None
    url: str = ""
    headers: list[KeyValueRow] = field(default_factory=list)
    query_params: list[KeyValueRow] = field(default_factory=list)
    path_params: list[KeyValueRow] = field(default_factory=list)
    body: Optional[Body] = None
    graphql_variables: Optional[str] = None
    auth: Optional[AuthSpec] = None
    runtime_variables: list[dict[str, str]] = field(default_factory=list)


class RequestCompiler:
    """Turn a document into a request. Stateless and safe to share."""

    def compile(self, document: Union[Document, dict[str, Any]]) -> RequestState:
        """Compile *document* into a fresh :class:`RequestState`.

        Raises:
            MalformedDocumentError: On structural problems, with the block
                position.
        """
        doc = parse_document(document)
        draft = _Draft()
        self._visit(doc.content, (), draft)
        return self._finish(draft)

    def _visit(self, blocks: list[Block], prefix: tuple[int, ...], draft: _Draft) -> None:
        for index, block in enumerate(blocks):
            position = prefix + (index,)
            kind = BlockType.from_name(block.type)
            handler = getattr(self, f"_on_{kind.name.lower()}")
            handler(block, position, draft)

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    def _rows(
        self,
        block: Block,
        position: tuple[int, ...],
        row_model: type[BaseModel] = KeyValueRow,
    ) -> list[Any]:
        raw = block.attrs.get("rows")
        if raw is None:
            raw = _rows_from_table(block)
        if not isinstance(raw, list):
            raise MalformedDocumentError(f"'{block.type}' rows must be a list", position)

        rows = []
        for number, item in enumerate(raw):
            if not isinstance(item, dict):
                raise MalformedDocumentError(
                    f"Row {number} of '{block.type}' must be a mapping", position
                )
            data = dict(item)
            data["key"] = _coerce_text(data.get("key")).strip()
            data["value"] = _coerce_text(data.get("value"))
            try:
                row = row_model.model_validate(data)
            except ValidationError as exc:
                raise MalformedDocumentError(
                    f"Invalid row {number} of '{block.type}': {exc.errors()[0]['msg']}",
                    position,
                ) from exc
            if row.enabled and row.key:
                rows.append(row)
        return rows

    # ------------------------------------------------------------------
    # Block handlers
    # ------------------------------------------------------------------

    def _on_container(self, block: Block, position: tuple[int, ...], draft: _Draft) -> None:
        self._visit(block.content, position, draft)

    def _on_method(self, block: Block, position: tuple[int, ...], draft: _Draft) -> None:
        method = _coerce_text(block.attrs.get("method") or block.plain_text()).strip()
        if not _METHOD_TOKEN.fullmatch(method):
            raise MalformedDocumentError(f"Invalid request method '{method}'", position)
        draft.method = method.upper()

    def _on_url(self, block: Block, position: tuple[int, ...], draft: _Draft) -> None:
        draft.url = block.plain_text().strip()

    def _on_headers_table(self, block: Block, position: tuple[int, ...], draft: _Draft) -> None:
        draft.headers.extend(self._rows(block, position))

    def _on_query_table(self, block: Block, position: tuple[int, ...], draft: _Draft) -> None:
        draft.query_params.extend(self._rows(block, position))

    def _on_path_table(self, block: Block, position: tuple[int, ...], draft: _Draft) -> None:
        draft.path_params.extend(self._rows(block, position))

    def _on_json_body(self, block: Block, position: tuple[int, ...], draft: _Draft) -> None:
        draft.body = JsonBody(text=strip_json_comments(block.plain_text()))

    def _on_xml_body(self, block: Block, position: tuple[int, ...], draft: _Draft) -> None:
        draft.body = XmlBody(text=block.plain_text())

    def _on_yaml_body(self, block: Block, position: tuple[int, ...], draft: _Draft) -> None:
        draft.body = YamlBody(text=block.plain_text())

    def _on_url_table(self, block: Block, position: tuple[int, ...], draft: _Draft) -> None:
        draft.body = UrlEncodedBody(rows=self._rows(block, position))

    def _on_multipart_table(self, block: Block, position: tuple[int, ...], draft: _Draft) -> None:
        draft.body = MultipartBody(rows=self._rows(block, position, MultipartRow))

    def _on_binary_file(self, block: Block, position: tuple[int, ...], draft: _Draft) -> None:
        path = block.attrs.get("path") or block.attrs.get("filePath") or block.plain_text()
        path = _coerce_text(path).strip()
        if not path:
            raise MalformedDocumentError("Binary body has no file path", position)
        draft.body = BinaryBody(file_path=path)

    def _on_graphql_query(self, block: Block, position: tuple[int, ...], draft: _Draft) -> None:
        query = _coerce_text(block.attrs.get("query") or block.plain_text())
        match = _GRAPHQL_OPERATION.match(query)
        operation_type = match.group(1) if match else "query"
        operation_name = block.attrs.get("operationName") or (match.group(2) if match else None)
        draft.body = GraphQLBody(
            query=query,
            operation_type=operation_type,
            operation_name=operation_name,
        )

    def _on_graphql_variables(self, block: Block, position: tuple[int, ...], draft: _Draft) -> None:
        variables = block.attrs.get("variables")
        draft.graphql_variables = (
            _coerce_text(variables) if variables is not None else block.plain_text()
        )

    def _on_auth(self, block: Block, position: tuple[int, ...], draft: _Draft) -> None:
        auth_type = block.attrs.get("authType") or block.attrs.get("type")
        if not auth_type:
            raise MalformedDocumentError("Auth block has no 'authType'", position)
        params = block.attrs.get("params")
        if isinstance(params, dict):
            values = {str(k): _coerce_text(v) for k, v in params.items()}
        else:
            values = {row.key: row.value for row in self._rows(block, position)}
        draft.auth = AuthSpec(type=str(auth_type), params=values)

    def _on_runtime_variables(self, block: Block, position: tuple[int, ...], draft: _Draft) -> None:
        draft.runtime_variables.extend(
            {"key": row.key, "value": row.value} for row in self._rows(block, position)
        )

    def _on_assertions_table(self, block: Block, position: tuple[int, ...], draft: _Draft) -> None:
        # Read from the document by the assertions extension.
        pass

    def _on_pre_request_script(
        self, block: Block, position: tuple[int, ...], draft: _Draft
    ) -> None:
        # Scripts run in the scripting extension, not at compile time.
        pass

    def _on_post_response_script(
        self, block: Block, position: tuple[int, ...], draft: _Draft
    ) -> None:
        pass

    def _on_unknown(self, block: Block, position: tuple[int, ...], draft: _Draft) -> None:
        logger.debug("Ignoring unknown block type '%s' at %s", block.type, position)

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _finish(self, draft: _Draft) -> RequestState:
        body = draft.body
        if isinstance(body, GraphQLBody):
            body.variables = draft.graphql_variables or ""

        method = draft.method
        if isinstance(body, GraphQLBody):
            protocol = "graphql"
            method = method or "POST"
        elif method is not None and method.lower() in SOCKET_PROTOCOLS:
            protocol = method.lower()
        else:
            protocol = "rest"

        request = RequestState(
            protocol=protocol,
            method=method or "GET",
            url=draft.url,
            headers=draft.headers,
            query_params=draft.query_params,
            path_params=draft.path_params,
            auth=draft.auth,
        )
        if body is not None:
            request.body = body

        kind = request.body_kind
        explicit = request.get_header("Content-Type")
        implied = CANONICAL_CONTENT_TYPES.get(kind)
        if explicit is None and implied is not None:
            request.add_header("Content-Type", implied)
        if kind is BodyKind.MULTIPART:
            request.content_type = explicit or "multipart/form-data"
        else:
            request.content_type = explicit or implied

        request.metadata["body_kind"] = kind.value
        if draft.runtime_variables:
            request.metadata["runtime_variables"] = draft.runtime_variables
        return request
