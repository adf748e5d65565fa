"""Request and response document trees.

A document is a tree of typed blocks, the JSON shape an editor saves::

    {
        "type": "doc",
        "content": [
            {"type": "method", "attrs": {"value": "POST"}},
            {"type": "url", "text": "https://api.example.com/items"},
            {"type": "headers-table", "attrs": {"rows": [
                {"key": "Accept", "value": "application/json", "enabled": true}
            ]}}
        ]
    }

:class:`BlockType` is the closed set of block kinds the compiler understands.
Anything else maps to :attr:`BlockType.UNKNOWN` and is ignored.
"""

from __future__ import annotations

import enum
from typing import Any, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field


class BlockType(str, enum.Enum):
    """Block kinds recognised by the request compiler."""

    CONTAINER = "container"
    METHOD = "method"
    URL = "url"
    HEADERS_TABLE = "headers-table"
    QUERY_TABLE = "query-table"
    PATH_TABLE = "path-table"
    JSON_BODY = "json-body"
    XML_BODY = "xml-body"
    YAML_BODY = "yaml-body"
    URL_TABLE = "url-table"
    MULTIPART_TABLE = "multipart-table"
    BINARY_FILE = "binary-file"
    GRAPHQL_QUERY = "graphql-query"
    GRAPHQL_VARIABLES = "graphql-variables"
    AUTH = "auth"
    ASSERTIONS_TABLE = "assertions-table"
    RUNTIME_VARIABLES = "runtime-variables"
    PRE_REQUEST_SCRIPT = "pre-request-script"
    POST_RESPONSE_SCRIPT = "post-response-script"
    UNKNOWN = "unknown"

    @classmethod
    def from_name(cls, name: str) -> BlockType:
        """Map a block's ``type`` string (including legacy spellings) to a kind."""
        alias = _ALIASES.get(name)
        if alias is not None:
            return alias
        try:
            resolved = cls(name)
        except ValueError:
            return cls.UNKNOWN
        return resolved


_ALIASES: dict[str, BlockType] = {
    "api": BlockType.CONTAINER,
    "request": BlockType.CONTAINER,
    "socket-request": BlockType.CONTAINER,
    "socket-method": BlockType.METHOD,
    "smethod": BlockType.METHOD,
    "surl": BlockType.URL,
    "json_body": BlockType.JSON_BODY,
    "xml_body": BlockType.XML_BODY,
    "yml_body": BlockType.YAML_BODY,
    "query_params": BlockType.QUERY_TABLE,
    "gqlquery": BlockType.GRAPHQL_QUERY,
    "gqlvariables": BlockType.GRAPHQL_VARIABLES,
    "pre_script": BlockType.PRE_REQUEST_SCRIPT,
    "post_script": BlockType.POST_RESPONSE_SCRIPT,
}


class Block(BaseModel):
    """One node of a document tree.

    Editors attach arbitrary extra keys (``marks``, ``id``...); they are kept.
    """

    model_config = ConfigDict(extra="allow")

    type: str
    attrs: dict[str, Any] = Field(default_factory=dict)
    content: list[Block] = Field(default_factory=list)
    text: Optional[str] = None

    def plain_text(self) -> str:
        """Text of the block: ``text``, else ``attrs.value``/``attrs.body``, else children joined."""
        if self.text is not None:
            return self.text
        for key in ("value", "body"):
            value = self.attrs.get(key)
            if isinstance(value, str):
                return value
        return "".join(child.plain_text() for child in self.content)


class Document(BaseModel):
    """A request or response document."""

    model_config = ConfigDict(extra="allow")

    type: str = "doc"
    attrs: dict[str, Any] = Field(default_factory=dict)
    content: list[Block] = Field(default_factory=list)

    def walk(self) -> Iterator[tuple[tuple[int, ...], Block]]:
        """Yield ``(position, block)`` for every block, depth first."""

        def _walk(blocks: list[Block], prefix: tuple[int, ...]) -> Iterator[tuple[tuple[int, ...], Block]]:
            for index, block in enumerate(blocks):
                position = prefix + (index,)
                yield position, block
                yield from _walk(block.content, position)

        yield from _walk(self.content, ())

    def find_blocks(self, *types: str) -> list[Block]:
        """Return every block, at any depth, whose ``type`` is one of *types*."""
        wanted = set(types)
        return [block for _, block in self.walk() if block.type in wanted]

    def block_types(self) -> list[str]:
        """Top-level block types in order."""
        return [block.type for block in self.content]
