"""Tests for reqflow.document.compiler -- document to RequestState."""

from __future__ import annotations

import pytest

from conftest import json_body_block, make_document, method_block, table_block, url_block
from reqflow.document.blocks import BlockType, Document
from reqflow.document.compiler import RequestCompiler, parse_document, strip_json_comments
from reqflow.exceptions import MalformedDocumentError
from reqflow.models import BodyKind, GraphQLBody, JsonBody, MultipartBody, UrlEncodedBody


@pytest.fixture
def compiler() -> RequestCompiler:
    return RequestCompiler()


def _content_type_rows(request) -> list[str]:
    return [h.value for h in request.headers if h.key.lower() == "content-type"]


# ---------------------------------------------------------------------------
# Content-Type stamping
# ---------------------------------------------------------------------------


class TestContentType:
    def test_multipart_without_explicit_header_has_no_content_type(
        self, compiler: RequestCompiler
    ) -> None:
        doc = make_document(
            method_block("POST"),
            url_block("https://api.example.com/upload"),
            table_block("multipart-table", ("name", "report"), ("note", "hello")),
        )
        request = compiler.compile(doc)

        assert isinstance(request.body, MultipartBody)
        assert not request.has_header("Content-Type")
        assert _content_type_rows(request) == []
        assert request.content_type == "multipart/form-data"

    def test_json_body_gets_exactly_one_content_type(self, compiler: RequestCompiler) -> None:
        doc = make_document(
            method_block("POST"),
            url_block("https://api.example.com/items"),
            json_body_block('{"name": "widget"}'),
        )
        request = compiler.compile(doc)

        assert _content_type_rows(request) == ["application/json"]
        assert request.content_type == "application/json"

    def test_explicit_content_type_is_not_duplicated(self, compiler: RequestCompiler) -> None:
        doc = make_document(
            table_block("headers-table", ("content-type", "application/vnd.api+json")),
            json_body_block("{}"),
        )
        request = compiler.compile(doc)

        assert _content_type_rows(request) == ["application/vnd.api+json"]
        assert request.content_type == "application/vnd.api+json"

    def test_url_encoded_body(self, compiler: RequestCompiler) -> None:
        doc = make_document(table_block("url-table", ("a", "1"), ("b", "2")))
        request = compiler.compile(doc)

        assert isinstance(request.body, UrlEncodedBody)
        assert [r.key for r in request.body.rows] == ["a", "b"]
        assert request.get_header("Content-Type") == "application/x-www-form-urlencoded"

    def test_no_body_no_content_type(self, compiler: RequestCompiler) -> None:
        request = compiler.compile(make_document(url_block("https://example.com")))
        assert request.body_kind is BodyKind.NONE
        assert request.content_type is None
        assert request.headers == []


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------


class TestBlocks:
    def test_every_block_type_has_a_handler(self) -> None:
        for kind in BlockType:
            assert hasattr(RequestCompiler, f"_on_{kind.name.lower()}"), kind

    def test_method_and_url(self, compiler: RequestCompiler) -> None:
        request = compiler.compile(
            make_document(method_block("patch"), url_block("  https://example.com/x  "))
        )
        assert request.method == "PATCH"
        assert request.url == "https://example.com/x"
        assert request.protocol == "rest"

    def test_default_method_is_get(self, compiler: RequestCompiler) -> None:
        assert compiler.compile(make_document(url_block("example.com"))).method == "GET"

    def test_disabled_and_blank_rows_are_dropped(self, compiler: RequestCompiler) -> None:
        block = {
            "type": "headers-table",
            "attrs": {
                "rows": [
                    {"key": "Accept", "value": "text/plain", "enabled": True},
                    {"key": "X-Off", "value": "1", "enabled": False},
                    {"key": "  ", "value": "orphan"},
                ]
            },
        }
        request = compiler.compile(make_document(block))
        assert [h.key for h in request.headers] == ["Accept"]

    def test_rows_from_table_nodes(self, compiler: RequestCompiler) -> None:
        def cell(kind: str, text: str) -> dict:
            return {
                "type": kind,
                "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}],
            }

        block = {
            "type": "query-table",
            "content": [
                {"type": "tableRow", "content": [cell("tableHeader", "Key"), cell("tableHeader", "Value")]},
                {"type": "tableRow", "content": [cell("tableCell", "page"), cell("tableCell", "2")]},
                {
                    "type": "tableRow",
                    "attrs": {"disabled": True},
                    "content": [cell("tableCell", "debug"), cell("tableCell", "1")],
                },
            ],
        }
        request = compiler.compile(make_document(block))
        assert [(q.key, q.value) for q in request.query_params] == [("page", "2")]

    def test_container_blocks_are_walked(self, compiler: RequestCompiler) -> None:
        doc = make_document(
            {
                "type": "request",
                "content": [method_block("DELETE"), url_block("https://example.com/items/1")],
            }
        )
        request = compiler.compile(doc)
        assert request.method == "DELETE"
        assert request.url == "https://example.com/items/1"

    def test_unknown_blocks_are_ignored(self, compiler: RequestCompiler) -> None:
        doc = make_document(
            {"type": "paragraph", "content": [{"type": "text", "text": "notes"}]},
            url_block("https://example.com"),
        )
        assert compiler.compile(doc).url == "https://example.com"

    def test_legacy_block_names(self, compiler: RequestCompiler) -> None:
        doc = make_document({"type": "json_body", "text": "{}"}, table_block("query_params", ("q", "x")))
        request = compiler.compile(doc)
        assert isinstance(request.body, JsonBody)
        assert request.query_params[0].key == "q"

    def test_json_comments_are_removed(self, compiler: RequestCompiler) -> None:
        text = '{\n  // owner\n  "name": "a // not a comment", /* inline */ "n": 1\n}'
        request = compiler.compile(make_document(json_body_block(text)))
        assert "owner" not in request.body.text
        assert "inline" not in request.body.text
        assert "a // not a comment" in request.body.text

    def test_last_body_wins(self, compiler: RequestCompiler) -> None:
        doc = make_document(json_body_block("{}"), {"type": "xml-body", "text": "<a/>"})
        assert compiler.compile(doc).body_kind is BodyKind.XML

    def test_templates_are_copied_untouched(self, compiler: RequestCompiler) -> None:
        doc = make_document(
            url_block("https://{{HOST}}/items"),
            table_block("headers-table", ("Authorization", "Bearer {{API_KEY}}")),
        )
        request = compiler.compile(doc)
        assert request.url == "https://{{HOST}}/items"
        assert request.get_header("authorization") == "Bearer {{API_KEY}}"

    def test_graphql_body_sets_protocol_and_operation(self, compiler: RequestCompiler) -> None:
        doc = make_document(
            url_block("https://example.com/graphql"),
            {"type": "graphql-variables", "attrs": {"variables": {"id": 1}}},
            {"type": "graphql-query", "text": "mutation Rename($id: ID!) { rename(id: $id) }"},
        )
        request = compiler.compile(doc)

        assert request.protocol == "graphql"
        assert request.method == "POST"
        assert isinstance(request.body, GraphQLBody)
        assert request.body.operation_type == "mutation"
        assert request.body.operation_name == "Rename"
        assert request.body.variables == '{"id": 1}'
        assert request.get_header("Content-Type") == "application/json"

    def test_socket_method_sets_protocol(self, compiler: RequestCompiler) -> None:
        doc = make_document(
            {"type": "socket-method", "attrs": {"value": "wss"}}, url_block("wss://example.com")
        )
        request = compiler.compile(doc)
        assert request.protocol == "wss"
        assert request.method == "WSS"

    def test_auth_block(self, compiler: RequestCompiler) -> None:
        doc = make_document(
            {"type": "auth", "attrs": {"authType": "bearer", "params": {"token": "{{API_KEY}}"}}}
        )
        request = compiler.compile(doc)
        assert request.auth is not None
        assert request.auth.type == "bearer"
        assert request.auth.params == {"token": "{{API_KEY}}"}

    def test_runtime_variables_go_to_metadata(self, compiler: RequestCompiler) -> None:
        doc = make_document(table_block("runtime-variables", ("user_id", "{{$res.body.id}}")))
        request = compiler.compile(doc)
        assert request.metadata["runtime_variables"] == [
            {"key": "user_id", "value": "{{$res.body.id}}"}
        ]
        assert request.metadata["body_kind"] == "none"

    def test_compile_returns_fresh_state(self, compiler: RequestCompiler) -> None:
        doc = make_document(table_block("headers-table", ("A", "1")))
        first = compiler.compile(doc)
        first.add_header("B", "2")
        assert [h.key for h in compiler.compile(doc).headers] == ["A"]


# ---------------------------------------------------------------------------
# Malformed documents
# ---------------------------------------------------------------------------


class TestMalformed:
    def test_invalid_method_reports_position(self, compiler: RequestCompiler) -> None:
        doc = make_document(
            url_block("https://example.com"),
            {"type": "request", "content": [method_block("GET /x")]},
        )
        with pytest.raises(MalformedDocumentError) as exc_info:
            compiler.compile(doc)
        assert exc_info.value.position == (1, 0)
        assert "block 1/0" in str(exc_info.value)

    def test_rows_must_be_a_list(self, compiler: RequestCompiler) -> None:
        doc = make_document({"type": "headers-table", "attrs": {"rows": "nope"}})
        with pytest.raises(MalformedDocumentError) as exc_info:
            compiler.compile(doc)
        assert exc_info.value.position == (0,)

    def test_binary_block_needs_a_path(self, compiler: RequestCompiler) -> None:
        with pytest.raises(MalformedDocumentError):
            compiler.compile(make_document({"type": "binary-file", "attrs": {}}))

    def test_auth_block_needs_a_type(self, compiler: RequestCompiler) -> None:
        with pytest.raises(MalformedDocumentError):
            compiler.compile(make_document({"type": "auth", "attrs": {"params": {}}}))

    def test_non_mapping_document(self) -> None:
        with pytest.raises(MalformedDocumentError):
            parse_document(["not", "a", "document"])  # type: ignore[arg-type]

    def test_invalid_structure(self) -> None:
        with pytest.raises(MalformedDocumentError) as exc_info:
            parse_document({"type": "doc", "content": [{"type": "url"}, {"attrs": {}}]})
        assert exc_info.value.position == (1,)

    def test_document_instances_pass_through(self) -> None:
        doc = Document()
        assert parse_document(doc) is doc


class TestStripJsonComments:
    def test_escaped_quotes_stay_in_string(self) -> None:
        text = '{"a": "x\\" // y"} // gone'
        assert strip_json_comments(text) == '{"a": "x\\" // y"} '

    def test_unterminated_block_comment(self) -> None:
        assert strip_json_comments("1 /* never closed") == "1 "
