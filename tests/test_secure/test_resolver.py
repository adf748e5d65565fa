"""Tests for reqflow.secure.resolver -- template substitution."""

from __future__ import annotations

from pathlib import Path

import pytest

from reqflow.document.blocks import Document
from reqflow.exceptions import ResolutionError, UnresolvedVariableWarning
from reqflow.models import (
    AuthSpec,
    GraphQLBody,
    JsonBody,
    KeyValueRow,
    RequestState,
    UrlEncodedBody,
)
from reqflow.pipeline.context import PipelineContext
from reqflow.secure.environment import Environment
from reqflow.secure.process_store import ProcessVariableStore
from reqflow.secure.resolver import SecureVariableResolver


class TestResolve:
    def test_known_variable(self, resolver: SecureVariableResolver, context: PipelineContext) -> None:
        assert resolver.resolve("Bearer {{API_KEY}}", context) == "Bearer abc123"
        assert context.warnings == []

    def test_whitespace_inside_braces(
        self, resolver: SecureVariableResolver, context: PipelineContext
    ) -> None:
        assert resolver.resolve("{{ API_KEY }}", context) == "abc123"

    def test_unknown_variable_stays_literal_with_one_warning(
        self, resolver: SecureVariableResolver, context: PipelineContext
    ) -> None:
        assert resolver.resolve("{{unknown}}", context) == "{{unknown}}"
        assert len(context.warnings) == 1
        warning = context.warnings[0]
        assert isinstance(warning, UnresolvedVariableWarning)
        assert warning.name == "unknown"

    def test_faker_templates_are_left_alone(
        self, resolver: SecureVariableResolver, context: PipelineContext
    ) -> None:
        text = "{{$faker.person.firstName()}}"
        assert resolver.resolve(text, context) == text
        assert context.warnings == []

    def test_text_without_templates(
        self, resolver: SecureVariableResolver, context: PipelineContext
    ) -> None:
        assert resolver.resolve("plain", context) == "plain"
        assert resolver.resolve("", context) == ""

    def test_empty_value_counts_as_resolved(self, context: PipelineContext) -> None:
        resolver = SecureVariableResolver(Environment.from_mapping({"EMPTY": ""}))
        assert resolver.resolve("[{{EMPTY}}]", context) == "[]"
        assert context.warnings == []

    def test_capture_namespace_wins(self, context: PipelineContext) -> None:
        resolver = SecureVariableResolver(Environment.from_mapping({"$req.method": "env"}))
        context.captures["req"]["method"] = "POST"
        assert resolver.resolve("{{$req.method}}", context) == "POST"

    def test_response_captures(
        self, resolver: SecureVariableResolver, context: PipelineContext
    ) -> None:
        context.captures["res"] = {"status": 201, "body": {"user": {"id": 7, "tags": ["a"]}}}
        assert resolver.resolve("{{$res.status}}", context) == "201"
        assert resolver.resolve("{{$res.body.user.id}}", context) == "7"
        assert resolver.resolve("{{$res.body.user.tags}}", context) == '["a"]'

    def test_process_namespace(self, tmp_path: Path, context: PipelineContext) -> None:
        store = ProcessVariableStore(tmp_path)
        store.update({"token": "t-1", "user": {"id": 3}})
        resolver = SecureVariableResolver(Environment.from_mapping({"token": "env"}), store)

        assert resolver.resolve("{{process.token}}", context) == "t-1"
        assert resolver.resolve("{{process.user.id}}", context) == "3"
        assert resolver.resolve("{{token}}", context) == "env"

    def test_process_namespace_without_store(
        self, resolver: SecureVariableResolver, context: PipelineContext
    ) -> None:
        assert resolver.resolve("{{process.token}}", context) == "{{process.token}}"
        assert [w.name for w in context.warnings] == ["process.token"]


class TestListNames:
    def test_names_only(self, resolver: SecureVariableResolver) -> None:
        names = resolver.list_names()
        assert names == frozenset({"API_KEY", "HOST"})
        assert "abc123" not in names

    def test_includes_process_names(self, tmp_path: Path) -> None:
        store = ProcessVariableStore(tmp_path)
        store.update({"session": "s"})
        resolver = SecureVariableResolver(Environment.from_mapping({"A": "1"}), store)
        assert resolver.list_names() == frozenset({"A", "process.session"})


class TestResolveRequest:
    def _request(self) -> RequestState:
        return RequestState(
            url="https://{{HOST}}/items",
            headers=[
                KeyValueRow(key="Authorization", value="Bearer {{API_KEY}}"),
                KeyValueRow(key="X-Off", value="{{nothing}}", enabled=False),
            ],
            query_params=[KeyValueRow(key="key", value="{{API_KEY}}")],
            body=JsonBody(text='{"key": "{{API_KEY}}"}'),
            auth=AuthSpec(type="bearer", params={"token": "{{API_KEY}}"}),
        )

    def test_substitutes_everywhere(
        self, resolver: SecureVariableResolver, context: PipelineContext
    ) -> None:
        request = resolver.resolve_request(self._request(), context)

        assert request.url == "https://api.example.com/items"
        assert request.headers[0].value == "Bearer abc123"
        assert request.headers[1].value == "{{nothing}}"
        assert request.query_params[0].value == "abc123"
        assert request.body.text == '{"key": "abc123"}'
        assert request.auth.params == {"token": "abc123"}
        assert context.warnings == []

    def test_url_encoded_and_graphql_bodies(
        self, resolver: SecureVariableResolver, context: PipelineContext
    ) -> None:
        form = RequestState(body=UrlEncodedBody(rows=[KeyValueRow(key="k", value="{{API_KEY}}")]))
        resolver.resolve_request(form, context)
        assert form.body.rows[0].value == "abc123"

        gql = RequestState(
            body=GraphQLBody(query="query { host(name: \"{{HOST}}\") }", variables='{"k": "{{API_KEY}}"}')
        )
        resolver.resolve_request(gql, context)
        assert "api.example.com" in gql.body.query
        assert gql.body.variables == '{"k": "abc123"}'

    def test_lenient_mode_keeps_literal(
        self, resolver: SecureVariableResolver, context: PipelineContext
    ) -> None:
        request = RequestState(url="https://{{MISSING_HOST}}/x")
        resolver.resolve_request(request, context, strict=False)
        assert request.url == "https://{{MISSING_HOST}}/x"
        assert [w.name for w in context.warnings] == ["MISSING_HOST"]

    def test_warning_location_uses_authored_header_key(
        self, resolver: SecureVariableResolver, context: PipelineContext
    ) -> None:
        request = RequestState(headers=[KeyValueRow(key="X-{{HOST}}", value="{{MISSING}}")])
        resolver.resolve_request(request, context)

        assert request.headers[0].key == "X-api.example.com"
        assert [w.location for w in context.warnings] == ["header:X-{{HOST}}"]

    def test_strict_mode_raises_with_names_only(
        self, resolver: SecureVariableResolver, context: PipelineContext
    ) -> None:
        request = RequestState(
            url="https://{{MISSING_HOST}}/x",
            headers=[
                KeyValueRow(key="Authorization", value="Bearer {{API_KEY}}"),
                KeyValueRow(key="X-A", value="{{MISSING_HOST}}"),
            ],
        )
        with pytest.raises(ResolutionError) as exc_info:
            resolver.resolve_request(request, context, strict=True)

        assert exc_info.value.names == ("MISSING_HOST",)
        assert "abc123" not in str(exc_info.value)

    def test_strict_mode_ignores_earlier_warnings(
        self, resolver: SecureVariableResolver, context: PipelineContext
    ) -> None:
        context.warn_unresolved("earlier")
        request = RequestState(url="https://{{HOST}}/x")
        resolver.resolve_request(request, context, strict=True)
        assert request.url == "https://api.example.com/x"


class TestCaptureValue:
    def test_lone_template_keeps_type(
        self, resolver: SecureVariableResolver, context: PipelineContext
    ) -> None:
        context.captures["res"] = {"body": {"id": 42, "tags": ["a", "b"]}}
        assert resolver.capture_value("{{$res.body.id}}", context) == 42
        assert resolver.capture_value(" {{$res.body.tags}} ", context) == ["a", "b"]

    def test_mixed_text_is_a_string(
        self, resolver: SecureVariableResolver, context: PipelineContext
    ) -> None:
        context.captures["res"] = {"body": {"id": 42}}
        assert resolver.capture_value("user-{{$res.body.id}}", context) == "user-42"

    def test_missing_value_is_none_with_warning(
        self, resolver: SecureVariableResolver, context: PipelineContext
    ) -> None:
        context.captures["res"] = {"body": {}}
        assert resolver.capture_value("{{$res.body.id}}", context) is None
        assert context.warnings[0].name == "$res.body.id"


def test_repr_hides_values(resolver: SecureVariableResolver) -> None:
    assert "abc123" not in repr(resolver)


def test_context_fixture_is_isolated() -> None:
    first = PipelineContext(document=Document())
    second = PipelineContext(document=Document())
    first.captures["req"]["x"] = 1
    assert second.captures["req"] == {}
