"""End-to-end tests for reqflow.pipeline.runner.RequestPipeline."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest
from conftest import FakeTransport, make_document, method_block, table_block, url_block

from reqflow.exceptions import (
    CancelledError,
    DispatchRejectedError,
    MalformedDocumentError,
    ResolutionError,
    TransportError,
)
from reqflow.models import PipelineConfig, Stage
from reqflow.pipeline.context import CancellationToken
from reqflow.pipeline.runner import ExecutionStatus, RequestPipeline
from reqflow.plugins.auth import AuthExtension
from reqflow.plugins.hooks import HookContext
from reqflow.plugins.manager import ExtensionManager
from reqflow.plugins.registry import HookRegistry
from reqflow.secure.environment import Environment
from reqflow.secure.process_store import ProcessVariableStore
from reqflow.secure.resolver import SecureVariableResolver


def _api_key_document() -> dict:
    return make_document(
        method_block("GET"),
        url_block("https://{{HOST}}/users"),
        table_block("headers-table", ("Authorization", "Bearer {{API_KEY}}")),
    )


class TestSecretFlow:
    @pytest.mark.asyncio
    async def test_secret_only_reaches_hooks_after_substitution(
        self,
        pipeline: RequestPipeline,
        registry: HookRegistry,
        transport: FakeTransport,
    ) -> None:
        seen: dict[str, str] = {}

        def record(ctx: HookContext) -> None:
            seen[ctx.stage.value] = ctx.request.get_header("Authorization")

        for stage in (
            Stage.DOCUMENT_COMPILATION,
            Stage.PRE_RESOLUTION,
            Stage.AUTH_INJECTION,
            Stage.POST_PROCESSING,
        ):
            registry.register("any", stage, record)

        result = await pipeline.send(_api_key_document())

        assert result.status is ExecutionStatus.SUCCEEDED
        assert seen == {
            "document-compilation": "Bearer {{API_KEY}}",
            "pre-resolution": "Bearer {{API_KEY}}",
            "auth-injection": "Bearer abc123",
            "post-processing": "Bearer abc123",
        }
        sent = transport.calls[0]
        assert sent.url == "https://api.example.com/users"
        assert sent.get_header("Authorization") == "Bearer abc123"

    def test_list_names_never_exposes_values(self, pipeline: RequestPipeline) -> None:
        names = pipeline.list_variable_names()
        assert names == frozenset({"API_KEY", "HOST"})
        assert "abc123" not in names

    @pytest.mark.asyncio
    async def test_auth_extension_end_to_end(
        self, registry: HookRegistry, resolver: SecureVariableResolver, transport: FakeTransport
    ) -> None:
        ExtensionManager(registry).load_extension(AuthExtension())
        pipeline = RequestPipeline(registry, resolver, transport)
        document = make_document(
            url_block("https://{{HOST}}/me"),
            {"type": "auth", "attrs": {"authType": "bearer", "params": {"token": "{{API_KEY}}"}}},
        )

        result = await pipeline.send(document)

        assert result.succeeded
        assert transport.calls[0].get_header("Authorization") == "Bearer abc123"


class TestResponseDocument:
    @pytest.mark.asyncio
    async def test_rendered_blocks(
        self, pipeline: RequestPipeline, registry: HookRegistry
    ) -> None:
        registry.register(
            "any",
            Stage.POST_PROCESSING,
            lambda ctx: ctx.contribute({"checked": True}),
            extension_id="checker",
        )
        result = await pipeline.send(_api_key_document())

        assert result.document.block_types() == [
            "response-body",
            "metadata-results",
            "response-headers",
            "request-trace",
        ]
        assert result.document.content[0].attrs["body"] == {"ok": True}
        trace = result.document.content[-1].attrs
        assert trace["method"] == "GET"
        assert trace["url"] == "https://api.example.com/users"
        assert trace["headers"] == [{"key": "Authorization", "value": "Bearer abc123"}]

    @pytest.mark.asyncio
    async def test_error_status_still_succeeds(
        self, registry: HookRegistry, resolver: SecureVariableResolver
    ) -> None:
        transport = FakeTransport(status=404, body={"error": "not found"})
        result = await RequestPipeline(registry, resolver, transport).send(_api_key_document())
        assert result.succeeded
        assert result.document.content[0].attrs["status"] == 404

    @pytest.mark.asyncio
    async def test_unknown_response_charset_still_renders(
        self, registry: HookRegistry, resolver: SecureVariableResolver
    ) -> None:
        transport = FakeTransport(body={"a": 1}, content_type="application/json; charset=bogus")
        result = await RequestPipeline(registry, resolver, transport).send(_api_key_document())

        assert result.succeeded
        assert result.document.content[0].attrs["body"] == {"a": 1}

    @pytest.mark.asyncio
    async def test_request_capture_is_the_dispatched_request(
        self, pipeline: RequestPipeline
    ) -> None:
        result = await pipeline.send(_api_key_document())
        assert result.context.captures["req"]["url"] == "https://api.example.com/users"
        assert result.context.captures["res"]["status"] == 200


class TestFailures:
    @pytest.mark.asyncio
    async def test_unresolved_variable_fails_before_dispatch(
        self, pipeline: RequestPipeline, transport: FakeTransport
    ) -> None:
        document = make_document(
            url_block("https://{{HOST}}/users"),
            table_block("headers-table", ("Authorization", "Bearer {{TOKEN}}")),
        )
        result = await pipeline.send(document)

        assert result.status is ExecutionStatus.FAILED
        assert isinstance(result.error, ResolutionError)
        assert transport.calls == []
        assert result.document.block_types() == ["error"]
        attrs = result.document.content[0].attrs
        assert attrs["exitCode"] == 3
        assert attrs["variables"] == ["TOKEN"]
        assert attrs["stage"] == "secure-substitution"

    @pytest.mark.asyncio
    async def test_lenient_mode_sends_literal(
        self, registry: HookRegistry, resolver: SecureVariableResolver, transport: FakeTransport
    ) -> None:
        pipeline = RequestPipeline(
            registry, resolver, transport, config=PipelineConfig(strict_substitution=False)
        )
        result = await pipeline.send(make_document(url_block("https://x/{{TOKEN}}")))

        assert result.succeeded
        assert transport.calls[0].url == "https://x/{{TOKEN}}"
        assert result.context.unresolved_names() == ["TOKEN"]

    @pytest.mark.asyncio
    async def test_malformed_document(self, pipeline: RequestPipeline) -> None:
        result = await pipeline.send({"type": "doc", "content": [{"attrs": {}}]})
        assert result.status is ExecutionStatus.FAILED
        assert isinstance(result.error, MalformedDocumentError)
        assert result.document.content[0].attrs["stage"] == "document-compilation"

    @pytest.mark.asyncio
    async def test_transport_error_skips_post_processing(
        self, registry: HookRegistry, resolver: SecureVariableResolver
    ) -> None:
        calls: list[str] = []
        registry.register("any", Stage.POST_PROCESSING, lambda ctx: calls.append("called"))
        transport = FakeTransport(error=TransportError("connection refused"))

        result = await RequestPipeline(registry, resolver, transport).send(_api_key_document())

        assert result.status is ExecutionStatus.FAILED
        assert calls == []
        assert result.context.response.status == 0
        assert result.document.block_types() == ["error", "request-trace"]
        assert result.document.content[0].attrs["exitCode"] == 6

    @pytest.mark.asyncio
    async def test_reused_token_is_rejected(
        self, pipeline: RequestPipeline, transport: FakeTransport
    ) -> None:
        token = CancellationToken()
        await pipeline.send(_api_key_document(), token)
        result = await pipeline.send(_api_key_document(), token)

        assert result.status is ExecutionStatus.FAILED
        assert isinstance(result.error, DispatchRejectedError)
        assert result.document.block_types() == ["error"]
        assert len(transport.calls) == 1


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_before_dispatch(
        self, pipeline: RequestPipeline, registry: HookRegistry, transport: FakeTransport
    ) -> None:
        registry.register("any", Stage.AUTH_INJECTION, lambda ctx: ctx.cancel())
        result = await pipeline.send(_api_key_document())

        assert result.status is ExecutionStatus.CANCELLED
        assert isinstance(result.error, CancelledError)
        assert transport.calls == []
        assert result.document.block_types() == ["cancelled"]

    @pytest.mark.asyncio
    async def test_cancelled_during_dispatch(
        self, registry: HookRegistry, resolver: SecureVariableResolver
    ) -> None:
        transport = FakeTransport(delay=10)
        pipeline = RequestPipeline(
            registry, resolver, transport, config=PipelineConfig(cancel_grace_seconds=0.5)
        )
        token = CancellationToken()

        async def cancel_soon() -> None:
            await asyncio.sleep(0.05)
            token.cancel("interrupted")

        canceller = asyncio.ensure_future(cancel_soon())
        result = await pipeline.send(_api_key_document(), token)
        await canceller

        assert result.status is ExecutionStatus.CANCELLED
        assert result.document.block_types() == ["cancelled", "request-trace"]
        assert result.document.content[0].attrs == {"stage": "dispatch", "reason": "interrupted"}


class RoutedTransport(FakeTransport):
    """Recording transport with a per-URL delay."""

    def __init__(self, delays: dict[str, float]) -> None:
        super().__init__()
        self.delays = delays
        self.started: list[str] = []

    async def send(self, request, token):
        self.started.append(request.url)
        await asyncio.sleep(self.delays.get(request.url, 0))
        return await super().send(request, token)


class TestConcurrentExecutions:
    @pytest.mark.asyncio
    async def test_cancelling_one_send_leaves_the_other_alone(
        self, registry: HookRegistry, resolver: SecureVariableResolver
    ) -> None:
        slow_url = "https://api.example.com/slow"
        fast_url = "https://api.example.com/fast"
        transport = RoutedTransport({slow_url: 10, fast_url: 0.1})
        registry.register(
            "any",
            Stage.POST_PROCESSING,
            lambda ctx: ctx.contribute({"url": ctx.request.url}),
            extension_id="echo",
        )
        pipeline = RequestPipeline(
            registry, resolver, transport, config=PipelineConfig(cancel_grace_seconds=0.5)
        )
        slow_token = CancellationToken()

        async def close_slow_tab() -> None:
            await asyncio.sleep(0.05)
            slow_token.cancel("tab closed")

        slow, fast, _ = await asyncio.gather(
            pipeline.send(make_document(url_block(slow_url)), slow_token),
            pipeline.send(make_document(url_block(fast_url))),
            close_slow_tab(),
        )

        assert sorted(transport.started) == [fast_url, slow_url]
        assert slow.status is ExecutionStatus.CANCELLED
        assert slow.document.block_types() == ["cancelled", "request-trace"]
        assert fast.succeeded
        assert fast.context is not slow.context
        assert fast.context.token is not slow_token
        assert not fast.context.token.cancelled
        assert fast.context.response.metadata == {"echo": {"url": fast_url}}
        assert [call.url for call in transport.calls] == [fast_url]


class TestRuntimeVariables:
    def _document(self) -> dict:
        return make_document(
            url_block("https://api.example.com/login"),
            table_block("runtime-variables", ("token", "{{$res.body.token}}")),
        )

    @pytest.mark.asyncio
    async def test_saved_after_ok_response(
        self, registry: HookRegistry, environment: Environment, tmp_path: Path
    ) -> None:
        store = ProcessVariableStore(tmp_path)
        transport = FakeTransport(body={"token": "t-42"})
        pipeline = RequestPipeline(
            registry,
            SecureVariableResolver(environment, store),
            transport,
            process_store=store,
        )
        result = await pipeline.send(self._document())

        assert result.succeeded
        assert json.loads(store.path.read_text()) == {"token": "t-42"}

    @pytest.mark.asyncio
    async def test_not_saved_after_transport_error(
        self, registry: HookRegistry, environment: Environment, tmp_path: Path
    ) -> None:
        store = ProcessVariableStore(tmp_path)
        pipeline = RequestPipeline(
            registry,
            SecureVariableResolver(environment, store),
            FakeTransport(error=TransportError("down")),
            process_store=store,
        )
        await pipeline.send(self._document())
        assert not store.path.exists()


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_loads_project_and_builtins(
        self, isolated_config: Path, transport: FakeTransport
    ) -> None:
        (isolated_config / ".env").write_text("API_KEY=abc123\nHOST=api.example.com\n")

        pipeline = RequestPipeline.create(isolated_config, transport=transport)

        assert pipeline.list_variable_names() == frozenset({"API_KEY", "HOST"})
        assert pipeline.extensions is not None
        assert {e["name"] for e in pipeline.extensions.list_extensions()} >= {
            "auth",
            "faker",
            "assertions",
            "graphql",
        }
        result = await pipeline.send(_api_key_document())
        assert result.succeeded

        await pipeline.aclose()
        assert transport.closed
