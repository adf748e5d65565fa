"""Shared test fixtures for reqflow.

Provides document builders, a recording transport, isolated configuration
directories, and output-state management. These fixtures are discovered
by pytest automatically.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import pytest
from typer.testing import CliRunner

from reqflow.client.transport import Transport, TransportResult
from reqflow.models import RequestState
from reqflow.output import OutputFormat, OutputManager, reset_output, set_output
from reqflow.pipeline.context import CancellationToken, PipelineContext
from reqflow.pipeline.runner import RequestPipeline
from reqflow.plugins.registry import HookRegistry
from reqflow.secure.environment import Environment
from reqflow.secure.resolver import SecureVariableResolver
from reqflow.document.blocks import Document


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager keeps references to sys.stdout/sys.stderr. CliRunner
    swaps those streams, so a manager left over from one test would write
    to a closed file in the next.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Document helpers
# ---------------------------------------------------------------------------


def make_document(*blocks: dict[str, Any]) -> dict[str, Any]:
    """Build a raw request document from block dicts."""
    return {"type": "doc", "content": list(blocks)}


def method_block(method: str) -> dict[str, Any]:
    return {"type": "method", "attrs": {"value": method}}


def url_block(url: str) -> dict[str, Any]:
    return {"type": "url", "text": url}


def table_block(block_type: str, *rows: tuple[str, str], **extra: Any) -> dict[str, Any]:
    return {
        "type": block_type,
        "attrs": {"rows": [{"key": k, "value": v, "enabled": True} for k, v in rows], **extra},
    }


def json_body_block(text: str) -> dict[str, Any]:
    return {"type": "json-body", "text": text}


# ---------------------------------------------------------------------------
# Recording transport
# ---------------------------------------------------------------------------


class FakeTransport(Transport):
    """Transport that records requests and returns a canned result.

    Args:
        status: Status code to return.
        body: JSON-serialisable body, sent as ``application/json``.
        headers: Extra response headers.
        delay: Seconds to sleep before answering.
        error: Exception to raise instead of answering.
        content_type: Content-Type header of the answer.
    """

    def __init__(
        self,
        status: int = 200,
        body: Any = None,
        headers: Optional[list[tuple[str, str]]] = None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
        content_type: str = "application/json",
    ) -> None:
        self.status = status
        self.body = {"ok": True} if body is None else body
        self.headers = headers or []
        self.delay = delay
        self.error = error
        self.content_type = content_type
        self.calls: list[RequestState] = []
        self.closed = False

    async def send(self, request: RequestState, token: CancellationToken) -> TransportResult:
        self.calls.append(request.model_copy(deep=True))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return TransportResult(
            status=self.status,
            reason="OK" if self.status < 400 else "Error",
            headers=[("Content-Type", self.content_type), *self.headers],
            content=json.dumps(self.body).encode("utf-8"),
            url=request.url,
        )

    async def aclose(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def registry() -> HookRegistry:
    return HookRegistry()


@pytest.fixture
def environment() -> Environment:
    """Single ``.env`` source defining ``API_KEY`` and ``HOST``."""
    return Environment.from_mapping({"API_KEY": "abc123", "HOST": "api.example.com"})


@pytest.fixture
def resolver(environment: Environment) -> SecureVariableResolver:
    return SecureVariableResolver(environment)


@pytest.fixture
def context() -> PipelineContext:
    return PipelineContext(document=Document())


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def pipeline(
    registry: HookRegistry, resolver: SecureVariableResolver, transport: FakeTransport
) -> RequestPipeline:
    """Pipeline with no extensions loaded and the recording transport."""
    return RequestPipeline(registry, resolver, transport)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_CONFIG_HOME and XDG_DATA_HOME into *tmp_path*, clears the
    REQFLOW_* environment variables, and changes into *tmp_path*.

    Returns:
        The tmp_path root directory.
    """
    monkeypatch.setattr("reqflow.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in ("REQFLOW_ENV", "REQFLOW_TIMEOUT", "REQFLOW_ENV_HIERARCHY"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager for the test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()
