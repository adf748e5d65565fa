"""Pre-request and post-response scripts.

:class:`ScriptingExtension` runs the last ``pre-request-script`` block of
the document at ``pre-send``, after the faker extension, and the last
``post-response-script`` block at ``post-processing``, after the assertions
extension. Editors may spell the blocks ``pre_script`` / ``post_script``::

    {"type": "pre-request-script", "attrs": {"language": "javascript", "body": "..."}}

Blocks whose body is empty or only comments are skipped. Each run is
bounded by a timeout, set in the global config::

    {"scripting": {"timeout": 5}}

A pre-request script may edit the request or cancel it. Post-response
scripts only report. Both runs are contributed under the ``scripting``
metadata namespace::

    {"pre": {...}, "post": {...}, "passed": 2, "failed": 0}
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Optional

from reqflow.document.blocks import Document
from reqflow.exceptions import ExtensionError
from reqflow.models import (
    GlobalConfig,
    JsonBody,
    KeyValueRow,
    RequestState,
    ResponseState,
    Stage,
    UrlEncodedBody,
    XmlBody,
    YamlBody,
)
from reqflow.plugins.base import Extension, ExtensionApi
from reqflow.plugins.hooks import HookContext
from reqflow.plugins.scripting.evaluator import (
    Script,
    ScriptApi,
    ScriptEvaluator,
    ScriptPhase,
    ScriptRequest,
    ScriptResponse,
    ScriptResult,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
SCRIPT_PRIORITY = 150

_BLOCK_TYPES: dict[str, tuple[str, ...]] = {
    "pre-request": ("pre-request-script", "pre_script"),
    "post-response": ("post-response-script", "post_script"),
}
_PRE_REQUEST_KEY = "scripting.pre-request"

_HASH_COMMENT = re.compile(r"#.*$", re.MULTILINE)
_LINE_COMMENT = re.compile(r"//.*$", re.MULTILINE)
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)


def strip_comments(body: str, language: str) -> str:
    """Return *body* without comments, stripped; empty means nothing to run."""
    if language == "python":
        return _HASH_COMMENT.sub("", body).strip()
    return _LINE_COMMENT.sub("", _BLOCK_COMMENT.sub("", body)).strip()


def find_script(document: Document, phase: ScriptPhase) -> Optional[Script]:
    """The last non-empty script block of *phase* in *document*."""
    script: Optional[Script] = None
    for block in document.find_blocks(*_BLOCK_TYPES[phase]):
        body = block.attrs.get("body")
        if not isinstance(body, str):
            continue
        language = block.attrs.get("language") or "javascript"
        if strip_comments(body, language):
            script = Script(body=body, language=language, phase=phase)
    return script


def _enabled(rows: list[KeyValueRow]) -> dict[str, str]:
    return {row.key: row.value for row in rows if row.enabled}


def _rows(values: dict[str, Any]) -> list[KeyValueRow]:
    return [KeyValueRow(key=key, value=str(value)) for key, value in values.items()]


def request_view(request: RequestState) -> ScriptRequest:
    body: Any = None
    if isinstance(request.body, JsonBody):
        try:
            body = json.loads(request.body.text)
        except ValueError:
            body = request.body.text
    elif isinstance(request.body, (XmlBody, YamlBody)):
        body = request.body.text
    elif isinstance(request.body, UrlEncodedBody):
        body = _enabled(request.body.rows)
    return ScriptRequest(
        url=request.url,
        method=request.method,
        headers=_enabled(request.headers),
        query_params=_enabled(request.query_params),
        path_params=_enabled(request.path_params),
        body=body,
    )


def apply_request(view: ScriptRequest, request: RequestState) -> None:
    """Write a script's edited request back. Disabled rows are dropped."""
    request.url = view.url
    request.method = view.method.upper()
    request.headers = _rows(view.headers)
    request.query_params = _rows(view.query_params)
    request.path_params = _rows(view.path_params)

    body = request.body
    if isinstance(body, JsonBody):
        body.text = view.body if isinstance(view.body, str) else json.dumps(view.body)
    elif isinstance(body, (XmlBody, YamlBody)) and isinstance(view.body, str):
        body.text = view.body
    elif isinstance(body, UrlEncodedBody) and isinstance(view.body, dict):
        body.rows = _rows(view.body)


def response_view(response: ResponseState) -> ScriptResponse:
    return ScriptResponse(
        status=response.status,
        status_text=response.status_text,
        headers={h.key: h.value for h in response.headers},
        body=response.body if not isinstance(response.body, bytes) else None,
        time=response.elapsed_ms,
        size=response.size_bytes,
    )


def _report(result: ScriptResult) -> dict[str, Any]:
    return result.model_dump(exclude={"request"})


class ScriptingExtension(Extension):
    """Run document scripts through an injected :class:`ScriptEvaluator`.

    Args:
        evaluator: The sandbox that runs scripts. Without one, a document
            that carries a script makes the hook fail.
        timeout: Seconds a single script may run. Defaults to the
            ``scripting.timeout`` config value, then 5 seconds.
    """

    def __init__(
        self, evaluator: Optional[ScriptEvaluator] = None, timeout: Optional[float] = None
    ) -> None:
        self._evaluator = evaluator
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "scripting"

    @property
    def description(self) -> str:
        return "Run pre-request and post-response scripts"

    def on_init(self, config: GlobalConfig) -> None:
        if self._timeout is not None:
            return
        settings = (config.model_extra or {}).get("scripting") or {}
        self._timeout = float(settings.get("timeout", DEFAULT_TIMEOUT))

    def setup(self, api: ExtensionApi) -> None:
        api.register_hook(Stage.PRE_SEND, self.run_pre_request, priority=SCRIPT_PRIORITY)
        api.register_hook(
            Stage.POST_PROCESSING, self.run_post_response, priority=SCRIPT_PRIORITY
        )

    async def _run(self, script: Script, api: ScriptApi) -> ScriptResult:
        if self._evaluator is None:
            raise ExtensionError("No script evaluator is configured")
        if not self._evaluator.supports(script.language):
            return ScriptResult(
                success=False, error=f"Unsupported script language '{script.language}'"
            )
        timeout = self._timeout if self._timeout is not None else DEFAULT_TIMEOUT
        try:
            return await asyncio.wait_for(self._evaluator.evaluate(script, api), timeout)
        except asyncio.TimeoutError:
            logger.warning("%s script timed out after %gs", script.phase, timeout)
            return ScriptResult(success=False, error=f"Script timed out after {timeout:g}s")

    async def run_pre_request(self, ctx: HookContext) -> None:
        script = find_script(ctx.document, "pre-request")
        if script is None:
            return
        result = await self._run(script, ScriptApi(request=request_view(ctx.request)))
        if result.success and result.request is not None:
            apply_request(result.request, ctx.request)
        ctx.metadata[_PRE_REQUEST_KEY] = _report(result)
        if result.cancelled:
            ctx.cancel("cancelled by pre-request script")

    async def run_post_response(self, ctx: HookContext) -> None:
        if ctx.response is None:
            return
        report: dict[str, Any] = {}
        if _PRE_REQUEST_KEY in ctx.metadata:
            report["pre"] = ctx.metadata[_PRE_REQUEST_KEY]
        script = find_script(ctx.document, "post-response")
        if script is not None:
            api = ScriptApi(
                request=request_view(ctx.request), response=response_view(ctx.response)
            )
            report["post"] = _report(await self._run(script, api))
        if not report:
            return
        outcomes = [a["passed"] for part in report.values() for a in part["assertions"]]
        report["passed"] = sum(1 for passed in outcomes if passed)
        report["failed"] = sum(1 for passed in outcomes if not passed)
        ctx.contribute(report)
