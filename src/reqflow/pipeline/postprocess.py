"""Stage 8 and rendering of the response document.

A successful execution renders blocks in this order::

    response-body
    <one block per metadata namespace, in hook registration order>
    response-headers
    request-trace

Namespaces nobody registered a hook for (set directly on the response)
follow the registered ones, in insertion order.

Metadata from the ``assertions`` namespace renders as
``assertion-results``; any other namespace renders as ``metadata-results``
carrying the namespace name. Failed and cancelled executions render a
single ``error`` or ``cancelled`` block, followed by the request trace when
a request actually went out.
"""

from __future__ import annotations

import base64
from typing import Any

from reqflow.document.blocks import Block, Document
from reqflow.exceptions import ReqflowError
from reqflow.models import ResponseState
from reqflow.pipeline.context import PipelineContext
from reqflow.pipeline.sequencer import StageSequencer

_UNREGISTERED = float("inf")

_NAMESPACE_BLOCKS = {
    "assertions": "assertion-results",
    "scripting": "script-assertion-results",
}


def _body_attrs(response: ResponseState) -> dict[str, Any]:
    body = response.body
    attrs: dict[str, Any] = {
        "contentType": response.content_type,
        "size": response.size_bytes,
    }
    if isinstance(body, bytes):
        attrs["body"] = base64.b64encode(body).decode("ascii")
        attrs["encoding"] = "base64"
    else:
        attrs["body"] = body
    return attrs


def _metadata_block(namespace: str, data: Any) -> Block:
    block_type = _NAMESPACE_BLOCKS.get(namespace, "metadata-results")
    attrs: dict[str, Any] = {"namespace": namespace}
    if isinstance(data, dict) and block_type != "metadata-results":
        attrs.update(data)
    else:
        attrs["data"] = data
    return Block(type=block_type, attrs=attrs)


def _trace_block(context: PipelineContext) -> Block:
    request = context.dispatched_request or context.request
    return Block(type="request-trace", attrs=request.trace())


def render_response(context: PipelineContext) -> Document:
    """Render the response document for a completed execution."""
    response = context.response
    if response is None:
        raise ValueError("Cannot render a response document without a response")

    blocks = [
        Block(
            type="response-body",
            attrs={
                "status": response.status,
                "statusText": response.status_text,
                "elapsedMs": response.elapsed_ms,
                "url": response.url,
                **_body_attrs(response),
            },
        )
    ]
    namespaces = sorted(
        response.metadata, key=lambda ns: context.metadata_order.get(ns, _UNREGISTERED)
    )
    blocks.extend(_metadata_block(ns, response.metadata[ns]) for ns in namespaces)
    blocks.append(
        Block(
            type="response-headers",
            attrs={"headers": [{"key": h.key, "value": h.value} for h in response.headers]},
        )
    )
    blocks.append(_trace_block(context))
    return Document(content=blocks, attrs={"executionId": context.execution_id})


def render_error(context: PipelineContext, error: BaseException) -> Document:
    """Render a document describing why the execution failed."""
    attrs: dict[str, Any] = {
        "errorType": type(error).__name__,
        "message": str(error),
        "stage": context.stage.value if context.stage is not None else None,
    }
    if isinstance(error, ReqflowError):
        attrs["exitCode"] = error.exit_code
    position = getattr(error, "position", None)
    if position is not None:
        attrs["position"] = list(position)
    names = getattr(error, "names", None)
    if names:
        attrs["variables"] = list(names)

    blocks = [Block(type="error", attrs=attrs)]
    if context.dispatched_request is not None:
        blocks.append(_trace_block(context))
    return Document(content=blocks, attrs={"executionId": context.execution_id})


def render_cancelled(context: PipelineContext) -> Document:
    attrs = {
        "stage": context.stage.value if context.stage is not None else None,
        "reason": context.token.reason or "cancelled",
    }
    blocks = [Block(type="cancelled", attrs=attrs)]
    if context.dispatched_request is not None:
        blocks.append(_trace_block(context))
    return Document(content=blocks, attrs={"executionId": context.execution_id})


class ResponsePostProcessor:
    """Run post-processing hooks, then render the response document."""

    def __init__(self, sequencer: StageSequencer) -> None:
        self._sequencer = sequencer

    async def post_process(self, context: PipelineContext) -> Document:
        """Run stage 8 on *context* and render the result.

        Raises:
            CancelledError: If the token was cancelled before stage 8.
        """
        await self._sequencer.run_post_processing(context)
        return render_response(context)
