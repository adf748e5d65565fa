"""GraphQL response summary.

:class:`GraphQLExtension` only applies to the ``graphql`` protocol. During
post-processing it inspects the ``{"data": ..., "errors": [...]}`` envelope
of the response and contributes a short summary under the ``graphql``
namespace: operation type and name, the top-level ``data`` fields, and the
error messages reported by the server.
"""

from __future__ import annotations

from typing import Any

from reqflow.models import GraphQLBody, Stage
from reqflow.plugins.base import Extension, ExtensionApi
from reqflow.plugins.hooks import HookContext


def summarize(body: Any) -> dict[str, Any]:
    """Summarise a decoded GraphQL response body."""
    if not isinstance(body, dict):
        return {"valid": False, "data_fields": [], "errors": [], "has_errors": False}
    data = body.get("data")
    errors = body.get("errors") or []
    messages = [
        err.get("message", str(err)) if isinstance(err, dict) else str(err)
        for err in errors
    ]
    return {
        "valid": "data" in body or "errors" in body,
        "data_fields": sorted(data) if isinstance(data, dict) else [],
        "errors": messages,
        "has_errors": bool(messages),
    }


class GraphQLExtension(Extension):
    @property
    def name(self) -> str:
        return "graphql"

    @property
    def description(self) -> str:
        return "Summarise GraphQL data and errors in responses"

    @property
    def protocols(self) -> tuple[str, ...]:
        return ("graphql",)

    def setup(self, api: ExtensionApi) -> None:
        api.register_hook(Stage.POST_PROCESSING, self.summarize_response)

    def summarize_response(self, ctx: HookContext) -> None:
        if ctx.response is None or not ctx.response.ok:
            return
        summary = summarize(ctx.response.body)
        body = ctx.request.body
        if isinstance(body, GraphQLBody):
            summary["operation_type"] = body.operation_type
            summary["operation_name"] = body.operation_name
        ctx.contribute(summary)
