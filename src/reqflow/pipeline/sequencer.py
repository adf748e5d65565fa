"""Run the pipeline's hookable stages in order.

For stages 1-5 :meth:`StageSequencer.run_request_stages` does the
built-in work of a stage first, then that stage's hooks:

1. ``document-compilation`` -- compile the document into the request.
2. ``pre-resolution`` -- hooks only; extensions may declare ``$req`` captures.
3. ``secure-substitution`` -- strict template substitution, then hooks.
4. ``auth-injection`` -- hooks only.
5. ``pre-send`` -- hooks only.

:meth:`StageSequencer.run_post_processing` runs stage 8 hooks against
copies of the request and response.

Within one stage the handler list is read once, at stage entry, and
handlers run one at a time. A failing handler is recorded as a
:class:`~reqflow.exceptions.HookError` and the next handler runs. The
cancellation token is checked before every stage.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Optional

from reqflow.document.compiler import RequestCompiler
from reqflow.exceptions import HookError
from reqflow.models import Stage
from reqflow.pipeline.context import PipelineContext
from reqflow.pipeline.stages import REQUEST_STAGES
from reqflow.plugins.hooks import HookContext
from reqflow.plugins.registry import HookRegistration, HookRegistry
from reqflow.secure.resolver import SecureVariableResolver

logger = logging.getLogger(__name__)


class StageSequencer:
    """Drive stages 1-5 and 8 for one execution at a time.

    Args:
        registry: Source of stage hooks.
        resolver: Used for stage 3 substitution.
        compiler: Used for stage 1; a default compiler when omitted.
        strict_substitution: Fail stage 3 when variables stay unresolved.
    """

    def __init__(
        self,
        registry: HookRegistry,
        resolver: SecureVariableResolver,
        compiler: Optional[RequestCompiler] = None,
        strict_substitution: bool = True,
    ) -> None:
        self._registry = registry
        self._resolver = resolver
        self._compiler = compiler or RequestCompiler()
        self._strict = strict_substitution

    async def run_request_stages(self, context: PipelineContext) -> None:
        """Run stages 1-5 on *context*.

        Raises:
            MalformedDocumentError: From compilation.
            ResolutionError: From strict secure substitution.
            CancelledError: If the token was cancelled before a stage or
                before dispatch.
        """
        for stage in REQUEST_STAGES:
            context.token.raise_if_cancelled(stage)
            context.stage = stage
            if stage is Stage.DOCUMENT_COMPILATION:
                context.request = self._compiler.compile(context.document)
            elif stage is Stage.SECURE_SUBSTITUTION:
                self._resolver.resolve_request(context.request, context, strict=self._strict)
            await self.run_hooks(stage, context)
        context.token.raise_if_cancelled(Stage.DISPATCH)

    async def run_post_processing(self, context: PipelineContext) -> None:
        context.token.raise_if_cancelled(Stage.POST_PROCESSING)
        context.stage = Stage.POST_PROCESSING
        await self.run_hooks(Stage.POST_PROCESSING, context)

    async def run_hooks(self, stage: Stage, context: PipelineContext) -> None:
        """Run every handler registered for *stage* and the context's protocol."""
        handlers = self._registry.handlers_for(context.protocol, stage)
        if not handlers:
            return
        logger.debug(
            "[%s] running %d hooks for stage '%s'", context.execution_id, len(handlers), stage.value
        )
        for registration in handlers:
            if stage is Stage.POST_PROCESSING:
                await self._run_post_processing_hook(registration, context)
            else:
                hook_ctx = self._hook_context(registration, stage, context)
                await self._invoke(registration, hook_ctx, context)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _hook_context(
        self, registration: HookRegistration, stage: Stage, context: PipelineContext
    ) -> HookContext:
        return HookContext(
            stage=stage,
            extension_id=registration.extension_id,
            request=context.request,
            document=context.document,
            metadata=context.metadata,
            protocol=context.protocol,
            warnings=tuple(str(w) for w in context.warnings),
            _cancel=context.token.cancel,
            _captures=context.captures["req"] if stage is Stage.PRE_RESOLUTION else None,
        )

    async def _invoke(
        self, registration: HookRegistration, hook_ctx: HookContext, context: PipelineContext
    ) -> bool:
        try:
            result: Any = registration.handler(hook_ctx)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            error = HookError(registration.extension_id, registration.stage.value, exc)
            context.hook_errors.append(error)
            logger.warning("[%s] %s", context.execution_id, error)
            return False
        return True

    async def _run_post_processing_hook(
        self, registration: HookRegistration, context: PipelineContext
    ) -> None:
        if context.response is None:
            return
        owner = registration.extension_id
        request_view = (context.dispatched_request or context.request).model_copy(deep=True)
        response_view = context.response.model_copy(deep=True)
        hook_ctx = HookContext(
            stage=Stage.POST_PROCESSING,
            extension_id=owner,
            request=request_view,
            document=context.document,
            metadata=context.metadata,
            response=response_view,
            protocol=context.protocol,
            warnings=tuple(str(w) for w in context.warnings),
            _cancel=context.token.cancel,
        )
        if not await self._invoke(registration, hook_ctx, context):
            return

        original = context.response.metadata
        for namespace, value in response_view.metadata.items():
            if namespace != owner and original.get(namespace) != value:
                logger.warning(
                    "[%s] Discarded write by extension '%s' to metadata namespace '%s'",
                    context.execution_id,
                    owner,
                    namespace,
                )
        if owner in response_view.metadata:
            original[owner] = response_view.metadata[owner]
            slot = context.metadata_order.get(owner, registration.sequence)
            context.metadata_order[owner] = min(slot, registration.sequence)
