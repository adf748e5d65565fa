"""One "send": the full pipeline from document to response document.

:class:`RequestPipeline` wires the sequencer, coordinator and
post-processor together around a single :class:`PipelineContext` per
call. Every outcome produces a document:

* **succeeded** -- the rendered response (which may be a 4xx/5xx).
* **failed** -- an ``error`` block, for malformed documents, unresolved
  variables, and transport failures.
* **cancelled** -- a ``cancelled`` block.

Example::

    pipeline = RequestPipeline.create(project_dir=".")
    result = await pipeline.send(document)
    print(result.status, result.document.block_types())
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from reqflow.client.response import synthetic_error_response
from reqflow.client.transport import HttpxTransport, Transport
from reqflow.document.blocks import Document
from reqflow.document.compiler import RequestCompiler, parse_document
from reqflow.exceptions import (
    CancelledError,
    DispatchRejectedError,
    MalformedDocumentError,
    ReqflowError,
    ResolutionError,
    TransportError,
)
from reqflow.models import GlobalConfig, PipelineConfig, Stage
from reqflow.pipeline.context import CancellationToken, PipelineContext
from reqflow.pipeline.coordinator import ExecutionCoordinator
from reqflow.pipeline.postprocess import (
    ResponsePostProcessor,
    render_cancelled,
    render_error,
)
from reqflow.pipeline.sequencer import StageSequencer
from reqflow.plugins.manager import ExtensionManager
from reqflow.plugins.registry import HookRegistry
from reqflow.plugins.scripting import ScriptEvaluator, ScriptingExtension
from reqflow.secure.environment import Environment
from reqflow.secure.process_store import ProcessVariableStore
from reqflow.secure.resolver import SecureVariableResolver

logger = logging.getLogger(__name__)


class ExecutionStatus(str, enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ExecutionResult:
    """Outcome of :meth:`RequestPipeline.send`.

    Attributes:
        status: How the execution ended.
        document: The rendered response, error or cancellation document.
        context: The execution's context, for inspection.
        error: The error that ended a failed or cancelled execution.
    """

    status: ExecutionStatus
    document: Document
    context: PipelineContext
    error: Optional[ReqflowError] = None

    @property
    def succeeded(self) -> bool:
        return self.status is ExecutionStatus.SUCCEEDED


class RequestPipeline:
    """Execute request documents end to end.

    Args:
        registry: Hook registry shared with the extension manager.
        resolver: Trusted variable resolver.
        transport: Dispatch capability.
        config: Pipeline settings.
        compiler: Request compiler; a default one when omitted.
        process_store: Where ``runtime-variables`` captures are saved.
    """

    def __init__(
        self,
        registry: HookRegistry,
        resolver: SecureVariableResolver,
        transport: Transport,
        config: Optional[PipelineConfig] = None,
        compiler: Optional[RequestCompiler] = None,
        process_store: Optional[ProcessVariableStore] = None,
    ) -> None:
        self._config = config or PipelineConfig()
        self._registry = registry
        self._resolver = resolver
        self._process_store = process_store
        self.extensions: Optional[ExtensionManager] = None
        self._sequencer = StageSequencer(
            registry,
            resolver,
            compiler=compiler,
            strict_substitution=self._config.strict_substitution,
        )
        self._coordinator = ExecutionCoordinator(
            transport, cancel_grace_seconds=self._config.cancel_grace_seconds
        )
        self._post_processor = ResponsePostProcessor(self._sequencer)

    @classmethod
    def create(
        cls,
        project_dir: Union[str, Path] = ".",
        config: Optional[GlobalConfig] = None,
        transport: Optional[Transport] = None,
        script_evaluator: Optional[ScriptEvaluator] = None,
    ) -> RequestPipeline:
        """Build a pipeline for *project_dir* with built-in and installed extensions.

        With a *script_evaluator*, the scripting extension is loaded too.
        The returned pipeline's extension manager is available as
        :attr:`extensions`.
        """
        config = config or GlobalConfig()
        environment = Environment.load(
            project_dir,
            active=config.pipeline.active_environment,
            use_hierarchy=config.pipeline.use_env_hierarchy,
        )
        process_store = ProcessVariableStore(project_dir)
        registry = HookRegistry(default_priority=config.pipeline.default_priority)
        manager = ExtensionManager(registry, config)
        manager.load_builtins()
        if script_evaluator is not None:
            manager.load_extension(ScriptingExtension(script_evaluator))
        manager.discover()

        pipeline = cls(
            registry,
            SecureVariableResolver(environment, process_store),
            transport or HttpxTransport(config.request),
            config=config.pipeline,
            process_store=process_store,
        )
        pipeline.extensions = manager
        return pipeline

    @property
    def registry(self) -> HookRegistry:
        return self._registry

    @property
    def transport(self) -> Transport:
        return self._coordinator.transport

    def list_variable_names(self) -> frozenset[str]:
        """Names (never values) of the variables templates can use."""
        return self._resolver.list_names()

    async def aclose(self) -> None:
        await self._coordinator.transport.aclose()

    async def send(
        self,
        document: Union[Document, dict[str, Any]],
        token: Optional[CancellationToken] = None,
    ) -> ExecutionResult:
        """Run *document* through every stage and render the outcome.

        Args:
            document: Request document, as a model or raw mapping.
            token: Cancellation token; a fresh one when omitted. A token
                serves a single send.

        Returns:
            The :class:`ExecutionResult`. Expected failures are reported
            through it rather than raised.
        """
        try:
            doc = parse_document(document)
        except MalformedDocumentError as exc:
            context = PipelineContext(document=Document(), token=token or CancellationToken())
            context.stage = Stage.DOCUMENT_COMPILATION
            return self._failed(context, exc)

        context = PipelineContext(document=doc, token=token or CancellationToken())
        logger.debug("[%s] starting execution", context.execution_id)

        try:
            await self._sequencer.run_request_stages(context)
            context.stage = Stage.DISPATCH
            context.dispatched_request = context.request.model_copy(deep=True)
            context.captures["req"].update(context.dispatched_request.trace())
            response = await self._coordinator.execute(context.dispatched_request, context.token)
        except CancelledError as exc:
            if not context.token.dispatched:
                context.dispatched_request = None
            return self._cancelled(context, exc)
        except TransportError as exc:
            context.response = synthetic_error_response(context.request, exc)
            return self._failed(context, exc)
        except DispatchRejectedError as exc:
            context.dispatched_request = None
            return self._failed(context, exc)
        except (MalformedDocumentError, ResolutionError) as exc:
            return self._failed(context, exc)

        context.stage = Stage.RESPONSE_RECEIPT
        context.response = response
        context.captures["res"] = response.capture_view()

        try:
            rendered = await self._post_processor.post_process(context)
        except CancelledError as exc:
            return self._cancelled(context, exc)

        self._save_runtime_variables(context)
        logger.debug(
            "[%s] finished: %d %s in %.1f ms",
            context.execution_id, response.status, response.status_text, response.elapsed_ms,
        )
        return ExecutionResult(ExecutionStatus.SUCCEEDED, rendered, context)

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def _failed(self, context: PipelineContext, error: ReqflowError) -> ExecutionResult:
        logger.debug("[%s] failed at %s: %s", context.execution_id, context.stage, error)
        return ExecutionResult(
            ExecutionStatus.FAILED, render_error(context, error), context, error
        )

    def _cancelled(self, context: PipelineContext, error: CancelledError) -> ExecutionResult:
        logger.debug("[%s] cancelled at %s", context.execution_id, context.stage)
        return ExecutionResult(
            ExecutionStatus.CANCELLED, render_cancelled(context), context, error
        )

    def _save_runtime_variables(self, context: PipelineContext) -> None:
        rows = context.request.metadata.get("runtime_variables") or []
        if not rows or self._process_store is None:
            return
        if context.response is None or not context.response.ok:
            return
        values = {
            row["key"]: self._resolver.capture_value(row["value"], context) for row in rows
        }
        try:
            self._process_store.update(values)
        except OSError as exc:
            logger.warning("Could not save runtime variables: %s", exc)
