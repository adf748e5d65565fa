"""The execution pipeline: stages 1-8 for one request document.

* :class:`RequestPipeline` -- one call per send, document in, document out.
* :class:`StageSequencer` -- stages 1-5 and 8.
* :class:`ExecutionCoordinator` -- stages 6 and 7.
* :class:`ResponsePostProcessor` -- stage 8 and response rendering.
"""

from reqflow.pipeline.context import CancellationToken, PipelineContext
from reqflow.pipeline.coordinator import ExecutionCoordinator
from reqflow.pipeline.postprocess import ResponsePostProcessor
from reqflow.pipeline.runner import ExecutionResult, ExecutionStatus, RequestPipeline
from reqflow.pipeline.sequencer import StageSequencer

__all__ = [
    "CancellationToken",
    "ExecutionCoordinator",
    "ExecutionResult",
    "ExecutionStatus",
    "PipelineContext",
    "RequestPipeline",
    "ResponsePostProcessor",
    "StageSequencer",
]
