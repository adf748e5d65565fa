"""Pre-request and post-response scripting extension.

Not loaded by default: it needs a :class:`ScriptEvaluator` from the
embedding application. Pass one to
:meth:`~reqflow.pipeline.runner.RequestPipeline.create` or load
:class:`ScriptingExtension` through the extension manager.
"""

from reqflow.plugins.scripting.evaluator import (
    Script,
    ScriptApi,
    ScriptAssertionResult,
    ScriptEvaluator,
    ScriptLog,
    ScriptRequest,
    ScriptResponse,
    ScriptResult,
)
from reqflow.plugins.scripting.plugin import ScriptingExtension

__all__ = [
    "Script",
    "ScriptApi",
    "ScriptAssertionResult",
    "ScriptEvaluator",
    "ScriptLog",
    "ScriptRequest",
    "ScriptResponse",
    "ScriptResult",
    "ScriptingExtension",
]
