"""Script evaluation interface and the data exchanged with evaluators.

reqflow does not run scripts itself. An embedding application supplies a
:class:`ScriptEvaluator` (typically a sandboxed JavaScript or Python
runtime) and loads
:class:`~reqflow.plugins.scripting.plugin.ScriptingExtension` with it.

An evaluator receives a :class:`ScriptApi`, a plain-data view of the
request and, for post-response scripts, of the response. A pre-request
script changes the outgoing request by returning the edited view in
:attr:`ScriptResult.request`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

ScriptPhase = Literal["pre-request", "post-response"]


class Script(BaseModel):
    """Source of one script block."""

    body: str
    language: str = "javascript"
    phase: ScriptPhase


class ScriptRequest(BaseModel):
    """The request as a script sees it. Only enabled rows are included."""

    url: str = ""
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    query_params: dict[str, str] = Field(default_factory=dict)
    path_params: dict[str, str] = Field(default_factory=dict)
    body: Any = None


class ScriptResponse(BaseModel):
    status: int = 0
    status_text: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    time: float = 0.0
    size: int = 0


class ScriptApi(BaseModel):
    """Everything a script may read."""

    request: ScriptRequest
    response: Optional[ScriptResponse] = None


class ScriptLog(BaseModel):
    level: str = "log"
    args: list[Any] = Field(default_factory=list)


class ScriptAssertionResult(BaseModel):
    passed: bool
    message: str = ""
    condition: Optional[str] = None
    actual: Any = None
    operator: Optional[str] = None
    expected: Any = None


class ScriptResult(BaseModel):
    """Outcome of one script run.

    Attributes:
        success: ``False`` when the script raised or could not run.
        logs: Console output, in order.
        error: Message of the failure, when *success* is ``False``.
        cancelled: The script asked for the request to be cancelled.
        assertions: Results of the script's own assertions.
        request: Edited request view; ``None`` leaves the request unchanged.
    """

    success: bool = True
    logs: list[ScriptLog] = Field(default_factory=list)
    error: Optional[str] = None
    cancelled: bool = False
    assertions: list[ScriptAssertionResult] = Field(default_factory=list)
    request: Optional[ScriptRequest] = None


class ScriptEvaluator(ABC):
    """Sandboxed runtime injected into the scripting extension."""

    languages: tuple[str, ...] = ("javascript", "python")

    def supports(self, language: str) -> bool:
        return language in self.languages

    @abstractmethod
    async def evaluate(self, script: Script, api: ScriptApi) -> ScriptResult:
        """Run *script* against *api*.

        Script failures are reported through :attr:`ScriptResult.error`;
        exceptions are reserved for failures of the evaluator itself.
        The extension bounds the call with its own timeout and cancels it
        when the timeout expires.
        """
