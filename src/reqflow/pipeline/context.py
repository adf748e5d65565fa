"""Per-execution state: :class:`PipelineContext` and :class:`CancellationToken`.

One context and one token are created per send and owned by that send
alone, so neither needs locking.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from reqflow.document.blocks import Document
from reqflow.exceptions import (
    CancelledError,
    DispatchRejectedError,
    HookError,
    UnresolvedVariableWarning,
)
from reqflow.models import RequestState, ResponseState, Stage


class CancellationToken:
    """Cooperative cancellation signal for one execution.

    Cancelling is idempotent. The token also remembers whether it has been
    used for a dispatch, since a token covers exactly one request.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._dispatched = False
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def dispatched(self) -> bool:
        return self._dispatched

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    def raise_if_cancelled(self, stage: Optional[Stage] = None) -> None:
        """Raise :class:`~reqflow.exceptions.CancelledError` if cancelled."""
        if self.cancelled:
            where = f" before stage '{stage.value}'" if stage is not None else ""
            raise CancelledError(f"Execution {self.reason or 'cancelled'}{where}")

    def claim_dispatch(self) -> None:
        """Mark the token as used for a dispatch.

        Raises:
            DispatchRejectedError: If the token already dispatched a request.
            CancelledError: If the token is cancelled; it stays unclaimed.
        """
        if self._dispatched:
            raise DispatchRejectedError("This cancellation token has already dispatched a request")
        self.raise_if_cancelled(Stage.DISPATCH)
        self._dispatched = True


def _empty_captures() -> dict[str, dict[str, Any]]:
    return {"req": {}, "res": {}}


@dataclass
class PipelineContext:
    """Everything one execution reads and writes.

    Attributes:
        document: The request document being executed.
        request: The request under construction (replaced by compilation).
        response: The received response, once there is one.
        token: Cancellation token for this execution.
        metadata: Scratch space shared by hooks.
        warnings: Unresolved-variable warnings, in the order they occurred.
        hook_errors: Failures of individual hook handlers.
        metadata_order: Registration slot of the hook that contributed each
            response metadata namespace.
        captures: ``$req`` / ``$res`` values available to templates.
        dispatched_request: Copy of the request as handed to the transport.
        stage: The stage currently running.
        execution_id: Random identifier used in log lines.
    """

    document: Document
    request: RequestState = field(default_factory=RequestState)
    response: Optional[ResponseState] = None
    token: CancellationToken = field(default_factory=CancellationToken)
    metadata: dict[str, Any] = field(default_factory=dict)
    warnings: list[UnresolvedVariableWarning] = field(default_factory=list)
    hook_errors: list[HookError] = field(default_factory=list)
    metadata_order: dict[str, int] = field(default_factory=dict)
    captures: dict[str, dict[str, Any]] = field(default_factory=_empty_captures)
    dispatched_request: Optional[RequestState] = None
    stage: Optional[Stage] = None
    execution_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @property
    def protocol(self) -> str:
        return self.request.protocol

    def warn_unresolved(self, name: str, location: str = "") -> UnresolvedVariableWarning:
        warning = UnresolvedVariableWarning(name, location)
        self.warnings.append(warning)
        return warning

    def unresolved_names(self) -> list[str]:
        """Distinct unresolved variable names, in first-seen order."""
        return list(dict.fromkeys(w.name for w in self.warnings))
