"""The per-handler view that hooks receive.

:class:`HookContext` is built fresh by the stage sequencer for every handler
invocation. What it exposes depends on the stage:

* **Stages 1-5** (compilation through pre-send): ``request`` is the live
  request being built; mutations are visible to later handlers and to the
  transport. ``response`` is ``None``.
* **Stage 8** (post-processing): ``request`` is a copy of the request as it
  was dispatched and ``response`` is a copy of the received response.
  Writing to either has no effect, except through :meth:`HookContext.contribute`,
  which stores data under the extension's own metadata namespace.

The context never carries the variable resolver, the environment table or
process variables.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from reqflow.document.blocks import Document
from reqflow.exceptions import ExtensionError
from reqflow.models import RequestState, ResponseState, Stage


@dataclass
class HookContext:
    """Mutable view passed to one hook handler.

    Attributes:
        stage: The stage being run.
        extension_id: Name of the extension that owns the handler.
        request: The request (live for stages 1-5, a snapshot for stage 8).
        document: The source request document.
        metadata: Scratch space shared by all handlers of one execution.
        response: A copy of the response during post-processing, else ``None``.
        protocol: The request's protocol.
        warnings: Messages of the unresolved-variable warnings recorded so far.
    """

    stage: Stage
    extension_id: str
    request: RequestState
    document: Document
    metadata: dict[str, Any] = field(default_factory=dict)
    response: Optional[ResponseState] = None
    protocol: str = "rest"
    warnings: tuple[str, ...] = ()
    _cancel: Optional[Callable[[str], None]] = field(default=None, repr=False)
    _captures: Optional[dict[str, Any]] = field(default=None, repr=False)

    def add_header(self, key: str, value: str) -> None:
        self.request.add_header(key, value)

    def add_query_param(self, key: str, value: str) -> None:
        self.request.add_query_param(key, value)

    def declare_capture(self, name: str, value: Any) -> None:
        """Make *value* available to later templates as ``{{$req.<name>}}``."""
        if self._captures is None:
            raise ExtensionError("Captures are not available at this stage")
        self._captures[name] = value

    def contribute(self, data: Any) -> None:
        """Store *data* in this extension's response metadata namespace.

        Dicts are merged into an existing dict contribution; anything else
        replaces it.

        Raises:
            ExtensionError: If called outside post-processing.
        """
        if self.response is None:
            raise ExtensionError(
                f"Extension '{self.extension_id}' contributed outside post-processing"
            )
        current = self.response.metadata.get(self.extension_id)
        if isinstance(current, dict) and isinstance(data, dict):
            current.update(data)
        else:
            self.response.metadata[self.extension_id] = data

    def cancel(self, reason: str = "cancelled") -> None:
        """Request cancellation; the pipeline stops before the next stage."""
        if self._cancel is not None:
            self._cancel(reason)
