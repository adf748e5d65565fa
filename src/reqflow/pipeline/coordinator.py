"""Dispatch a finished request through the injected transport.

:class:`ExecutionCoordinator` owns stages 6 (dispatch) and 7 (response
receipt). It guarantees that:

* a request whose token is already cancelled never reaches the transport;
* a token dispatches at most once;
* cancelling the token while the transport runs cancels the transport task
  and, after at most ``cancel_grace_seconds``, raises
  :class:`~reqflow.exceptions.CancelledError`;
* every other transport failure surfaces as
  :class:`~reqflow.exceptions.TransportError`.
"""

from __future__ import annotations

import asyncio
import logging
import time

from reqflow.client.response import build_response_state
from reqflow.client.transport import Transport
from reqflow.exceptions import CancelledError, TransportError
from reqflow.models import RequestState, ResponseState
from reqflow.pipeline.context import CancellationToken

logger = logging.getLogger(__name__)


def _consume_result(task: asyncio.Future[object]) -> None:
    if not task.cancelled():
        task.exception()


class ExecutionCoordinator:
    """Run one request through a :class:`~reqflow.client.transport.Transport`.

    Args:
        transport: The dispatch capability.
        cancel_grace_seconds: How long to wait for the transport task to
            finish after it has been cancelled.
    """

    def __init__(self, transport: Transport, cancel_grace_seconds: float = 2.0) -> None:
        self._transport = transport
        self._grace = cancel_grace_seconds

    @property
    def transport(self) -> Transport:
        return self._transport

    async def execute(self, request: RequestState, token: CancellationToken) -> ResponseState:
        """Dispatch *request* and return the decoded response.

        Raises:
            DispatchRejectedError: If *token* has already dispatched.
            CancelledError: If *token* is cancelled before or during dispatch.
            TransportError: If the transport fails.
        """
        token.claim_dispatch()

        started = time.perf_counter()
        send_task = asyncio.ensure_future(self._transport.send(request, token))
        cancel_task = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait(
                {send_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            send_task.cancel()
            raise
        finally:
            cancel_task.cancel()

        if send_task not in done:
            send_task.cancel()
            await asyncio.wait({send_task}, timeout=self._grace)
            # A transport that outlives the grace period finishes unobserved.
            send_task.add_done_callback(_consume_result)
            logger.debug("Dispatch of %s %s cancelled", request.method, request.url)
            raise CancelledError("Execution cancelled during dispatch")

        try:
            result = send_task.result()
        except TransportError:
            raise
        except asyncio.CancelledError as exc:
            raise CancelledError("Transport was cancelled") from exc
        except Exception as exc:
            raise TransportError(f"Transport failed: {exc}") from exc

        elapsed_ms = (time.perf_counter() - started) * 1000
        return build_response_state(result, elapsed_ms)
