"""Hook registry -- who runs at which stage, for which protocol, in what order.

A :class:`HookRegistry` is an ordinary object created by whoever builds the
pipeline and passed to both the :class:`~reqflow.plugins.manager.ExtensionManager`
(which fills it) and the :class:`~reqflow.pipeline.sequencer.StageSequencer`
(which reads it). There is no module-level instance.

Ordering rules:

* Lower ``priority`` runs first. Hooks registered without a priority get
  the registry's default (100).
* Equal priorities run in registration order. Re-registering the same
  ``(protocol, stage, handler)`` updates the priority and owner but keeps
  the original registration slot.
* :meth:`HookRegistry.handlers_for` merges the exact protocol with the
  ``"any"`` scope and returns a tuple snapshot, so concurrent registration
  never changes what a running stage iterates over.

Example::

    registry = HookRegistry()
    registry.register("rest", Stage.PRE_SEND, add_trace_id, priority=10)
    for registration in registry.handlers_for("rest", Stage.PRE_SEND):
        registration.handler(ctx)
"""

from __future__ import annotations

import itertools
import threading
from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from reqflow.exceptions import ConfigurationError
from reqflow.models import ANY_PROTOCOL, Stage

HookHandler = Callable[[Any], Any]
"""A hook callable; receives a HookContext and may return an awaitable."""

DEFAULT_PRIORITY = 100


@dataclass(frozen=True)
class HookRegistration:
    """One registered handler.

    Attributes:
        protocol: Protocol scope (``"rest"``, ``"graphql"``...) or ``"any"``.
        stage: The stage the handler runs in.
        handler: The callable itself.
        priority: Sort key; lower runs first.
        extension_id: Name of the owning extension (``"core"`` for built-in
            pipeline code).
        sequence: Monotonic registration slot used to break priority ties.
    """

    protocol: str
    stage: Stage
    handler: HookHandler
    priority: int
    extension_id: str
    sequence: int


def _coerce_stage(stage: Union[Stage, str]) -> Stage:
    try:
        resolved = Stage(stage)
    except ValueError:
        raise ConfigurationError(f"Unknown pipeline stage '{stage}'") from None
    if not resolved.hookable:
        raise ConfigurationError(
            f"Stage '{resolved.value}' is run by the execution coordinator and cannot be hooked"
        )
    return resolved


class HookRegistry:
    """Thread-safe store of hook registrations keyed by protocol and stage.

    Args:
        default_priority: Priority assigned when :meth:`register` is called
            without one.
    """

    def __init__(self, default_priority: int = DEFAULT_PRIORITY) -> None:
        self._default_priority = default_priority
        self._lock = threading.Lock()
        self._registrations: dict[tuple[str, Stage, HookHandler], HookRegistration] = {}
        self._sequence = itertools.count()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def register(
        self,
        protocol: str,
        stage: Union[Stage, str],
        handler: HookHandler,
        priority: Optional[int] = None,
        extension_id: str = "core",
    ) -> HookRegistration:
        """Add a handler, or update an existing identical registration.

        Args:
            protocol: Protocol name, or ``"any"`` to run for every protocol.
            stage: A hookable :class:`~reqflow.models.Stage` or its value.
            handler: Sync or async callable taking a hook context.
            priority: Sort key; ``None`` means the registry default.
            extension_id: Owner name, used for error attribution and
                :meth:`unregister_all`.

        Returns:
            The stored registration.

        Raises:
            ConfigurationError: If *stage* is unknown or not hookable, or
                *handler* is not callable.
        """
        resolved = _coerce_stage(stage)
        if not callable(handler):
            raise ConfigurationError(f"Hook handler for '{resolved.value}' is not callable")
        if priority is None:
            priority = self._default_priority
        key = (protocol, resolved, handler)

        with self._lock:
            existing = self._registrations.get(key)
            sequence = existing.sequence if existing is not None else next(self._sequence)
            registration = HookRegistration(
                protocol=protocol,
                stage=resolved,
                handler=handler,
                priority=priority,
                extension_id=extension_id,
                sequence=sequence,
            )
            self._registrations[key] = registration
        return registration

    def unregister_all(self, extension_id: str) -> int:
        """Remove every registration owned by *extension_id*.

        Returns:
            The number of registrations removed.
        """
        with self._lock:
            doomed = [
                key for key, reg in self._registrations.items()
                if reg.extension_id == extension_id
            ]
            for key in doomed:
                del self._registrations[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._registrations.clear()

    # ------------------------------------------------------------------
    # Querying
    # ------------------------------------------------------------------

    def handlers_for(
        self, protocol: str, stage: Union[Stage, str]
    ) -> tuple[HookRegistration, ...]:
        """Return the ordered handlers for *protocol* at *stage*.

        Registrations scoped to *protocol* and to ``"any"`` are merged and
        sorted by ``(priority, sequence)``. The result is a snapshot taken
        under the lock.
        """
        resolved = _coerce_stage(stage)
        scopes = {protocol, ANY_PROTOCOL}
        with self._lock:
            matching = [
                reg for reg in self._registrations.values()
                if reg.stage is resolved and reg.protocol in scopes
            ]
        matching.sort(key=lambda reg: (reg.priority, reg.sequence))
        return tuple(matching)

    def registrations(self) -> tuple[HookRegistration, ...]:
        """Snapshot of every registration, in registration order."""
        with self._lock:
            return tuple(sorted(self._registrations.values(), key=lambda reg: reg.sequence))

    def stats(self) -> dict[str, int]:
        """Return the number of registrations per stage value."""
        with self._lock:
            counts = Counter(reg.stage.value for reg in self._registrations.values())
        return dict(counts)

    def __len__(self) -> int:
        with self._lock:
            return len(self._registrations)
