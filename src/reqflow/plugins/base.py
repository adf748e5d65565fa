"""Abstract base class for reqflow extensions, and the API handed to them.

Every extension must subclass :class:`Extension` and implement the
:attr:`~Extension.name` property. Hooks are contributed from
:meth:`Extension.setup`, which receives an :class:`ExtensionApi` bound to
the extension's name and protocol scope. ``on_init`` and ``cleanup`` are
optional; their default implementations do nothing.

Extensions are registered as entry points in the ``reqflow.extensions``
group and discovered at runtime by
:class:`~reqflow.plugins.manager.ExtensionManager`.

Example:
    Minimal extension::

        class TraceIdExtension(Extension):
            @property
            def name(self) -> str:
                return "trace-id"

            def setup(self, api: ExtensionApi) -> None:
                api.register_hook(Stage.PRE_SEND, self.add_trace_id, priority=10)

            def add_trace_id(self, ctx: HookContext) -> None:
                ctx.add_header("X-Trace-Id", uuid.uuid4().hex)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Union

from reqflow.models import ANY_PROTOCOL, GlobalConfig, Stage
from reqflow.plugins.registry import HookHandler, HookRegistration, HookRegistry


class Extension(ABC):
    """Base class for all reqflow extensions.

    The extension lifecycle is:

    1. Instantiation -- the manager calls the no-arg constructor.
    2. :meth:`on_init` -- called once with the global configuration.
    3. :meth:`setup` -- called once with an :class:`ExtensionApi`; this is
       where hooks are registered.
    4. Hooks run zero or more times, once per matching pipeline stage.
    5. :meth:`cleanup` -- called when the extension is unloaded.

    Extensions never see environment values or the variable resolver.
    Secrets only reach hooks that run after secure substitution, as part of
    the already-substituted request.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique extension name; also the extension's response metadata namespace."""
        ...

    @property
    def version(self) -> str:
        return "0.1.0"

    @property
    def description(self) -> str:
        return ""

    @property
    def protocols(self) -> tuple[str, ...]:
        """Protocols this extension's hooks apply to. Defaults to every protocol."""
        return (ANY_PROTOCOL,)

    def on_init(self, config: GlobalConfig) -> None:
        """Called once when the extension is loaded.

        Args:
            config: The effective global configuration.
        """

    def setup(self, api: ExtensionApi) -> None:
        """Register hooks through *api*."""

    def cleanup(self) -> None:
        """Release resources acquired in :meth:`on_init` or :meth:`setup`."""


class ExtensionApi:
    """Registration surface for one extension.

    Every hook registered through this object is owned by the extension and
    scoped to its :attr:`Extension.protocols`, so unloading the extension
    removes all of them at once.
    """

    def __init__(self, registry: HookRegistry, extension: Extension) -> None:
        self._registry = registry
        self._extension = extension

    @property
    def extension_id(self) -> str:
        return self._extension.name

    def register_hook(
        self,
        stage: Union[Stage, str],
        handler: HookHandler,
        priority: Optional[int] = None,
    ) -> list[HookRegistration]:
        """Register *handler* at *stage* for each of the extension's protocols.

        Args:
            stage: A hookable stage or its string value.
            handler: Sync or async callable receiving a
                :class:`~reqflow.plugins.hooks.HookContext`.
            priority: Lower runs first; ``None`` means the registry default.

        Returns:
            One registration per protocol scope.

        Raises:
            ConfigurationError: If the stage is unknown or not hookable.
        """
        return [
            self._registry.register(
                protocol,
                stage,
                handler,
                priority=priority,
                extension_id=self._extension.name,
            )
            for protocol in self._extension.protocols
        ]
