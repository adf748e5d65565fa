"""Extension system for reqflow -- hook registry, extension API, and built-ins.

Third-party packages add behaviour to the pipeline by declaring an entry
point in the ``reqflow.extensions`` group. :class:`ExtensionManager`
discovers and loads them; each extension registers stage hooks in a shared
:class:`HookRegistry` through the :class:`ExtensionApi` it is handed.

Key classes:

* :class:`Extension` -- Abstract base class that all extensions extend.
* :class:`ExtensionManager` -- Discovers, loads, reloads and unloads extensions.
* :class:`HookRegistry` -- Ordered, protocol-scoped store of stage hooks.
* :class:`HookContext` -- The view of one execution that a hook receives.

This package never imports :mod:`reqflow.secure`.

Example::

    from reqflow.plugins import ExtensionManager, HookRegistry

    registry = HookRegistry()
    manager = ExtensionManager(registry, config)
    manager.load_builtins()
    manager.discover()
"""

from reqflow.plugins.base import Extension, ExtensionApi
from reqflow.plugins.hooks import HookContext
from reqflow.plugins.manager import ExtensionManager
from reqflow.plugins.registry import HookRegistration, HookRegistry


def builtin_extensions() -> list[Extension]:
    """Return fresh instances of the extensions that ship with reqflow."""
    from reqflow.plugins.assertions import AssertionsExtension
    from reqflow.plugins.auth import AuthExtension
    from reqflow.plugins.faker import FakerExtension
    from reqflow.plugins.graphql import GraphQLExtension

    return [AuthExtension(), FakerExtension(), AssertionsExtension(), GraphQLExtension()]


__all__ = [
    "Extension",
    "ExtensionApi",
    "ExtensionManager",
    "HookContext",
    "HookRegistration",
    "HookRegistry",
    "builtin_extensions",
]
