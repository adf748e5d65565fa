"""Extension manager -- discovery, loading, hot reload, and lifecycle.

This module contains :class:`ExtensionManager`, which discovers extensions
registered as Python entry points, applies enable/disable filtering from
the global configuration, and connects each loaded extension to the shared
:class:`~reqflow.plugins.registry.HookRegistry` through an
:class:`~reqflow.plugins.base.ExtensionApi`.

The entry-point group used for discovery is ``reqflow.extensions``.
Third-party packages register extensions in their ``pyproject.toml``::

    [project.entry-points."reqflow.extensions"]
    my-extension = "my_package.extension:MyExtension"
"""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Optional

from reqflow.exceptions import ExtensionError
from reqflow.models import GlobalConfig
from reqflow.plugins.base import Extension, ExtensionApi
from reqflow.plugins.registry import HookRegistry

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "reqflow.extensions"
"""The entry-point group name used for extension discovery."""


def _is_allowed(name: str, config: GlobalConfig) -> bool:
    enabled = set(config.extensions.enabled)
    if enabled and name not in enabled:
        logger.debug("Extension '%s' not in enabled list, skipping", name)
        return False
    if name in config.extensions.disabled:
        logger.debug("Extension '%s' is disabled, skipping", name)
        return False
    return True


class ExtensionManager:
    """Discovers, loads and unloads reqflow extensions.

    When the *enabled* list in :class:`~reqflow.models.ExtensionsConfig` is
    non-empty only those extensions load; otherwise every discovered
    extension not listed in *disabled* loads.

    Example::

        registry = HookRegistry()
        manager = ExtensionManager(registry, config)
        manager.load_builtins()
        manager.discover()
    """

    def __init__(self, registry: HookRegistry, config: Optional[GlobalConfig] = None) -> None:
        self._registry = registry
        self._config = config or GlobalConfig()
        self._extensions: dict[str, Extension] = {}

    @property
    def registry(self) -> HookRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover(self) -> list[str]:
        """Load every allowed extension from the ``reqflow.extensions`` group.

        Extensions already loaded under the same name are skipped.

        Returns:
            Names of the extensions that were loaded by this call. Entry
            points that fail to import or initialise are logged and skipped.
        """
        loaded_names: list[str] = []
        for ep in importlib.metadata.entry_points(group=ENTRY_POINT_GROUP):
            name = ep.name
            if name in self._extensions or not _is_allowed(name, self._config):
                continue
            try:
                extension_cls = ep.load()
                self.load_extension(extension_cls())
                loaded_names.append(name)
            except Exception as exc:
                logger.warning("Failed to load extension '%s': %s", name, exc)
        return loaded_names

    def load_builtins(self) -> list[str]:
        """Load the extensions shipped with reqflow, honouring enable/disable lists."""
        from reqflow.plugins import builtin_extensions

        loaded_names: list[str] = []
        for extension in builtin_extensions():
            if extension.name in self._extensions or not _is_allowed(extension.name, self._config):
                continue
            self.load_extension(extension)
            loaded_names.append(extension.name)
        return loaded_names

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_extension(self, extension: Extension) -> None:
        """Initialise *extension* and let it register its hooks.

        If :meth:`~reqflow.plugins.base.Extension.setup` raises, any hooks it
        registered before failing are removed again.

        Raises:
            ExtensionError: If an extension with the same name is loaded, or
                setup fails.
        """
        name = extension.name
        if name in self._extensions:
            raise ExtensionError(f"Extension '{name}' is already loaded")

        extension.on_init(self._config)
        try:
            extension.setup(ExtensionApi(self._registry, extension))
        except Exception as exc:
            self._registry.unregister_all(name)
            raise ExtensionError(f"Extension '{name}' failed to set up: {exc}") from exc
        self._extensions[name] = extension
        logger.info("Loaded extension '%s' v%s", name, extension.version)

    def unload_extension(self, name: str) -> int:
        """Remove *name*'s hooks and call its ``cleanup``.

        Returns:
            The number of hook registrations removed.

        Raises:
            ExtensionError: If no extension with that name is loaded.
        """
        extension = self.get_extension(name)
        removed = self._registry.unregister_all(name)
        del self._extensions[name]
        try:
            extension.cleanup()
        except Exception as exc:
            logger.warning("Error cleaning up extension '%s': %s", name, exc)
        logger.info("Unloaded extension '%s' (%d hooks removed)", name, removed)
        return removed

    def reload_extension(self, name: str, extension: Optional[Extension] = None) -> None:
        """Unload *name* and load *extension* (or a fresh instance of the same class).

        Executions already inside a stage keep the handler snapshot they
        started with.
        """
        current = self.get_extension(name)
        replacement = extension if extension is not None else type(current)()
        self.unload_extension(name)
        self.load_extension(replacement)

    # ------------------------------------------------------------------
    # Querying
    # ------------------------------------------------------------------

    def get_extension(self, name: str) -> Extension:
        try:
            return self._extensions[name]
        except KeyError:
            raise ExtensionError(f"Extension '{name}' is not loaded") from None

    def list_extensions(self) -> list[dict[str, str]]:
        """Return ``name``, ``version``, ``description`` and ``protocols`` per loaded extension."""
        return [
            {
                "name": ext.name,
                "version": ext.version,
                "description": ext.description,
                "protocols": ", ".join(ext.protocols),
            }
            for ext in self._extensions.values()
        ]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def cleanup(self) -> None:
        """Unload every extension. Cleanup failures are logged, not raised."""
        for name in list(self._extensions):
            self.unload_extension(name)
