"""Extension commands -- show loaded extensions and their hooks."""

from __future__ import annotations

from collections import Counter

import typer

from reqflow.exceptions import ReqflowError
from reqflow.output import error, print_table

extensions_app = typer.Typer(no_args_is_help=True)


@extensions_app.command("list")
def extensions_list() -> None:
    """List built-in and installed extensions with their hook counts.

    Example::

        reqflow extensions list
        reqflow --json extensions list
    """
    from reqflow.config import resolve_config
    from reqflow.plugins import ExtensionManager, HookRegistry

    try:
        config = resolve_config()
        registry = HookRegistry(default_priority=config.pipeline.default_priority)
        manager = ExtensionManager(registry, config)
        manager.load_builtins()
        manager.discover()
    except ReqflowError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code)

    hooks = Counter(reg.extension_id for reg in registry.registrations())
    rows = [
        [
            ext["name"],
            ext["version"],
            ext["protocols"],
            str(hooks.get(ext["name"], 0)),
            ext["description"],
        ]
        for ext in manager.list_extensions()
    ]
    print_table(["name", "version", "protocols", "hooks", "description"], rows, title="Extensions")
    manager.cleanup()
