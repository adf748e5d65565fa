"""Environment commands -- list sources and variable names.

Values are never printed. ``env names`` shows what templates may refer to:
the active source's names plus ``process.<name>`` for saved captures.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional

import typer

from reqflow.exceptions import ReqflowError
from reqflow.output import error, info, print_table

if TYPE_CHECKING:
    from reqflow.secure import Environment, SecureVariableResolver

env_app = typer.Typer(no_args_is_help=True)


def _resolver(project: Path, env: Optional[str]) -> tuple[Environment, SecureVariableResolver]:
    from reqflow.config import resolve_config
    from reqflow.secure import Environment, ProcessVariableStore, SecureVariableResolver

    config = resolve_config(cli_environment=env, project_dir=project)
    environment = Environment.load(
        project,
        active=config.pipeline.active_environment,
        use_hierarchy=config.pipeline.use_env_hierarchy,
    )
    return environment, SecureVariableResolver(environment, ProcessVariableStore(project))


@env_app.command("list")
def env_list(
    project: Path = typer.Option(Path("."), "--project", "-P", help="Project directory."),
    env: Optional[str] = typer.Option(None, "--env", "-e", help="Source to mark active."),
) -> None:
    """List the project's ``.env*`` sources.

    Example::

        reqflow env list
        reqflow env list --env .env.staging
    """
    try:
        environment, _ = _resolver(project, env)
    except ReqflowError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code)

    sources = environment.sources()
    if not sources:
        info(f"No .env files found in {project.resolve()}")
        return
    rows = [[name, "*" if name == environment.active else ""] for name in sources]
    print_table(["source", "active"], rows, title="Environments")


@env_app.command("names")
def env_names(
    project: Path = typer.Option(Path("."), "--project", "-P", help="Project directory."),
    env: Optional[str] = typer.Option(None, "--env", "-e", help="Source to activate."),
) -> None:
    """List the variable names available to templates (never their values).

    Example::

        reqflow env names --env .env.staging
    """
    try:
        _, resolver = _resolver(project, env)
    except ReqflowError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code)

    print_table(["name"], [[name] for name in sorted(resolver.list_names())], title="Variables")
