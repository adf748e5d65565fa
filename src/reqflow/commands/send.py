"""The ``reqflow send`` command -- execute one request document.

The document is a JSON file (``//`` and ``/* */`` comments allowed). The
rendered response document goes to stdout; unresolved-variable warnings
and hook failures go to stderr. The exit code is 0 when a response was
received (whatever its status), otherwise the failing error's exit code.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import signal
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

import typer

from reqflow.exceptions import MalformedDocumentError, ReqflowError
from reqflow.exit_codes import EXIT_CANCELLED
from reqflow.output import debug, error, render_document, warning

if TYPE_CHECKING:
    from reqflow.pipeline.runner import ExecutionResult, RequestPipeline


def load_document_file(path: Path) -> dict[str, Any]:
    """Read a request document from *path*.

    Raises:
        MalformedDocumentError: If the file is not a JSON object.
        ReqflowError: If the file cannot be read.
    """
    from reqflow.document.compiler import strip_json_comments

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ReqflowError(f"Cannot read document {path}: {exc}") from exc
    try:
        data = json.loads(strip_json_comments(text))
    except json.JSONDecodeError as exc:
        raise MalformedDocumentError(f"Document {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedDocumentError(f"Document {path} must be a JSON object")
    return data


async def _execute(pipeline: RequestPipeline, document: dict[str, Any]) -> ExecutionResult:
    from reqflow.pipeline.context import CancellationToken

    token = CancellationToken()
    loop = asyncio.get_running_loop()
    # Signal handlers are unavailable on some platforms; Ctrl-C then aborts the loop.
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, token.cancel, "interrupted")
    try:
        return await pipeline.send(document, token)
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)
        await pipeline.aclose()


def send_command(
    ctx: typer.Context,
    document: Path = typer.Argument(..., help="Path to the request document (JSON)."),
    env: Optional[str] = typer.Option(
        None, "--env", "-e", help="Environment source to activate, e.g. '.env.staging'."
    ),
    project: Path = typer.Option(
        Path("."), "--project", "-P", help="Project directory holding .env files."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Request timeout in seconds."
    ),
) -> None:
    """Send the request described by DOCUMENT and print the response document.

    Example::

        reqflow send requests/login.json --env .env.staging
        reqflow --json send requests/login.json
    """
    from reqflow.config import resolve_config
    from reqflow.pipeline.runner import ExecutionStatus, RequestPipeline

    fmt = (ctx.obj or {}).get("format")
    try:
        config = resolve_config(
            cli_environment=env, cli_timeout=timeout, cli_format=fmt, project_dir=project
        )
        raw = load_document_file(document)
        pipeline = RequestPipeline.create(project_dir=project, config=config)
    except ReqflowError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code)

    debug(f"Variables available: {', '.join(sorted(pipeline.list_variable_names())) or 'none'}")
    result = asyncio.run(_execute(pipeline, raw))

    for item in result.context.warnings:
        warning(str(item))
    for hook_error in result.context.hook_errors:
        warning(str(hook_error))

    render_document(result.document)

    if result.status is ExecutionStatus.CANCELLED:
        raise typer.Exit(code=EXIT_CANCELLED)
    if result.status is ExecutionStatus.FAILED and result.error is not None:
        error(str(result.error))
        raise typer.Exit(code=result.error.exit_code)
