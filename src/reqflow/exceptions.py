"""Exception hierarchy for reqflow.

All exceptions inherit from :class:`ReqflowError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`reqflow.exit_codes`.
The CLI entry point in :func:`reqflow.app.main` catches ``ReqflowError``
and exits with the appropriate code.

Subclass hierarchy::

    ReqflowError (exit 1)
    +-- ConfigurationError      (exit 2)
    +-- MalformedDocumentError  (exit 7)
    +-- ResolutionError         (exit 3)
    +-- HookError               (exit 10)
    +-- ExtensionError          (exit 10)
    +-- TransportError          (exit 6)
    +-- CancelledError          (exit 130)
    +-- DispatchRejectedError   (exit 1)

:class:`UnresolvedVariableWarning` is not an error: it is a
:class:`UserWarning` subclass that the resolver records on the pipeline
context instead of raising.
"""

from __future__ import annotations

from typing import Optional

from reqflow.exit_codes import (
    EXIT_CANCELLED,
    EXIT_EXTENSION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_MALFORMED_DOCUMENT,
    EXIT_RESOLUTION_FAILURE,
    EXIT_TRANSPORT_ERROR,
)


class ReqflowError(Exception):
    """Base exception for all reqflow errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`reqflow.exit_codes`.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(ReqflowError):
    """Raised for invalid configuration: bad config files, unknown hook stages."""

    exit_code = EXIT_INVALID_USAGE


class MalformedDocumentError(ReqflowError):
    """Raised when a request document cannot be compiled.

    Args:
        message: Description of the structural problem.
        position: Index path of the offending block inside the document
            (``(2,)`` for the third top-level block, ``(0, 1)`` for the
            second child of the first container block).
    """

    exit_code = EXIT_MALFORMED_DOCUMENT

    def __init__(self, message: str, position: tuple[int, ...] = ()):
        location = "/".join(str(i) for i in position) or "<document>"
        super().__init__(f"{message} (block {location})")
        self.position = position


class ResolutionError(ReqflowError):
    """Raised when secure substitution leaves variables unresolved.

    Only the variable *names* are carried, never any value.
    """

    exit_code = EXIT_RESOLUTION_FAILURE

    def __init__(self, message: str, names: tuple[str, ...] = ()):
        super().__init__(message)
        self.names = names


class HookError(ReqflowError):
    """A single hook handler failed.

    Hook errors are isolated: the sequencer records them on the pipeline
    context and moves on to the next handler.

    Args:
        extension_id: Name of the extension that owns the failing handler.
        stage: Value of the stage the handler was registered for.
        cause: The original exception.
    """

    exit_code = EXIT_EXTENSION_ERROR

    def __init__(self, extension_id: str, stage: str, cause: Optional[BaseException] = None):
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Hook from extension '{extension_id}' failed at stage '{stage}'{detail}")
        self.extension_id = extension_id
        self.stage = stage
        self.cause = cause


class ExtensionError(ReqflowError):
    """Raised when an extension fails to load, or is loaded twice."""

    exit_code = EXIT_EXTENSION_ERROR


class TransportError(ReqflowError):
    """Raised on network-level failures or when no transport handles a protocol."""

    exit_code = EXIT_TRANSPORT_ERROR


class CancelledError(ReqflowError):
    """The execution was cancelled. A terminal state, not a failure.

    Not to be confused with :class:`asyncio.CancelledError`, which this
    package never raises to callers.
    """

    exit_code = EXIT_CANCELLED


class DispatchRejectedError(ReqflowError):
    """Raised when a cancellation token that already dispatched is reused."""


class UnresolvedVariableWarning(UserWarning):
    """A ``{{name}}`` template had no value in any variable namespace.

    Args:
        name: The variable name as written inside the braces.
        location: Where the template was found (``"url"``, ``"header:Accept"``...).
    """

    def __init__(self, name: str, location: str = ""):
        where = f" in {location}" if location else ""
        super().__init__(f"Unresolved variable '{name}'{where}")
        self.name = name
        self.location = location
