"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~reqflow.exceptions.ReqflowError` subclass.

Example::

    $ reqflow send broken.json
    $ echo $?
    7   # EXIT_MALFORMED_DOCUMENT -- the request document could not be compiled
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or configuration."""

EXIT_RESOLUTION_FAILURE = 3
"""A variable template could not be resolved during secure substitution."""

EXIT_TRANSPORT_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_MALFORMED_DOCUMENT = 7
"""The request document could not be compiled."""

EXIT_EXTENSION_ERROR = 10
"""An extension failed to load or one of its hooks failed."""

EXIT_CANCELLED = 130
"""The execution was cancelled before it completed."""
