"""Response assertions extension.

See Also:
    :class:`~reqflow.plugins.assertions.plugin.AssertionsExtension`
    :mod:`reqflow.plugins.assertions.engine` for fields and operators.
"""

from reqflow.plugins.assertions.engine import Assertion, run_assertions
from reqflow.plugins.assertions.plugin import AssertionsExtension

__all__ = ["Assertion", "AssertionsExtension", "run_assertions"]
