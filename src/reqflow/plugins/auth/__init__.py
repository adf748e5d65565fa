"""Credential injection extension.

See Also:
    :class:`~reqflow.plugins.auth.plugin.AuthExtension`
"""

from reqflow.plugins.auth.plugin import AuthExtension, normalize_auth_type

__all__ = ["AuthExtension", "normalize_auth_type"]
