"""Trusted handling of environment values and captured variables.

This is the only package that reads variable values. The pipeline hands
extensions a request in which substitution has already happened; it never
hands them an :class:`Environment`, a :class:`ProcessVariableStore`, or a
:class:`SecureVariableResolver`.
"""

from reqflow.secure.environment import Environment, parse_env_text
from reqflow.secure.process_store import ProcessVariableStore
from reqflow.secure.resolver import SecureVariableResolver

__all__ = [
    "Environment",
    "ProcessVariableStore",
    "SecureVariableResolver",
    "parse_env_text",
]
