"""Authentication injection from a request's compiled ``auth`` block.

This module provides :class:`AuthExtension`, which hooks the
``auth-injection`` stage. By then secure substitution has already replaced
``{{TOKEN}}``-style templates in :attr:`RequestState.auth`, so the handler
only places the credential:

* ``bearer`` -- ``Authorization: Bearer <token>``
* ``basic`` -- ``Authorization: Basic <base64(username:password)>`` per :rfc:`7617`
* ``api-key`` -- ``<key>: <value>`` as a header, or a query parameter when
  ``in`` is ``"query"``
* ``oauth2`` -- ``Authorization: <token_type> <access_token>``

A header the document sets explicitly always wins over the injected one.
"""

from __future__ import annotations

import base64
import logging

from reqflow.models import AuthSpec, Stage
from reqflow.plugins.base import Extension, ExtensionApi
from reqflow.plugins.hooks import HookContext

logger = logging.getLogger(__name__)

_TYPE_ALIASES = {
    "bearer": "bearer",
    "bearer-token": "bearer",
    "bearertoken": "bearer",
    "basic": "basic",
    "basic-auth": "basic",
    "basicauth": "basic",
    "api-key": "api-key",
    "apikey": "api-key",
    "api_key": "api-key",
    "oauth2": "oauth2",
    "oauth": "oauth2",
}

_NO_AUTH = {"", "none", "no-auth", "inherit"}


def normalize_auth_type(auth_type: str) -> str:
    """Map the spellings used by documents to a canonical auth type.

    Raises:
        ValueError: If the auth type is not supported.
    """
    lowered = auth_type.strip().lower()
    if lowered in _NO_AUTH:
        return "none"
    try:
        return _TYPE_ALIASES[lowered]
    except KeyError:
        raise ValueError(f"Unsupported auth type '{auth_type}'") from None


class AuthExtension(Extension):
    """Inject credentials described by the document's ``auth`` block."""

    @property
    def name(self) -> str:
        return "auth"

    @property
    def description(self) -> str:
        return "Bearer, basic, API key and OAuth2 credential injection"

    def setup(self, api: ExtensionApi) -> None:
        api.register_hook(Stage.AUTH_INJECTION, self.inject)

    def inject(self, ctx: HookContext) -> None:
        auth = ctx.request.auth
        if auth is None:
            return
        auth_type = normalize_auth_type(auth.type)
        if auth_type == "none":
            return
        if auth_type == "api-key":
            self._inject_api_key(ctx, auth)
            return

        if ctx.request.has_header("Authorization"):
            logger.debug("Explicit Authorization header present, skipping %s auth", auth_type)
            return
        ctx.add_header("Authorization", self._authorization_value(auth_type, auth))

    @staticmethod
    def _authorization_value(auth_type: str, auth: AuthSpec) -> str:
        params = auth.params
        if auth_type == "bearer":
            return f"Bearer {params.get('token', '')}"
        if auth_type == "basic":
            raw = f"{params.get('username', '')}:{params.get('password', '')}"
            encoded = base64.b64encode(raw.encode("utf-8")).decode("ascii")
            return f"Basic {encoded}"
        token_type = params.get("token_type") or params.get("header_prefix") or "Bearer"
        return f"{token_type} {params.get('access_token', '')}"

    @staticmethod
    def _inject_api_key(ctx: HookContext, auth: AuthSpec) -> None:
        params = auth.params
        key = params.get("key") or "X-API-Key"
        value = params.get("value", "")
        placement = params.get("in", "header").lower()
        if placement == "query":
            ctx.add_query_param(key, value)
        elif placement == "header":
            if not ctx.request.has_header(key):
                ctx.add_header(key, value)
        else:
            raise ValueError(f"API key placement must be 'header' or 'query', got '{placement}'")
