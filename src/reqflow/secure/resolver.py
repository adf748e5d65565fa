"""Substitution of ``{{name}}`` templates with environment and captured values.

Three namespaces are consulted, in this order, and the first one that
claims a name decides its value:

1. **Captures** -- ``{{$req.<path>}}`` and ``{{$res.<path>}}`` read values
   computed earlier in the same execution.
2. **Process variables** -- ``{{process.<path>}}`` read the
   :class:`~reqflow.secure.process_store.ProcessVariableStore`.
3. **Environment** -- any other name is looked up in the active
   :class:`~reqflow.secure.environment.Environment`.

``{{$faker...}}`` templates are left alone for the faker extension. A name
no namespace can supply stays in the text as written and an
:class:`~reqflow.exceptions.UnresolvedVariableWarning` is recorded on the
pipeline context. An environment key defined with an empty value resolves
to the empty string.

Resolved values are never logged and never appear in exception messages.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any, Optional

from reqflow.exceptions import ResolutionError
from reqflow.models import (
    AuthSpec,
    BinaryBody,
    GraphQLBody,
    JsonBody,
    KeyValueRow,
    MultipartBody,
    RequestState,
    UrlEncodedBody,
    XmlBody,
    YamlBody,
)
from reqflow.paths import MISSING, lookup_path
from reqflow.secure.environment import Environment
from reqflow.secure.process_store import ProcessVariableStore

if TYPE_CHECKING:
    from reqflow.pipeline.context import PipelineContext

logger = logging.getLogger(__name__)

TEMPLATE_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
FAKER_PREFIX = "$faker."
CAPTURE_PREFIXES = ("$req.", "$res.")
PROCESS_PREFIX = "process."


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


class SecureVariableResolver:
    """Resolve templates against captures, process variables and the environment.

    Args:
        environment: The environment sources, with one active.
        process_store: Optional store behind ``{{process.*}}``.
    """

    def __init__(
        self,
        environment: Environment,
        process_store: Optional[ProcessVariableStore] = None,
    ) -> None:
        self._environment = environment
        self._process_store = process_store

    def __repr__(self) -> str:
        return f"SecureVariableResolver(active={self._environment.active!r})"

    def list_names(self) -> frozenset[str]:
        """Names that can be resolved, without their values."""
        names = set(self._environment.list_names())
        if self._process_store is not None:
            names.update(f"{PROCESS_PREFIX}{name}" for name in self._process_store.names())
        return frozenset(names)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _lookup(self, name: str, context: PipelineContext) -> Any:
        if name.startswith(CAPTURE_PREFIXES):
            namespace, _, path = name[1:].partition(".")
            value = lookup_path(context.captures.get(namespace, {}), path)
        elif name.startswith(PROCESS_PREFIX):
            if self._process_store is None:
                return MISSING
            value = self._process_store.lookup(name[len(PROCESS_PREFIX):])
        else:
            value = self._environment.lookup(name)
        return MISSING if value is None else value

    # ------------------------------------------------------------------
    # Substitution
    # ------------------------------------------------------------------

    def resolve(self, text: str, context: PipelineContext, location: str = "") -> str:
        """Substitute every template in *text*.

        Unknown names are left literal and recorded as warnings on *context*;
        this method never raises for them.
        """
        if not text or "{{" not in text:
            return text

        def _substitute(match: re.Match[str]) -> str:
            name = match.group(1).strip()
            if name.startswith(FAKER_PREFIX):
                return match.group(0)
            value = self._lookup(name, context)
            if value is MISSING:
                context.warn_unresolved(name, location)
                return match.group(0)
            return _stringify(value)

        return TEMPLATE_PATTERN.sub(_substitute, text)

    def capture_value(self, template: str, context: PipelineContext) -> Any:
        """Evaluate a runtime-variable expression.

        A template that is exactly one ``{{...}}`` keeps the type of the
        value it refers to (numbers, objects...); anything else is text.
        Returns ``None`` when a lone template cannot be resolved.
        """
        match = TEMPLATE_PATTERN.fullmatch(template.strip())
        if match is not None:
            value = self._lookup(match.group(1).strip(), context)
            if value is MISSING:
                context.warn_unresolved(match.group(1).strip(), "runtime-variables")
                return None
            return value
        return self.resolve(template, context, "runtime-variables")

    def _resolve_rows(self, rows: list[KeyValueRow], context: PipelineContext, kind: str) -> None:
        for row in rows:
            if not row.enabled:
                continue
            location = f"{kind}:{row.key}"
            row.key = self.resolve(row.key, context, location)
            row.value = self.resolve(row.value, context, location)

    def _resolve_auth(self, auth: AuthSpec, context: PipelineContext) -> None:
        auth.params = {
            key: self.resolve(value, context, f"auth:{key}") for key, value in auth.params.items()
        }

    def resolve_request(
        self, request: RequestState, context: PipelineContext, strict: bool = False
    ) -> RequestState:
        """Substitute templates throughout *request*, in place.

        Covers the URL, header/query/path rows, body text and rows, GraphQL
        query and variables, the binary file path, and auth parameters.

        Args:
            request: The request to update.
            context: Supplies captures and collects warnings.
            strict: Raise instead of leaving unresolved templates behind.

        Returns:
            The same *request*.

        Raises:
            ResolutionError: When *strict* and any variable stayed
                unresolved. Only names are reported.
        """
        before = len(context.warnings)

        request.url = self.resolve(request.url, context, "url")
        self._resolve_rows(request.headers, context, "header")
        self._resolve_rows(request.query_params, context, "query")
        self._resolve_rows(request.path_params, context, "path")

        body = request.body
        if isinstance(body, (JsonBody, XmlBody, YamlBody)):
            body.text = self.resolve(body.text, context, "body")
        elif isinstance(body, (UrlEncodedBody, MultipartBody)):
            self._resolve_rows(body.rows, context, "body")
        elif isinstance(body, BinaryBody):
            body.file_path = self.resolve(body.file_path, context, "body:file")
        elif isinstance(body, GraphQLBody):
            body.query = self.resolve(body.query, context, "graphql:query")
            body.variables = self.resolve(body.variables, context, "graphql:variables")

        if request.auth is not None:
            self._resolve_auth(request.auth, context)

        missing = list(dict.fromkeys(w.name for w in context.warnings[before:]))
        if missing:
            logger.debug("Unresolved variables after substitution: %s", ", ".join(missing))
            if strict:
                raise ResolutionError(
                    f"Unresolved variables: {', '.join(missing)}", tuple(missing)
                )
        return request
