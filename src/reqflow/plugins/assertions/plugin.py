"""Response assertions declared in ``assertions-table`` blocks.

:class:`AssertionsExtension` hooks ``post-processing``. It reads every
enabled row of every assertions table in the request document, evaluates
it against the received response, and contributes the summary under the
``assertions`` metadata namespace, which the post-processor renders as an
``assertion-results`` block.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from reqflow.models import Stage
from reqflow.plugins.assertions.engine import Assertion, run_assertions
from reqflow.plugins.base import Extension, ExtensionApi
from reqflow.plugins.hooks import HookContext

logger = logging.getLogger(__name__)


def collect_assertions(ctx: HookContext) -> list[Assertion]:
    """Read assertion rows from the document, skipping blank ones."""
    assertions: list[Assertion] = []
    for block in ctx.document.find_blocks("assertions-table"):
        for row in block.attrs.get("rows") or []:
            if not isinstance(row, dict):
                continue
            try:
                assertion = Assertion.model_validate(row)
            except ValidationError as exc:
                logger.warning("Skipping malformed assertion row %r: %s", row, exc)
                continue
            if not (assertion.description or assertion.field or assertion.expected):
                continue
            assertions.append(assertion)
    return assertions


class AssertionsExtension(Extension):
    @property
    def name(self) -> str:
        return "assertions"

    @property
    def description(self) -> str:
        return "Evaluate assertions-table rows against the response"

    def setup(self, api: ExtensionApi) -> None:
        api.register_hook(Stage.POST_PROCESSING, self.evaluate)

    def evaluate(self, ctx: HookContext) -> None:
        if ctx.response is None:
            return
        assertions = collect_assertions(ctx)
        if not assertions:
            return
        summary = run_assertions(assertions, ctx.response)
        logger.debug(
            "Assertions: %d passed, %d failed", summary["passed"], summary["failed"]
        )
        ctx.contribute(summary)
