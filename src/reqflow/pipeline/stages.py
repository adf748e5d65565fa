"""Stage identifiers and the groups the sequencer runs them in.

:class:`~reqflow.models.Stage` itself lives in :mod:`reqflow.models` so that
the extension package can use it without importing the pipeline.
"""

from reqflow.models import HOOKABLE_STAGES, Stage

REQUEST_STAGES: tuple[Stage, ...] = (
    Stage.DOCUMENT_COMPILATION,
    Stage.PRE_RESOLUTION,
    Stage.SECURE_SUBSTITUTION,
    Stage.AUTH_INJECTION,
    Stage.PRE_SEND,
)
"""Stages 1-5, run before dispatch."""

__all__ = ["HOOKABLE_STAGES", "REQUEST_STAGES", "Stage"]
