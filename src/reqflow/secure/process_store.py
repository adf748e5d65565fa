"""Process variables captured from earlier responses.

Values live in ``<project>/.reqflow/process.env.json`` as one JSON object.
Templates read them as ``{{process.<path>}}``; ``runtime-variables`` rows
write them after a successful execution.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Union

from reqflow.config import PROJECT_STATE_DIRNAME, atomic_write
from reqflow.paths import MISSING, lookup_path

logger = logging.getLogger(__name__)

PROCESS_FILENAME = "process.env.json"


class ProcessVariableStore:
    """JSON-file backed store of process variables for one project."""

    def __init__(self, project_dir: Union[str, Path]) -> None:
        self._path = Path(project_dir) / PROJECT_STATE_DIRNAME / PROCESS_FILENAME

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Any]:
        """Return all stored variables; an unreadable file counts as empty."""
        if not self._path.is_file():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable process variables at %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def names(self) -> list[str]:
        return sorted(self.load())

    def lookup(self, path: str) -> Any:
        """Return the value at dot-path *path*, or :data:`~reqflow.paths.MISSING`."""
        return lookup_path(self.load(), path)

    def update(self, values: Mapping[str, Any]) -> None:
        """Merge *values* into the store and write it atomically."""
        if not values:
            return
        merged = self.load()
        merged.update(values)
        atomic_write(self._path, json.dumps(merged, indent=2, default=str) + "\n")
        logger.debug("Saved %d process variables to %s", len(values), self._path)

    def clear(self) -> None:
        if self._path.is_file():
            self._path.unlink()
