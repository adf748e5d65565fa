"""Environment sources: ``.env`` files in the project root.

Each ``.env*`` file is one named source (``.env``, ``.env.staging``,
``.env.staging.eu``...). Exactly one source is active at a time. With
hierarchy enabled, activating ``.env.staging.eu`` layers it over
``.env.staging`` and ``.env``, the most specific file winning.

File format::

    # comment
    API_KEY=abc123
    GREETING="hello world"

Blank lines, ``#`` comments and lines without ``=`` are skipped; a value
wrapped in matching single or double quotes loses the quotes. A key with
nothing after ``=`` is defined with an empty value.

Only :mod:`reqflow.secure` reads values. Everything else gets names.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Optional, Union

from reqflow.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = ".env"


def parse_env_text(text: str) -> dict[str, str]:
    """Parse ``KEY=value`` lines into a dict."""
    values: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        if not key:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        values[key] = value
    return values


def _is_env_file(path: Path) -> bool:
    return path.is_file() and (path.name == ENV_PREFIX or path.name.startswith(ENV_PREFIX + "."))


def _hierarchy(name: str) -> list[str]:
    """``.env.a.b`` -> ``[".env", ".env.a", ".env.a.b"]``."""
    if name == ENV_PREFIX or not name.startswith(ENV_PREFIX + "."):
        return [name]
    parts = name[len(ENV_PREFIX) + 1:].split(".")
    chain = [ENV_PREFIX]
    for i in range(1, len(parts) + 1):
        chain.append(ENV_PREFIX + "." + ".".join(parts[:i]))
    return chain


class Environment:
    """Ordered set of named variable sources with one active source.

    Args:
        sources: Source name to ``{name: value}`` table, in display order.
        active: Name of the active source; defaults to ``.env`` when present,
            else the first source.
        use_hierarchy: Layer the active source over its parents.

    Raises:
        ConfigurationError: If *active* names a source that does not exist.
    """

    def __init__(
        self,
        sources: Mapping[str, Mapping[str, str]],
        active: Optional[str] = None,
        use_hierarchy: bool = False,
    ) -> None:
        self._sources = {name: dict(values) for name, values in sources.items()}
        self._use_hierarchy = use_hierarchy
        self._active: Optional[str] = None
        if active is not None:
            self.activate(active)
        elif ENV_PREFIX in self._sources:
            self._active = ENV_PREFIX
        elif self._sources:
            self._active = next(iter(self._sources))

    @classmethod
    def load(
        cls,
        project_dir: Union[str, Path],
        active: Optional[str] = None,
        use_hierarchy: bool = False,
    ) -> Environment:
        """Read every ``.env*`` file in *project_dir*."""
        root = Path(project_dir)
        sources: dict[str, dict[str, str]] = {}
        if root.is_dir():
            for path in sorted(root.iterdir(), key=lambda p: p.name):
                if not _is_env_file(path):
                    continue
                try:
                    sources[path.name] = parse_env_text(path.read_text(encoding="utf-8"))
                except (OSError, UnicodeDecodeError) as exc:
                    raise ConfigurationError(f"Cannot read environment file {path}: {exc}") from exc
        logger.debug("Loaded %d environment sources from %s", len(sources), root)
        return cls(sources, active=active, use_hierarchy=use_hierarchy)

    @classmethod
    def from_mapping(cls, values: Mapping[str, str], name: str = ENV_PREFIX) -> Environment:
        return cls({name: values}, active=name)

    @property
    def active(self) -> Optional[str]:
        return self._active

    def sources(self) -> list[str]:
        return list(self._sources)

    def activate(self, name: str) -> None:
        if name not in self._sources:
            raise ConfigurationError(
                f"Unknown environment '{name}'. Available: {', '.join(self._sources) or 'none'}"
            )
        self._active = name

    def _effective(self) -> dict[str, str]:
        if self._active is None:
            return {}
        if not self._use_hierarchy:
            return self._sources[self._active]
        merged: dict[str, str] = {}
        for name in _hierarchy(self._active):
            merged.update(self._sources.get(name, {}))
        return merged

    def list_names(self) -> frozenset[str]:
        """Variable names defined by the active source (and its parents)."""
        return frozenset(self._effective())

    def lookup(self, name: str) -> Optional[str]:
        """Return the value of *name*, or ``None`` if it is not defined."""
        return self._effective().get(name)

    def __repr__(self) -> str:
        return f"Environment(sources={self.sources()!r}, active={self._active!r})"
