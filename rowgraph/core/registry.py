"""Template Registry - loads SQL templates from a directory structure.

Namespace convention:
    sql/user/get_by_id.sql       -> statement "user.get_by_id"
    sql/billing/invoice/list.sql -> statement "billing.invoice.list"
    sql/user/_columns.sql        -> fragment "user._columns" (for <include refid=...>)

Leading ``-- @option: value`` comment lines set statement options::

    -- @result_map: blogMap
    -- @result_ordered: true
    SELECT ...
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

from rowgraph.core.config import Configuration
from rowgraph.core.exceptions import DuplicateStatementError, RegistryError, StatementNotFoundError
from rowgraph.core.statement import MappedStatement

logger = logging.getLogger(__name__)

_DIRECTIVE_PATTERN = re.compile(r"^--\s*@(\w+)\s*:\s*(.*?)\s*$")
_FRAGMENT_PREFIX = "_"

_OPTION_PARSERS: dict[str, Any] = {
    "result_map": str,
    "result_sets": str,
    "result_ordered": lambda value: value.lower() in ("true", "yes", "1"),
    "flush_cache": lambda value: value.lower() in ("true", "yes", "1"),
    "fetch_size": int,
}


def parse_directives(path: Path | str, text: str) -> tuple[dict[str, Any], str]:
    """Split leading ``-- @name: value`` lines from *text*."""
    options: dict[str, Any] = {}
    lines = text.splitlines()
    body_start = 0
    for i, line in enumerate(lines):
        stripped = line.strip()
        if not stripped:
            continue
        match = _DIRECTIVE_PATTERN.match(stripped)
        if match is None:
            body_start = i
            break
        name, value = match.groups()
        parser = _OPTION_PARSERS.get(name)
        if parser is None:
            raise RegistryError(f"Unknown option '@{name}' in {path}")
        try:
            options[name] = parser(value)
        except ValueError as e:
            raise RegistryError(f"Invalid value for '@{name}' in {path}: {value!r}") from e
    else:
        body_start = len(lines)
    return options, "\n".join(lines[body_start:]).strip()


class TemplateRegistry:
    """Loads SQL templates from a directory structure into a Configuration.

    The registry is immutable after loading: load once at startup, then
    read-only access for the lifetime of the application. Fragments are
    registered before statements so includes resolve at compile time.

    Args:
        root_dir: Root directory containing SQL files.
        configuration: Target configuration; a new one is created if omitted.
        statement_options: Extra ``build_statement`` options per statement id
            (``result_type``, ``result_map``, ...), overriding file directives.

    Raises:
        DuplicateStatementError: If two files resolve to the same namespace key.
    """

    def __init__(
        self,
        root_dir: Path | str,
        configuration: Configuration | None = None,
        *,
        statement_options: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self._root_dir = Path(root_dir)
        self.configuration = configuration or Configuration()
        self._statement_options = statement_options or {}
        self._statements: dict[str, MappedStatement] = {}
        self._paths: dict[str, Path] = {}
        self._load()

    def _load(self) -> None:
        """Recursively load all .sql files from root directory."""
        if not self._root_dir.exists():
            return

        fragments: list[tuple[str, Path]] = []
        statements: list[tuple[str, Path]] = []
        for sql_file in sorted(self._root_dir.rglob("*.sql")):
            relative = sql_file.relative_to(self._root_dir)
            # Build namespace: remove .sql extension, replace path separators with dots
            parts = list(relative.parts)
            parts[-1] = parts[-1].removesuffix(".sql")
            name = ".".join(parts)

            if name in self._paths:
                raise DuplicateStatementError(name, str(self._paths[name]), str(sql_file))
            self._paths[name] = sql_file
            if parts[-1].startswith(_FRAGMENT_PREFIX):
                fragments.append((name, sql_file))
            else:
                statements.append((name, sql_file))

        for name, sql_file in fragments:
            self.configuration.add_fragment(name, sql_file.read_text(encoding="utf-8").strip())

        for name, sql_file in statements:
            options, template = parse_directives(sql_file, sql_file.read_text(encoding="utf-8"))
            options.update(self._statement_options.get(name, {}))
            self._statements[name] = self.configuration.statement(name, template, **options)

        logger.debug(
            "Loaded %d statements and %d fragments from %s",
            len(statements),
            len(fragments),
            self._root_dir,
        )

    def get(self, name: str) -> MappedStatement:
        """Look up a statement by namespace-qualified name.

        Args:
            name: Dot-separated statement id (e.g., "user.get_by_id").

        Returns:
            The compiled statement.

        Raises:
            StatementNotFoundError: If no statement matches the given name.
        """
        try:
            return self._statements[name]
        except KeyError:
            raise StatementNotFoundError(name) from None

    def has(self, name: str) -> bool:
        """Check if a statement name is registered."""
        return name in self._statements

    @property
    def statement_names(self) -> list[str]:
        """List all registered statement names, sorted alphabetically."""
        return sorted(self._statements.keys())

    def __len__(self) -> int:
        """Number of registered statements."""
        return len(self._statements)
