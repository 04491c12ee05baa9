"""Database adapter protocol.

An adapter owns everything driver-specific: opening and pooling
connections, the placeholder style bound SQL is rendered in, and running
one statement to a DB-API cursor. Sessions only ever talk to this
surface, so a new backend is one module plus an entry in the adapter map.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from rowgraph.core.connection import ConnectionConfig
from rowgraph.core.enums import ParamStyle
from rowgraph.core.exceptions import AdapterError


@runtime_checkable
class SyncAdapter(Protocol):
    """Synchronous database adapter protocol."""

    @property
    def paramstyle(self) -> str:
        """DB-API placeholder style statements are rendered in."""
        ...

    def create_pool(self, config: ConnectionConfig) -> Any: ...

    def acquire_connection(self, pool: Any) -> Any: ...

    def release_connection(self, connection: Any, pool: Any) -> None: ...

    def close_pool(self, pool: Any) -> None: ...

    def execute(
        self,
        connection: Any,
        sql: str,
        params: list[Any] | dict[str, Any] | None = None,
    ) -> Any:
        """Run one statement and return its cursor (possibly holding several result sets)."""
        ...


def choose_paramstyle(
    requested: ParamStyle | str | None,
    supported: tuple[ParamStyle, ...],
    driver: str,
) -> ParamStyle:
    """Resolve a requested placeholder style against what a driver accepts.

    The first supported style is the default.
    """
    if requested is None:
        return supported[0]
    try:
        style = ParamStyle(requested)
    except ValueError:
        raise AdapterError(f"Unknown paramstyle: {requested!r}") from None
    if style not in supported:
        allowed = ", ".join(s.value for s in supported)
        raise AdapterError(f"{driver} does not accept paramstyle '{style.value}' (use one of: {allowed})")
    return style
