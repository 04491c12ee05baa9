"""Repository layer - methods bound to mapped statements."""

from __future__ import annotations

from rowgraph.core.params import Param
from rowgraph.repository.base import Repository, execute, select

__all__ = [
    "Repository",
    "select",
    "execute",
    "Param",
]
