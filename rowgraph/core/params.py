"""Statement parameter naming.

Turns the arguments of a bound method call into the single parameter object
a template is evaluated against. Explicit names come from ``Param``
annotations (``Annotated[int, Param("user_id")]``); otherwise the declared
parameter name is used, or positional names ``"0"``, ``"1"``, ...
``RowBounds`` and ``ResultHandler`` arguments are not part of the
parameter object.
"""

from __future__ import annotations

import inspect
import typing
from collections.abc import Callable, Collection, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from rowgraph.core.exceptions import UnknownParameterError
from rowgraph.mapping.reflection import raw_type
from rowgraph.mapping.result_context import ResultHandler, RowBounds

if TYPE_CHECKING:
    from rowgraph.core.config import Settings

GENERIC_NAME_PREFIX = "param"


@dataclass(frozen=True)
class Param:
    """Explicit parameter name, used as ``Annotated[T, Param("name")]``."""

    name: str


class ParamMap(dict):
    """Named call parameters.

    Looking up a name the call did not supply raises
    ``UnknownParameterError``, through ``get`` as well as indexing.
    """

    def __missing__(self, key: str) -> Any:
        raise UnknownParameterError(key, sorted(self))

    def get(self, key: str, default: Any = None) -> Any:
        return self[key]


def is_raw_sql(query: str) -> bool:
    """Return True if query is an inline SQL string rather than a statement id.

    Statement ids use dot-notation (e.g. ``users.get_by_id``) and never
    contain whitespace.  Any SQL statement will contain at least one space.
    """
    return any(c.isspace() for c in query)


def wrap_to_map_if_collection(value: Any, actual_param_name: str | None = None) -> Any:
    """Expose a bare list/tuple/set parameter under ``collection``/``list``/``array``."""
    if isinstance(value, (str, bytes, bytearray)) or not isinstance(value, Collection):
        return value
    if isinstance(value, Mapping):
        return value
    param = ParamMap()
    param["collection"] = value
    if isinstance(value, list):
        param["list"] = value
    elif isinstance(value, tuple):
        param["array"] = value
    if actual_param_name is not None:
        param[actual_param_name] = value
    return param


def _is_special(annotation: Any) -> bool:
    tp = raw_type(annotation)
    if not isinstance(tp, type):
        return False
    if issubclass(tp, RowBounds):
        return True
    return issubclass(tp, ResultHandler)


def _explicit_name(annotation: Any) -> str | None:
    if typing.get_origin(annotation) is typing.Annotated:
        for extra in annotation.__metadata__:
            if isinstance(extra, Param):
                return extra.name
    return None


class ParamNameResolver:
    """Maps a function's arguments to template parameter names.

    Args:
        func: The declared method (``self``/``cls`` is skipped).
        settings: ``use_actual_param_name`` decides between declared names
            and positional names for unannotated parameters.
    """

    def __init__(self, func: Callable[..., Any], settings: Settings) -> None:
        self.signature = inspect.signature(func)
        self.use_actual_param_name = settings.use_actual_param_name
        try:
            hints = typing.get_type_hints(func, include_extras=True)
        except (NameError, TypeError):
            hints = {}

        self.names: dict[int, str] = {}
        self.has_param_annotation = False
        self.row_bounds_index: int | None = None
        self.result_handler_index: int | None = None
        parameters = list(self.signature.parameters.values())
        if parameters and parameters[0].name in ("self", "cls"):
            parameters = parameters[1:]
            self._offset = 1
        else:
            self._offset = 0

        for index, param in enumerate(parameters):
            annotation = hints.get(param.name, param.annotation)
            if _is_special(annotation):
                if issubclass(raw_type(annotation), RowBounds):
                    self.row_bounds_index = index
                else:
                    self.result_handler_index = index
                continue
            name = _explicit_name(annotation)
            if name is not None:
                self.has_param_annotation = True
            elif self.use_actual_param_name:
                name = param.name
            else:
                name = str(len(self.names))
            self.names[index] = name

    @property
    def parameter_names(self) -> list[str]:
        return list(self.names.values())

    def bind(self, args: Sequence[Any], kwargs: dict[str, Any]) -> list[Any]:
        """Positional argument values in declaration order, defaults applied."""
        placeholder = [None] * self._offset
        bound = self.signature.bind(*placeholder, *args, **kwargs)
        bound.apply_defaults()
        return list(bound.arguments.values())[self._offset:]

    def get_named_params(self, values: Sequence[Any]) -> Any:
        """Parameter object for one call.

        No parameters gives None; a single unannotated parameter is passed
        through (collections wrapped); otherwise a ``ParamMap`` holding each
        name plus ``param1``, ``param2``, ... aliases.
        """
        if not values or not self.names:
            return None
        if not self.has_param_annotation and len(self.names) == 1:
            index, name = next(iter(self.names.items()))
            return wrap_to_map_if_collection(
                values[index], name if self.use_actual_param_name else None
            )
        param = ParamMap()
        declared = set(self.names.values())
        for position, (index, name) in enumerate(self.names.items()):
            param[name] = values[index]
            generic = f"{GENERIC_NAME_PREFIX}{position + 1}"
            if generic not in declared:
                param[generic] = values[index]
        return param

    def row_bounds(self, values: Sequence[Any]) -> RowBounds | None:
        return None if self.row_bounds_index is None else values[self.row_bounds_index]

    def result_handler(self, values: Sequence[Any]) -> ResultHandler | None:
        return None if self.result_handler_index is None else values[self.result_handler_index]
