"""Property access and object construction for result objects.

``MetaObject`` reads and writes dotted/indexed property paths on dataclasses,
pydantic models, plain classes and dicts. ``ObjectFactory`` instantiates
result types and collection properties.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import inspect
import re
import types
import typing
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Union

from rowgraph.core.exceptions import ConstructorResolutionError, MappingConfigurationError

_INDEX_PATTERN = re.compile(r"^([^\[\]]*)\[([^\]]*)\]$")

_PRIMITIVE_TYPES = (int, float, bool)

_LIST_INTERFACES = {
    list,
    tuple,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
    collections.abc.Collection,
    collections.abc.Iterable,
    typing.Sequence,
    typing.MutableSequence,
    typing.Collection,
    typing.Iterable,
}
_SET_INTERFACES = {
    set,
    frozenset,
    collections.abc.Set,
    collections.abc.MutableSet,
    typing.AbstractSet,
    typing.MutableSet,
}
_MAP_INTERFACES = {
    dict,
    collections.abc.Mapping,
    collections.abc.MutableMapping,
    typing.Mapping,
    typing.MutableMapping,
}


def raw_type(annotation: Any) -> Any:
    """Strip Optional[...] and generic parameters from a type annotation."""
    origin = typing.get_origin(annotation)
    if origin is Union or (hasattr(types, "UnionType") and origin is types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        return raw_type(args[0]) if len(args) == 1 else object
    if origin is not None:
        return origin
    if annotation is None or annotation is inspect.Parameter.empty:
        return object
    return annotation


def is_optional(annotation: Any) -> bool:
    origin = typing.get_origin(annotation)
    if origin is Union or (hasattr(types, "UnionType") and origin is types.UnionType):
        return type(None) in typing.get_args(annotation)
    return annotation is None or annotation is object or annotation is Any


def is_collection_type(tp: Any) -> bool:
    tp = raw_type(tp)
    if tp in (str, bytes, bytearray):
        return False
    if tp in _LIST_INTERFACES or tp in _SET_INTERFACES:
        return True
    return isinstance(tp, type) and issubclass(tp, (list, set, frozenset, tuple))


def is_mapping_type(tp: Any) -> bool:
    tp = raw_type(tp)
    if tp in _MAP_INTERFACES:
        return True
    return isinstance(tp, type) and issubclass(tp, dict)


@dataclass(frozen=True)
class PropertyTokenizer:
    """Splits ``orders[0].items`` into ``orders``, index ``0`` and ``items``."""

    name: str
    index: str | None
    children: str | None

    @classmethod
    def parse(cls, path: str) -> PropertyTokenizer:
        head, _, children = path.partition(".")
        match = _INDEX_PATTERN.match(head)
        if match:
            return cls(match.group(1), match.group(2), children or None)
        return cls(head, None, children or None)

    @property
    def indexed_name(self) -> str:
        return self.name if self.index is None else f"{self.name}[{self.index}]"


class Reflector:
    """Cached property metadata for one class."""

    def __init__(self, cls: type) -> None:
        self.type = cls
        self._setter_types: dict[str, Any] = {}
        self._getter_types: dict[str, Any] = {}
        self._frozen = _is_frozen(cls)
        hints = _type_hints(cls)

        for name, annotation in hints.items():
            if name.startswith("_") or typing.get_origin(annotation) is typing.ClassVar:
                continue
            self._getter_types[name] = annotation
            self._setter_types[name] = annotation

        for name, param in _init_parameters(cls).items():
            annotation = hints.get(name, param.annotation)
            self._getter_types.setdefault(name, annotation)
            self._setter_types.setdefault(name, annotation)

        for name in getattr(cls, "__slots__", ()) or ():
            if not name.startswith("_"):
                self._getter_types.setdefault(name, object)
                self._setter_types.setdefault(name, object)

        for klass in reversed(cls.__mro__):
            for name, member in vars(klass).items():
                if isinstance(member, property) and not name.startswith("_"):
                    annotation = _function_hints(member.fget).get("return", object) if member.fget else object
                    self._getter_types[name] = annotation
                    if member.fset is not None:
                        self._setter_types[name] = annotation
                    else:
                        self._setter_types.pop(name, None)

        if self._frozen:
            self._setter_types.clear()

        self._case_insensitive = {name.upper(): name for name in self._getter_types}
        self._case_insensitive_no_underscore = {
            name.replace("_", "").upper(): name for name in self._getter_types
        }
        self.has_default_constructor = all(
            p.default is not inspect.Parameter.empty
            or p.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
            for p in _init_parameters(cls).values()
        )

    @property
    def setable_properties(self) -> list[str]:
        return list(self._setter_types)

    def has_setter(self, name: str) -> bool:
        return name in self._setter_types

    def has_getter(self, name: str) -> bool:
        return name in self._getter_types

    def setter_type(self, name: str) -> Any:
        if name not in self._setter_types:
            raise MappingConfigurationError(
                f"There is no setter for property named '{name}' in '{self.type.__name__}'"
            )
        return self._setter_types[name]

    def getter_type(self, name: str) -> Any:
        if name not in self._getter_types:
            raise MappingConfigurationError(
                f"There is no getter for property named '{name}' in '{self.type.__name__}'"
            )
        return self._getter_types[name]

    def find_property_name(self, name: str, use_camel_case_mapping: bool = False) -> str | None:
        if use_camel_case_mapping:
            return self._case_insensitive_no_underscore.get(name.replace("_", "").upper())
        return self._case_insensitive.get(name.upper())


def _type_hints(cls: type) -> dict[str, Any]:
    if hasattr(cls, "model_fields"):
        return {name: f.annotation for name, f in cls.model_fields.items()}
    try:
        return typing.get_type_hints(cls)
    except Exception:  # noqa: BLE001 - unresolvable forward references
        hints: dict[str, Any] = {}
        for klass in reversed(cls.__mro__):
            hints.update(getattr(klass, "__annotations__", {}))
        return hints


def _init_parameters(cls: type) -> dict[str, inspect.Parameter]:
    if cls.__init__ is object.__init__:
        return {}
    try:
        signature = inspect.signature(cls)
    except (TypeError, ValueError):
        return {}
    return dict(signature.parameters)


def _is_frozen(cls: type) -> bool:
    if dataclasses.is_dataclass(cls):
        return bool(cls.__dataclass_params__.frozen)  # type: ignore[attr-defined]
    model_config = getattr(cls, "model_config", None)
    if isinstance(model_config, dict):
        return bool(model_config.get("frozen"))
    return False


@lru_cache(maxsize=1024)
def reflector_for(cls: type) -> Reflector:
    """Return the cached Reflector for *cls*."""
    return Reflector(cls)


def target_class(obj: Any) -> type:
    """Class that describes *obj*'s properties, seeing through lazy wrappers."""
    from rowgraph.mapping.lazy import LazyResult

    if isinstance(obj, LazyResult):
        return type(obj.unwrap())
    return type(obj)


class MetaObject:
    """Property accessor over one object (bean, dict or collection)."""

    def __init__(self, obj: Any, object_factory: ObjectFactory | None = None) -> None:
        self.original_object = obj
        self.object_factory = object_factory or ObjectFactory()
        self._is_map = isinstance(obj, collections.abc.MutableMapping)
        self._is_collection = not self._is_map and isinstance(
            obj, (list, set, collections.abc.MutableSet, collections.abc.MutableSequence)
        )
        self._reflector = None if self._is_map or self._is_collection else reflector_for(target_class(obj))

    @property
    def is_map(self) -> bool:
        return self._is_map

    @property
    def is_collection(self) -> bool:
        return self._is_collection

    def find_property(self, name: str, use_camel_case_mapping: bool = False) -> str | None:
        if self._is_map:
            return name
        if self._reflector is None:
            return None
        return self._reflector.find_property_name(name, use_camel_case_mapping)

    def has_setter(self, path: str) -> bool:
        prop = PropertyTokenizer.parse(path)
        if self._is_map:
            return True
        if self._reflector is None or not self._reflector.has_setter(prop.name):
            return False
        if prop.children is None:
            return True
        child = self.meta_object_for_property(prop.indexed_name)
        if child is None:
            return MetaClass(raw_type(self._reflector.setter_type(prop.name))).has_setter(prop.children)
        return child.has_setter(prop.children)

    def has_getter(self, path: str) -> bool:
        prop = PropertyTokenizer.parse(path)
        if self._is_map:
            return prop.name in self.original_object
        if self._reflector is None or not self._reflector.has_getter(prop.name):
            return False
        if prop.children is None:
            return True
        child = self.meta_object_for_property(prop.indexed_name)
        return child is not None and child.has_getter(prop.children)

    def get_setter_type(self, path: str) -> Any:
        prop = PropertyTokenizer.parse(path)
        if self._is_map:
            value = self.original_object.get(prop.name)
            if prop.children is None:
                return object if value is None else type(value)
            return MetaObject(value, self.object_factory).get_setter_type(prop.children) if value is not None else object
        if self._reflector is None:
            return object
        annotation = self._reflector.setter_type(prop.name)
        if prop.children is None:
            return annotation
        return MetaClass(raw_type(annotation)).get_setter_type(prop.children)

    def get_value(self, path: str) -> Any:
        prop = PropertyTokenizer.parse(path)
        if prop.children is not None:
            child = self.meta_object_for_property(prop.indexed_name)
            return None if child is None else child.get_value(prop.children)
        return self._get(prop)

    def set_value(self, path: str, value: Any) -> None:
        prop = PropertyTokenizer.parse(path)
        if prop.children is None:
            self._set(prop, value)
            return
        child = self.meta_object_for_property(prop.indexed_name)
        if child is None:
            if value is None:
                return
            child = self._instantiate_property_value(prop)
        child.set_value(prop.children, value)

    def add(self, element: Any) -> None:
        target = self.original_object
        if isinstance(target, (set, collections.abc.MutableSet)):
            target.add(element)
        elif isinstance(target, (list, collections.abc.MutableSequence)):
            target.append(element)
        else:
            raise MappingConfigurationError(f"Cannot add an element to {type(target).__name__}")

    def meta_object_for_property(self, name: str) -> MetaObject | None:
        value = self.get_value(name)
        if value is None:
            return None
        return MetaObject(value, self.object_factory)

    def _instantiate_property_value(self, prop: PropertyTokenizer) -> MetaObject:
        setter_type = raw_type(self.get_setter_type(prop.name))
        if setter_type is object:
            new_value: Any = {}
        else:
            new_value = self.object_factory.create(setter_type)
        self._set(PropertyTokenizer(prop.name, None, None), new_value)
        return MetaObject(new_value, self.object_factory)

    def _get(self, prop: PropertyTokenizer) -> Any:
        target = self.original_object
        if self._is_map:
            value = target.get(prop.name) if prop.name else target
        else:
            value = getattr(target, prop.name, None) if prop.name else target
        if prop.index is None:
            return value
        return _resolve_index(value, prop.index)

    def _set(self, prop: PropertyTokenizer, value: Any) -> None:
        target = self.original_object
        if prop.index is not None:
            collection = self._get(PropertyTokenizer(prop.name, None, None))
            if isinstance(collection, collections.abc.MutableMapping):
                collection[prop.index] = value
            else:
                collection[int(prop.index)] = value
        elif self._is_map:
            target[prop.name] = value
        else:
            setattr(target, prop.name, value)


class MetaClass:
    """Property metadata over a type, used where no instance exists yet."""

    def __init__(self, cls: Any) -> None:
        self.type = raw_type(cls)
        self._is_map = is_mapping_type(self.type) or self.type is object
        self._reflector = None if self._is_map else reflector_for(self.type)

    def find_property(self, name: str, use_camel_case_mapping: bool = False) -> str | None:
        if self._is_map:
            return name
        return self._reflector.find_property_name(name, use_camel_case_mapping)

    def has_setter(self, path: str) -> bool:
        if self._is_map:
            return True
        prop = PropertyTokenizer.parse(path)
        if not self._reflector.has_setter(prop.name):
            return False
        if prop.children is None:
            return True
        return MetaClass(self._reflector.setter_type(prop.name)).has_setter(prop.children)

    def get_setter_type(self, path: str) -> Any:
        if self._is_map:
            return object
        prop = PropertyTokenizer.parse(path)
        annotation = self._reflector.setter_type(prop.name)
        if prop.children is None:
            return annotation
        return MetaClass(annotation).get_setter_type(prop.children)

    @property
    def has_default_constructor(self) -> bool:
        return self._is_map or self._reflector.has_default_constructor

    @property
    def has_setters(self) -> bool:
        return self._is_map or bool(self._reflector.setable_properties)


def _resolve_index(value: Any, index: str) -> Any:
    if value is None:
        return None
    if isinstance(value, collections.abc.Mapping):
        return value.get(index)
    try:
        return value[int(index)]
    except (ValueError, IndexError, TypeError):
        return None


def is_primitive_like(annotation: Any) -> bool:
    """True for non-optional int/float/bool annotations, which never hold None."""
    return not is_optional(annotation) and raw_type(annotation) in _PRIMITIVE_TYPES


class ObjectFactory:
    """Creates result objects and collection properties."""

    def resolve_interface(self, tp: Any) -> Any:
        tp = raw_type(tp)
        if tp in _LIST_INTERFACES:
            return list
        if tp in _SET_INTERFACES:
            return set
        if tp in _MAP_INTERFACES or tp is object:
            return dict
        return tp

    def is_collection(self, tp: Any) -> bool:
        return is_collection_type(tp)

    def create(
        self,
        tp: Any,
        args: list[Any] | None = None,
        arg_names: list[str] | None = None,
    ) -> Any:
        cls = self.resolve_interface(tp)
        try:
            if not args:
                return cls()
            if arg_names:
                return cls(**dict(zip(arg_names, args)))
            return cls(*args)
        except TypeError as e:
            raise ConstructorResolutionError(cls, str(e)) from e

    def constructor_parameters(self, tp: Any) -> list[inspect.Parameter]:
        """Positional/keyword parameters of the type's constructor, in order."""
        cls = self.resolve_interface(tp)
        return [
            p
            for p in _init_parameters(cls).values()
            if p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
        ]

    def parameter_type(self, tp: Any, param: inspect.Parameter) -> Any:
        hints = _type_hints(self.resolve_interface(tp))
        return hints.get(param.name, param.annotation)

    def automap_constructor(self, tp: Any) -> tuple[Any, list[tuple[str, Any, bool]]]:
        """Constructor used to auto-map columns into *tp*.

        A classmethod marked with ``@automap_constructor`` wins over
        ``__init__``. Returns the callable (None for the class itself) and
        its parameters as ``(name, annotation, has_default)``.
        """
        cls = self.resolve_interface(tp)
        for klass in cls.__mro__:
            for name, member in vars(klass).items():
                if isinstance(member, classmethod) and getattr(member.__func__, _AUTOMAP_MARKER, False):
                    factory = getattr(cls, name)
                    hints = _function_hints(member.__func__)
                    parameters = [
                        (p.name, hints.get(p.name, p.annotation), p.default is not p.empty)
                        for p in inspect.signature(factory).parameters.values()
                        if p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
                    ]
                    return factory, parameters
        return None, [
            (p.name, self.parameter_type(cls, p), p.default is not p.empty)
            for p in self.constructor_parameters(cls)
        ]


_AUTOMAP_MARKER = "__rowgraph_automap__"


def automap_constructor(func: Any) -> Any:
    """Mark a classmethod factory as the constructor for column auto-mapping.

    Example::

        @dataclass(frozen=True)
        class Point:
            x: int
            y: int

            @automap_constructor
            @classmethod
            def from_row(cls, pos_x: int, pos_y: int) -> Point:
                return cls(pos_x, pos_y)
    """
    target = func.__func__ if isinstance(func, classmethod) else func
    setattr(target, _AUTOMAP_MARKER, True)
    return func


def _function_hints(func: Any) -> dict[str, Any]:
    try:
        return typing.get_type_hints(func)
    except Exception:  # noqa: BLE001 - unresolvable forward references
        return dict(getattr(func, "__annotations__", {}))
