"""Unit tests for property access and object construction."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import pytest
from pydantic import BaseModel, ConfigDict

from rowgraph.core.exceptions import ConstructorResolutionError, MappingConfigurationError
from rowgraph.mapping.reflection import (
    MetaClass,
    MetaObject,
    ObjectFactory,
    automap_constructor,
    is_collection_type,
    is_primitive_like,
    raw_type,
)


@dataclass
class Address:
    city: str | None = None


@dataclass
class Person:
    name: str | None = None
    address: Address | None = None
    tags: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Point:
    x: int
    y: int

    @automap_constructor
    @classmethod
    def from_row(cls, pos_x: int, pos_y: int) -> Point:
        return cls(pos_x, pos_y)


class Account(BaseModel):
    id: int = 0
    owner: Optional[str] = None


class FrozenAccount(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int


class Plain:
    def __init__(self, a, b=2):
        self.a = a
        self.b = b


class TestMetaObject:
    def test_dotted_paths(self) -> None:
        person = Person(name="ann", address=Address(city="Oslo"))
        meta = MetaObject(person)
        assert meta.get_value("address.city") == "Oslo"
        meta.set_value("address.city", "Bergen")
        assert person.address.city == "Bergen"

    def test_set_creates_intermediate_objects(self) -> None:
        person = Person()
        MetaObject(person).set_value("address.city", "Oslo")
        assert person.address == Address(city="Oslo")

    def test_set_none_skips_missing_intermediate(self) -> None:
        person = Person()
        MetaObject(person).set_value("address.city", None)
        assert person.address is None

    def test_indexed_paths(self) -> None:
        person = Person(tags=["a", "b"])
        meta = MetaObject(person)
        assert meta.get_value("tags[1]") == "b"
        meta.set_value("tags[0]", "z")
        assert person.tags == ["z", "b"]
        assert meta.get_value("tags[9]") is None

    def test_dict_target(self) -> None:
        row: dict = {}
        meta = MetaObject(row)
        assert meta.is_map
        assert meta.has_setter("anything")
        meta.set_value("author.name", "jim")
        assert row == {"author": {"name": "jim"}}
        assert meta.has_getter("author")
        assert not meta.has_getter("missing")

    def test_find_property(self) -> None:
        meta = MetaObject(Person())
        assert meta.find_property("NAME") == "name"
        assert meta.find_property("missing") is None

    def test_find_property_camel_case(self) -> None:
        @dataclass
        class Post:
            created_on: str | None = None

        meta = MetaObject(Post())
        assert meta.find_property("CREATEDON", use_camel_case_mapping=True) == "created_on"
        assert meta.find_property("created_on", use_camel_case_mapping=True) == "created_on"

    def test_setter_types(self) -> None:
        meta = MetaObject(Person())
        assert raw_type(meta.get_setter_type("address")) is Address
        assert raw_type(meta.get_setter_type("address.city")) is str
        with pytest.raises(MappingConfigurationError, match="no setter for property named 'nope'"):
            meta.get_setter_type("nope")

    def test_frozen_dataclass_has_no_setters(self) -> None:
        meta = MetaObject(Point(1, 2))
        assert meta.has_getter("x")
        assert not meta.has_setter("x")

    def test_pydantic_model(self) -> None:
        account = Account()
        meta = MetaObject(account)
        assert meta.has_setter("owner")
        meta.set_value("owner", "jim")
        assert account.owner == "jim"
        assert not MetaObject(FrozenAccount(id=1)).has_setter("id")

    def test_collection_add(self) -> None:
        items: list = []
        MetaObject(items).add(1)
        unique: set = set()
        MetaObject(unique).add(1)
        assert items == [1]
        assert unique == {1}
        with pytest.raises(MappingConfigurationError, match="Cannot add an element"):
            MetaObject(Person()).add(1)


class TestMetaClass:
    def test_constructors_and_setters(self) -> None:
        assert MetaClass(Person).has_default_constructor
        assert MetaClass(Person).has_setters
        assert not MetaClass(Point).has_default_constructor
        assert not MetaClass(Point).has_setters
        assert MetaClass(dict).has_setters

    def test_nested_setter(self) -> None:
        assert MetaClass(Person).has_setter("address.city")
        assert not MetaClass(Person).has_setter("address.zip")


class TestObjectFactory:
    def test_create_resolves_interfaces(self) -> None:
        factory = ObjectFactory()
        assert factory.create(list[int]) == []
        assert factory.create(set) == set()
        assert factory.create(object) == {}

    def test_create_with_arguments(self) -> None:
        factory = ObjectFactory()
        assert factory.create(Point, [1, 2]) == Point(1, 2)
        assert factory.create(Point, [2, 1], ["y", "x"]) == Point(1, 2)

    def test_create_failure(self) -> None:
        with pytest.raises(ConstructorResolutionError, match="Cannot create an instance of Point"):
            ObjectFactory().create(Point)

    def test_constructor_parameters(self) -> None:
        names = [p.name for p in ObjectFactory().constructor_parameters(Plain)]
        assert names == ["a", "b"]

    def test_automap_classmethod_wins(self) -> None:
        factory, parameters = ObjectFactory().automap_constructor(Point)
        assert factory(3, 4) == Point(3, 4)
        assert [name for name, _, _ in parameters] == ["pos_x", "pos_y"]

    def test_automap_falls_back_to_init(self) -> None:
        factory, parameters = ObjectFactory().automap_constructor(Plain)
        assert factory is None
        assert parameters[0][0] == "a"
        assert parameters[1][2] is True


class TestTypeHelpers:
    def test_raw_type(self) -> None:
        assert raw_type(Optional[int]) is int
        assert raw_type(list[str]) is list
        assert raw_type(int | str) is object

    def test_collection_types(self) -> None:
        assert is_collection_type(list[int])
        assert is_collection_type(Optional[set[int]])
        assert not is_collection_type(str)
        assert not is_collection_type(dict)

    def test_primitive_like(self) -> None:
        assert is_primitive_like(int)
        assert not is_primitive_like(Optional[int])
        assert not is_primitive_like(str)
