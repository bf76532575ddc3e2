from dataclasses import dataclass, field, make_dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

import pytest

from pybatis import Column, Entity, Id
from pybatis.data.entity import (
    _entity_registry,
    clear_entity_registry,
    find_entity_by_name,
    get_all_entities,
    get_entity_metadata,
    is_entity,
)
from pybatis.exceptions import EntityException


class RegistryIsolation:
    def setup_method(self):
        """Clear entity registry before each test"""
        self._saved_registry = get_all_entities()
        clear_entity_registry()

    def teardown_method(self):
        """Restore entity registry after each test"""
        clear_entity_registry()
        _entity_registry.update(self._saved_registry)


class TestEntityBasics(RegistryIsolation):
    """Test basic @Entity functionality"""

    def test_entity_decorator_registers_entity(self):
        @Entity()
        @dataclass
        class Member:
            id: int = Id()
            name: str = ""

        assert is_entity(Member)
        meta = get_entity_metadata(Member)
        assert meta.entity_class is Member
        assert Member.__pybatis_entity__ is meta

    def test_entity_requires_dataclass(self):
        with pytest.raises(EntityException, match="not a dataclass"):

            @Entity()
            class NotADataclass:
                id: int = Id()

    def test_entity_table_name_auto_generated(self):
        @Entity()
        @dataclass
        class Member:
            id: int = Id()

        assert get_entity_metadata(Member).table_name == "members"

    def test_entity_table_name_custom(self):
        @Entity(table="people")
        @dataclass
        class Member:
            id: int = Id()

        assert get_entity_metadata(Member).table_name == "people"

    @pytest.mark.parametrize(
        "class_name,table_name",
        [
            ("UserProfile", "user_profiles"),
            ("Category", "categories"),
            ("Address", "addresses"),
            ("Key", "keys"),
            ("HTTPRequest", "http_requests"),
        ],
    )
    def test_default_table_names(self, class_name, table_name):
        cls = Entity()(make_dataclass(class_name, [("id", int, field(default=None))]))

        assert get_entity_metadata(cls).table_name == table_name

    def test_entity_requires_primary_key(self):
        with pytest.raises(EntityException, match="must have a primary key"):

            @Entity()
            @dataclass
            class NoPrimaryKey:
                name: str = ""

    def test_entity_rejects_two_primary_keys(self):
        with pytest.raises(EntityException, match="more than one primary key"):

            @Entity()
            @dataclass
            class TwoKeys:
                first: int = Id()
                second: int = Id()

    def test_unregistered_class_metadata_raises(self):
        @dataclass
        class Plain:
            id: int = 0

        assert not is_entity(Plain)
        with pytest.raises(EntityException, match="not a registered @Entity"):
            get_entity_metadata(Plain)


class TestFieldTypes(RegistryIsolation):
    """Python types map to database column types"""

    def test_type_mapping(self):
        @Entity()
        @dataclass
        class Sample:
            id: int = Id()
            count: int = 0
            label: str = ""
            ratio: float = 0.0
            flag: bool = False
            created: datetime = None
            day: date = None
            moment: time = None
            payload: bytes = b""
            amount: Decimal = None

        fields = get_entity_metadata(Sample).fields
        assert fields["count"].db_type == "INTEGER"
        assert fields["label"].db_type == "VARCHAR(255)"
        assert fields["ratio"].db_type == "FLOAT"
        assert fields["flag"].db_type == "BOOLEAN"
        assert fields["created"].db_type == "TIMESTAMP"
        assert fields["day"].db_type == "DATE"
        assert fields["moment"].db_type == "TIME"
        assert fields["payload"].db_type == "BLOB"
        assert fields["amount"].db_type == "NUMERIC"

    def test_optional_is_unwrapped(self):
        @Entity()
        @dataclass
        class Sample:
            id: int = Id()
            nickname: Optional[str] = None

        field_meta = get_entity_metadata(Sample).fields["nickname"]
        assert field_meta.python_type is str
        assert field_meta.db_type == "VARCHAR(255)"


class TestFieldMarkers(RegistryIsolation):
    """Id() and Column() markers"""

    def test_id_marker_creates_primary_key(self):
        @Entity()
        @dataclass
        class Member:
            id: int = Id()
            name: str = ""

        meta = get_entity_metadata(Member)
        primary_key = meta.get_primary_key()
        assert meta.primary_key_field == "id"
        assert primary_key.primary_key is True
        assert primary_key.auto_increment is True
        assert primary_key.nullable is False
        assert Member().id is None

    def test_id_auto_increment_disabled(self):
        @Entity()
        @dataclass
        class Member:
            code: str = Id(auto_increment=False)

        primary_key = get_entity_metadata(Member).get_primary_key()
        assert primary_key.name == "code"
        assert primary_key.auto_increment is False

    def test_implicit_id_field(self):
        @Entity()
        @dataclass
        class Member:
            id: int = None
            name: str = ""

        meta = get_entity_metadata(Member)
        assert meta.primary_key_field == "id"
        assert meta.get_primary_key().auto_increment is True

    def test_column_constraints(self):
        @Entity()
        @dataclass
        class Member:
            id: int = Id()
            email: str = Column(unique=True, nullable=False, index=True)
            bio: str = Column(db_type="TEXT", default="")
            name: str = Column(max_length=50)

        fields = get_entity_metadata(Member).fields
        assert fields["email"].unique is True
        assert fields["email"].nullable is False
        assert fields["email"].index is True
        assert fields["bio"].db_type == "TEXT"
        assert fields["bio"].default == ""
        assert fields["name"].db_type == "VARCHAR(50)"
        assert fields["name"].max_length == 50
        assert Member().bio == ""

    def test_column_name_override(self):
        @Entity()
        @dataclass
        class Member:
            id: int = Id(column_name="member_id")
            name: str = Column(name="full_name")

        meta = get_entity_metadata(Member)
        assert meta.fields["id"].column == "member_id"
        assert meta.fields["name"].column == "full_name"
        assert meta.get_field_by_column("FULL_NAME").name == "name"
        assert meta.get_field_by_column("missing") is None


class TestEntityLookup(RegistryIsolation):
    def test_find_entity_by_simple_name(self):
        @Entity()
        @dataclass
        class Member:
            id: int = Id()

        assert find_entity_by_name("Member") is Member

    def test_find_entity_by_qualified_name(self):
        @Entity()
        @dataclass
        class Member:
            id: int = Id()

        assert find_entity_by_name("com.example.domain.Member") is Member

    def test_unknown_entity(self):
        assert find_entity_by_name("Nobody") is None

    def test_latest_registration_wins(self):
        @Entity()
        @dataclass
        class Member:
            id: int = Id()

        first = Member

        @Entity()
        @dataclass
        class Member:
            id: int = Id()

        assert find_entity_by_name("Member") is Member
        assert find_entity_by_name("Member") is not first
