import dataclasses
import re
import typing
from datetime import date, datetime, time
from decimal import Decimal
from typing import Dict, Optional, Type, Union

from pybatis.data.types import (
    FIELD_MARKER_KEY,
    EntityMetadata,
    FieldMarker,
    FieldMetadata,
)
from pybatis.exceptions import EntityException

_entity_registry: Dict[type, EntityMetadata] = {}

_DB_TYPES = {
    int: "INTEGER",
    str: "VARCHAR(255)",
    float: "FLOAT",
    bool: "BOOLEAN",
    datetime: "TIMESTAMP",
    date: "DATE",
    time: "TIME",
    bytes: "BLOB",
    Decimal: "NUMERIC",
}


def Entity(table: Optional[str] = None):
    """
    Register a dataclass as a persisted entity.

    Args:
        table: Table name. Defaults to the pluralized snake_case class name.

    Example:
        @Entity()
        @dataclass
        class User:
            id: int = Id()
            name: str = ""
    """

    def decorator(cls):
        if not dataclasses.is_dataclass(cls):
            raise EntityException(
                f"{cls.__name__} is not a dataclass. Apply @dataclass below @Entity()."
            )

        metadata = _build_metadata(cls, table or _default_table_name(cls.__name__))
        _entity_registry[cls] = metadata
        cls.__pybatis_entity__ = metadata
        return cls

    return decorator


def _build_metadata(cls, table_name: str) -> EntityMetadata:
    try:
        hints = typing.get_type_hints(cls)
    except (NameError, TypeError):
        hints = {}

    metadata = EntityMetadata(entity_class=cls, table_name=table_name)

    for dc_field in dataclasses.fields(cls):
        python_type = _unwrap_optional(hints.get(dc_field.name, dc_field.type))
        marker: FieldMarker = dc_field.metadata.get(FIELD_MARKER_KEY) or FieldMarker()

        # An unmarked "id" field is the primary key
        if dc_field.name == "id" and FIELD_MARKER_KEY not in dc_field.metadata:
            marker = FieldMarker(primary_key=True, auto_increment=True, nullable=False)

        if marker.db_type:
            db_type = marker.db_type
        elif python_type is str and marker.max_length:
            db_type = f"VARCHAR({marker.max_length})"
        else:
            db_type = _DB_TYPES.get(python_type, "VARCHAR(255)")

        default = None
        if dc_field.default is not dataclasses.MISSING:
            default = dc_field.default

        metadata.fields[dc_field.name] = FieldMetadata(
            name=dc_field.name,
            python_type=python_type,
            db_type=db_type,
            primary_key=marker.primary_key,
            auto_increment=marker.auto_increment,
            nullable=marker.nullable,
            unique=marker.unique,
            index=marker.index,
            default=default,
            max_length=marker.max_length,
            column_name=marker.column_name,
        )

        if marker.primary_key:
            if metadata.primary_key_field is not None:
                raise EntityException(
                    f"{cls.__name__} declares more than one primary key "
                    f"({metadata.primary_key_field}, {dc_field.name})"
                )
            metadata.primary_key_field = dc_field.name

    if metadata.primary_key_field is None:
        raise EntityException(
            f"{cls.__name__} must have a primary key. Use Id() or name a field 'id'."
        )

    return metadata


def _unwrap_optional(python_type):
    """Optional[X] -> X."""
    if typing.get_origin(python_type) is Union:
        args = [arg for arg in typing.get_args(python_type) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return python_type


def _to_snake_case(name: str) -> str:
    name = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name).lower()


def _default_table_name(class_name: str) -> str:
    snake = _to_snake_case(class_name)
    if snake.endswith("y") and not snake.endswith(("ay", "ey", "oy", "uy")):
        return snake[:-1] + "ies"
    if snake.endswith(("s", "x", "ch", "sh")):
        return snake + "es"
    return snake + "s"


def get_entity_metadata(entity_class: Type) -> EntityMetadata:
    if entity_class not in _entity_registry:
        raise EntityException(f"{entity_class.__name__} is not a registered @Entity")
    return _entity_registry[entity_class]


def is_entity(cls) -> bool:
    return cls in _entity_registry


def get_all_entities() -> Dict[type, EntityMetadata]:
    return dict(_entity_registry)


def find_entity_by_name(name: str) -> Optional[type]:
    """
    Find a registered entity class by name.

    Accepts a simple class name ("User") or a dotted name whose last segment
    is the class name ("com.example.domain.User"). The most recently
    registered match wins.
    """
    simple_name = name.rsplit(".", 1)[-1]
    match = None
    for entity_class in _entity_registry:
        if entity_class.__name__ == simple_name:
            match = entity_class
    return match


def clear_entity_registry():
    _entity_registry.clear()
