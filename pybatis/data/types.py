import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

FIELD_MARKER_KEY = "__pybatis_field__"


@dataclass
class FieldMarker:
    """Options captured by Id() and Column() before the entity is registered."""

    primary_key: bool = False
    auto_increment: bool = False
    nullable: bool = True
    unique: bool = False
    index: bool = False
    db_type: Optional[str] = None
    max_length: Optional[int] = None
    column_name: Optional[str] = None


@dataclass
class FieldMetadata:
    """Metadata for a single entity field."""

    name: str
    python_type: type
    db_type: str
    primary_key: bool = False
    auto_increment: bool = False
    nullable: bool = True
    unique: bool = False
    index: bool = False
    default: Any = None
    max_length: Optional[int] = None
    column_name: Optional[str] = None

    @property
    def column(self) -> str:
        """Column name in the table, defaults to the field name."""
        return self.column_name or self.name


@dataclass
class EntityMetadata:
    """Metadata describing an @Entity class and its table."""

    entity_class: type
    table_name: str
    fields: Dict[str, FieldMetadata] = field(default_factory=dict)
    primary_key_field: Optional[str] = None

    def get_primary_key(self) -> Optional[FieldMetadata]:
        if self.primary_key_field is None:
            return None
        return self.fields[self.primary_key_field]

    def get_field_by_column(self, column: str) -> Optional[FieldMetadata]:
        """Find a field by column name, case-insensitively."""
        lowered = column.lower()
        for field_meta in self.fields.values():
            if field_meta.column.lower() == lowered:
                return field_meta
        return None


def Id(auto_increment: bool = True, column_name: Optional[str] = None):
    """
    Mark a field as the primary key.

    With auto_increment=True (the default) the key is a surrogate assigned by
    the database on insert and written back into the inserted value. With
    auto_increment=False the caller supplies the key.

    Example:
        @Entity()
        @dataclass
        class User:
            id: int = Id()
            name: str = ""
    """
    marker = FieldMarker(
        primary_key=True,
        auto_increment=auto_increment,
        nullable=False,
        column_name=column_name,
    )
    return dataclasses.field(default=None, metadata={FIELD_MARKER_KEY: marker})


def Column(
    default: Any = None,
    unique: bool = False,
    nullable: bool = True,
    index: bool = False,
    db_type: Optional[str] = None,
    max_length: Optional[int] = None,
    name: Optional[str] = None,
):
    """
    Declare column constraints for a field.

    Args:
        default: Default value for the dataclass field
        unique: Add a UNIQUE constraint
        nullable: Allow NULL values
        index: Create an index on the column
        db_type: Override the inferred column type (e.g. "TEXT")
        max_length: Length of VARCHAR columns
        name: Column name when it differs from the field name
    """
    marker = FieldMarker(
        nullable=nullable,
        unique=unique,
        index=index,
        db_type=db_type,
        max_length=max_length,
        column_name=name,
    )
    return dataclasses.field(default=default, metadata={FIELD_MARKER_KEY: marker})
