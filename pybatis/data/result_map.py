"""
Materialization of result rows into Python values.

A ResultMap describes how the columns of one row become one value: an entity
instance, a plain dict, or a single scalar.
"""

import dataclasses
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from pybatis.data.entity import get_entity_metadata, is_entity
from pybatis.exceptions import MapperException

SCALAR_TYPES = (int, str, float, bool, bytes, Decimal)


@dataclass
class ResultMapping:
    """Maps one column onto one entity property."""

    property: str
    column: str
    is_id: bool = False


@dataclass
class ResultMap:
    """
    Rule converting a result row into a value of result_type.

    Explicit mappings are applied first. With auto_mapping enabled, any field
    not covered by an explicit mapping is filled from the column of the same
    name (case-insensitive). Columns with no matching field are ignored and
    fields with no matching column keep their dataclass default.
    """

    id: str
    result_type: type
    mappings: List[ResultMapping] = field(default_factory=list)
    auto_mapping: bool = True

    def __post_init__(self):
        if self._is_entity_like():
            known = {f.name for f in dataclasses.fields(self.result_type)}
            for mapping in self.mappings:
                if mapping.property not in known:
                    raise MapperException(
                        f"Result map '{self.id}' maps column '{mapping.column}' "
                        f"to unknown property '{mapping.property}' of "
                        f"{self.result_type.__name__}"
                    )

    def _is_entity_like(self) -> bool:
        return dataclasses.is_dataclass(self.result_type)

    def materialize(self, row: Mapping[str, Any]) -> Any:
        """Convert one row into a value."""
        if self.result_type is dict:
            return dict(row)

        if self.result_type in SCALAR_TYPES:
            if not row:
                return None
            value = next(iter(row.values()))
            if value is None:
                return None
            return self.result_type(value)

        if not self._is_entity_like():
            raise MapperException(
                f"Cannot materialize rows into {self.result_type!r}; "
                "use an @Entity dataclass, dict or a scalar type"
            )

        columns = {key.lower(): value for key, value in row.items()}
        values: Dict[str, Any] = {}

        for mapping in self.mappings:
            column = mapping.column.lower()
            if column in columns:
                values[mapping.property] = columns[column]

        if self.auto_mapping:
            for dc_field in dataclasses.fields(self.result_type):
                if dc_field.name in values or not dc_field.init:
                    continue
                column = _column_for(self.result_type, dc_field.name)
                if column in columns:
                    values[dc_field.name] = columns[column]

        return self.result_type(**values)

    def materialize_all(self, rows: List[Mapping[str, Any]]) -> List[Any]:
        return [self.materialize(row) for row in rows]

    @classmethod
    def for_type(cls, result_type: type) -> "ResultMap":
        """Build an auto-mapping result map for a type."""
        name = getattr(result_type, "__name__", repr(result_type))
        return cls(id=f"auto:{name}", result_type=result_type)


def _column_for(entity_class: type, field_name: str) -> str:
    if is_entity(entity_class):
        field_meta = get_entity_metadata(entity_class).fields.get(field_name)
        if field_meta is not None:
            return field_meta.column.lower()
    return field_name.lower()


def resolve_result_map(
    result_map: Optional[ResultMap],
    result_type: Optional[type],
    fallback_type: Optional[type],
) -> ResultMap:
    """Pick the materialization rule: explicit map, then type, then fallback."""
    if result_map is not None:
        return result_map
    if result_type is not None:
        return ResultMap.for_type(result_type)
    if fallback_type is not None:
        return ResultMap.for_type(fallback_type)
    raise MapperException("No result map or result type available for select")
