from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pybatis.data.binding import StatementType
from pybatis.data.result_map import ResultMap

STATEMENT_ATTR = "__pybatis_statement__"


@dataclass
class StatementDefinition:
    """SQL attached to a mapper method, bound once the mapper namespace is known."""

    statement_type: StatementType
    sql: str
    options: Dict[str, Any] = field(default_factory=dict)


def _attach(statement_type: StatementType, sql: str, **options):
    def decorator(func):
        setattr(func, STATEMENT_ATTR, StatementDefinition(statement_type, sql, options))
        return func

    return decorator


def Select(
    sql: str,
    result_map: Optional[ResultMap] = None,
    result_type: Optional[type] = None,
):
    """
    Bind a mapper method to a SELECT statement.

    Parameters are written as #{name} or :name and resolved from the method
    arguments by name.

    Example:
        @Mapper(entity=User)
        class UserMapper:
            @Select("SELECT * FROM users WHERE email = #{email}")
            async def find_by_email(self, email: str) -> Optional[User]: ...
    """
    return _attach(
        StatementType.SELECT, sql, result_map=result_map, result_type=result_type
    )


def Insert(
    sql: str,
    use_generated_keys: bool = False,
    key_property: Optional[str] = None,
    key_column: Optional[str] = None,
):
    """
    Bind a mapper method to an INSERT statement.

    Args:
        sql: INSERT statement
        use_generated_keys: Write the database-generated key back into the
            inserted value even when it already has one
        key_property: Property receiving the generated key (default: primary key)
        key_column: Column holding the key in RETURNING rows (default: key_property)
    """
    return _attach(
        StatementType.INSERT,
        sql,
        use_generated_keys=use_generated_keys,
        key_property=key_property,
        key_column=key_column,
    )


def Update(sql: str):
    """Bind a mapper method to an UPDATE statement. Zero matched rows is an error."""
    return _attach(StatementType.UPDATE, sql)


def Delete(sql: str):
    """Bind a mapper method to a DELETE statement. Returns the affected row count."""
    return _attach(StatementType.DELETE, sql)


def get_statement_definition(func) -> Optional[StatementDefinition]:
    return getattr(func, STATEMENT_ATTR, None)
