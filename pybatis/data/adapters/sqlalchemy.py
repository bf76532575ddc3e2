import asyncio
import re
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Sequence, Set, Union

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    LargeBinary,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    Time,
    text,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool, StaticPool

from pybatis.core.logging import get_logger
from pybatis.data.adapters.base import DatabaseAdapter, ExecutionResult
from pybatis.data.entity import get_entity_metadata
from pybatis.data.types import EntityMetadata, FieldMetadata
from pybatis.exceptions import (
    ConstraintViolationException,
    DuplicateKeyException,
    QueryTimeoutException,
    StatementExecutionException,
    StorageUnavailableException,
)

logger = get_logger()

# Driver wording that names a primary-key constraint (PostgreSQL "<table>_pkey",
# MySQL "for key 'PRIMARY'" or "'<table>.PRIMARY'")
_PRIMARY_KEY_MARKERS = ("primary key", "_pkey", "for key 'primary'", ".primary'")

# Columns reported by SQLite ("UNIQUE constraint failed: users.id")
# and PostgreSQL ("DETAIL:  Key (id)=(1) already exists.")
_SQLITE_UNIQUE_COLUMNS = re.compile(r"unique constraint failed:\s*([\w\s.,]+)")
_POSTGRES_KEY_COLUMNS = re.compile(r"key \(([^)]*)\)=")

_CONNECTION_ERROR_MARKERS = (
    "unable to open database",
    "could not connect",
    "can't connect",
    "connection refused",
    "connection reset",
    "connection is closed",
    "connection was closed",
    "server closed the connection",
    "lost connection",
    "server has gone away",
    "timeout expired",
    "database is locked",
)

_VARCHAR_PATTERN = re.compile(r"VARCHAR\((\d+)\)", re.IGNORECASE)


class SQLAlchemyAdapter(DatabaseAdapter):
    """
    Adapter backed by SQLAlchemy's async engine.

    Pooling policy:
        - SQLite :memory: uses StaticPool so every statement sees the same data
        - other SQLite databases use SQLAlchemy's default pool
        - server databases use AsyncAdaptedQueuePool, or NullPool when
          pooling is disabled
    """

    def __init__(self):
        self.engine: Optional[AsyncEngine] = None
        self.metadata = MetaData()
        self.statement_timeout: Optional[float] = None
        self._tables: Dict[str, Table] = {}

    async def connect(
        self,
        url: str,
        echo: bool = False,
        pool_size: Optional[int] = None,
        max_overflow: Optional[int] = None,
        pool_timeout: Optional[float] = None,
        pool_recycle: Optional[int] = None,
        enable_pooling: bool = True,
        statement_timeout: Optional[float] = None,
    ) -> None:
        """
        Create the engine. No connection is opened until the first statement.

        Args:
            url: SQLAlchemy async URL, e.g. "sqlite+aiosqlite:///:memory:"
            echo: Log every SQL statement through SQLAlchemy
            pool_size: Connections kept open (server databases)
            max_overflow: Extra connections allowed above pool_size
            pool_timeout: Seconds to wait for a pooled connection
            pool_recycle: Seconds after which connections are recycled
            enable_pooling: Use NullPool when False
            statement_timeout: Seconds before a statement fails with
                QueryTimeoutException; None waits indefinitely
        """
        engine_kwargs: Dict[str, Any] = {"echo": bool(echo)}
        parsed = make_url(url)

        if parsed.get_backend_name() == "sqlite":
            if parsed.database in (None, "", ":memory:"):
                engine_kwargs["poolclass"] = StaticPool
        elif enable_pooling:
            engine_kwargs["poolclass"] = AsyncAdaptedQueuePool
            pool_options = {
                "pool_size": pool_size,
                "max_overflow": max_overflow,
                "pool_timeout": pool_timeout,
                "pool_recycle": pool_recycle,
            }
            engine_kwargs.update(
                {key: value for key, value in pool_options.items() if value is not None}
            )
        else:
            engine_kwargs["poolclass"] = NullPool

        self.engine = create_async_engine(url, **engine_kwargs)
        self.statement_timeout = statement_timeout
        logger.info(f"Connected database adapter to {parsed.render_as_string()}")

    async def disconnect(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            logger.info("Database adapter disconnected")

    @property
    def is_connected(self) -> bool:
        return self.engine is not None

    def _require_engine(self) -> AsyncEngine:
        if self.engine is None:
            raise StorageUnavailableException("Database adapter is not connected")
        return self.engine

    async def execute(
        self,
        sql: str,
        params: Optional[Dict[str, Any]] = None,
        statement_name: Optional[str] = None,
        want_lastrowid: bool = False,
        key_columns: Sequence[str] = (),
    ) -> ExecutionResult:
        engine = self._require_engine()
        name = statement_name or sql

        try:
            run = self._execute(engine, sql, params or {}, want_lastrowid)
            if self.statement_timeout:
                return await asyncio.wait_for(run, self.statement_timeout)
            return await run
        except asyncio.TimeoutError as e:
            raise QueryTimeoutException(name, self.statement_timeout) from e
        except SQLAlchemyError as e:
            raise translate_error(e, name, key_columns) from e
        except OSError as e:
            raise StorageUnavailableException(
                f"Database unreachable while executing '{name}': {e}"
            ) from e

    async def _execute(
        self,
        engine: AsyncEngine,
        sql: str,
        params: Dict[str, Any],
        want_lastrowid: bool,
    ) -> ExecutionResult:
        async with engine.begin() as conn:
            result = await conn.execute(text(sql), params)

            if result.returns_rows:
                rows = [dict(row._mapping) for row in result.fetchall()]
                return ExecutionResult(
                    rows=rows, rowcount=len(rows), returns_rows=True
                )

            lastrowid = None
            if want_lastrowid:
                try:
                    lastrowid = result.lastrowid
                except (AttributeError, NotImplementedError, DBAPIError):
                    lastrowid = None

            return ExecutionResult(rowcount=result.rowcount, lastrowid=lastrowid)

    @asynccontextmanager
    async def get_connection(self):
        """
        Yield an AsyncConnection inside a transaction, for hand-written
        SQLAlchemy Core queries.
        """
        engine = self._require_engine()
        try:
            async with engine.begin() as conn:
                yield conn
        except SQLAlchemyError as e:
            raise translate_error(e, "custom query") from e

    def get_table(self, entity: Union[type, EntityMetadata]) -> Table:
        """SQLAlchemy Table for an entity class or its metadata."""
        if isinstance(entity, EntityMetadata):
            entity_meta = entity
        else:
            entity_meta = get_entity_metadata(entity)
        table = self._tables.get(entity_meta.table_name)
        if table is None:
            columns = [_build_column(f) for f in entity_meta.fields.values()]
            table = Table(entity_meta.table_name, self.metadata, *columns)
            self._tables[entity_meta.table_name] = table
        return table

    async def create_table_if_not_exists(self, entity_meta: EntityMetadata) -> None:
        engine = self._require_engine()
        table = self.get_table(entity_meta)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(table.create, checkfirst=True)
        except SQLAlchemyError as e:
            raise translate_error(e, f"create table {entity_meta.table_name}") from e
        logger.debug(f"Ensured table {entity_meta.table_name}")


def translate_error(
    error: SQLAlchemyError,
    statement_name: str,
    key_columns: Sequence[str] = (),
) -> Exception:
    """
    Map a SQLAlchemy/driver error onto the pybatis error taxonomy.

    An IntegrityError is a DuplicateKeyException only when the driver names
    the primary-key constraint or exactly the given key columns. Collisions
    on other unique columns are ConstraintViolationExceptions.
    """
    detail = str(getattr(error, "orig", None) or error)

    if isinstance(error, IntegrityError):
        if _is_key_collision(detail, key_columns):
            return DuplicateKeyException(
                f"Duplicate key in '{statement_name}': {detail}"
            )
        return ConstraintViolationException(
            f"Constraint violated in '{statement_name}': {detail}"
        )

    if isinstance(error, PoolTimeoutError) or _is_connection_error(error):
        return StorageUnavailableException(
            f"Database unreachable while executing '{statement_name}': {detail}"
        )

    return StatementExecutionException(f"Statement '{statement_name}' failed: {detail}")


def _is_key_collision(detail: str, key_columns: Sequence[str]) -> bool:
    lowered = detail.lower()
    if any(marker in lowered for marker in _PRIMARY_KEY_MARKERS):
        return True
    if not key_columns:
        return False
    collided = _collided_columns(lowered)
    return bool(collided) and collided == {c.lower() for c in key_columns}


def _collided_columns(lowered: str) -> Set[str]:
    match = _SQLITE_UNIQUE_COLUMNS.search(lowered)
    if match:
        return {
            part.strip().rsplit(".", 1)[-1]
            for part in match.group(1).split(",")
            if part.strip()
        }
    match = _POSTGRES_KEY_COLUMNS.search(lowered)
    if match:
        return {part.strip().strip('"') for part in match.group(1).split(",")}
    return set()


def _is_connection_error(error: SQLAlchemyError) -> bool:
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return True
    if isinstance(error, InterfaceError):
        return True
    if isinstance(getattr(error, "orig", None), OSError):
        return True
    if isinstance(error, OperationalError):
        lowered = str(error.orig or error).lower()
        return any(marker in lowered for marker in _CONNECTION_ERROR_MARKERS)
    return False


def _column_type(field_meta: FieldMetadata):
    db_type = field_meta.db_type.upper()

    varchar = _VARCHAR_PATTERN.match(db_type)
    if varchar:
        return String(int(varchar.group(1)))
    if db_type == "TEXT":
        return Text()
    if db_type == "BIGINT":
        return BigInteger()
    if db_type in ("INTEGER", "INT"):
        return Integer()
    if db_type in ("FLOAT", "REAL", "DOUBLE"):
        return Float()
    if db_type == "BOOLEAN":
        return Boolean()
    if db_type in ("TIMESTAMP", "DATETIME"):
        return DateTime()
    if db_type == "DATE":
        return Date()
    if db_type == "TIME":
        return Time()
    if db_type in ("BLOB", "BYTEA"):
        return LargeBinary()
    if db_type.startswith(("NUMERIC", "DECIMAL")):
        return Numeric()
    return String(255)


def _build_column(field_meta: FieldMetadata) -> Column:
    if field_meta.primary_key:
        return Column(
            field_meta.column,
            _column_type(field_meta),
            primary_key=True,
            autoincrement=field_meta.auto_increment,
        )

    return Column(
        field_meta.column,
        _column_type(field_meta),
        nullable=field_meta.nullable,
        unique=field_meta.unique or None,
        index=field_meta.index or None,
    )
