from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncContextManager, Dict, List, Optional, Sequence

from pybatis.data.types import EntityMetadata


@dataclass
class ExecutionResult:
    """Outcome of one statement: materializable rows plus write bookkeeping."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0
    lastrowid: Optional[Any] = None
    returns_rows: bool = False


class DatabaseAdapter(ABC):
    """
    Database access runtime used by mappers.

    Adapters own connections and translate driver errors into
    pybatis.exceptions; mappers only ever see ExecutionResult values or
    StatementException subclasses.
    """

    @abstractmethod
    async def connect(self, url: str, **options) -> None:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @abstractmethod
    async def execute(
        self,
        sql: str,
        params: Optional[Dict[str, Any]] = None,
        statement_name: Optional[str] = None,
        want_lastrowid: bool = False,
        key_columns: Sequence[str] = (),
    ) -> ExecutionResult:
        """
        Execute one statement in its own transaction.

        key_columns names the identifier column(s) of the written entity, so a
        collision on them is reported as DuplicateKeyException.
        """
        pass

    @abstractmethod
    def get_connection(self) -> AsyncContextManager[Any]:
        """Context manager yielding a raw connection inside a transaction."""
        pass

    @abstractmethod
    async def create_table_if_not_exists(self, entity_meta: EntityMetadata) -> None:
        pass
