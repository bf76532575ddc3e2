from typing import Dict, List, Optional

from models import User
from sqlalchemy import func, select

from pybatis import Mapper, Select


@Mapper(entity=User, namespace="UserMapper")
class UserMapper:
    """Statements live in resources/UserMapper.xml."""

    async def find_all(self) -> List[User]: ...
    async def find_by_id(self, id: int) -> Optional[User]: ...
    async def insert(self, user: User) -> int: ...
    async def update(self, user: User) -> int: ...
    async def delete_by_id(self, id: int) -> int: ...

    # No statement in UserMapper.xml, calling it raises UnresolvedBindingException
    async def find_by_name(self, name: str) -> List[User]: ...

    @Select("SELECT COUNT(*) FROM users")
    async def count(self) -> int: ...

    async def count_by_name_length(self) -> Dict[int, int]:
        """
        Example of using get_connection() for custom SQLAlchemy Core queries.
        """
        from pybatis.data import get_database_adapter

        users = get_database_adapter().get_table(User)
        length = func.length(users.c.name)
        query = select(length.label("length"), func.count().label("total")).group_by(
            length
        )

        async with self.get_connection() as conn:
            result = await conn.execute(query)
            return {row.length: row.total for row in result.fetchall()}
