from dataclasses import dataclass

from pybatis import Column, Entity, Id


@Entity()
@dataclass
class User:
    """User record managed through UserMapper."""

    id: int = Id()
    name: str = Column(nullable=False, max_length=100)
