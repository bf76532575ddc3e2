from pybatis.data.adapters.base import DatabaseAdapter, ExecutionResult
from pybatis.data.adapters.sqlalchemy import SQLAlchemyAdapter, translate_error

__all__ = ["DatabaseAdapter", "ExecutionResult", "SQLAlchemyAdapter", "translate_error"]
