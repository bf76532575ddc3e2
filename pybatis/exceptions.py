"""
Exception hierarchy for pybatis.

Declaration errors (bad entities, malformed mapper XML, conflicting bindings)
are raised while the application is being wired up. Statement errors are
raised by mapper operations at call time and are meant to be handled by the
caller, one kind at a time.
"""

from typing import Iterable, Optional


class PybatisException(Exception):
    """Base exception for all pybatis errors."""

    pass


class ConfigurationException(PybatisException):
    """Raised when configuration is missing or invalid."""

    pass


class EntityException(PybatisException):
    """Raised when an entity declaration is invalid."""

    pass


class MapperException(PybatisException):
    """Raised when a mapper or statement declaration is invalid."""

    pass


class MapperXmlException(MapperException):
    """Raised when a mapper XML document cannot be parsed."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        if source:
            message = f"{message} (in {source})"
        super().__init__(message)


class DuplicateBindingException(MapperException):
    """Raised when two sources bind the same statement id in one namespace."""

    def __init__(self, qualified_id: str, existing_source: str, new_source: str):
        self.qualified_id = qualified_id
        self.existing_source = existing_source
        self.new_source = new_source
        super().__init__(
            f"Statement '{qualified_id}' is already bound by {existing_source}; "
            f"cannot bind it again from {new_source}"
        )


class StatementException(PybatisException):
    """Base exception for failures while executing a mapper operation."""

    pass


class UnresolvedBindingException(StatementException):
    """Raised when a declared operation has no statement binding."""

    def __init__(
        self,
        namespace: str,
        statement_id: str,
        unbound: Optional[Iterable[str]] = None,
    ):
        self.namespace = namespace
        self.statement_id = statement_id
        self.unbound = list(unbound) if unbound is not None else []
        if self.unbound:
            message = "Mapper operations without statement bindings: " + ", ".join(
                self.unbound
            )
        else:
            message = (
                f"No statement binding registered for '{statement_id}' "
                f"in namespace '{namespace}'"
            )
        super().__init__(message)


class ParameterBindingException(StatementException):
    """Raised when statement parameters cannot be bound from call arguments."""

    pass


class StorageUnavailableException(StatementException):
    """Raised when the backing database cannot be reached."""

    pass


class QueryTimeoutException(StatementException):
    """Raised when a statement does not complete within the configured timeout."""

    def __init__(self, statement: str, timeout: float):
        self.statement = statement
        self.timeout = timeout
        super().__init__(f"Statement '{statement}' timed out after {timeout}s")


class NotFoundException(StatementException):
    """Raised when an update matches no stored record."""

    pass


class DuplicateKeyException(StatementException):
    """Raised when an insert collides with an existing key."""

    pass


class ConstraintViolationException(StatementException):
    """Raised when a write breaks a schema rule other than key uniqueness."""

    pass


class DataIntegrityException(StatementException):
    """Raised when a single-row read matches more than one row."""

    pass


class StatementExecutionException(StatementException):
    """Raised for any other driver error, such as invalid SQL."""

    pass
