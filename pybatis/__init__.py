from pybatis.config.properties import get_config, reload_config
from pybatis.core.logging import configure_logging, get_logger
from pybatis.data import (
    BindingRegistry,
    Column,
    Delete,
    Entity,
    Id,
    Insert,
    Mapper,
    ResultMap,
    ResultMapping,
    Select,
    SQLAlchemyAdapter,
    Update,
    get_binding_registry,
    get_database_adapter,
    initialize_database,
    load_mapper_file,
    load_mapper_locations,
    set_binding_registry,
    set_database_adapter,
    validate_mappers,
)
from pybatis.exceptions import (
    ConstraintViolationException,
    DataIntegrityException,
    DuplicateBindingException,
    DuplicateKeyException,
    MapperException,
    MapperXmlException,
    NotFoundException,
    ParameterBindingException,
    PybatisException,
    QueryTimeoutException,
    StatementException,
    StatementExecutionException,
    StorageUnavailableException,
    UnresolvedBindingException,
)
from pybatis.version import get_version

__version__ = get_version()

__all__ = [
    # Entities and mappers
    "Entity",
    "Id",
    "Column",
    "Mapper",
    "Select",
    "Insert",
    "Update",
    "Delete",
    "ResultMap",
    "ResultMapping",
    # Bindings
    "BindingRegistry",
    "get_binding_registry",
    "set_binding_registry",
    "load_mapper_file",
    "load_mapper_locations",
    "validate_mappers",
    # Database
    "SQLAlchemyAdapter",
    "initialize_database",
    "get_database_adapter",
    "set_database_adapter",
    # Config and logging
    "get_config",
    "reload_config",
    "get_logger",
    "configure_logging",
    # Exceptions
    "PybatisException",
    "MapperException",
    "MapperXmlException",
    "DuplicateBindingException",
    "StatementException",
    "UnresolvedBindingException",
    "ParameterBindingException",
    "StorageUnavailableException",
    "QueryTimeoutException",
    "NotFoundException",
    "DuplicateKeyException",
    "ConstraintViolationException",
    "DataIntegrityException",
    "StatementExecutionException",
    "__version__",
]
