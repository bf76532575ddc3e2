from pathlib import Path
from typing import Optional, Union

from pybatis.config.properties import ConfigurationProperties, get_config
from pybatis.core.instrumentation import get_instrumentation
from pybatis.core.logging import get_logger
from pybatis.data.adapters.base import DatabaseAdapter, ExecutionResult
from pybatis.data.adapters.sqlalchemy import SQLAlchemyAdapter
from pybatis.data.binding import (
    BindingRegistry,
    StatementBinding,
    StatementType,
    get_binding_registry,
    set_binding_registry,
)
from pybatis.data.entity import Entity, get_all_entities, get_entity_metadata, is_entity
from pybatis.data.mapper import (
    Mapper,
    clear_mapper_registry,
    find_orphan_statements,
    find_unbound_operations,
    get_all_mappers,
    get_database_adapter,
    get_mapper_metadata,
    set_database_adapter,
    validate_mappers,
)
from pybatis.data.result_map import ResultMap, ResultMapping
from pybatis.data.statement_decorators import Delete, Insert, Select, Update
from pybatis.data.types import Column, EntityMetadata, FieldMetadata, Id
from pybatis.data.xml_mapper import (
    MapperDocument,
    load_mapper_file,
    load_mapper_locations,
    parse_mapper_xml,
)
from pybatis.exceptions import ConfigurationException

logger = get_logger()

_ADAPTERS = {"sqlalchemy": SQLAlchemyAdapter}


async def initialize_database(
    config: Optional[ConfigurationProperties] = None,
    base_dir: Union[str, Path] = ".",
) -> Optional[DatabaseAdapter]:
    """
    Connect the database adapter and load mapper statements.

    Reads the database.*, mapper.* and metrics.* keys, connects the configured
    adapter, creates tables for registered entities when
    database.create_tables is set, registers every mapper XML file found under
    base_dir and optionally validates all declared mappers.

    Returns None when no database.url is configured.
    """
    config = config or get_config()

    database_url = config.get("database.url")
    if not database_url:
        logger.warning("database.url is not configured, skipping database setup")
        return None

    adapter_type = str(config.get("database.adapter", "sqlalchemy")).lower()
    adapter_class = _ADAPTERS.get(adapter_type)
    if adapter_class is None:
        raise ConfigurationException(f"Unknown database adapter: {adapter_type}")

    if config.get_bool("metrics.enabled"):
        get_instrumentation().enable()

    database_adapter = adapter_class()
    await database_adapter.connect(
        database_url,
        echo=config.get_bool("database.echo"),
        pool_size=config.get_int("database.pool.size"),
        max_overflow=config.get_int("database.pool.max_overflow"),
        pool_timeout=config.get_float("database.pool.timeout"),
        pool_recycle=config.get_int("database.pool.recycle"),
        enable_pooling=config.get_bool("database.pool.enabled", True),
        statement_timeout=config.get_float("database.timeout"),
    )
    set_database_adapter(database_adapter)

    if config.get_bool("database.create_tables", True):
        for entity_meta in get_all_entities().values():
            await database_adapter.create_table_if_not_exists(entity_meta)

    locations = config.get_list("mapper.locations")
    if locations:
        load_mapper_locations(locations, base_dir=base_dir)

    if config.get_bool("mapper.validate_on_startup"):
        validate_mappers(strict=True)

    return database_adapter


__all__ = [
    # Entity
    "Entity",
    "get_entity_metadata",
    "get_all_entities",
    "is_entity",
    # Field markers
    "Id",
    "Column",
    # Metadata
    "EntityMetadata",
    "FieldMetadata",
    # Mapper
    "Mapper",
    "get_mapper_metadata",
    "get_all_mappers",
    "clear_mapper_registry",
    "set_database_adapter",
    "get_database_adapter",
    # Statements
    "Select",
    "Insert",
    "Update",
    "Delete",
    "StatementBinding",
    "StatementType",
    "BindingRegistry",
    "get_binding_registry",
    "set_binding_registry",
    "ResultMap",
    "ResultMapping",
    # XML mappers
    "MapperDocument",
    "parse_mapper_xml",
    "load_mapper_file",
    "load_mapper_locations",
    # Validation
    "find_unbound_operations",
    "find_orphan_statements",
    "validate_mappers",
    # Adapters
    "DatabaseAdapter",
    "ExecutionResult",
    "SQLAlchemyAdapter",
    # Initialization
    "initialize_database",
]
