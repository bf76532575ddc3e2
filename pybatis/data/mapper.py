"""
@Mapper: repository interfaces whose operations are bound to external SQL.

A mapper class declares operations as async method stubs. Each stub is
replaced by an implementation that, on every call, resolves the statement
binding registered for (namespace, operation name), binds the call arguments
to its parameters, executes it through the database adapter and materializes
the result.

    @Mapper(entity=User, namespace="UserMapper")
    class UserMapper:
        async def find_all(self) -> List[User]: ...
        async def find_by_id(self, id: int) -> Optional[User]: ...
        async def insert(self, user: User) -> int: ...
        async def update(self, user: User) -> int: ...
        async def delete_by_id(self, id: int) -> int: ...

Methods with real bodies are left alone and can use self.get_connection()
for hand-written SQLAlchemy queries.
"""

import ast
import collections.abc
import dataclasses
import functools
import inspect
import textwrap
import types
import typing
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from pybatis.core.instrumentation import instrument_operation
from pybatis.core.logging import get_logger
from pybatis.data.adapters.base import DatabaseAdapter, ExecutionResult
from pybatis.data.binding import (
    BindingRegistry,
    StatementBinding,
    StatementType,
    get_binding_registry,
    normalize_statement_id,
)
from pybatis.data.entity import get_entity_metadata, is_entity
from pybatis.data.result_map import resolve_result_map
from pybatis.data.statement_decorators import (
    StatementDefinition,
    get_statement_definition,
)
from pybatis.exceptions import (
    DataIntegrityException,
    DuplicateBindingException,
    MapperException,
    NotFoundException,
    ParameterBindingException,
    StorageUnavailableException,
    UnresolvedBindingException,
)

logger = get_logger()

_MANY_ORIGINS = (
    list,
    tuple,
    set,
    frozenset,
    collections.abc.Sequence,
    collections.abc.Iterable,
    collections.abc.Collection,
)
_UNION_TYPES = (Union, getattr(types, "UnionType", Union))
_MANY_PREFIXES = ("list", "typing.list", "sequence", "typing.sequence", "tuple", "set")
_OPTIONAL_PREFIXES = ("optional[", "typing.optional[")

_database_adapter: Optional[DatabaseAdapter] = None
_mapper_registry: List[type] = []


def get_database_adapter() -> Optional[DatabaseAdapter]:
    return _database_adapter


def set_database_adapter(adapter: Optional[DatabaseAdapter]):
    global _database_adapter
    _database_adapter = adapter


@dataclass
class MapperOperation:
    """One declared operation of a mapper."""

    method_name: str
    statement_id: str
    signature: inspect.Signature
    returns_many: bool
    element_type: Optional[type] = None
    local_binding: Optional[StatementBinding] = None


@dataclass
class MapperMetadata:
    name: str
    namespace: str
    entity_class: Optional[type]
    operations: Dict[str, MapperOperation] = field(default_factory=dict)


def Mapper(entity: Optional[type] = None, namespace: Optional[str] = None):
    """
    Turn a class of async stubs into a mapper.

    None is rejected before any SQL runs for an argument named like the
    entity's primary key, and for the only argument of an operation named
    "..._by_<primary key>" (find_by_id(user_id), delete_by_id(key)).

    Args:
        entity: Default result type and source of primary key metadata
        namespace: Namespace whose statement bindings back this mapper.
            Defaults to "<module>.<ClassName>".
    """

    def decorator(cls):
        mapper_namespace = namespace or f"{cls.__module__}.{cls.__qualname__}"
        metadata = MapperMetadata(
            name=cls.__name__, namespace=mapper_namespace, entity_class=entity
        )

        for attr_name, attr in list(cls.__dict__.items()):
            if attr_name.startswith("_") or not inspect.isfunction(attr):
                continue

            definition = get_statement_definition(attr)
            if definition is None and not _is_stub(attr):
                continue

            if not inspect.iscoroutinefunction(attr):
                raise MapperException(
                    f"{cls.__name__}.{attr_name} must be declared with 'async def'"
                )

            operation = _build_operation(cls, mapper_namespace, attr, definition)
            if operation.statement_id in metadata.operations:
                other = metadata.operations[operation.statement_id].method_name
                raise MapperException(
                    f"{cls.__name__}.{attr_name} and {cls.__name__}.{other} both "
                    f"map to statement '{operation.statement_id}'"
                )
            metadata.operations[operation.statement_id] = operation
            setattr(cls, attr_name, _make_operation_method(metadata, operation, attr))

        if "__init__" not in cls.__dict__:
            cls.__init__ = _mapper_init
        if "get_connection" not in cls.__dict__:
            cls.get_connection = _get_connection

        cls.__pybatis_mapper__ = metadata
        _mapper_registry.append(cls)
        return cls

    return decorator


def _mapper_init(
    self,
    adapter: Optional[DatabaseAdapter] = None,
    registry: Optional[BindingRegistry] = None,
):
    self._pybatis_adapter = adapter
    self._pybatis_registry = registry


def _get_connection(self):
    """Async context manager yielding a connection for custom queries."""
    return _adapter_for(self).get_connection()


def _is_stub(func) -> bool:
    """True when the body is only a docstring, '...' or 'pass'."""
    try:
        tree = ast.parse(textwrap.dedent(inspect.getsource(func)))
    except (OSError, TypeError, SyntaxError):
        # Without source the method is treated as declared
        return True

    node = tree.body[0] if tree.body else None
    if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
        return True

    return all(
        isinstance(stmt, ast.Pass)
        or (isinstance(stmt, ast.Expr) and isinstance(stmt.value, ast.Constant))
        for stmt in node.body
    )


def _return_info(func) -> Tuple[bool, Optional[type]]:
    """(returns_many, element_type) from the return annotation."""
    try:
        hints = typing.get_type_hints(func)
    except (NameError, TypeError, AttributeError):
        hints = {}

    raw = getattr(func, "__annotations__", {}).get("return", inspect.Signature.empty)
    annotation = hints.get("return", raw)

    if annotation is inspect.Signature.empty:
        return True, None
    return _annotation_info(annotation)


def _annotation_info(annotation) -> Tuple[bool, Optional[type]]:
    if isinstance(annotation, str):
        lowered = annotation.replace(" ", "").lower()
        for prefix in _OPTIONAL_PREFIXES:
            if lowered.startswith(prefix):
                lowered = lowered[len(prefix) :]
                break
        return lowered.startswith(_MANY_PREFIXES), None

    origin = typing.get_origin(annotation)

    if annotation in (list, tuple, set) or origin in _MANY_ORIGINS:
        args = typing.get_args(annotation)
        element = args[0] if args and isinstance(args[0], type) else None
        return True, element

    if origin in _UNION_TYPES:
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return _annotation_info(args[0])
        return False, None

    if isinstance(annotation, type) and annotation is not type(None):
        return False, annotation

    return False, None


def _build_operation(
    cls, namespace: str, func, definition: Optional[StatementDefinition]
) -> MapperOperation:
    statement_id = normalize_statement_id(func.__name__)
    returns_many, element_type = _return_info(func)

    local_binding = None
    if definition is not None:
        try:
            local_binding = StatementBinding.create(
                namespace,
                statement_id,
                definition.statement_type,
                definition.sql,
                source=f"@{definition.statement_type.value} on "
                f"{cls.__qualname__}.{func.__name__}",
                **definition.options,
            )
        except MapperException as e:
            raise MapperException(f"{cls.__name__}.{func.__name__}: {e}") from e

    return MapperOperation(
        method_name=func.__name__,
        statement_id=statement_id,
        signature=inspect.signature(func),
        returns_many=returns_many,
        element_type=element_type,
        local_binding=local_binding,
    )


def _make_operation_method(metadata: MapperMetadata, operation: MapperOperation, func):
    async def operation_method(self, *args, **kwargs):
        return await _execute_operation(self, metadata, operation, args, kwargs)

    functools.update_wrapper(operation_method, func)
    return instrument_operation(
        f"{metadata.name}.{operation.method_name}", operation_method
    )


def _adapter_for(instance) -> DatabaseAdapter:
    adapter = getattr(instance, "_pybatis_adapter", None) or get_database_adapter()
    if adapter is None:
        raise StorageUnavailableException(
            "No database adapter configured. Call initialize_database() or "
            "set_database_adapter() first."
        )
    return adapter


def _registry_for(instance) -> BindingRegistry:
    return getattr(instance, "_pybatis_registry", None) or get_binding_registry()


def resolve_binding(
    metadata: MapperMetadata, operation: MapperOperation, registry: BindingRegistry
) -> StatementBinding:
    """
    Find the one binding for an operation.

    A statement decorator on the method and an externally registered
    statement for the same id are a conflict.
    """
    external = registry.get(metadata.namespace, operation.statement_id)
    local = operation.local_binding

    if local is not None and external is not None:
        raise DuplicateBindingException(
            local.qualified_id, external.source, local.source
        )

    binding = local or external
    if binding is None:
        raise UnresolvedBindingException(metadata.namespace, operation.statement_id)
    return binding


def _call_arguments(
    instance, operation: MapperOperation, args: tuple, kwargs: dict
) -> Dict[str, Any]:
    try:
        bound = operation.signature.bind(instance, *args, **kwargs)
    except TypeError as e:
        raise ParameterBindingException(f"{operation.method_name}(): {e}") from e
    bound.apply_defaults()

    arguments = dict(bound.arguments)
    parameters = list(operation.signature.parameters.values())
    arguments.pop(parameters[0].name, None)

    for parameter in parameters:
        if parameter.kind is inspect.Parameter.VAR_KEYWORD:
            arguments.update(arguments.pop(parameter.name, {}))

    return arguments


def _check_identifier(
    metadata: MapperMetadata, operation: MapperOperation, arguments: Dict[str, Any]
):
    """
    Reject None identifiers: an argument named like the entity's primary key,
    or the only argument of a "..._by_<key>" operation such as
    find_by_id(user_id).
    """
    entity_class = metadata.entity_class
    if entity_class is None or not is_entity(entity_class):
        return
    key_field = get_entity_metadata(entity_class).primary_key_field

    if key_field in arguments:
        name = key_field
    elif len(arguments) == 1 and operation.statement_id.endswith(f"_by_{key_field}"):
        name = next(iter(arguments))
    else:
        return

    if arguments[name] is None:
        raise ParameterBindingException(f"Identifier '{name}' must not be None")


async def _execute_operation(
    instance,
    metadata: MapperMetadata,
    operation: MapperOperation,
    args: tuple,
    kwargs: dict,
):
    binding = resolve_binding(metadata, operation, _registry_for(instance))
    arguments = _call_arguments(instance, operation, args, kwargs)
    _check_identifier(metadata, operation, arguments)
    params = binding.bind(arguments)
    adapter = _adapter_for(instance)

    logger.debug(f"Executing {binding.qualified_id}: {binding.sql} with {params}")

    if binding.statement_type is StatementType.SELECT:
        return await _run_select(adapter, metadata, operation, binding, params)
    if binding.statement_type is StatementType.INSERT:
        return await _run_insert(adapter, binding, params, arguments, metadata)
    if binding.statement_type is StatementType.UPDATE:
        return await _run_update(adapter, binding, params, arguments, metadata)
    return await _run_delete(adapter, binding, params)


async def _run_select(
    adapter: DatabaseAdapter,
    metadata: MapperMetadata,
    operation: MapperOperation,
    binding: StatementBinding,
    params: Dict[str, Any],
):
    result = await adapter.execute(binding.sql, params, binding.qualified_id)
    result_map = resolve_result_map(
        binding.result_map,
        binding.result_type,
        operation.element_type or metadata.entity_class or dict,
    )
    values = result_map.materialize_all(result.rows)

    if operation.returns_many:
        return values
    if not values:
        return None
    if len(values) > 1:
        raise DataIntegrityException(
            f"{binding.qualified_id} expected at most one row, got {len(values)}"
        )
    return values[0]


def _insert_target(arguments: Dict[str, Any]) -> Optional[Any]:
    """The single dataclass argument of an insert, if there is one."""
    candidates = [
        value
        for value in arguments.values()
        if dataclasses.is_dataclass(value) and not isinstance(value, type)
    ]
    return candidates[0] if len(candidates) == 1 else None


def _key_columns(target: Optional[Any], metadata: MapperMetadata) -> Tuple[str, ...]:
    """Identifier column of the written entity, or of the mapper's entity."""
    if target is not None and is_entity(type(target)):
        entity_class = type(target)
    else:
        entity_class = metadata.entity_class
    if entity_class is None or not is_entity(entity_class):
        return ()
    primary_key = get_entity_metadata(entity_class).get_primary_key()
    return (primary_key.column,) if primary_key is not None else ()


def _generated_key(result: ExecutionResult, key_column: str) -> Optional[Any]:
    if result.returns_rows:
        if not result.rows:
            return None
        row = result.rows[0]
        for column, value in row.items():
            if column.lower() == key_column.lower():
                return value
        if len(row) == 1:
            return next(iter(row.values()))
        return None
    return result.lastrowid


async def _run_insert(
    adapter: DatabaseAdapter,
    binding: StatementBinding,
    params: Dict[str, Any],
    arguments: Dict[str, Any],
    metadata: MapperMetadata,
) -> int:
    target = _insert_target(arguments)
    key_property = binding.key_property
    auto_increment = False

    if target is not None and is_entity(type(target)):
        primary_key = get_entity_metadata(type(target)).get_primary_key()
        key_property = key_property or primary_key.name
        if primary_key.name == key_property:
            auto_increment = primary_key.auto_increment

    want_key = (
        target is not None
        and key_property is not None
        and (
            binding.use_generated_keys
            or (auto_increment and getattr(target, key_property, None) is None)
        )
    )

    result = await adapter.execute(
        binding.sql,
        params,
        binding.qualified_id,
        want_lastrowid=want_key,
        key_columns=_key_columns(target, metadata),
    )

    if want_key:
        key = _generated_key(result, binding.key_column or key_property)
        if key is None:
            logger.warning(
                f"{binding.qualified_id}: no generated key returned for "
                f"'{key_property}'. Add RETURNING to the statement for this database."
            )
        else:
            setattr(target, key_property, key)

    return result.rowcount


async def _run_update(
    adapter: DatabaseAdapter,
    binding: StatementBinding,
    params: Dict[str, Any],
    arguments: Dict[str, Any],
    metadata: MapperMetadata,
) -> int:
    target = _insert_target(arguments)
    result = await adapter.execute(
        binding.sql,
        params,
        binding.qualified_id,
        key_columns=_key_columns(target, metadata),
    )

    if result.rowcount == 0:
        identifier = ""
        if target is not None and is_entity(type(target)):
            key_field = get_entity_metadata(type(target)).primary_key_field
            identifier = f" for {key_field}={getattr(target, key_field)!r}"
        raise NotFoundException(f"{binding.qualified_id} matched no rows{identifier}")

    return result.rowcount


async def _run_delete(
    adapter: DatabaseAdapter, binding: StatementBinding, params: Dict[str, Any]
) -> int:
    result = await adapter.execute(binding.sql, params, binding.qualified_id)
    return max(result.rowcount, 0)


def get_mapper_metadata(mapper_cls) -> MapperMetadata:
    metadata = getattr(mapper_cls, "__pybatis_mapper__", None)
    if metadata is None:
        raise MapperException(f"{mapper_cls.__name__} is not a @Mapper")
    return metadata


def get_all_mappers() -> List[type]:
    return list(_mapper_registry)


def clear_mapper_registry():
    _mapper_registry.clear()


def find_unbound_operations(
    mapper_cls, registry: Optional[BindingRegistry] = None
) -> List[str]:
    """Declared operations with no statement binding."""
    metadata = get_mapper_metadata(mapper_cls)
    registry = registry or get_binding_registry()
    return [
        operation.method_name
        for operation in metadata.operations.values()
        if operation.local_binding is None
        and not registry.has(metadata.namespace, operation.statement_id)
    ]


def find_orphan_statements(
    mapper_cls, registry: Optional[BindingRegistry] = None
) -> List[str]:
    """Statements in the mapper's namespace that no declared operation uses."""
    metadata = get_mapper_metadata(mapper_cls)
    registry = registry or get_binding_registry()
    return [
        binding.statement_id
        for binding in registry.statements(metadata.namespace)
        if binding.statement_id not in metadata.operations
    ]


def validate_mappers(
    mappers: Optional[List[type]] = None,
    registry: Optional[BindingRegistry] = None,
    strict: bool = True,
) -> Dict[str, List[str]]:
    """
    Check that every declared operation resolves to exactly one binding.

    Returns mapper name -> unbound operation names (mappers without problems
    are omitted). Orphan statements are logged as warnings. With strict=True
    any unbound operation raises UnresolvedBindingException; conflicting
    bindings always raise DuplicateBindingException.
    """
    registry = registry or get_binding_registry()
    problems: Dict[str, List[str]] = {}

    for mapper_cls in mappers if mappers is not None else get_all_mappers():
        metadata = get_mapper_metadata(mapper_cls)
        unbound = []

        for operation in metadata.operations.values():
            try:
                resolve_binding(metadata, operation, registry)
            except UnresolvedBindingException:
                unbound.append(operation.method_name)
                logger.warning(
                    f"{metadata.name}.{operation.method_name} has no statement "
                    f"binding in namespace '{metadata.namespace}'"
                )

        for statement_id in find_orphan_statements(mapper_cls, registry):
            logger.warning(
                f"Statement {metadata.namespace}.{statement_id} has no matching "
                f"operation on {metadata.name}"
            )

        if unbound:
            problems[metadata.name] = unbound

    if strict and problems:
        qualified = [
            f"{name}.{operation}"
            for name, operations in problems.items()
            for operation in operations
        ]
        raise UnresolvedBindingException("", "", unbound=qualified)

    return problems
