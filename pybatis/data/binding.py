"""
Statement bindings and the registry that resolves them.

A binding ties an operation name inside a namespace to a parameterized SQL
statement and a materialization rule. Mappers never hold SQL themselves; they
resolve a binding from the registry every time an operation is called.
"""

import dataclasses
import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pybatis.core.logging import get_logger
from pybatis.data.result_map import SCALAR_TYPES, ResultMap
from pybatis.exceptions import (
    DuplicateBindingException,
    MapperException,
    ParameterBindingException,
    UnresolvedBindingException,
)

logger = get_logger()

# #{name}, #{user.name}, #{id,jdbcType=BIGINT}
_PLACEHOLDER_PATTERN = re.compile(r"#\{\s*([A-Za-z_][\w.]*)\s*(?:,[^}]*)?\}")
# :name bind parameters as understood by sqlalchemy.text()
_NAMED_PARAM_PATTERN = re.compile(r"(?<![:\w\\]):(\w+)(?!:)")
_SUBSTITUTION_PATTERN = re.compile(r"\$\{[^}]*\}")


class StatementType(str, Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


def normalize_statement_id(statement_id: str) -> str:
    """findById -> find_by_id; snake_case ids are returned unchanged."""
    name = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", statement_id.strip())
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name).lower()


def translate_placeholders(sql: str) -> Tuple[str, Dict[str, Tuple[str, ...]]]:
    """
    Rewrite #{...} placeholders into named bind parameters.

    Returns the rewritten SQL and a mapping of bind name -> attribute path.
    Bind parameters already written as :name are picked up as well.
    """
    if _SUBSTITUTION_PATTERN.search(sql):
        raise MapperException(
            "String substitution ${...} is not supported, use #{...} parameters"
        )

    parameters: Dict[str, Tuple[str, ...]] = {}

    def replace(match):
        path = tuple(match.group(1).split("."))
        bind_name = "__".join(path)
        parameters[bind_name] = path
        return f":{bind_name}"

    translated = _PLACEHOLDER_PATTERN.sub(replace, sql)

    for name in _NAMED_PARAM_PATTERN.findall(translated):
        parameters.setdefault(name, (name,))

    return translated, parameters


_MISSING = object()


def _lookup(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name, _MISSING)
    return getattr(value, name, _MISSING)


def _is_simple(value: Any) -> bool:
    return value is None or isinstance(value, SCALAR_TYPES) or not (
        isinstance(value, Mapping) or dataclasses.is_dataclass(value)
    )


@dataclass
class StatementBinding:
    """A named statement: SQL text plus how to bind and materialize it."""

    namespace: str
    statement_id: str
    statement_type: StatementType
    sql: str
    parameters: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    result_map: Optional[ResultMap] = None
    result_type: Optional[type] = None
    use_generated_keys: bool = False
    key_property: Optional[str] = None
    key_column: Optional[str] = None
    source: str = "<unknown>"

    @classmethod
    def create(
        cls,
        namespace: str,
        statement_id: str,
        statement_type: StatementType,
        sql: str,
        **options,
    ) -> "StatementBinding":
        """Build a binding from raw SQL containing #{...} or :name placeholders."""
        translated, parameters = translate_placeholders(sql)
        return cls(
            namespace=namespace,
            statement_id=normalize_statement_id(statement_id),
            statement_type=StatementType(statement_type),
            sql=" ".join(translated.split()),
            parameters=parameters,
            **options,
        )

    @property
    def qualified_id(self) -> str:
        return f"{self.namespace}.{self.statement_id}"

    def bind(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """
        Resolve every bind parameter against the call arguments.

        Names resolve by argument name. When there is exactly one argument,
        the fields of a dataclass or mapping argument are resolvable directly,
        and a simple argument satisfies any name.
        """
        bound = {}
        for bind_name, path in self.parameters.items():
            value = self._resolve(path, arguments)
            if value is _MISSING:
                available = sorted(arguments)
                if len(arguments) == 1:
                    only = next(iter(arguments.values()))
                    if dataclasses.is_dataclass(only) and not isinstance(only, type):
                        available += [f.name for f in dataclasses.fields(only)]
                raise ParameterBindingException(
                    f"Parameter '{'.'.join(path)}' not found for statement "
                    f"'{self.qualified_id}'. Available parameters are {available}"
                )
            bound[bind_name] = value
        return bound

    @staticmethod
    def _resolve(path: Tuple[str, ...], arguments: Dict[str, Any]) -> Any:
        head, rest = path[0], path[1:]

        if head in arguments:
            value = arguments[head]
        elif len(arguments) == 1:
            only = next(iter(arguments.values()))
            if _is_simple(only):
                value = only if not rest else _MISSING
            else:
                value = _lookup(only, head)
        else:
            value = _MISSING

        for name in rest:
            if value is _MISSING or value is None:
                return _MISSING
            value = _lookup(value, name)

        return value


class BindingRegistry:
    """
    Thread-safe lookup table: namespace -> statement id -> binding.

    A second binding for the same id from a different source is rejected.
    A binding from the same source replaces the previous one, so reloading a
    mapper file or redefining a mapper class is allowed.
    """

    def __init__(self):
        self._bindings: Dict[str, Dict[str, StatementBinding]] = {}
        self._lock = threading.Lock()

    def register(self, binding: StatementBinding) -> None:
        with self._lock:
            statements = self._bindings.setdefault(binding.namespace, {})
            existing = statements.get(binding.statement_id)
            if existing is not None and existing.source != binding.source:
                raise DuplicateBindingException(
                    binding.qualified_id, existing.source, binding.source
                )
            statements[binding.statement_id] = binding

        logger.debug(
            f"Registered statement {binding.qualified_id} from {binding.source}"
        )

    def get(self, namespace: str, statement_id: str) -> Optional[StatementBinding]:
        with self._lock:
            statements = self._bindings.get(namespace, {})
            return statements.get(normalize_statement_id(statement_id))

    def resolve(self, namespace: str, statement_id: str) -> StatementBinding:
        """Return the binding or raise UnresolvedBindingException."""
        binding = self.get(namespace, statement_id)
        if binding is None:
            raise UnresolvedBindingException(
                namespace, normalize_statement_id(statement_id)
            )
        return binding

    def has(self, namespace: str, statement_id: str) -> bool:
        return self.get(namespace, statement_id) is not None

    def statements(self, namespace: str) -> List[StatementBinding]:
        with self._lock:
            return list(self._bindings.get(namespace, {}).values())

    def namespaces(self) -> List[str]:
        with self._lock:
            return sorted(ns for ns, statements in self._bindings.items() if statements)

    def unregister_namespace(self, namespace: str) -> None:
        with self._lock:
            self._bindings.pop(namespace, None)

    def clear(self) -> None:
        with self._lock:
            self._bindings.clear()


_binding_registry = BindingRegistry()


def get_binding_registry() -> BindingRegistry:
    return _binding_registry


def set_binding_registry(registry: BindingRegistry) -> None:
    global _binding_registry
    _binding_registry = registry
