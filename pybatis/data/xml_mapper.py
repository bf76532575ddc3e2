"""
Loader for MyBatis-style XML mapper documents.

A mapper document binds statement ids inside a namespace to SQL:

    <mapper namespace="UserMapper">
        <resultMap id="userResult" type="User">
            <id property="id" column="user_id"/>
            <result property="name" column="user_name"/>
        </resultMap>
        <sql id="columns">id, name</sql>
        <select id="findAll" resultType="User">
            SELECT <include refid="columns"/> FROM users ORDER BY id
        </select>
        <insert id="insert" useGeneratedKeys="true" keyProperty="id">
            INSERT INTO users (name) VALUES (#{name})
        </insert>
    </mapper>

Dynamic SQL elements (<if>, <where>, <foreach>, ...) are not supported.
"""

import importlib
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from pybatis.core.logging import get_logger
from pybatis.data.binding import (
    BindingRegistry,
    StatementBinding,
    StatementType,
    get_binding_registry,
)
from pybatis.data.entity import find_entity_by_name
from pybatis.data.result_map import ResultMap, ResultMapping
from pybatis.exceptions import MapperException, MapperXmlException

logger = get_logger()

MYBATIS_DOCTYPE_PATTERN = re.compile(r"<!DOCTYPE\s+mapper[^>]*mybatis", re.IGNORECASE)
MAPPER_NAMESPACE_PATTERN = re.compile(
    r"<mapper\s+[^>]*namespace\s*=\s*[\"']([^\"']+)[\"']"
)

STATEMENT_TAGS = {tag.value: tag for tag in StatementType}

TYPE_ALIASES = {
    "int": int,
    "integer": int,
    "long": int,
    "short": int,
    "byte": int,
    "_int": int,
    "_long": int,
    "string": str,
    "boolean": bool,
    "_boolean": bool,
    "double": float,
    "float": float,
    "decimal": Decimal,
    "bigdecimal": Decimal,
    "map": dict,
    "hashmap": dict,
    "dict": dict,
}


@dataclass
class MapperDocument:
    """Parsed contents of one mapper XML document."""

    namespace: str
    source: str
    bindings: List[StatementBinding] = field(default_factory=list)
    result_maps: Dict[str, ResultMap] = field(default_factory=dict)

    def statement_ids(self) -> List[str]:
        return [binding.statement_id for binding in self.bindings]


def is_mapper_xml(content: str) -> bool:
    """True for documents with a mapper DOCTYPE or a namespaced <mapper> root."""
    return bool(
        MYBATIS_DOCTYPE_PATTERN.search(content)
        or MAPPER_NAMESPACE_PATTERN.search(content)
    )


def extract_namespace(content: str) -> Optional[str]:
    match = MAPPER_NAMESPACE_PATTERN.search(content)
    return match.group(1) if match else None


def resolve_type_alias(name: str, source: str) -> type:
    """
    Resolve a resultType/type attribute.

    Lookup order: built-in aliases, a dotted "package.module.Class" import
    path, then registered entities by simple class name (so Java-style names
    like "com.example.User" still find the User entity).
    """
    name = name.strip()
    alias = TYPE_ALIASES.get(name.lower())
    if alias is not None:
        return alias

    module_name, _, class_name = name.rpartition(".")
    if module_name:
        try:
            return getattr(importlib.import_module(module_name), class_name)
        except (ImportError, AttributeError):
            pass

    entity_class = find_entity_by_name(name)
    if entity_class is not None:
        return entity_class

    raise MapperXmlException(f"Unknown type '{name}'", source)


def parse_mapper_xml(content: str, source: str = "<string>") -> MapperDocument:
    """Parse a mapper XML document into statement bindings and result maps."""
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise MapperXmlException(f"Malformed mapper XML: {e}", source) from e

    if root.tag != "mapper":
        raise MapperXmlException(
            f"Root element must be <mapper>, found <{root.tag}>", source
        )

    namespace = (root.get("namespace") or "").strip()
    if not namespace:
        raise MapperXmlException("<mapper> requires a namespace attribute", source)

    document = MapperDocument(namespace=namespace, source=source)
    fragments = {
        element.get("id"): element
        for element in root.findall("sql")
        if element.get("id")
    }

    for element in root.findall("resultMap"):
        result_map = _parse_result_map(element, source)
        document.result_maps[result_map.id] = result_map

    seen = set()
    for element in root:
        statement_type = STATEMENT_TAGS.get(element.tag)
        if statement_type is None:
            continue

        binding = _parse_statement(
            element, statement_type, namespace, document, fragments, source
        )
        if binding.statement_id in seen:
            raise MapperXmlException(
                f"Duplicate statement id '{element.get('id')}'", source
            )
        seen.add(binding.statement_id)
        document.bindings.append(binding)

    return document


def _parse_result_map(element: ET.Element, source: str) -> ResultMap:
    result_map_id = element.get("id")
    type_name = element.get("type")
    if not result_map_id or not type_name:
        raise MapperXmlException(
            "<resultMap> requires id and type attributes", source
        )

    mappings = []
    for child in element:
        if child.tag not in ("id", "result"):
            raise MapperXmlException(
                f"<{child.tag}> inside <resultMap id=\"{result_map_id}\"> "
                "is not supported",
                source,
            )
        prop = child.get("property")
        if not prop:
            raise MapperXmlException(
                f"<{child.tag}> in result map '{result_map_id}' requires a property",
                source,
            )
        mappings.append(
            ResultMapping(
                property=prop,
                column=child.get("column") or prop,
                is_id=child.tag == "id",
            )
        )

    auto_mapping = (element.get("autoMapping") or "true").lower() != "false"
    result_type = resolve_type_alias(type_name, source)
    try:
        return ResultMap(
            id=result_map_id,
            result_type=result_type,
            mappings=mappings,
            auto_mapping=auto_mapping,
        )
    except MapperException as e:
        raise MapperXmlException(str(e), source) from e


def _parse_statement(
    element: ET.Element,
    statement_type: StatementType,
    namespace: str,
    document: MapperDocument,
    fragments: Dict[str, ET.Element],
    source: str,
) -> StatementBinding:
    statement_id = element.get("id")
    if not statement_id:
        raise MapperXmlException(f"<{element.tag}> requires an id attribute", source)

    result_map = None
    result_type = None
    result_map_ref = element.get("resultMap")
    result_type_name = element.get("resultType")

    if result_map_ref and result_type_name:
        raise MapperXmlException(
            f"Statement '{statement_id}' declares both resultMap and resultType",
            source,
        )
    if result_map_ref:
        # References may be qualified with the namespace
        ref = result_map_ref.rpartition(".")[2]
        result_map = document.result_maps.get(ref)
        if result_map is None:
            raise MapperXmlException(
                f"Statement '{statement_id}' references unknown resultMap "
                f"'{result_map_ref}'",
                source,
            )
    elif result_type_name:
        result_type = resolve_type_alias(result_type_name, source)

    sql = _collect_sql(element, fragments, source, ())
    if not sql.strip():
        raise MapperXmlException(f"Statement '{statement_id}' has no SQL", source)

    use_generated_keys = (element.get("useGeneratedKeys") or "").lower() == "true"

    try:
        return StatementBinding.create(
            namespace,
            statement_id,
            statement_type,
            sql,
            result_map=result_map,
            result_type=result_type,
            use_generated_keys=use_generated_keys,
            key_property=element.get("keyProperty"),
            key_column=element.get("keyColumn"),
            source=source,
        )
    except MapperException as e:
        raise MapperXmlException(f"Statement '{statement_id}': {e}", source) from e


def _collect_sql(
    element: ET.Element,
    fragments: Dict[str, ET.Element],
    source: str,
    including: tuple,
) -> str:
    parts = [element.text or ""]

    for child in element:
        if child.tag != "include":
            raise MapperXmlException(
                f"Dynamic SQL element <{child.tag}> is not supported", source
            )

        refid = child.get("refid", "").rpartition(".")[2]
        if refid not in fragments:
            raise MapperXmlException(f"Unknown <sql> fragment '{refid}'", source)
        if refid in including:
            raise MapperXmlException(
                f"Circular <include> of fragment '{refid}'", source
            )

        parts.append(
            _collect_sql(fragments[refid], fragments, source, including + (refid,))
        )
        parts.append(child.tail or "")

    return "".join(parts)


def register_document(
    document: MapperDocument, registry: Optional[BindingRegistry] = None
) -> MapperDocument:
    registry = registry or get_binding_registry()
    for binding in document.bindings:
        registry.register(binding)
    logger.debug(
        f"Loaded {len(document.bindings)} statements for {document.namespace} "
        f"from {document.source}"
    )
    return document


def load_mapper_file(
    path: Union[str, Path], registry: Optional[BindingRegistry] = None
) -> MapperDocument:
    """Parse a mapper XML file and register its statements."""
    path = Path(path)
    content = path.read_text(encoding="utf-8")
    return register_document(parse_mapper_xml(content, str(path)), registry)


def load_mapper_locations(
    patterns: Iterable[str],
    base_dir: Union[str, Path] = ".",
    registry: Optional[BindingRegistry] = None,
) -> List[MapperDocument]:
    """
    Load every mapper XML file matching the glob patterns under base_dir.

    Matching XML files that are not mapper documents are skipped.
    """
    base = Path(base_dir)
    documents = []
    seen = set()

    for pattern in patterns:
        for path in sorted(base.glob(pattern)):
            resolved = path.resolve()
            if resolved in seen or not path.is_file():
                continue
            seen.add(resolved)

            content = path.read_text(encoding="utf-8")
            if not is_mapper_xml(content):
                logger.debug(f"Skipping {path}: not a mapper document")
                continue

            documents.append(
                register_document(parse_mapper_xml(content, str(path)), registry)
            )

    namespaces = {document.namespace for document in documents}
    logger.info(
        f"Loaded {len(documents)} mapper files covering {len(namespaces)} namespaces"
    )
    return documents

