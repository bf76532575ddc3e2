"""
Tests for MyBatis-style mapper XML parsing and loading.
"""

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path

import pytest

from pybatis import Entity, Id
from pybatis.data.binding import BindingRegistry, StatementType
from pybatis.data.xml_mapper import (
    extract_namespace,
    is_mapper_xml,
    load_mapper_file,
    load_mapper_locations,
    parse_mapper_xml,
    resolve_type_alias,
)
from pybatis.exceptions import DuplicateBindingException, MapperXmlException


@Entity(table="xml_accounts")
@dataclass
class Account:
    id: int = Id()
    owner: str = ""


ACCOUNT_MAPPER = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE mapper PUBLIC "-//mybatis.org//DTD Mapper 3.0//EN"
        "http://mybatis.org/dtd/mybatis-3-mapper.dtd">
<mapper namespace="AccountMapper">
    <resultMap id="accountResult" type="Account">
        <id property="id" column="account_id"/>
        <result property="owner" column="owner_name"/>
    </resultMap>

    <sql id="columns">account_id, owner_name</sql>

    <select id="findAll" resultMap="accountResult">
        SELECT <include refid="columns"/> FROM xml_accounts
    </select>

    <select id="countAll" resultType="long">
        SELECT COUNT(*) FROM xml_accounts
    </select>

    <insert id="insert" useGeneratedKeys="true" keyProperty="id" keyColumn="account_id">
        INSERT INTO xml_accounts (owner_name) VALUES (#{owner})
    </insert>

    <update id="update">
        UPDATE xml_accounts SET owner_name = #{owner} WHERE account_id = #{id}
    </update>

    <delete id="deleteById">
        DELETE FROM xml_accounts WHERE account_id = #{id,jdbcType=BIGINT}
    </delete>
</mapper>
"""


def _mapper(body: str, namespace: str = "TestMapper") -> str:
    return f'<mapper namespace="{namespace}">{body}</mapper>'


class TestDetection:
    def test_doctype_is_detected(self):
        assert is_mapper_xml(ACCOUNT_MAPPER)

    def test_namespace_without_doctype_is_detected(self):
        assert is_mapper_xml(_mapper(""))

    def test_other_xml_is_not_a_mapper(self):
        assert not is_mapper_xml("<project><version>1</version></project>")

    def test_extract_namespace(self):
        assert extract_namespace(ACCOUNT_MAPPER) == "AccountMapper"
        assert extract_namespace("<mapper></mapper>") is None


class TestParseMapperXml:
    def test_statements(self):
        document = parse_mapper_xml(ACCOUNT_MAPPER, "AccountMapper.xml")

        assert document.namespace == "AccountMapper"
        assert document.source == "AccountMapper.xml"
        assert document.statement_ids() == [
            "find_all",
            "count_all",
            "insert",
            "update",
            "delete_by_id",
        ]
        types = {b.statement_id: b.statement_type for b in document.bindings}
        assert types["find_all"] is StatementType.SELECT
        assert types["insert"] is StatementType.INSERT
        assert types["update"] is StatementType.UPDATE
        assert types["delete_by_id"] is StatementType.DELETE

    def test_include_is_expanded(self):
        document = parse_mapper_xml(ACCOUNT_MAPPER)
        find_all = document.bindings[0]

        assert find_all.sql == "SELECT account_id, owner_name FROM xml_accounts"

    def test_result_map(self):
        document = parse_mapper_xml(ACCOUNT_MAPPER)
        result_map = document.result_maps["accountResult"]

        assert result_map.result_type is Account
        assert [(m.property, m.column, m.is_id) for m in result_map.mappings] == [
            ("id", "account_id", True),
            ("owner", "owner_name", False),
        ]
        assert document.bindings[0].result_map is result_map

    def test_result_type_alias(self):
        document = parse_mapper_xml(ACCOUNT_MAPPER)
        count_all = document.bindings[1]

        assert count_all.result_type is int
        assert count_all.result_map is None

    def test_generated_key_options(self):
        insert = parse_mapper_xml(ACCOUNT_MAPPER).bindings[2]

        assert insert.use_generated_keys is True
        assert insert.key_property == "id"
        assert insert.key_column == "account_id"
        assert insert.parameters == {"owner": ("owner",)}

    def test_jdbc_type_placeholder(self):
        delete = parse_mapper_xml(ACCOUNT_MAPPER).bindings[4]

        assert delete.sql == "DELETE FROM xml_accounts WHERE account_id = :id"

    def test_qualified_result_map_reference(self):
        document = parse_mapper_xml(
            _mapper(
                '<resultMap id="r" type="map"/>'
                '<select id="all" resultMap="TestMapper.r">SELECT 1</select>'
            )
        )

        assert document.bindings[0].result_map.result_type is dict

    def test_nested_includes(self):
        document = parse_mapper_xml(
            _mapper(
                '<sql id="a">id</sql>'
                '<sql id="b"><include refid="a"/>, name</sql>'
                '<select id="all">SELECT <include refid="b"/> FROM t</select>'
            )
        )

        assert document.bindings[0].sql == "SELECT id, name FROM t"


class TestParseErrors:
    def test_malformed_xml(self):
        with pytest.raises(MapperXmlException, match="Malformed"):
            parse_mapper_xml("<mapper namespace='x'><select>", "broken.xml")

    def test_source_is_part_of_message(self):
        with pytest.raises(MapperXmlException, match=r"\(in broken.xml\)"):
            parse_mapper_xml("<mapper>", "broken.xml")

    def test_wrong_root(self):
        with pytest.raises(MapperXmlException, match="Root element"):
            parse_mapper_xml("<configuration/>")

    def test_missing_namespace(self):
        with pytest.raises(MapperXmlException, match="namespace"):
            parse_mapper_xml("<mapper><select id='a'>SELECT 1</select></mapper>")

    def test_missing_statement_id(self):
        with pytest.raises(MapperXmlException, match="requires an id"):
            parse_mapper_xml(_mapper("<select>SELECT 1</select>"))

    def test_duplicate_statement_id(self):
        with pytest.raises(MapperXmlException, match="Duplicate statement id"):
            parse_mapper_xml(
                _mapper(
                    '<select id="findAll">SELECT 1</select>'
                    '<select id="find_all">SELECT 2</select>'
                )
            )

    @pytest.mark.parametrize("tag", ["if", "where", "foreach", "choose", "trim"])
    def test_dynamic_sql_is_rejected(self, tag):
        with pytest.raises(MapperXmlException, match=f"<{tag}> is not supported"):
            parse_mapper_xml(
                _mapper(f'<select id="a">SELECT * FROM t <{tag}>x</{tag}></select>')
            )

    def test_unknown_fragment(self):
        with pytest.raises(MapperXmlException, match="Unknown <sql> fragment"):
            parse_mapper_xml(
                _mapper('<select id="a">SELECT <include refid="nope"/></select>')
            )

    def test_circular_include(self):
        with pytest.raises(MapperXmlException, match="Circular"):
            parse_mapper_xml(
                _mapper(
                    '<sql id="a"><include refid="b"/></sql>'
                    '<sql id="b"><include refid="a"/></sql>'
                    '<select id="s">SELECT <include refid="a"/></select>'
                )
            )

    def test_empty_sql(self):
        with pytest.raises(MapperXmlException, match="has no SQL"):
            parse_mapper_xml(_mapper('<select id="a">   </select>'))

    def test_result_map_and_result_type_together(self):
        with pytest.raises(MapperXmlException, match="both resultMap and resultType"):
            parse_mapper_xml(
                _mapper(
                    '<resultMap id="r" type="map"/>'
                    '<select id="a" resultMap="r" resultType="int">SELECT 1</select>'
                )
            )

    def test_unknown_result_map(self):
        with pytest.raises(MapperXmlException, match="unknown resultMap"):
            parse_mapper_xml(_mapper('<select id="a" resultMap="r">SELECT 1</select>'))

    def test_unknown_result_type(self):
        with pytest.raises(MapperXmlException, match="Unknown type 'Ghost'"):
            parse_mapper_xml(
                _mapper('<select id="a" resultType="Ghost">SELECT 1</select>')
            )

    def test_unknown_result_map_property(self):
        with pytest.raises(MapperXmlException, match="unknown property"):
            parse_mapper_xml(
                _mapper(
                    '<resultMap id="r" type="Account">'
                    '<result property="balance" column="balance"/>'
                    "</resultMap>"
                )
            )

    def test_string_substitution(self):
        with pytest.raises(MapperXmlException, match="not supported"):
            parse_mapper_xml(_mapper('<select id="a">SELECT * FROM ${table}</select>'))


class TestResolveTypeAlias:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("int", int),
            ("Long", int),
            ("string", str),
            ("boolean", bool),
            ("double", float),
            ("decimal", Decimal),
            ("map", dict),
            ("hashmap", dict),
        ],
    )
    def test_builtin_aliases(self, name, expected):
        assert resolve_type_alias(name, "<test>") is expected

    def test_entity_by_simple_name(self):
        assert resolve_type_alias("Account", "<test>") is Account

    def test_java_style_qualified_entity_name(self):
        assert resolve_type_alias("com.example.domain.Account", "<test>") is Account

    def test_import_path(self):
        assert resolve_type_alias("pathlib.Path", "<test>") is Path


class TestLoading:
    def test_load_mapper_file_registers_bindings(self, tmp_path):
        path = tmp_path / "AccountMapper.xml"
        path.write_text(ACCOUNT_MAPPER, encoding="utf-8")
        registry = BindingRegistry()

        document = load_mapper_file(path, registry)

        assert document.source == str(path)
        assert registry.has("AccountMapper", "findAll")
        assert registry.resolve("AccountMapper", "insert").source == str(path)

    def test_reloading_same_file_is_allowed(self, tmp_path):
        path = tmp_path / "AccountMapper.xml"
        path.write_text(ACCOUNT_MAPPER, encoding="utf-8")
        registry = BindingRegistry()

        load_mapper_file(path, registry)
        load_mapper_file(path, registry)

        assert len(registry.statements("AccountMapper")) == 5

    def test_same_statement_in_two_files_conflicts(self, tmp_path):
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        for directory in ("a", "b"):
            (tmp_path / directory / "AccountMapper.xml").write_text(ACCOUNT_MAPPER)
        registry = BindingRegistry()

        load_mapper_file(tmp_path / "a" / "AccountMapper.xml", registry)

        with pytest.raises(DuplicateBindingException):
            load_mapper_file(tmp_path / "b" / "AccountMapper.xml", registry)

    def test_load_mapper_locations(self, tmp_path):
        mappers = tmp_path / "resources" / "mappers"
        mappers.mkdir(parents=True)
        (mappers / "AccountMapper.xml").write_text(ACCOUNT_MAPPER)
        (mappers / "orders.xml").write_text(
            _mapper('<select id="findAll">SELECT 1</select>', "OrderMapper")
        )
        (mappers / "pom.xml").write_text("<project/>")
        registry = BindingRegistry()

        documents = load_mapper_locations(
            ["**/*Mapper.xml", "**/mappers/**/*.xml"],
            base_dir=tmp_path,
            registry=registry,
        )

        namespaces = sorted(d.namespace for d in documents)
        assert namespaces == ["AccountMapper", "OrderMapper"]
        assert registry.namespaces() == ["AccountMapper", "OrderMapper"]

    def test_no_matches(self, tmp_path):
        registry = BindingRegistry()

        assert load_mapper_locations(["**/*.xml"], tmp_path, registry) == []
        assert registry.namespaces() == []
