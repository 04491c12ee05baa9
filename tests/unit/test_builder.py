"""Unit tests for the template compiler."""

from __future__ import annotations

import pytest

from rowgraph.core.config import Configuration, Settings
from rowgraph.core.exceptions import (
    DuplicateIncludePropertyError,
    TemplateError,
    UnknownFragmentError,
)
from rowgraph.scripting.builder import compile_template
from rowgraph.scripting.source import DynamicSqlSource, RawSqlSource, evaluate


def _flat(sql: str) -> str:
    return " ".join(sql.split())


class TestCompileTemplate:
    def test_plain_sql_is_raw(self, configuration: Configuration) -> None:
        source = compile_template("SELECT * FROM blog WHERE id = #{id}", configuration)
        assert isinstance(source, RawSqlSource)
        assert evaluate(source, 5, configuration) == ("SELECT * FROM blog WHERE id = ?", [5])

    def test_plain_sql_with_substitution_is_dynamic(self, configuration: Configuration) -> None:
        source = compile_template("SELECT * FROM blog ORDER BY ${column}", configuration)
        assert isinstance(source, DynamicSqlSource)
        assert evaluate(source, {"column": "title"}, configuration)[0] == "SELECT * FROM blog ORDER BY title"

    def test_script_without_dynamic_tags_is_raw(self, configuration: Configuration) -> None:
        source = compile_template("<script>SELECT 1</script>", configuration)
        assert isinstance(source, RawSqlSource)

    def test_script_with_tags_is_dynamic(self, configuration: Configuration) -> None:
        source = compile_template(
            '<script>SELECT * FROM blog <where><if test="id != null">id = #{id}</if></where></script>',
            configuration,
        )
        assert isinstance(source, DynamicSqlSource)
        assert _flat(evaluate(source, {"id": 1}, configuration)[0]) == "SELECT * FROM blog WHERE id = ?"
        assert _flat(evaluate(source, {}, configuration)[0]) == "SELECT * FROM blog"

    def test_choose_when_otherwise(self, configuration: Configuration) -> None:
        source = compile_template(
            """<script>
            SELECT * FROM blog WHERE state = 'ACTIVE'
            <choose>
              <when test="title != null">AND title LIKE #{title}</when>
              <when test="author != null and author.name != null">AND author_name LIKE #{author.name}</when>
              <otherwise>AND featured = 1</otherwise>
            </choose>
            </script>""",
            configuration,
        )
        sql, params = evaluate(source, {"author": {"name": "jim"}}, configuration)
        assert _flat(sql).endswith("AND author_name LIKE ?")
        assert params == ["jim"]
        assert _flat(evaluate(source, {}, configuration)[0]).endswith("AND featured = 1")

    def test_set_and_foreach(self, configuration: Configuration) -> None:
        source = compile_template(
            """<script>
            UPDATE post
            <set>
              <if test="subject != null">subject = #{subject},</if>
              <if test="draft != null">draft = #{draft},</if>
            </set>
            WHERE id IN
            <foreach collection="ids" item="id" open="(" separator="," close=")">#{id}</foreach>
            </script>""",
            configuration,
        )
        sql, params = evaluate(source, {"subject": "s", "draft": None, "ids": [1, 2]}, configuration)
        assert _flat(sql) == "UPDATE post SET subject = ? WHERE id IN ( ? , ? )"
        assert params == ["s", 1, 2]

    def test_trim_attributes(self, configuration: Configuration) -> None:
        source = compile_template(
            '<script>SELECT 1 <trim prefix="WHERE" prefixOverrides="AND |OR ">'
            '<if test="a">or a = 1</if></trim></script>',
            configuration,
        )
        assert _flat(evaluate(source, {"a": True}, configuration)[0]) == "SELECT 1 WHERE a = 1"

    def test_bind_element(self, configuration: Configuration) -> None:
        source = compile_template(
            """<script>
            <bind name="pattern" value="'%' + title + '%'"/>
            SELECT * FROM blog WHERE title LIKE #{pattern}
            </script>""",
            configuration,
        )
        assert evaluate(source, {"title": "a"}, configuration)[1] == ["%a%"]

    def test_xml_escapes(self, configuration: Configuration) -> None:
        source = compile_template(
            '<script>SELECT * FROM post WHERE id &lt; #{max}<if test="min gt 0"> AND id &gt; #{min}</if></script>',
            configuration,
        )
        assert _flat(evaluate(source, {"max": 9, "min": 1}, configuration)[0]) == (
            "SELECT * FROM post WHERE id < ? AND id > ?"
        )

    def test_unknown_element(self, configuration: Configuration) -> None:
        with pytest.raises(TemplateError, match="Unknown element <loop>"):
            compile_template("<script>SELECT <loop/></script>", configuration)

    def test_malformed_xml(self, configuration: Configuration) -> None:
        with pytest.raises(TemplateError, match="Malformed"):
            compile_template("<script>SELECT <if test='x'></script>", configuration)

    def test_missing_required_attribute(self, configuration: Configuration) -> None:
        with pytest.raises(TemplateError, match="requires a 'test' attribute"):
            compile_template("<script><if>x</if></script>", configuration)

    def test_too_many_otherwise(self, configuration: Configuration) -> None:
        with pytest.raises(TemplateError, match="Too many default"):
            compile_template(
                "<script><choose><otherwise>a</otherwise><otherwise>b</otherwise></choose></script>",
                configuration,
            )

    def test_configuration_variables(self) -> None:
        configuration = Configuration(Settings(variables={"schema": "app"}))
        source = compile_template("SELECT * FROM ${schema}.blog", configuration)
        assert isinstance(source, RawSqlSource)
        assert evaluate(source, None, configuration)[0] == "SELECT * FROM app.blog"

    def test_shrink_whitespace(self) -> None:
        configuration = Configuration(Settings(shrink_whitespaces_in_sql=True))
        source = compile_template("SELECT *\n   FROM blog\n  WHERE id = #{id}", configuration)
        assert evaluate(source, 1, configuration)[0] == "SELECT * FROM blog WHERE id = ?"


class TestIncludes:
    def test_include_fragment(self, configuration: Configuration) -> None:
        configuration.add_fragment("blog.columns", "id, title, author_id")
        source = compile_template(
            '<script>SELECT <include refid="blog.columns"/> FROM blog</script>', configuration
        )
        assert isinstance(source, RawSqlSource)
        assert _flat(evaluate(source, None, configuration)[0]) == "SELECT id, title, author_id FROM blog"

    def test_include_with_properties(self, configuration: Configuration) -> None:
        configuration.add_fragment("columns", "${alias}.id, ${alias}.title")
        source = compile_template(
            '<script>SELECT <include refid="columns"><property name="alias" value="b"/></include>'
            " FROM blog b</script>",
            configuration,
        )
        assert _flat(evaluate(source, None, configuration)[0]) == "SELECT b.id, b.title FROM blog b"

    def test_include_refid_from_property(self, configuration: Configuration) -> None:
        configuration.add_fragment("from_blog", "FROM blog")
        configuration.add_fragment(
            "outer", '<script>SELECT * <include refid="${inner}"/></script>'
        )
        source = compile_template(
            '<script><include refid="outer"><property name="inner" value="from_blog"/></include></script>',
            configuration,
        )
        assert _flat(evaluate(source, None, configuration)[0]) == "SELECT * FROM blog"

    def test_dynamic_fragment(self, configuration: Configuration) -> None:
        configuration.add_fragment(
            "by_title", '<script><where><if test="title != null">title = #{title}</if></where></script>'
        )
        source = compile_template(
            '<script>SELECT * FROM blog <include refid="by_title"/></script>', configuration
        )
        assert isinstance(source, DynamicSqlSource)
        assert _flat(evaluate(source, {"title": "x"}, configuration)[0]) == "SELECT * FROM blog WHERE title = ?"

    def test_unknown_fragment(self, configuration: Configuration) -> None:
        with pytest.raises(UnknownFragmentError, match="nope"):
            compile_template('<script>SELECT <include refid="nope"/></script>', configuration)

    def test_duplicate_property(self, configuration: Configuration) -> None:
        configuration.add_fragment("cols", "${a}")
        with pytest.raises(DuplicateIncludePropertyError, match="'a' defined twice"):
            compile_template(
                '<script><include refid="cols"><property name="a" value="1"/>'
                '<property name="a" value="2"/></include></script>',
                configuration,
            )
