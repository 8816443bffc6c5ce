"""
tests/test_naming.py
Unit tests for dbreverse.naming and the string helpers it builds on.

Tests cover:
- Case conversion and pluralisation helpers
- Entity, property, file, input and relation naming
- FK suffix stripping and bounded unique naming
- Database type normalisation and scalar resolution (overrides, enums, map)
"""

from __future__ import annotations

import pytest

from dbreverse.errors import UnsupportedTypeError
from dbreverse.models import CaseStyle, GenerationOptions, ScalarType
from dbreverse.naming import (
    apply_case,
    normalize_type_name,
    strip_fk_suffix,
    to_entity_name,
    to_file_name,
    to_input_file_name,
    to_input_name,
    to_property_name,
    to_relation_name,
    to_scalar_type,
    unique_name,
)
from dbreverse.utils import (
    sanitize_identifier,
    to_kebab_case,
    to_plural,
    to_singular,
    to_snake_case,
)


# ===========================================================================
# String helpers
# ===========================================================================


class TestStringHelpers:
    """Case conversion and pluralisation primitives."""

    def test_snake_case(self) -> None:
        assert to_snake_case("UserProfile") == "user_profile"
        assert to_snake_case("getHTTPResponse") == "get_http_response"
        assert to_snake_case("already_snake") == "already_snake"

    def test_kebab_case(self) -> None:
        assert to_kebab_case("My Project") == "my-project"
        assert to_kebab_case("shop_backend") == "shop-backend"

    def test_plural_and_singular(self) -> None:
        assert to_plural("category") == "categories"
        assert to_plural("post") == "posts"
        assert to_plural("box") == "boxes"
        assert to_plural("person") == "people"
        assert to_singular("categories") == "category"
        assert to_singular("people") == "person"
        assert to_singular("status") == "status"

    def test_singular_is_idempotent(self) -> None:
        for word in ("users", "addresses", "categories", "analysis"):
            once = to_singular(word)
            assert to_singular(once) == once

    def test_sanitize_identifier(self) -> None:
        assert sanitize_identifier("class") == "class_"
        assert sanitize_identifier("2fa_codes") == "_2fa_codes"
        assert sanitize_identifier("order-lines") == "order_lines"
        assert sanitize_identifier("---") == "_unnamed"


# ===========================================================================
# Identifier naming
# ===========================================================================


class TestIdentifierNaming:
    """Entity, property, file and relation names."""

    def test_entity_name_singular_pascal(self) -> None:
        options = GenerationOptions()
        assert to_entity_name("blog_posts", options) == "BlogPost"
        assert to_entity_name("categories", options) == "Category"
        assert to_entity_name("users", options) == "User"

    def test_entity_name_without_pluralize(self) -> None:
        options = GenerationOptions(pluralize=False)
        assert to_entity_name("users", options) == "Users"

    def test_entity_name_preserve_case(self) -> None:
        options = GenerationOptions(entity_case=CaseStyle.PRESERVE, pluralize=False)
        assert to_entity_name("tblOrders", options) == "tblOrders"

    def test_entity_name_escapes_keywords(self) -> None:
        options = GenerationOptions(entity_case=CaseStyle.PRESERVE, pluralize=False)
        assert to_entity_name("class", options) == "class_"

    def test_property_name_cases(self) -> None:
        assert to_property_name("createdAt", GenerationOptions()) == "created_at"
        camel = GenerationOptions(property_case=CaseStyle.CAMEL)
        assert to_property_name("created_at", camel) == "createdAt"

    def test_file_and_input_names(self) -> None:
        options = GenerationOptions()
        assert to_file_name("BlogPost", options) == "blog_post"
        assert to_input_name("BlogPost", options) == "BlogPostInput"
        assert to_input_file_name("BlogPost", options) == "blog_post_input"

    def test_custom_input_suffix(self) -> None:
        options = GenerationOptions(input_suffix="Payload")
        assert to_input_name("User", options) == "UserPayload"
        assert to_input_file_name("User", options) == "user_payload"

    def test_relation_name_pluralised_for_to_many(self) -> None:
        options = GenerationOptions()
        assert to_relation_name("Post", True, options) == "posts"
        assert to_relation_name("Category", True, options) == "categories"
        assert to_relation_name("author", False, options) == "author"

    def test_relation_name_no_pluralize(self) -> None:
        options = GenerationOptions(pluralize=False)
        assert to_relation_name("Post", True, options) == "post"

    def test_apply_case(self) -> None:
        assert apply_case("order_line", CaseStyle.PASCAL) == "OrderLine"
        assert apply_case("order_line", CaseStyle.CAMEL) == "orderLine"
        assert apply_case("OrderLine", CaseStyle.SNAKE) == "order_line"
        assert apply_case("Order_Line", CaseStyle.PRESERVE) == "Order_Line"


class TestStripFkSuffix:
    """Owning-side relation bases derived from FK column names."""

    @pytest.mark.parametrize(
        "column, expected",
        [
            ("author_id", "author"),
            ("ownerId", "owner"),
            ("parentID", "parent"),
            ("customer_fk", "customer"),
        ],
    )
    def test_suffix_removed(self, column: str, expected: str) -> None:
        assert strip_fk_suffix(column) == expected

    def test_no_suffix(self) -> None:
        assert strip_fk_suffix("author") is None

    def test_nothing_left(self) -> None:
        assert strip_fk_suffix("_id") is None


class TestUniqueName:
    """Collision suffixes with a bounded number of attempts."""

    def test_free_candidate(self) -> None:
        assert unique_name("user", [], 3) == "user"

    def test_numbered_suffix(self) -> None:
        assert unique_name("user", ["user"], 3) == "user2"
        assert unique_name("user", ["user", "user2"], 3) == "user3"

    def test_bound_exhausted(self) -> None:
        assert unique_name("user", ["user", "user2"], 1) is None


# ===========================================================================
# Type resolution
# ===========================================================================


class TestNormalizeTypeName:
    """Lookup keys for raw database types."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("VARCHAR(255)", "varchar"),
            ("INT(11) UNSIGNED", "int"),
            ("TIMESTAMP WITHOUT TIME ZONE", "timestamp"),
            ("timestamp with time zone", "timestamp"),
            ("NUMERIC(10, 2)", "numeric"),
            ("double   precision", "double precision"),
        ],
    )
    def test_normalise(self, raw: str, expected: str) -> None:
        assert normalize_type_name(raw) == expected


class TestToScalarType:
    """Override → enum → built-in map precedence."""

    def test_builtin_mapping(self) -> None:
        resolved = to_scalar_type("VARCHAR(120)", nullable=False)
        assert resolved.scalar == ScalarType.STRING
        assert resolved.python_type == "str"
        assert resolved.sa_type == "String"
        assert resolved.annotation == "str"

    def test_numeric_is_decimal(self) -> None:
        resolved = to_scalar_type("NUMERIC(10, 2)", nullable=True)
        assert resolved.scalar == ScalarType.NUMBER
        assert resolved.python_type == "Decimal"
        assert resolved.annotation == "Optional[Decimal]"

    def test_integer_and_datetime(self) -> None:
        assert to_scalar_type("INTEGER", False).sa_type == "Integer"
        assert to_scalar_type("bigint", False).sa_type == "BigInteger"
        assert to_scalar_type("DATETIME", False).python_type == "datetime"
        assert to_scalar_type("jsonb", False).scalar == ScalarType.JSON
        assert to_scalar_type("bytea", False).scalar == ScalarType.BUFFER

    def test_enum_values_win_over_map(self) -> None:
        resolved = to_scalar_type("varchar", False, enum_values=("a", "b"))
        assert resolved.scalar == ScalarType.ENUM
        assert resolved.sa_type == "Enum"
        assert resolved.enum_values == ("a", "b")

    def test_override_wins_unconditionally(self) -> None:
        overrides = {"varchar": ScalarType.JSON}
        resolved = to_scalar_type("VARCHAR(10)", False, overrides)
        assert resolved.scalar == ScalarType.JSON
        assert resolved.sa_type == "JSON"

    def test_override_by_raw_name(self) -> None:
        overrides = {"int[]": ScalarType.JSON}
        assert to_scalar_type("INT[]", True, overrides).scalar == ScalarType.JSON

    def test_number_override_maps_to_float(self) -> None:
        overrides = {"interval": ScalarType.NUMBER}
        resolved = to_scalar_type("interval", False, overrides)
        assert resolved.python_type == "float"
        assert resolved.sa_type == "Float"

    def test_enum_override_without_values_is_string_column(self) -> None:
        overrides = {"citext": ScalarType.ENUM}
        resolved = to_scalar_type("citext", False, overrides)
        assert resolved.scalar == ScalarType.ENUM
        assert resolved.sa_type == "String"

    def test_unsupported_type_raises(self) -> None:
        with pytest.raises(UnsupportedTypeError) as exc_info:
            to_scalar_type("interval", False)
        assert exc_info.value.database_type == "interval"
        assert "type override" in str(exc_info.value)
