"""
Tests for naming helpers: case conversion, plural forms and sanitizing.
"""

import pytest

from crudforge.core.naming import (
    NamingCase,
    create_java_sanitizer,
    is_valid_package,
    package_to_path,
    pluralize,
    singularize,
    to_camel_case,
    to_kebab_case,
    to_pascal_case,
    to_snake_case,
)


class TestCaseConversion:
    @pytest.mark.parametrize(
        "name, expected",
        [("userName", "user_name"), ("UserName", "user_name"), ("HTTPServer", "http_server"),
         ("order-items", "order_items"), ("already_snake", "already_snake")],
    )
    def test_snake_case(self, name, expected):
        assert to_snake_case(name) == expected

    def test_camel_and_pascal(self):
        assert to_camel_case("created_at") == "createdAt"
        assert to_pascal_case("order_item") == "OrderItem"

    def test_kebab(self):
        assert to_kebab_case("order_items") == "order-items"


class TestPlurals:
    @pytest.mark.parametrize(
        "plural, singular",
        [("users", "user"), ("categories", "category"), ("addresses", "address"),
         ("boxes", "box"), ("statuses", "status"), ("houses", "house"),
         ("people", "person"), ("order_items", "order_item"), ("data", "data")],
    )
    def test_singularize(self, plural, singular):
        assert singularize(plural) == singular

    @pytest.mark.parametrize(
        "singular, plural",
        [("user", "users"), ("category", "categories"), ("box", "boxes"),
         ("day", "days"), ("person", "people"), ("OrderItem", "OrderItems")],
    )
    def test_pluralize(self, singular, plural):
        assert pluralize(singular) == plural


class TestSanitizer:
    def test_reserved_word_gets_suffix(self):
        sanitizer = create_java_sanitizer()
        assert sanitizer.sanitize_name("class", NamingCase.CAMEL_CASE) == "class_"

    def test_builtin_class_name(self):
        sanitizer = create_java_sanitizer()
        name = sanitizer.sanitize_name("Object", NamingCase.PASCAL_CASE, suffix_on_conflict="Entity")
        assert name == "ObjectEntity"

    def test_same_input_is_stable(self):
        sanitizer = create_java_sanitizer()
        first = sanitizer.sanitize_name("user_id", NamingCase.CAMEL_CASE)
        assert sanitizer.sanitize_name("user_id", NamingCase.CAMEL_CASE) == first

    def test_collapsing_inputs_get_counter(self):
        sanitizer = create_java_sanitizer()
        assert sanitizer.sanitize_name("user_id", NamingCase.CAMEL_CASE) == "userId"
        assert sanitizer.sanitize_name("userId", NamingCase.CAMEL_CASE) == "userId1"

    def test_leading_digit(self):
        sanitizer = create_java_sanitizer()
        assert sanitizer.sanitize_name("2fa_code", NamingCase.CAMEL_CASE) == "n2faCode"


class TestPackages:
    def test_package_to_path(self):
        assert package_to_path("com.example.app") == "com/example/app"

    @pytest.mark.parametrize("package", ["com.example", "org.acme_shop.v2"])
    def test_valid(self, package):
        assert is_valid_package(package)

    @pytest.mark.parametrize("package", ["", "Com.Example", "com..example", "com.class", "1com"])
    def test_invalid(self, package):
        assert not is_valid_package(package)
