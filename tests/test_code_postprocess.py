"""Tests for the deterministic Java clean-up passes."""

import pytest

from agentic_api_testgen.code_postprocess import (
    fix_order_annotation,
    inject_missing_imports,
    merge_multiline_body,
    post_process_code,
    strip_base_uri,
    strip_fences,
)


# =============================================================================
# FIXTURES - Java samples
# =============================================================================

RAW_CLASS = """```java
package com.api.tests;

@TestMethodOrder(OrderAnnotation.class)
public class ProductsApiTest extends BaseTest {

    @Test
    @Order(1)
    @DisplayName("Create a product")
    void createProduct() {
        Response response = given()
            .baseUri("https://fakestoreapi.com")
            .body("{\\"title\\": \\"Widget\\", " +
                  "\\"price\\": 9.99}")
            .when()
            .post("/products");
        response.then().statusCode(anyOf(is(200), is(201)));
    }
}
```"""

MULTILINE_LITERAL = """        given()
            .body("{\\"title\\": 
            \\"A\\"}")
            .when()"""


class TestIndividualPasses:
    """Tests for each pass in isolation."""

    def test_strip_fences(self):
        assert strip_fences("```java\nclass A {}\n```") == "class A {}\n"

    def test_fix_order_annotation_bare(self):
        out = fix_order_annotation("@TestMethodOrder(OrderAnnotation.class)")
        assert out == "@TestMethodOrder(MethodOrderer.OrderAnnotation.class)"

    def test_fix_order_annotation_wrong_owner(self):
        out = fix_order_annotation("@TestMethodOrder(TestMethodOrder.OrderAnnotation.class)")
        assert out == "@TestMethodOrder(MethodOrderer.OrderAnnotation.class)"

    def test_fix_order_annotation_leaves_correct_form(self):
        code = "@TestMethodOrder(MethodOrderer.OrderAnnotation.class)"
        assert fix_order_annotation(code) == code

    def test_strip_base_uri(self):
        code = 'given()\n    .baseUri("https://x.test")\n    .when()'
        assert strip_base_uri(code) == "given()\n    .when()"

    def test_strip_base_uri_nested_call(self):
        code = "given()\n    .baseUri(ApiConfig.getBaseUrl())\n    .when()"
        out = strip_base_uri(code)
        assert out == "given()\n    .when()"
        assert out.count("(") == out.count(")")

    def test_strip_base_uri_paren_inside_literal(self):
        code = 'given()\n    .baseUri("https://x.test/a)b")\n    .when()'
        assert strip_base_uri(code) == "given()\n    .when()"

    def test_merge_concatenated_literals(self):
        code = 'x.body("{\\"a\\": 1, " +\n      "\\"b\\": 2}")\n  .when()'
        assert merge_multiline_body(code) == 'x.body("{\\"a\\": 1, \\"b\\": 2}")\n  .when()'

    def test_merge_unterminated_literal(self):
        merged = merge_multiline_body(MULTILINE_LITERAL)
        assert '.body("{\\"title\\": \\"A\\"}")' in merged
        assert merged.count("\n") == 2

    def test_single_line_body_untouched(self):
        code = '    .body("{}")\n    .when()'
        assert merge_multiline_body(code) == code

    def test_non_literal_body_untouched(self):
        code = "    .body(payload\n    )"
        assert merge_multiline_body(code) == code

    def test_text_block_untouched(self):
        code = '    .body("""\n        {"a": 1}\n        """)'
        assert merge_multiline_body(code) == code


class TestImportInjection:
    """Tests for missing-import injection."""

    def test_adds_imports_after_package(self):
        code = "package com.x;\n\npublic class A {\n    @Test\n    void t() { given(); }\n}"
        out = inject_missing_imports(code)
        lines = out.split("\n")
        assert lines[0] == "package com.x;"
        assert "import org.junit.jupiter.api.Test;" in lines
        assert "import static io.restassured.RestAssured.given;" in lines

    def test_adds_imports_at_top_without_package(self):
        out = inject_missing_imports("class A {\n    @Test void t() {}\n}")
        assert out.startswith("import org.junit.jupiter.api.Test;\n\n")

    def test_existing_import_not_duplicated(self):
        code = "package p;\nimport org.junit.jupiter.api.Test;\nclass A { @Test void t() {} }"
        assert inject_missing_imports(code) == code

    def test_wildcard_import_covers_symbol(self):
        code = "package p;\nimport org.junit.jupiter.api.*;\nclass A { @Test @Order(1) void t() {} }"
        assert inject_missing_imports(code) == code

    def test_hamcrest_matchers_use_wildcard_import(self):
        out = inject_missing_imports("class A { void t() { x(notNullValue()); } }")
        assert "import static org.hamcrest.Matchers.*;" in out

    def test_usage_only_in_imports_is_ignored(self):
        code = "import org.junit.jupiter.api.Test;\nclass A {}"
        assert inject_missing_imports(code) == code


class TestPostProcessCode:
    """Tests for the full pipeline."""

    def test_full_clean_up(self):
        out = post_process_code(RAW_CLASS)
        assert "```" not in out
        assert ".baseUri(" not in out
        assert "@TestMethodOrder(MethodOrderer.OrderAnnotation.class)" in out
        assert "import org.junit.jupiter.api.MethodOrderer;" in out
        assert "import io.restassured.response.Response;" in out
        assert "import org.junit.jupiter.api.DisplayName;" in out
        assert '.body("{\\"title\\": \\"Widget\\", \\"price\\": 9.99}")' in out
        assert out.endswith("}\n")

    @pytest.mark.parametrize("code", [RAW_CLASS, MULTILINE_LITERAL, "", "class A {}"])
    def test_idempotent(self, code):
        once = post_process_code(code)
        assert post_process_code(once) == once
