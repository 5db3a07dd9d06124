"""Tests for splitting test sources into test-case records."""

import pytest

from ai_cpp_test_generator import extractor
from ai_cpp_test_generator.extractor import (
    build_suite_index,
    extract_support_blocks,
    extract_test_cases,
    extract_test_file,
    find_closing_brace,
)

GTEST_SOURCE = """#include <gtest/gtest.h>

TEST(CalcTests, adds_positive_numbers) {
    if (true) {
        EXPECT_EQ(add(1, 2), 3);
    }
}

class CalcFixture : public ::testing::Test {
protected:
    void SetUp() override {}
};

TEST_F(CalcFixture, subtracts) {
    EXPECT_EQ(sub(3, 2), 1);
}
"""


class TestFindClosingBrace:
    def test_matches_nested_scopes(self):
        text = "{ { } { { } } }"
        assert find_closing_brace(text, 0) == len(text) - 1
        assert find_closing_brace(text, 2) == 4

    def test_unbalanced_returns_minus_one(self):
        assert find_closing_brace("{ { }", 0) == -1


class TestExtractGtest:
    def test_extracts_simple_and_fixture_tests_in_order(self):
        cases = extract_test_cases("calc_test.cc", GTEST_SOURCE)

        assert [case.key for case in cases] == [
            ("CalcTests", "adds_positive_numbers"),
            ("CalcFixture", "subtracts"),
        ]
        assert cases[0].body.startswith("TEST(CalcTests, adds_positive_numbers) {")
        assert cases[0].body.endswith("    }\n}")
        assert cases[1].body == "TEST_F(CalcFixture, subtracts) {\n    EXPECT_EQ(sub(3, 2), 1);\n}"
        assert all(case.file_path == "calc_test.cc" for case in cases)

    def test_bodies_have_balanced_braces(self):
        for case in extract_test_cases("calc_test.cc", GTEST_SOURCE):
            assert case.body.count("{") == case.body.count("}")

    def test_unbalanced_test_is_dropped_and_earlier_tests_survive(self):
        text = "TEST(A, ok) {\n    EXPECT_TRUE(x);\n}\n\nTEST(A, truncated) {\n    EXPECT_TRUE(y);\n"

        cases = extract_test_cases("a_test.cc", text)

        assert [case.name for case in cases] == ["ok"]

    def test_declaration_without_body_does_not_steal_next_body(self):
        text = "TEST(A, declared_only);\nTEST(A, real) {\n    EXPECT_TRUE(x);\n}\n"

        cases = extract_test_cases("a_test.cc", text)

        assert [case.name for case in cases] == ["real"]
        assert cases[0].body.startswith("TEST(A, real)")

    def test_declaration_inside_a_body_is_not_a_separate_case(self):
        text = "TEST(A, outer) {\n    // see TEST(B, inner) for details\n    EXPECT_TRUE(x);\n}\n"

        cases = extract_test_cases("a_test.cc", text)

        assert [case.key for case in cases] == [("A", "outer")]

    def test_tolerates_whitespace_in_declaration(self):
        cases = extract_test_cases("a_test.cc", "TEST ( Suite ,  name )\n{\n}\n")

        assert [case.key for case in cases] == [("Suite", "name")]

    def test_file_without_tests_yields_nothing(self):
        assert extract_test_cases("a_test.cc", "int main() { return 0; }") == []


class TestExtractStringNamedCases:
    @pytest.mark.parametrize("framework", ["catch2", "doctest"])
    def test_suite_is_file_stem(self, framework):
        text = 'TEST_CASE("adds numbers", "[math]") {\n    REQUIRE(add(1, 2) == 3);\n}\n'

        cases = extract_test_cases("tests/calc_test.cpp", text, framework)

        assert len(cases) == 1
        assert cases[0].suite == "calc_test"
        assert cases[0].name == "adds numbers"

    def test_unknown_framework_raises(self):
        with pytest.raises(ValueError):
            extract_test_cases("a_test.cc", "", "boost")


class TestSuiteIndex:
    def test_groups_by_suite_preserving_order(self):
        cases = [
            extractor.TestCase(suite="A", name="one", file_path="f", body="TEST(A, one) {}"),
            extractor.TestCase(suite="B", name="two", file_path="f", body="TEST(B, two) {}"),
            extractor.TestCase(suite="A", name="three", file_path="f", body="TEST(A, three) {}"),
        ]

        index = build_suite_index(cases)

        assert list(index) == ["A", "B"]
        assert [case.name for case in index["A"]] == ["one", "three"]

    def test_extends_existing_index(self):
        index = {"A": [extractor.TestCase(suite="A", name="one", file_path="f", body="{}")]}

        build_suite_index([extractor.TestCase(suite="A", name="two", file_path="g", body="{}")], index)

        assert [case.name for case in index["A"]] == ["one", "two"]


def test_extract_test_file_reads_from_disk(tmp_path):
    path = tmp_path / "calc_test.cc"
    path.write_text(GTEST_SOURCE)

    cases = extract_test_file(str(path))

    assert len(cases) == 2
    assert cases[0].file_path == str(path)


class TestSupportBlocks:
    def test_returns_code_outside_tests_without_includes_or_main(self):
        text = (
            "#include <gtest/gtest.h>\n\n"
            "struct Point {\n    int x;\n\n    int y;\n};\n\n"
            "TEST(PointTests, origin) {\n    Point p{0, 0};\n    EXPECT_EQ(p.x, 0);\n}\n\n"
            "int main(int argc, char **argv) {\n    ::testing::InitGoogleTest(&argc, argv);\n"
            "    return RUN_ALL_TESTS();\n}\n"
        )
        cases = extract_test_cases("point_test.cc", text)

        blocks = extract_support_blocks(text, cases)

        assert blocks == ["struct Point {\n    int x;\n\n    int y;\n};"]

    def test_keeps_fixture_class_between_tests(self):
        cases = extract_test_cases("calc_test.cc", GTEST_SOURCE)

        assert extract_support_blocks(GTEST_SOURCE, cases) == [
            "class CalcFixture : public ::testing::Test {\nprotected:\n    void SetUp() override {}\n};"
        ]
