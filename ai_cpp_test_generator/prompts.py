"""
Prompt Composer - Builds the model prompt from source code and the configured rules
"""

from typing import List, Optional

from .analyzer import SourceAnalyzer
from .rules import Rules

DEFAULT_METHODS = [
    "all public methods",
    "constructors",
    "destructors",
    "operators",
    "static methods",
]

EXAMPLE_TEST = """TEST(CalculatorTests, add_returns_sum_for_valid_input) {
    Calculator calc;
    EXPECT_EQ(calc.add(2, 3), 5);
}"""


def select_methods(rules: Rules, source_text: str) -> List[str]:
    """Methods the prompt asks the model to focus on.

    Manual mode returns the configured list verbatim. Dynamic mode uses the
    functions found in the source and falls back to a generic list when none
    are found.
    """
    if rules.methods_to_test.source == "manual":
        return list(rules.methods_to_test.manual_list)
    found = SourceAnalyzer().function_names(source_text)
    return found or list(DEFAULT_METHODS)


def compose_prompt(source_text: str, rules: Rules, extra_guidance: str = "",
                   include_directives: Optional[List[str]] = None) -> str:
    """Compose the generation prompt. Pure function of its arguments.

    Args:
        source_text: Code under test (header and implementation combined).
        rules: Generation rules.
        extra_guidance: Free text appended as additional requirements.
        include_directives: ``#include`` lines found in the source; discovered
            from ``source_text`` when omitted.
    """
    if include_directives is None:
        include_directives = SourceAnalyzer().extract_includes(source_text)
    fenced = rules.output_format.markdown_code_fences
    case_rules = rules.test_case_rules
    lines = []

    if rules.llm_prompt_guidance.role_description:
        lines.append(rules.llm_prompt_guidance.role_description)
        lines.append("")

    lines.append(
        f"Generate ONLY the C++ unit test code using {rules.test_framework} framework. "
        "Do not include any explanations, comments, or text outside the code."
    )
    lines.append("")
    lines.append("IMPORTANT OUTPUT REQUIREMENTS:")
    lines.append("- Return ONLY valid C++ test code")
    lines.append("- Do NOT include any explanatory text")
    lines.append("- Do NOT include phrases like 'Here is', 'This test', etc.")
    if fenced:
        lines.append("- Use markdown code fences (```cpp and ```)")
    else:
        lines.append("- Do NOT use markdown code fences")
    lines.append("- Start directly with #include statements or TEST macros")
    lines.append("- End with the last closing brace of the test")
    lines.append("")

    lines.append("Requirements:")
    lines.append(f"- Use C++ standard: {rules.standards.cpp_standard}")
    lines.append(f"- Include {case_rules.per_method} test cases per method")
    lines.append(f"- Maximum total tests: {case_rules.total_tests}")
    if case_rules.include_positive_case:
        lines.append("- Include positive test cases")
    if case_rules.include_negative_case:
        lines.append("- Include negative test cases")
    if case_rules.avoid_edge_cases:
        lines.append("- Avoid these edge cases: " + ", ".join(case_rules.avoid_edge_cases))

    if include_directives:
        lines.append("- Include relevant imports such as header files from original file")
        lines.append("- Additionally, include these imports from the original file: "
                     + ", ".join(include_directives))
    if rules.includes:
        lines.append("- Also include these headers: " + ", ".join(rules.includes))

    methods = select_methods(rules, source_text)
    if methods:
        lines.append("- Focus on testing: " + ", ".join(methods))

    naming = rules.naming
    if naming.descriptive_test_names:
        lines.append("- Use descriptive test names that state the scenario and expected outcome")
    if naming.include_class_in_test_name:
        lines.append("- Name each test suite after the class under test")
    lines.append(f"- Declare tests with the {naming.test_prefix} macro")
    if rules.assertions.preferred:
        lines.append("- Prefer these assertions: " + ", ".join(rules.assertions.preferred))
    if rules.assertions.complete_braces_required:
        lines.append("- Every test body must have complete, balanced braces")

    if rules.output_format.example_in_prompt and rules.llm_prompt_guidance.example_format_included:
        lines.append("")
        lines.append("Example of the expected format:")
        lines.append(EXAMPLE_TEST)

    if extra_guidance and extra_guidance.strip():
        lines.append("")
        lines.append("Additional requirements:")
        lines.append(extra_guidance.strip())

    lines.append("")
    lines.append("Code to test:")
    if fenced:
        lines.append("```cpp")
    lines.append(source_text)
    if fenced:
        lines.append("```")

    lines.append("")
    lines.append("Output only the complete C++ test file code:")
    if fenced:
        lines.append("```cpp")

    return "\n".join(lines)
