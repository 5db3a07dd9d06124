"""
Response Sanitizer - Turns free-form model output into a test source file
"""

import re
from typing import List, Tuple

EXPLANATORY_PHRASES = (
    "Here is the unit test code",
    "This test file includes",
    "The test file contains",
    "These tests cover",
    "The maximum total tests are",
    "as per the requirement",
    "This covers",
    "The tests include",
)

REQUIRED_TOKENS = ("#include", "TEST(", "TEST_F(", "EXPECT_", "ASSERT_")

FENCE = "```"
_STRAY_FENCE = re.compile(r"```(?:cpp|c\+\+)?")


class ResponseSanitizer:
    """Strips prose and markdown fences, then checks that test code remains.

    ``sanitize`` is idempotent: its output never contains a denylisted phrase,
    a fence marker or surrounding blank lines, so a second pass changes
    nothing.
    """

    def __init__(self, phrases=EXPLANATORY_PHRASES, required_tokens=REQUIRED_TOKENS):
        self.phrases = tuple(phrases)
        self.required_tokens = tuple(required_tokens)

    def sanitize(self, raw_text: str) -> Tuple[str, bool]:
        lines = self._drop_explanations(raw_text.splitlines())
        code = self._extract_code_blocks(lines)
        code = self._strip_stray_fences(code)
        lines = self._drop_explanations(code.splitlines())
        code = "\n".join(self._trim_blank_lines(lines))
        return code, self.is_valid(code)

    def is_valid(self, code: str) -> bool:
        return any(token in code for token in self.required_tokens)

    def _drop_explanations(self, lines: List[str]) -> List[str]:
        return [line for line in lines if not any(phrase in line for phrase in self.phrases)]

    def _extract_code_blocks(self, lines: List[str]) -> str:
        """Collect lines inside fences; with no fence at all, keep everything"""
        code_lines = []
        inside = False
        seen_fence = False
        for line in lines:
            if line.strip().startswith(FENCE):
                inside = not inside
                seen_fence = True
                continue
            if inside:
                code_lines.append(line)

        if not seen_fence:
            return "\n".join(lines)
        return "\n".join(code_lines)

    def _strip_stray_fences(self, code: str) -> str:
        # removal can splice new markers together, so repeat until stable
        while FENCE in code:
            code = _STRAY_FENCE.sub("", code)
        return code

    def _trim_blank_lines(self, lines: List[str]) -> List[str]:
        start, end = 0, len(lines)
        while start < end and not lines[start].strip():
            start += 1
        while end > start and not lines[end - 1].strip():
            end -= 1
        return lines[start:end]


def sanitize(raw_text: str) -> Tuple[str, bool]:
    return ResponseSanitizer().sanitize(raw_text)
