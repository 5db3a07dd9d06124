"""
Test Case Extractor - Splits a test source file into individual test-case records
"""

import os
import re
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict

# TEST(Suite, Name) and TEST_F/TEST_P(Fixture, Name)
_GTEST_SIMPLE = re.compile(r'\bTEST\s*\(\s*(\w+)\s*,\s*(\w+)\s*\)')
_GTEST_FIXTURE = re.compile(r'\bTEST_[FP]\s*\(\s*(\w+)\s*,\s*(\w+)\s*\)')
# TEST_CASE("name", "[tags]") in Catch2 / doctest
_STRING_CASE = re.compile(r'\bTEST_CASE\s*\(\s*"((?:[^"\\]|\\.)*)"[^)]*\)')

GTEST_FRAMEWORKS = ('gtest', 'googletest', 'gmock')
STRING_FRAMEWORKS = ('catch2', 'catch', 'doctest')


class TestCase(BaseModel):
    """One test: its identity key and the verbatim declaration-through-brace body"""

    model_config = ConfigDict(frozen=True)

    suite: str
    name: str
    file_path: str
    body: str

    @property
    def key(self):
        return (self.suite, self.name)


def find_closing_brace(text: str, open_index: int) -> int:
    """Index of the brace closing the one at ``open_index``, or -1 if it never closes.

    A depth counter, not a regex: nested scopes are what regexes cannot match.
    """
    depth = 0
    for i in range(open_index, len(text)):
        char = text[i]
        if char == '{':
            depth += 1
        elif char == '}':
            depth -= 1
            if depth == 0:
                return i
    return -1


def _declarations(text: str, framework: str, file_path: str):
    """Yield (start, end, suite, name) for every declaration, in file order"""
    framework = (framework or 'gtest').lower()
    found = []
    if framework in STRING_FRAMEWORKS:
        suite = os.path.splitext(os.path.basename(file_path))[0]
        for match in _STRING_CASE.finditer(text):
            found.append((match.start(), match.end(), suite, match.group(1)))
    elif framework in GTEST_FRAMEWORKS:
        for pattern in (_GTEST_SIMPLE, _GTEST_FIXTURE):
            for match in pattern.finditer(text):
                found.append((match.start(), match.end(), match.group(1), match.group(2)))
    else:
        raise ValueError(f"Unsupported test framework: {framework}")
    return sorted(found)


def extract_test_cases(file_path: str, text: str, framework: str = 'gtest') -> List[TestCase]:
    """Parse ``text`` into test cases.

    A declaration without a balanced body, or whose first ``{`` belongs to a
    later declaration, is dropped; the rest of the file is still processed.
    """
    declarations = _declarations(text, framework, file_path)
    cases = []
    consumed_until = 0
    for index, (start, end, suite, name) in enumerate(declarations):
        if start < consumed_until:
            continue
        open_index = text.find('{', end)
        if open_index == -1:
            continue
        next_start = declarations[index + 1][0] if index + 1 < len(declarations) else len(text)
        if open_index > next_start:
            continue
        close_index = find_closing_brace(text, open_index)
        if close_index == -1:
            continue
        cases.append(TestCase(suite=suite, name=name, file_path=file_path,
                              body=text[start:close_index + 1]))
        consumed_until = close_index + 1
    return cases


def extract_test_file(file_path: str, framework: str = 'gtest') -> List[TestCase]:
    with open(file_path, 'r', encoding='utf-8', errors='replace') as f:
        return extract_test_cases(file_path, f.read(), framework)


def build_suite_index(cases: Iterable[TestCase],
                      index: Optional[Dict[str, List[TestCase]]] = None) -> Dict[str, List[TestCase]]:
    """Group cases by suite, preserving first-seen order"""
    index = index if index is not None else {}
    for case in cases:
        index.setdefault(case.suite, []).append(case)
    return index


_MAIN = re.compile(r'\bint\s+main\s*\([^)]*\)')
_EMPTY_NAMESPACE = re.compile(r"namespace\s*\w*\s*\{\s*\}\s*(//.*)?")


def _cut_main(text: str) -> str:
    match = _MAIN.search(text)
    if not match:
        return text
    open_index = text.find('{', match.end())
    close_index = find_closing_brace(text, open_index) if open_index != -1 else -1
    if close_index == -1:
        return text
    return text[:match.start()] + text[close_index + 1:]


def extract_support_blocks(text: str, cases: Iterable[TestCase]) -> List[str]:
    """Top-level code around the test cases: fixture classes, helpers, using declarations.

    Include lines and ``main`` are left out. Blocks are split on blank lines
    outside braces, so a fixture class stays in one piece.
    """
    for case in cases:
        text = text.replace(case.body, '', 1)
    text = _cut_main(text)

    blocks = []
    current: List[str] = []
    depth = 0
    for line in text.splitlines():
        stripped = line.strip()
        if depth == 0 and (not stripped or stripped.startswith('#include')):
            if current:
                blocks.append("\n".join(current).strip())
                current = []
            continue
        current.append(line.rstrip())
        depth = max(0, depth + line.count('{') - line.count('}'))
    if current:
        blocks.append("\n".join(current).strip())
    return [block for block in blocks if block and not _EMPTY_NAMESPACE.fullmatch(block)]
