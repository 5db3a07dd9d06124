"""
Quality Scorer - Scores test cases and keeps one record per (suite, name)
"""

from typing import Dict, Iterable, List, Optional

from .context import RunContext
from .extractor import GTEST_FRAMEWORKS, TestCase, build_suite_index, extract_support_blocks, extract_test_cases
from .rules import Rules

# Tunable heuristics.
ASSERTION_POINTS = 10
DESCRIPTIVE_NAME_POINTS = 15
POSITIVE_NAME_POINTS = 10
NEGATIVE_NAME_POINTS = 10
FIXTURE_HOOK_POINTS = 5
EDGE_CASE_PENALTY = 20

DESCRIPTIVE_MIN_LENGTH = 10
NAME_SEPARATORS = ('_', '-')
POSITIVE_HINTS = ('success', 'valid', 'positive')
NEGATIVE_HINTS = ('fail', 'invalid', 'negative', 'error')
FIXTURE_HOOKS = ('SetUp', 'TearDown')

GTEST_MAIN = """int main(int argc, char **argv) {
    ::testing::InitGoogleTest(&argc, argv);
    return RUN_ALL_TESTS();
}"""


class QualityScorer:
    """Heuristic quality score driven by the assertion and case rules"""

    def __init__(self, rules: Rules):
        self.preferred = list(rules.assertions.preferred)
        self.want_positive = rules.test_case_rules.include_positive_case
        self.want_negative = rules.test_case_rules.include_negative_case
        self.edge_cases = [token.lower() for token in rules.test_case_rules.avoid_edge_cases if token]

    def score(self, case: TestCase) -> int:
        body = case.body
        name = case.name.lower()
        score = ASSERTION_POINTS * sum(body.count(a) for a in self.preferred if a)

        if len(case.name) > DESCRIPTIVE_MIN_LENGTH and any(sep in case.name for sep in NAME_SEPARATORS):
            score += DESCRIPTIVE_NAME_POINTS
        if self.want_positive and any(hint in name for hint in POSITIVE_HINTS):
            score += POSITIVE_NAME_POINTS
        if self.want_negative and any(hint in name for hint in NEGATIVE_HINTS):
            score += NEGATIVE_NAME_POINTS
        if any(hook in body for hook in FIXTURE_HOOKS):
            score += FIXTURE_HOOK_POINTS

        lowered = body.lower()
        score -= EDGE_CASE_PENALTY * len({token for token in self.edge_cases if token in lowered})
        return score

    def resolve(self, index: Dict[str, List[TestCase]]) -> Dict[str, List[TestCase]]:
        """Keep one case per (suite, name): the highest score, first seen on ties"""
        kept: Dict[tuple, TestCase] = {}
        scores: Dict[tuple, int] = {}
        for cases in index.values():
            for case in cases:
                score = self.score(case)
                if case.key not in kept or score > scores[case.key]:
                    kept[case.key] = case
                    scores[case.key] = score
        return build_suite_index(kept.values())


def _include_lines(texts: Iterable[str]) -> List[str]:
    includes = []
    for text in texts:
        for line in text.splitlines():
            trimmed = line.strip()
            if trimmed.startswith('#include') and trimmed not in includes:
                includes.append(trimmed)
    return includes


def merge_test_files(paths: List[str], rules: Rules, ctx: Optional[RunContext] = None) -> str:
    """Extract, deduplicate and render several test files as one.

    Includes come first, then the support code of every input (fixtures,
    helpers) with exact duplicates dropped, then the surviving test cases.
    """
    ctx = ctx or RunContext()
    framework = rules.test_framework
    index: Dict[str, List[TestCase]] = {}
    texts = []
    support: List[str] = []
    total = 0
    for path in paths:
        with open(path, 'r', encoding='utf-8', errors='replace') as f:
            text = f.read()
        texts.append(text)
        cases = extract_test_cases(path, text, framework)
        total += len(cases)
        ctx.debug(f"[MERGE] {path}: {len(cases)} test cases")
        build_suite_index(cases, index)
        for block in extract_support_blocks(text, cases):
            if block not in support:
                support.append(block)

    resolved = QualityScorer(rules).resolve(index)
    kept = sum(len(cases) for cases in resolved.values())
    ctx.info(f"[MERGE] Kept {kept} of {total} test cases across {len(resolved)} suites")

    blocks = ["\n".join(_include_lines(texts))]
    blocks.extend(support)
    for cases in resolved.values():
        blocks.extend(case.body for case in cases)
    if framework.lower() in GTEST_FRAMEWORKS and any('int main(' in text for text in texts):
        blocks.append(GTEST_MAIN)
    return "\n\n".join(block for block in blocks if block) + "\n"
