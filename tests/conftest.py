"""Shared fixtures for the ai_cpp_test_generator test suite."""

import io
import threading
from typing import Any, Dict, Iterator, List, Optional, Union

import pytest

from ai_cpp_test_generator.backends import GenerationOptions, ModelBackend
from ai_cpp_test_generator.codebase import SourceUnit
from ai_cpp_test_generator.context import RunContext
from ai_cpp_test_generator.rules import Rules

VALID_TEST_CODE = """#include <gtest/gtest.h>
#include "calc.h"

TEST(CalcTests, add_returns_sum_for_valid_input) {
    EXPECT_EQ(add(2, 3), 5);
}"""

CALC_HEADER = """#pragma once
int add(int a, int b);
"""

CALC_IMPL = """#include "calc.h"

int add(int a, int b) {
    return a + b;
}
"""

# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------


def make_rules(**overrides: Any) -> Rules:
    """Build Rules from nested section overrides, e.g. ``make_rules(paths={...})``."""
    data: Dict[str, Any] = {}
    data.update(overrides)
    return Rules.model_validate(data)


def make_unit(**overrides: Any) -> SourceUnit:
    defaults: Dict[str, Any] = {
        "base_name": "codebase/calc",
        "impl_path": "codebase/calc.cpp",
        "impl_text": CALC_IMPL,
        "header_path": "codebase/calc.h",
        "header_text": CALC_HEADER,
    }
    defaults.update(overrides)
    return SourceUnit(**defaults)


class StubBackend(ModelBackend):
    """Scripted backend: each generate call consumes the next scripted response.

    A scripted ``Exception`` instance is raised instead of yielding text.
    """

    name = "stub"

    def __init__(self, models: Optional[List[str]] = None,
                 responses: Optional[List[Union[str, Exception]]] = None,
                 default: Union[str, Exception] = VALID_TEST_CODE):
        self.models = list(models) if models is not None else ["primary"]
        self.responses = list(responses or [])
        self.default = default
        self.calls: List[Dict[str, Any]] = []
        self.list_calls = 0
        self._lock = threading.Lock()

    def list_models(self) -> List[str]:
        self.list_calls += 1
        return list(self.models)

    def generate(self, model: str, prompt: str, options: GenerationOptions,
                 timeout_seconds: float) -> Iterator[str]:
        with self._lock:
            self.calls.append({"model": model, "prompt": prompt, "options": options,
                               "timeout_seconds": timeout_seconds})
            response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        # split in two so callers must concatenate fragments
        middle = len(response) // 2
        yield response[:middle]
        yield response[middle:]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sink() -> io.StringIO:
    return io.StringIO()


@pytest.fixture()
def ctx(sink: io.StringIO) -> RunContext:
    return RunContext(debug=True, sink=sink)


@pytest.fixture()
def rules() -> Rules:
    return Rules()


@pytest.fixture()
def codebase(tmp_path):
    """A small codebase with a header+implementation pair, a lone implementation and a lone header."""
    root = tmp_path / "codebase"
    (root / "math").mkdir(parents=True)
    (root / "calc.h").write_text(CALC_HEADER)
    (root / "calc.cpp").write_text(CALC_IMPL)
    (root / "math" / "vec.cc").write_text("int dot(int a, int b) {\n    return a * b;\n}\n")
    (root / "math" / "only_header.hpp").write_text("#pragma once\n")
    (root / "README.txt").write_text("not source\n")
    return root
