"""
Rules - Typed configuration for test generation, loaded from rules.yaml
"""

import os
from typing import List

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import RulesError


class NamingRules(BaseModel):
    """Test naming conventions requested from the model"""

    test_prefix: str = "TEST"
    descriptive_test_names: bool = True
    include_class_in_test_name: bool = True


class Standards(BaseModel):
    cpp_standard: str = "C++17"


class TestCaseRules(BaseModel):
    """Counts and case mix; ``avoid_edge_cases`` also penalises scoring"""

    per_method: int = 2
    total_tests: int = 4
    include_positive_case: bool = True
    include_negative_case: bool = True
    avoid_edge_cases: List[str] = Field(default_factory=lambda: ["INT_MIN", "INT_MAX"])

    @field_validator("per_method", "total_tests")
    @classmethod
    def _must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be >= 1")
        return v


class AssertionRules(BaseModel):
    preferred: List[str] = Field(
        default_factory=lambda: ["EXPECT_EQ", "EXPECT_NE", "EXPECT_TRUE", "EXPECT_FALSE"]
    )
    complete_braces_required: bool = True


class MethodsToTest(BaseModel):
    """``dynamic`` discovers functions in the source, ``manual`` uses ``manual_list``"""

    source: str = "dynamic"
    manual_list: List[str] = Field(default_factory=list)

    @field_validator("source")
    @classmethod
    def _known_source(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("dynamic", "manual"):
            raise ValueError("source must be 'dynamic' or 'manual'")
        return v


class OutputFormat(BaseModel):
    file_type: str = ".cpp"
    markdown_code_fences: bool = False
    extra_text: bool = False
    example_in_prompt: bool = True


class PromptGuidance(BaseModel):
    role_description: str = (
        "You are an expert C++ programmer tasked with generating unit tests using "
        "Google Test for the provided C++ code. Follow these requirements strictly:"
    )
    strict_formatting: bool = True
    example_format_included: bool = True
    code_to_test_in_prompt: bool = True
    avoid_comments_outside_code: bool = True


class CoverageRules(BaseModel):
    minimum_threshold: float = 80.0
    enabled: bool = True

    @field_validator("minimum_threshold")
    @classmethod
    def _is_percentage(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError("minimum_threshold must be between 0 and 100")
        return v


class ModelSettings(BaseModel):
    """Primary model, ordered fallbacks, retry budget and sampling options.

    ``timeout_minutes`` bounds a single attempt, not the whole generation.
    """

    primary_model: str = "qwen2.5-coder:7b"
    fallback_models: List[str] = Field(default_factory=list)
    max_retries: int = 3
    timeout_minutes: float = 5
    context_window: int = 4096
    max_output_tokens: int = 1024
    temperature: float = 0.7

    @field_validator("max_retries", "context_window", "max_output_tokens")
    @classmethod
    def _must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be >= 1")
        return v

    @field_validator("timeout_minutes")
    @classmethod
    def _timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout_minutes must be > 0")
        return v


class PathSettings(BaseModel):
    """Where sources are read from and tests written to.

    An empty ``folders_to_scan`` scans the whole codebase; ``"."`` selects the
    files sitting directly in ``codebase_dir``.
    """

    codebase_dir: str = "./codebase"
    tests_dir: str = "./tests"
    temp_dir: str = ""
    folders_to_scan: List[str] = Field(default_factory=list)


class Rules(BaseModel):
    """Root of rules.yaml"""

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    language: str = "C++"
    framework: str = "Google Test"
    test_framework: str = "gtest"
    naming: NamingRules = Field(default_factory=NamingRules)
    includes: List[str] = Field(
        default_factory=lambda: [
            "#include <gtest/gtest.h>",
            "#include <cmath>",
            "#include <stdexcept>",
        ]
    )
    standards: Standards = Field(default_factory=Standards)
    test_case_rules: TestCaseRules = Field(default_factory=TestCaseRules)
    assertions: AssertionRules = Field(default_factory=AssertionRules)
    methods_to_test: MethodsToTest = Field(default_factory=MethodsToTest)
    output_format: OutputFormat = Field(default_factory=OutputFormat)
    llm_prompt_guidance: PromptGuidance = Field(default_factory=PromptGuidance)
    coverage: CoverageRules = Field(default_factory=CoverageRules)
    models: ModelSettings = Field(default_factory=ModelSettings, alias="model_config")
    paths: PathSettings = Field(default_factory=PathSettings)


def default_rules() -> Rules:
    """Rules used when no rules.yaml is available"""
    return Rules()


def load_rules(file_path: str) -> Rules:
    """Load and validate rules from a YAML file.

    Raises:
        FileNotFoundError: If ``file_path`` does not exist.
        RulesError: If the YAML is malformed or a value fails validation.
    """
    with open(file_path, 'r', encoding='utf-8') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise RulesError(f"Invalid YAML in {file_path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise RulesError(f"{file_path} must contain a mapping at the top level")

    try:
        return Rules.model_validate(data)
    except ValidationError as e:
        raise RulesError(f"Invalid rules in {file_path}: {e}") from e


def load_extra_prompt(file_path: str) -> str:
    """Read optional free-text guidance; a missing file means no guidance"""
    if not file_path or not os.path.exists(file_path):
        return ""
    with open(file_path, 'r', encoding='utf-8') as f:
        return f.read()
