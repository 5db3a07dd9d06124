"""
Error types - Exception hierarchy shared by the generation and validation paths
"""


class TestGenError(Exception):
    """Base class for all errors raised by the test generator"""

    __test__ = False


class RulesError(TestGenError):
    """Rules file could not be read or failed validation"""


class GenerationError(TestGenError):
    """A single model attempt failed; recoverable through retry and fallback"""


class BackendError(GenerationError):
    """Backend unreachable or returned a transport-level error"""


class BackendTimeoutError(BackendError):
    """Attempt exceeded its deadline"""


class EmptyResponseError(GenerationError):
    """Backend answered with no text"""


class MalformedOutputError(GenerationError):
    """Response did not contain recognizable test code"""


class GenerationFailedError(TestGenError):
    """Every candidate model exhausted its retries for one source unit"""

    def __init__(self, unit: str, cause: str):
        super().__init__(f"Failed to generate tests for {unit}: {cause}")
        self.unit = unit
        self.cause = cause


class CoverageError(TestGenError):
    """Coverage capture tool failed"""


class RunnerError(TestGenError):
    """Compiling or running a test executable failed"""
