"""
Model Orchestrator - Tries candidate models in priority order with retries and linear backoff
"""

import time
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .backends import GenerationOptions, ModelBackend
from .context import RunContext
from .errors import BackendError, EmptyResponseError, GenerationError, MalformedOutputError
from .rules import ModelSettings
from .sanitizer import ResponseSanitizer


class GenerationRequest(BaseModel):
    """One prompt plus everything needed to send it to any candidate model.

    Only the target ``model`` ever changes between attempts, through
    ``with_model``.
    """

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    prompt: str
    model: str
    candidates: Tuple[str, ...]
    options: GenerationOptions = Field(default_factory=GenerationOptions)
    timeout_minutes: float = 5

    @classmethod
    def from_settings(cls, prompt: str, settings: ModelSettings) -> 'GenerationRequest':
        return cls(
            prompt=prompt,
            model=settings.primary_model,
            candidates=tuple([settings.primary_model] + list(settings.fallback_models)),
            options=GenerationOptions(
                context_window=settings.context_window,
                max_output_tokens=settings.max_output_tokens,
                temperature=settings.temperature,
            ),
            timeout_minutes=settings.timeout_minutes,
        )

    def with_model(self, model: str) -> 'GenerationRequest':
        return self.model_copy(update={'model': model})


class AttemptRecord(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model: str
    attempt: int
    error: str


class GenerationResult(BaseModel):
    """Sanitized code on success, or the last failure cause after exhaustion"""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    code: Optional[str] = None
    model: Optional[str] = None
    error: Optional[str] = None
    attempts: List[AttemptRecord] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.code is not None

    @property
    def failed_attempts(self) -> int:
        return len(self.attempts)


class RetryPolicy:
    """How many times each model is tried and how long to wait in between"""

    def __init__(self, max_attempts: int = 3, backoff_unit: float = 1.0):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.backoff_unit = backoff_unit

    def attempts(self, models: Sequence[str]) -> Iterator[Tuple[str, int]]:
        """Yield (model, attempt) pairs; every attempt of a model precedes the next model"""
        for model in models:
            for attempt in range(1, self.max_attempts + 1):
                yield model, attempt

    def delay(self, attempt: int) -> float:
        return attempt * self.backoff_unit

    def has_more(self, attempt: int) -> bool:
        return attempt < self.max_attempts


def _unique(models: Sequence[str]) -> List[str]:
    seen = set()
    ordered = []
    for model in models:
        if model and model not in seen:
            seen.add(model)
            ordered.append(model)
    return ordered


class ModelOrchestrator:
    """Sends a request to the first candidate model that yields valid test code.

    Holds no per-call state, so one instance can serve parallel workers.
    """

    def __init__(self, backend: ModelBackend, policy: Optional[RetryPolicy] = None,
                 sanitizer: Optional[ResponseSanitizer] = None, ctx: Optional[RunContext] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.backend = backend
        self.policy = policy or RetryPolicy()
        self.sanitizer = sanitizer or ResponseSanitizer()
        self.ctx = ctx or RunContext()
        self.sleep = sleep

    def candidate_models(self, request: GenerationRequest) -> List[str]:
        """Configured candidates filtered to what the backend reports as available.

        Raises:
            BackendError: If the backend cannot list its models.
        """
        available = set(self.backend.list_models())
        self.ctx.debug(f"[LLM] Available models: {sorted(available)}")
        return [m for m in _unique(request.candidates) if m in available]

    def generate(self, request: GenerationRequest) -> GenerationResult:
        try:
            models = self.candidate_models(request)
        except BackendError as e:
            return GenerationResult(error=str(e))

        if not models:
            return GenerationResult(
                error=f"None of the configured models are available: {', '.join(request.candidates)}"
            )
        self.ctx.debug(f"[LLM] Models to try in order: {models}")

        failures: List[AttemptRecord] = []
        last_error = None
        for model, attempt in self.policy.attempts(models):
            self.ctx.debug(f"[LLM] Attempt {attempt}/{self.policy.max_attempts} with model {model}")
            try:
                code = self._attempt(request.with_model(model))
            except GenerationError as e:
                last_error = str(e)
                failures.append(AttemptRecord(model=model, attempt=attempt, error=last_error))
                self.ctx.warn(f"[LLM] Attempt {attempt} failed with model {model}: {e}")
                if self.policy.has_more(attempt):
                    wait = self.policy.delay(attempt)
                    self.ctx.debug(f"[LLM] Waiting {wait}s before retry")
                    self.sleep(wait)
                continue

            self.ctx.debug(f"[LLM] Generated tests with model {model} on attempt {attempt}")
            return GenerationResult(code=code, model=model, attempts=failures)

        return GenerationResult(
            error=f"failed to generate tests with all models. Last error: {last_error}",
            attempts=failures,
        )

    def _attempt(self, request: GenerationRequest) -> str:
        start_time = time.time()
        fragments = self.backend.generate(
            request.model, request.prompt, request.options, request.timeout_minutes * 60
        )
        response = "".join(fragments)
        if not response.strip():
            raise EmptyResponseError(f"empty response from model {request.model}")
        self.ctx.debug(f"[LLM] Response received in {time.time() - start_time:.2f}s ({len(response)} bytes)")

        code, ok = self.sanitizer.sanitize(response)
        if not ok:
            raise MalformedOutputError(f"response from {request.model} does not contain valid C++ test code")
        return code
