"""
AI Test Generator - Per-unit generation pipeline and batch driver
"""

import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional

from pydantic import BaseModel, Field

from .backends import ModelBackend
from .codebase import HEADER_EXTENSIONS, IMPLEMENTATION_EXTENSIONS, SourceUnit
from .context import RunContext
from .errors import GenerationFailedError
from .orchestrator import GenerationRequest, ModelOrchestrator, RetryPolicy
from .prompts import compose_prompt
from .rules import Rules

TEST_FILE_SUFFIX = '_test.cc'


def convert_to_test_filename(filename: str) -> str:
    """calc.cpp -> calc_test.cc; unknown extensions keep their name and get the suffix appended"""
    for ext in IMPLEMENTATION_EXTENSIONS + HEADER_EXTENSIONS:
        if filename.endswith(ext):
            return filename[:-len(ext)] + TEST_FILE_SUFFIX
    return filename + TEST_FILE_SUFFIX


class BatchReport(BaseModel):
    succeeded: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class SmartTestGenerator:
    """Turns source units into test files through the configured model backend"""

    def __init__(self, rules: Rules, backend: ModelBackend, ctx: Optional[RunContext] = None,
                 extra_prompt: str = '', orchestrator: Optional[ModelOrchestrator] = None):
        self.rules = rules
        self.ctx = ctx or RunContext()
        self.extra_prompt = extra_prompt
        self.orchestrator = orchestrator or ModelOrchestrator(
            backend,
            policy=RetryPolicy(max_attempts=rules.models.max_retries),
            ctx=self.ctx,
        )
        self._report_lock = threading.Lock()

    def test_output_path(self, source_path: str) -> str:
        """Mirror ``source_path``'s location under the codebase into the tests directory"""
        codebase_dir = self.rules.paths.codebase_dir
        try:
            rel_path = os.path.relpath(source_path, codebase_dir)
        except ValueError:
            rel_path = os.path.basename(source_path)
        if rel_path.startswith('..'):
            rel_path = os.path.basename(source_path)

        rel_dir, filename = os.path.split(rel_path)
        return os.path.join(self.rules.paths.tests_dir, rel_dir, convert_to_test_filename(filename))

    def build_request(self, unit: SourceUnit) -> GenerationRequest:
        prompt = compose_prompt(unit.combined_text, self.rules, self.extra_prompt)
        self.ctx.debug(f"[GEN] Prompt for {unit.base_name} ({len(prompt)} chars):\n{prompt}")
        return GenerationRequest.from_settings(prompt, self.rules.models)

    def generate_for_unit(self, unit: SourceUnit) -> str:
        """Generate and write the test file for one unit, returning its path.

        Raises:
            GenerationFailedError: If every candidate model failed.
            OSError: If the test file cannot be written.
        """
        self.ctx.info(f"[GEN] Generating tests for {unit.impl_path}...")
        start_time = time.time()

        result = self.orchestrator.generate(self.build_request(unit))
        if not result.ok:
            raise GenerationFailedError(unit.base_name, result.error)
        if result.failed_attempts:
            self.ctx.debug(f"[GEN] {unit.base_name}: {result.failed_attempts} failed attempts before success")

        output_path = self.test_output_path(unit.impl_path)
        os.makedirs(os.path.dirname(output_path) or '.', exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(result.code)

        duration = time.time() - start_time
        self.ctx.success(f"[GEN] Test saved to {output_path} (model {result.model}, {duration:.2f}s)")
        return output_path

    def process_units(self, units: List[SourceUnit], workers: int = 1) -> BatchReport:
        """Run every unit through the pipeline; one unit failing never stops the others"""
        report = BatchReport()
        if not units:
            self.ctx.warn("No source units to process")
            return report

        self.ctx.info(f"[GEN] Processing {len(units)} source units with {workers} worker(s)")
        with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
            futures = {executor.submit(self._process_one, unit, report): unit for unit in units}
            for future in as_completed(futures):
                future.result()

        self.ctx.info(f"[GEN] Done: {len(report.succeeded)} succeeded, {len(report.failed)} failed")
        return report

    def _process_one(self, unit: SourceUnit, report: BatchReport):
        try:
            self.generate_for_unit(unit)
        except GenerationFailedError as e:
            self.ctx.error(f"[GEN] {unit.impl_path}: {e.cause}")
            self._record(report.failed, unit)
        except OSError as e:
            self.ctx.error(f"[GEN] {unit.impl_path}: could not write test file: {e}")
            self._record(report.failed, unit)
        except Exception as e:
            self.ctx.error(f"[GEN] {unit.impl_path}: unexpected {type(e).__name__}: {e}")
            self._record(report.failed, unit)
        else:
            self._record(report.succeeded, unit)

    def _record(self, bucket: List[str], unit: SourceUnit):
        with self._report_lock:
            bucket.append(unit.base_name)
