"""
Coverage Analyzer - Captures an lcov tracefile and summarises line coverage for the source tree
"""

import os
import subprocess
import tempfile
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from .context import RunContext
from .errors import CoverageError

FILE_MARKER = "SF:"
LINE_DATA = "DA:"
SUMMARY_DIR = "coverage"
SUMMARY_FILE = "coverage_summary.txt"
LCOV_IGNORED_ERRORS = "unsupported,inconsistent,unused"


class CoverageRecord(BaseModel):
    total_lines: int = 0
    covered_lines: int = 0
    # line number -> highest hit count seen
    lines: Dict[str, int] = Field(default_factory=dict)


class CoverageSummary(BaseModel):
    """Line totals for the in-scope files of one report"""

    total_lines: int = 0
    covered_lines: int = 0
    files: Dict[str, CoverageRecord] = Field(default_factory=dict)

    @classmethod
    def combine(cls, summaries: Iterable["CoverageSummary"]) -> "CoverageSummary":
        """Union of several runs over the same sources: a line counts once, covered if any run hit it"""
        combined = cls()
        for summary in summaries:
            for path, record in summary.files.items():
                merged = combined.files.setdefault(path, CoverageRecord())
                for line, hits in record.lines.items():
                    merged.lines[line] = max(merged.lines.get(line, 0), hits)
        for record in combined.files.values():
            record.total_lines = len(record.lines)
            record.covered_lines = sum(1 for hits in record.lines.values() if hits > 0)
            combined.total_lines += record.total_lines
            combined.covered_lines += record.covered_lines
        return combined

    @property
    def percentage(self) -> Optional[float]:
        """Covered/total as a percentage; None (undefined) when nothing was instrumented"""
        if self.total_lines == 0:
            return None
        return self.covered_lines / self.total_lines * 100

    @property
    def uncovered_lines(self) -> int:
        return self.total_lines - self.covered_lines

    def meets_threshold(self, minimum: float) -> bool:
        return self.percentage is not None and self.percentage >= minimum

    def render(self) -> str:
        rule = "---------------------"
        lines = [rule, "Code Coverage Summary", rule]
        if self.percentage is None:
            lines.append("No executable lines were found for the source files.")
            lines.append("Please check if the source directory is correct.")
            lines.append("Coverage:        undefined")
        else:
            lines.append(f"Total lines:     {self.total_lines}")
            lines.append(f"Covered lines:   {self.covered_lines}")
            lines.append(f"Coverage:        {self.percentage:.2f}%")
            lines.append(f"Uncovered lines: {self.uncovered_lines}")
        lines.append(rule)
        return "\n".join(lines)


def _in_scope(path: str, source_dir: str) -> bool:
    """Prefix match on a directory boundary, so /src does not claim /src2/a.c"""
    return path == source_dir or path.startswith(source_dir.rstrip(os.sep) + os.sep)


class CoverageAnalyzer:
    """Runs lcov and turns its tracefile into a CoverageSummary"""

    def __init__(self, ctx: Optional[RunContext] = None, lcov: str = "lcov"):
        self.ctx = ctx or RunContext()
        self.lcov = lcov

    @staticmethod
    def new_report_path(directory: str) -> str:
        """Fresh raw-report path so concurrent runs never share a tracefile"""
        os.makedirs(directory, exist_ok=True)
        fd, path = tempfile.mkstemp(prefix="coverage.", suffix=".raw.info", dir=directory)
        os.close(fd)
        return path

    def capture(self, test_dir: str, raw_report_path: str, exclude_patterns: List[str]):
        """Collect .gcda data under ``test_dir`` into ``raw_report_path``.

        Raises:
            CoverageError: If lcov is missing or exits non-zero.
        """
        args = [
            self.lcov, "--capture",
            "--directory", test_dir,
            "--output-file", raw_report_path,
            "--ignore-errors", LCOV_IGNORED_ERRORS,
        ]
        for pattern in exclude_patterns:
            args.extend(["--exclude", pattern])

        self.ctx.debug(f"[COV] Running: {' '.join(args)}")
        try:
            result = subprocess.run(args, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise CoverageError(f"lcov not found: {e}") from e
        if result.returncode != 0:
            raise CoverageError(
                f"lcov capture failed with exit code {result.returncode}\nOutput: {result.stdout}{result.stderr}"
            )
        self.ctx.info("[COV] [1/2] Raw coverage data collected and filtered.")

    def parse_report(self, raw_report_path: str, source_dir: str) -> CoverageSummary:
        """Stream the tracefile, counting DA records of files under ``source_dir``"""
        abs_source_dir = os.path.abspath(source_dir)
        summary = CoverageSummary()
        record = None

        with open(raw_report_path, 'r', encoding='utf-8', errors='replace') as f:
            for raw_line in f:
                line = raw_line.strip()
                if line.startswith(FILE_MARKER):
                    current_file = line[len(FILE_MARKER):]
                    if _in_scope(current_file, abs_source_dir):
                        record = summary.files.setdefault(current_file, CoverageRecord())
                    else:
                        record = None
                elif record is not None and line.startswith(LINE_DATA):
                    parts = line[len(LINE_DATA):].split(',')
                    if len(parts) < 2:
                        continue
                    summary.total_lines += 1
                    record.total_lines += 1
                    try:
                        hits = int(parts[1])
                    except ValueError:
                        hits = 0
                    line_no = parts[0].strip()
                    record.lines[line_no] = max(record.lines.get(line_no, 0), hits)
                    if hits > 0:
                        summary.covered_lines += 1
                        record.covered_lines += 1
        return summary

    def analyze(self, raw_report_path: str, source_dir: str) -> CoverageSummary:
        """Parse the raw report, then delete it whether or not parsing succeeded"""
        try:
            summary = self.parse_report(raw_report_path, source_dir)
        finally:
            if os.path.exists(raw_report_path):
                os.remove(raw_report_path)
        self.ctx.info("[COV] [2/2] Coverage data parsed.")
        return summary

    def write_summary(self, summary: CoverageSummary, tests_dir: str) -> str:
        coverage_dir = os.path.join(tests_dir, SUMMARY_DIR)
        os.makedirs(coverage_dir, exist_ok=True)
        summary_path = os.path.join(coverage_dir, SUMMARY_FILE)
        with open(summary_path, 'w', encoding='utf-8') as f:
            f.write(summary.render() + "\n")
        return summary_path
