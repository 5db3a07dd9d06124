"""
Test Runner - Compiles a generated test with coverage, runs it and reports coverage
"""

import glob
import os
import shutil
import subprocess
from typing import List, Optional, Tuple

from .context import RunContext
from .coverage import CoverageAnalyzer, CoverageSummary
from .errors import CoverageError, RunnerError
from .rules import Rules

TEST_FILE_SUFFIXES = ('_test.cpp', 'test.cpp', '_test.cc', 'test.cc')
SOURCE_FILE_SUFFIXES = ('.cpp', '.cc', '.c')


def list_test_files(directory: str) -> List[str]:
    test_files = []
    for root, dirs, files in os.walk(directory):
        dirs.sort()
        for name in sorted(files):
            if name.lower().endswith(TEST_FILE_SUFFIXES):
                test_files.append(os.path.join(root, name))
    return test_files


def list_source_files(directory: str) -> List[str]:
    """Implementation files under ``directory``, excluding anything named like a test"""
    source_files = []
    for root, dirs, files in os.walk(directory):
        dirs.sort()
        for name in sorted(files):
            lowered = name.lower()
            if lowered.endswith(SOURCE_FILE_SUFFIXES) and 'test' not in lowered:
                source_files.append(os.path.join(root, name))
    return source_files


def find_gtest_libraries(project_root: str) -> Tuple[str, str]:
    """Locate libgtest.a and libgtest_main.a in the vendored googletest build"""
    build_dir = os.path.join(project_root, 'external', 'googletest', 'build')
    for lib_dir in (os.path.join(build_dir, 'lib'),
                    os.path.join(build_dir, 'googletest'),
                    os.path.join(build_dir, 'googlemock', 'gtest')):
        gtest_lib = os.path.join(lib_dir, 'libgtest.a')
        gtest_main_lib = os.path.join(lib_dir, 'libgtest_main.a')
        if os.path.exists(gtest_lib) and os.path.exists(gtest_main_lib):
            return gtest_lib, gtest_main_lib
    raise RunnerError("Google Test libraries not found")


def cleanup_test_directory(test_dir: str, executable_name: str):
    """Remove coverage counters and the executable left by a previous run"""
    for pattern in ('*.gcno', '*.gcda', executable_name):
        for path in glob.glob(os.path.join(test_dir, pattern)):
            if os.path.isfile(path):
                os.remove(path)
    for path in glob.glob(os.path.join(test_dir, '*.dSYM')):
        shutil.rmtree(path, ignore_errors=True)


class TestRunner:
    """Drives g++ --coverage, the test executable and lcov for one test file"""

    __test__ = False

    def __init__(self, rules: Rules, ctx: Optional[RunContext] = None, project_root: str = '.',
                 compiler: str = 'g++'):
        self.rules = rules
        self.ctx = ctx or RunContext()
        self.project_root = os.path.abspath(project_root)
        self.compiler = compiler
        self.coverage = CoverageAnalyzer(self.ctx)
        # every summary captured by this runner, in run order
        self.summaries: List[CoverageSummary] = []

    def ensure_gtest_built(self):
        """Build the vendored googletest with cmake/make when its libraries are missing"""
        try:
            find_gtest_libraries(self.project_root)
            self.ctx.success("Google Test libraries found!")
            return
        except RunnerError:
            pass

        self.ctx.info("[BUILD] Building Google Test libraries...")
        build_dir = os.path.join(self.project_root, 'external', 'googletest', 'build')
        os.makedirs(build_dir, exist_ok=True)
        for args in (['cmake', '..', '-DCMAKE_BUILD_TYPE=Release'], ['make', '-j4']):
            result = self._run(args, cwd=build_dir)
            if result.returncode != 0:
                self.ctx.write(result.stdout + result.stderr)
                raise RunnerError(f"{args[0]} failed with exit code {result.returncode}")
        self.ctx.success("Google Test built successfully!")

    def compile_command(self, test_file: str, source_dir: str, executable_name: str) -> List[str]:
        gtest_lib, gtest_main_lib = find_gtest_libraries(self.project_root)
        gtest_root = os.path.join(self.project_root, 'external', 'googletest')
        args = [
            self.compiler,
            '-std=' + self.rules.standards.cpp_standard.lower(),
            '-g',
            '-O0',
            '--coverage',
            '-I' + os.path.join(gtest_root, 'googletest', 'include'),
            '-I' + os.path.join(gtest_root, 'googlemock', 'include'),
            '-I' + os.path.abspath(source_dir),
            '-pthread',
            '-o', executable_name,
            os.path.abspath(test_file),
        ]
        args.extend(os.path.abspath(path) for path in list_source_files(source_dir))
        args.extend([gtest_lib, gtest_main_lib])
        return args

    def compile_and_run(self, test_file: str, source_dir: str,
                        write_summary: bool = True) -> Optional[CoverageSummary]:
        """Compile ``test_file`` against every source under ``source_dir``, run it, report coverage.

        Returns the coverage summary, or None when coverage is disabled or
        could not be captured. With ``write_summary`` off the summary is only
        collected in ``self.summaries``, for callers combining several runs.

        Raises:
            RunnerError: If compilation fails or the tests fail.
            FileNotFoundError: If ``test_file`` does not exist.
        """
        abs_test_file = os.path.abspath(test_file)
        if not os.path.exists(abs_test_file):
            raise FileNotFoundError(f"test file does not exist: {abs_test_file}")

        base_name = os.path.splitext(os.path.basename(abs_test_file))[0]
        executable_name = base_name + '_executable'
        test_dir = os.path.dirname(abs_test_file)
        cleanup_test_directory(test_dir, executable_name)

        self.ctx.info(f"[BUILD] Compiling {test_file} with coverage...")
        result = self._run(self.compile_command(abs_test_file, source_dir, executable_name), cwd=test_dir)
        if result.returncode != 0:
            self.ctx.error(f"Compilation failed:\n{result.stdout}{result.stderr}")
            raise RunnerError(f"compilation of {test_file} failed with exit code {result.returncode}")
        self.ctx.success("Compilation successful!")

        self.ctx.info(f"[RUN] Running tests from {test_file}...")
        run_result = self._run([os.path.join(test_dir, executable_name)], cwd=test_dir)
        self.ctx.write(f"Test output:\n{run_result.stdout}{run_result.stderr}")

        summary = None
        try:
            if self.rules.coverage.enabled:
                summary = self.report_coverage(test_dir, source_dir, write_summary)
        finally:
            cleanup_test_directory(test_dir, executable_name)

        if run_result.returncode != 0:
            raise RunnerError(f"test execution failed with exit code {run_result.returncode}")
        self.ctx.success("Tests and coverage generation completed!")
        return summary

    def report_coverage(self, test_dir: str, source_dir: str,
                        write_summary: bool = True) -> Optional[CoverageSummary]:
        """Capture and analyze coverage, writing the summary unless told not to; capture failures only warn"""
        self.ctx.info("[COV] Generating coverage summary...")
        report_dir = self.rules.paths.temp_dir or test_dir
        raw_report = self.coverage.new_report_path(report_dir)
        excludes = [
            os.path.join(self.project_root, 'external', '*'),
            os.path.join(os.path.abspath(self.rules.paths.tests_dir), '*'),
            '/usr/include/*',
            '/Applications/*',
            '*/Library/Developer/*',
        ]
        try:
            self.coverage.capture(test_dir, raw_report, excludes)
        except CoverageError as e:
            if os.path.exists(raw_report):
                os.remove(raw_report)
            self.ctx.warn(f"Coverage summary generation failed: {e}")
            return None

        summary = self.coverage.analyze(raw_report, source_dir)
        self.summaries.append(summary)
        self.ctx.write(summary.render())
        if write_summary:
            self.publish_summary(summary)
        return summary

    def publish_summary(self, summary: CoverageSummary) -> str:
        """Write the summary file and warn when coverage is under the threshold"""
        summary_path = self.coverage.write_summary(summary, self.rules.paths.tests_dir)
        self.ctx.success(f"Summary saved to: {summary_path}")

        threshold = self.rules.coverage.minimum_threshold
        if not summary.meets_threshold(threshold):
            self.ctx.warn(f"Coverage is below the {threshold:.2f}% threshold")
        return summary_path

    def _run(self, args: List[str], cwd: str) -> subprocess.CompletedProcess:
        self.ctx.debug(f"Executing: {' '.join(args)}")
        try:
            return subprocess.run(args, cwd=cwd, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise RunnerError(f"{args[0]} not found: {e}") from e
