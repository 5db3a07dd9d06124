"""Tests for compiling and running generated tests with external tools mocked."""

import os
import subprocess
from unittest.mock import patch

import pytest

from ai_cpp_test_generator.errors import RunnerError
from ai_cpp_test_generator.runner import (
    TestRunner,
    cleanup_test_directory,
    find_gtest_libraries,
    list_source_files,
    list_test_files,
)
from tests.conftest import VALID_TEST_CODE, make_rules


@pytest.fixture()
def project(tmp_path, codebase):
    """Project root with a built googletest, the codebase and one generated test."""
    lib_dir = tmp_path / "external" / "googletest" / "build" / "lib"
    lib_dir.mkdir(parents=True)
    (lib_dir / "libgtest.a").write_text("")
    (lib_dir / "libgtest_main.a").write_text("")
    tests_dir = tmp_path / "tests"
    tests_dir.mkdir()
    (tests_dir / "calc_test.cc").write_text(VALID_TEST_CODE)
    return tmp_path


@pytest.fixture()
def runner_rules(project):
    return make_rules(paths={"codebase_dir": str(project / "codebase"), "tests_dir": str(project / "tests")})


class FakeToolchain:
    """Stands in for g++, the test executable and lcov."""

    def __init__(self, report_text, compile_rc=0, test_rc=0):
        self.report_text = report_text
        self.compile_rc = compile_rc
        self.test_rc = test_rc
        self.commands = []

    def __call__(self, args, **kwargs):
        self.commands.append(list(args))
        if args[0] == "g++":
            return subprocess.CompletedProcess(args, self.compile_rc, "", "error: expected ';'")
        if args[0] == "lcov":
            output = args[args.index("--output-file") + 1]
            with open(output, "w") as f:
                f.write(self.report_text)
            return subprocess.CompletedProcess(args, 0, "", "")
        return subprocess.CompletedProcess(args, self.test_rc, "[  PASSED  ] 1 test.", "")


class TestDiscovery:
    def test_list_test_files(self, tmp_path):
        for name in ("calc_test.cc", "vec_test.cpp", "calc.cpp", "notes.txt"):
            (tmp_path / name).write_text("")

        found = [os.path.basename(path) for path in list_test_files(str(tmp_path))]

        assert found == ["calc_test.cc", "vec_test.cpp"]

    def test_list_source_files_excludes_tests(self, tmp_path):
        for name in ("calc.cpp", "legacy.c", "calc_test.cc", "testing_util.cpp", "calc.h"):
            (tmp_path / name).write_text("")

        found = [os.path.basename(path) for path in list_source_files(str(tmp_path))]

        assert found == ["calc.cpp", "legacy.c"]

    def test_find_gtest_libraries(self, project):
        gtest, gtest_main = find_gtest_libraries(str(project))

        assert gtest.endswith(os.path.join("build", "lib", "libgtest.a"))
        assert gtest_main.endswith("libgtest_main.a")

    def test_missing_gtest_libraries(self, tmp_path):
        with pytest.raises(RunnerError):
            find_gtest_libraries(str(tmp_path))


def test_cleanup_removes_coverage_artifacts(tmp_path):
    for name in ("a.gcno", "a.gcda", "calc_test_executable", "keep.cc"):
        (tmp_path / name).write_text("")
    (tmp_path / "calc_test_executable.dSYM").mkdir()

    cleanup_test_directory(str(tmp_path), "calc_test_executable")

    assert sorted(os.listdir(tmp_path)) == ["keep.cc"]


class TestCompileAndRun:
    def test_compiles_runs_and_summarises_coverage(self, project, runner_rules, ctx, sink):
        source = str(project / "codebase" / "calc.cpp")
        toolchain = FakeToolchain(f"SF:{source}\nDA:1,1\nDA:2,0\nend_of_record\n")
        runner = TestRunner(runner_rules, ctx, project_root=str(project))

        with patch("subprocess.run", side_effect=toolchain):
            summary = runner.compile_and_run(str(project / "tests" / "calc_test.cc"), str(project / "codebase"))

        assert summary.total_lines == 2
        assert summary.covered_lines == 1
        compile_args = toolchain.commands[0]
        assert compile_args[:5] == ["g++", "-std=c++17", "-g", "-O0", "--coverage"]
        assert "-pthread" in compile_args
        assert source in compile_args
        assert compile_args[-1].endswith("libgtest_main.a")
        assert toolchain.commands[1][0].endswith("calc_test_executable")
        assert toolchain.commands[2][0] == "lcov"
        summary_path = project / "tests" / "coverage" / "coverage_summary.txt"
        assert "Coverage:        50.00%" in summary_path.read_text()
        assert "below the 80.00% threshold" in sink.getvalue()
        assert not [name for name in os.listdir(project / "tests") if name.endswith(".raw.info")]

    def test_compile_failure_raises_without_running(self, project, runner_rules, ctx):
        toolchain = FakeToolchain("", compile_rc=1)
        runner = TestRunner(runner_rules, ctx, project_root=str(project))

        with patch("subprocess.run", side_effect=toolchain):
            with pytest.raises(RunnerError, match="compilation"):
                runner.compile_and_run(str(project / "tests" / "calc_test.cc"), str(project / "codebase"))

        assert len(toolchain.commands) == 1

    def test_failing_tests_still_report_coverage(self, project, runner_rules, ctx, sink):
        source = str(project / "codebase" / "calc.cpp")
        toolchain = FakeToolchain(f"SF:{source}\nDA:1,1\nend_of_record\n", test_rc=1)
        runner = TestRunner(runner_rules, ctx, project_root=str(project))

        with patch("subprocess.run", side_effect=toolchain):
            with pytest.raises(RunnerError, match="test execution failed"):
                runner.compile_and_run(str(project / "tests" / "calc_test.cc"), str(project / "codebase"))

        assert "Coverage:        100.00%" in sink.getvalue()

    def test_summary_can_be_collected_without_writing(self, project, runner_rules, ctx):
        source = str(project / "codebase" / "calc.cpp")
        toolchain = FakeToolchain(f"SF:{source}\nDA:1,1\nend_of_record\n")
        runner = TestRunner(runner_rules, ctx, project_root=str(project))

        with patch("subprocess.run", side_effect=toolchain):
            summary = runner.compile_and_run(str(project / "tests" / "calc_test.cc"), str(project / "codebase"),
                                             write_summary=False)

        assert runner.summaries == [summary]
        assert not (project / "tests" / "coverage").exists()

    def test_coverage_disabled(self, project, ctx):
        rules = make_rules(paths={"tests_dir": str(project / "tests")}, coverage={"enabled": False})
        toolchain = FakeToolchain("")
        runner = TestRunner(rules, ctx, project_root=str(project))

        with patch("subprocess.run", side_effect=toolchain):
            summary = runner.compile_and_run(str(project / "tests" / "calc_test.cc"), str(project / "codebase"))

        assert summary is None
        assert [command[0] for command in toolchain.commands][-1] != "lcov"

    def test_missing_test_file(self, project, runner_rules, ctx):
        with pytest.raises(FileNotFoundError):
            TestRunner(runner_rules, ctx, project_root=str(project)).compile_and_run(
                str(project / "tests" / "absent_test.cc"), str(project / "codebase"))


class TestEnsureGtestBuilt:
    def test_skips_build_when_libraries_exist(self, project, runner_rules, ctx):
        with patch("subprocess.run") as run:
            TestRunner(runner_rules, ctx, project_root=str(project)).ensure_gtest_built()

        run.assert_not_called()

    def test_builds_with_cmake_and_make(self, tmp_path, rules, ctx):
        completed = subprocess.CompletedProcess([], 0, "", "")
        with patch("subprocess.run", return_value=completed) as run:
            TestRunner(rules, ctx, project_root=str(tmp_path)).ensure_gtest_built()

        commands = [call.args[0] for call in run.call_args_list]
        assert commands == [["cmake", "..", "-DCMAKE_BUILD_TYPE=Release"], ["make", "-j4"]]
        assert run.call_args.kwargs["cwd"] == str(tmp_path / "external" / "googletest" / "build")
