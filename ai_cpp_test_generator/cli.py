#!/usr/bin/env python3
"""
CLI interface for AI C++ Test Generator
"""

import argparse
import logging
import os
import sys

from . import __version__
from .backends import create_backend
from .codebase import group_source_units, load_source_unit, read_codebase
from .context import LOGGER_NAME, RunContext
from .coverage import CoverageAnalyzer, CoverageSummary
from .errors import BackendError, RulesError, RunnerError
from .generator import SmartTestGenerator
from .quality import merge_test_files
from .rules import default_rules, load_extra_prompt, load_rules
from .runner import TestRunner, list_test_files


def create_parser():
    """Create argument parser for the CLI tool"""
    parser = argparse.ArgumentParser(
        prog='ai-cpp-testgen',
        description="AI-powered C++ unit test generator using Ollama, Google Gemini, or Groq",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate tests for every source unit configured in rules.yaml
  ai-cpp-testgen generate

  # Generate tests for one file with Groq, four units at a time
  ai-cpp-testgen generate --file codebase/calc.cpp --backend groq --workers 4

  # Compile and run every generated test with coverage
  ai-cpp-testgen run

  # Summarise an existing lcov tracefile
  ai-cpp-testgen coverage build/coverage.info --source-dir codebase

  # Deduplicate several test files into one
  ai-cpp-testgen merge tests/a_test.cc tests/b_test.cc -o tests/merged_test.cc
        """
    )

    parser.add_argument(
        '--rules',
        type=str,
        default='rules.yaml',
        help='Path to the YAML rules file (default: rules.yaml)'
    )
    parser.add_argument(
        '--extra-prompt',
        type=str,
        default='extra_prompt.txt',
        help='Optional file with additional prompt guidance (default: extra_prompt.txt)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable debug output (same as DEBUG=true)'
    )
    parser.add_argument(
        '--log-file',
        type=str,
        default=None,
        help='Optional path to a file where CLI output will be logged'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    generate = subparsers.add_parser('generate', help='Generate tests for the codebase')
    generate.add_argument(
        '--file',
        type=str,
        help='Specific C++ source file to process (processes every unit if not specified)'
    )
    generate.add_argument(
        '--workers',
        type=int,
        default=1,
        help='Number of source units processed in parallel (default: 1)'
    )
    generate.add_argument(
        '--backend',
        type=str,
        choices=['ollama', 'gemini', 'groq'],
        default='ollama',
        help='Model backend: ollama (local, default), gemini or groq (cloud, require an API key)'
    )
    generate.add_argument(
        '--api-key',
        type=str,
        help='API key for cloud backends (can also use GEMINI_API_KEY or GROQ_API_KEY env vars)'
    )

    run = subparsers.add_parser('run', help='Compile and run tests with coverage')
    run.add_argument(
        'test_file',
        nargs='?',
        help='Test file to run (runs every test file under the tests directory if omitted)'
    )
    run.add_argument(
        '--source-dir',
        type=str,
        help='Directory with the sources under test (default: codebase_dir from rules)'
    )
    run.add_argument(
        '--project-root',
        type=str,
        default='.',
        help='Project root containing external/googletest (default: current directory)'
    )

    coverage = subparsers.add_parser('coverage', help='Summarise an existing lcov tracefile')
    coverage.add_argument('report', help='Path to the raw lcov tracefile')
    coverage.add_argument(
        '--source-dir',
        type=str,
        help='Only files under this directory are counted (default: codebase_dir from rules)'
    )

    merge = subparsers.add_parser('merge', help='Deduplicate test files into one')
    merge.add_argument('files', nargs='+', help='Test files to merge')
    merge.add_argument('--output', '-o', type=str, required=True, help='Merged test file to write')

    return parser


def setup_logging(log_file, verbose=False):
    """Send the mirrored output stream to ``log_file`` when one is given"""
    logger = logging.getLogger(LOGGER_NAME)
    if not log_file:
        if not logger.handlers:
            logger.addHandler(logging.NullHandler())
        return
    log_dir = os.path.dirname(os.path.abspath(log_file))
    os.makedirs(log_dir, exist_ok=True)
    logging.basicConfig(
        filename=log_file,
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    logger.info("AI C++ Test Generator started")


def resolve_rules(path, ctx):
    """Load rules from ``path``; a missing file falls back to defaults"""
    if not os.path.exists(path):
        ctx.warn(f"Rules file '{path}' not found, using default rules")
        return default_rules()
    rules = load_rules(path)
    ctx.debug(f"Loaded rules from {path}")
    return rules


def cmd_generate(args, rules, ctx):
    extra_prompt = load_extra_prompt(args.extra_prompt)
    if extra_prompt:
        ctx.debug(f"Loaded extra prompt guidance from {args.extra_prompt}")

    backend = create_backend(args.backend, args.api_key)
    ctx.info(f"[INIT] Using {args.backend} backend, primary model {rules.models.primary_model}")

    if args.file:
        units = [load_source_unit(args.file)]
    else:
        files = read_codebase(rules.paths.codebase_dir, rules.paths.folders_to_scan, ctx)
        units = group_source_units(files, ctx)

    generator = SmartTestGenerator(rules, backend, ctx, extra_prompt=extra_prompt)
    report = generator.process_units(units, workers=args.workers)
    if not report.ok:
        ctx.error(f"Failed to generate tests for: {', '.join(sorted(report.failed))}")
        return 1
    ctx.success("Test generation completed!")
    return 0


def cmd_run(args, rules, ctx):
    source_dir = args.source_dir or rules.paths.codebase_dir
    test_files = [args.test_file] if args.test_file else list_test_files(rules.paths.tests_dir)
    if not test_files:
        ctx.warn(f"No test files found in {rules.paths.tests_dir}")
        return 0

    runner = TestRunner(rules, ctx, project_root=args.project_root)
    runner.ensure_gtest_built()

    failed = []
    for test_file in test_files:
        try:
            runner.compile_and_run(test_file, source_dir, write_summary=False)
        except (RunnerError, OSError) as e:
            ctx.error(f"{test_file}: {e}")
            failed.append(test_file)

    if len(runner.summaries) == 1:
        runner.publish_summary(runner.summaries[0])
    elif runner.summaries:
        combined = CoverageSummary.combine(runner.summaries)
        ctx.info(f"[COV] Combined coverage of {len(runner.summaries)} test executables:")
        ctx.write(combined.render())
        runner.publish_summary(combined)

    if failed:
        ctx.error(f"{len(failed)}/{len(test_files)} test files failed")
        return 1
    return 0


def cmd_coverage(args, rules, ctx):
    source_dir = args.source_dir or rules.paths.codebase_dir
    analyzer = CoverageAnalyzer(ctx)
    summary = analyzer.parse_report(args.report, source_dir)
    ctx.write(summary.render())
    summary_path = analyzer.write_summary(summary, rules.paths.tests_dir)
    ctx.success(f"Summary saved to: {summary_path}")

    threshold = rules.coverage.minimum_threshold
    if not summary.meets_threshold(threshold):
        ctx.warn(f"Coverage is below the {threshold:.2f}% threshold")
    return 0


def cmd_merge(args, rules, ctx):
    merged = merge_test_files(args.files, rules, ctx)
    output_dir = os.path.dirname(args.output)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
    with open(args.output, 'w', encoding='utf-8') as f:
        f.write(merged)
    ctx.success(f"Merged test file written to {args.output}")
    return 0


COMMANDS = {
    'generate': cmd_generate,
    'run': cmd_run,
    'coverage': cmd_coverage,
    'merge': cmd_merge,
}


def main(argv=None):
    """Main CLI entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_file, args.verbose)
    ctx = RunContext.from_env(verbose=args.verbose)
    ctx.debug(f"Args parsed: {vars(args)}")

    try:
        rules = resolve_rules(args.rules, ctx)
        exit_code = COMMANDS[args.command](args, rules, ctx)
    except KeyboardInterrupt:
        ctx.error("Interrupted by user")
        sys.exit(1)
    except (RulesError, BackendError, RunnerError, ValueError, OSError) as e:
        ctx.error(str(e))
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)


if __name__ == '__main__':
    main()
