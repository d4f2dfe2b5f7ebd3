# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# SPDX-License-Identifier: Apache-2.0

"""Command-line interface for worldbuild.

Subcommands::

    worldbuild run [PACKAGE ...]    Build the corpus (or the named packages).
    worldbuild run --dry-run        Print the build order, build nothing.
    worldbuild resume CHECKPOINT    Continue an interrupted run.
    worldbuild explain CODE         Explain an error code.

``run`` and ``resume`` exit 0 only when every package was built, and 1
when anything failed, was blocked, skipped or could not be ordered.
"""

from __future__ import annotations

import argparse
import dataclasses
import shlex
import sys
from pathlib import Path

from rich_argparse import RichHelpFormatter

from worldbuild import __version__
from worldbuild.backends import CatalogProvider, CommandBuilder, CommandPackageDatabase
from worldbuild.checkpoint import CHECKPOINT_FILENAME, RunState
from worldbuild.config import BuildConfig, check_executables, load_config
from worldbuild.context import RunContext
from worldbuild.errors import E, WorldBuildError, explain, render_error
from worldbuild.graph import build_graph
from worldbuild.lock import run_lock
from worldbuild.logging import configure_logging, get_logger
from worldbuild.runner import BuildReport, resume_run, seed_failures, start_run
from worldbuild.scheduler import collapse_families, schedule

logger = get_logger('worldbuild.cli')


def _load_config(args: argparse.Namespace) -> BuildConfig:
    """Load ``worldbuild.toml`` and apply command-line overrides."""
    config = load_config(args.config, required=args.config is not None)
    overrides: dict[str, object] = {}
    if getattr(args, 'catalog', None) is not None:
        overrides['catalog'] = args.catalog
    if getattr(args, 'output', None) is not None:
        overrides['output_dir'] = args.output
    if getattr(args, 'source_dir', None) is not None:
        overrides['source_dir'] = args.source_dir
    if getattr(args, 'probe', None) is not None:
        overrides['probe'] = args.probe
    if getattr(args, 'filter', None) is not None:
        overrides['filter_command'] = tuple(shlex.split(args.filter))
    if getattr(args, 'skip', None):
        overrides['skip'] = config.skip | frozenset(args.skip)
    return dataclasses.replace(config, **overrides) if overrides else config


def _database(config: BuildConfig) -> CommandPackageDatabase:
    return CommandPackageDatabase(
        purge_command=list(config.purge_command),
        unlock_command=list(config.unlock_command),
    )


def _builder(config: BuildConfig) -> CommandBuilder:
    return CommandBuilder(list(config.build_command), filter_command=list(config.filter_command))


def _exit_code(ctx: RunContext, report: BuildReport) -> int:
    """Log the run totals and pick the exit code."""
    logger.info(
        'run_finished',
        ok=report.ok,
        built=len(report.built),
        skipped=len(report.skipped),
        blocked=len(report.blocked),
        failed=len(report.failed),
        unbuildable=len(report.unbuildable),
        summary=str(ctx.summary_path),
    )
    return 0 if report.ok else 1


def _cmd_run(args: argparse.Namespace) -> int:
    """Handle the ``run`` subcommand."""
    config = _load_config(args)
    provider = CatalogProvider.from_path(config.catalog)
    names = args.packages or provider.list_all_package_names()

    graph = build_graph(names, provider)
    failed: dict[str, str] = {}
    seed_failures(graph, failed)
    result = schedule(graph, probe=config.probe or None, failed=failed)
    order = collapse_families(result.order, graph)
    for name, reason in result.unresolved.items():
        failed.setdefault(name, reason)

    if args.dry_run:
        for name in order:
            print(name)  # noqa: T201 - CLI output
        for name, reason in result.unresolved.items():
            print(f'unresolved: {name}: {reason}', file=sys.stderr)  # noqa: T201 - CLI output
        return 0

    check_executables(config)
    output_dir = config.output_dir
    if output_dir.exists():
        raise WorldBuildError(
            code=E.OUTPUT_EXISTS,
            message=f'Output directory {output_dir} already exists',
            hint=f"Pick a new --output directory, or run 'worldbuild resume {output_dir / CHECKPOINT_FILENAME}'.",
        )
    output_dir.mkdir(parents=True)

    ctx = RunContext(output_dir=output_dir, source_dir=config.source_dir)
    state = RunState(queue=order, graph=graph, failed=failed)
    with run_lock(ctx.output_dir):
        report = start_run(ctx, state, _builder(config), _database(config), skip=config.skip)
    return _exit_code(ctx, report)


def _cmd_resume(args: argparse.Namespace) -> int:
    """Handle the ``resume`` subcommand."""
    config = _load_config(args)
    checkpoint_path: Path = args.checkpoint
    if not checkpoint_path.is_file():
        raise WorldBuildError(
            code=E.CHECKPOINT_CORRUPTED,
            message=f'Checkpoint {checkpoint_path} does not exist',
            hint=f'Pass the {CHECKPOINT_FILENAME} inside the output directory of the run to resume.',
        )
    check_executables(config)

    ctx = RunContext(output_dir=checkpoint_path.parent, source_dir=config.source_dir)
    with run_lock(ctx.output_dir):
        report = resume_run(ctx, checkpoint_path, _builder(config), _database(config), skip=config.skip)
    return _exit_code(ctx, report)


def _cmd_explain(args: argparse.Namespace) -> int:
    """Handle the ``explain`` subcommand."""
    result = explain(args.code)
    if result is None:
        print(f'Unknown error code: {args.code}')  # noqa: T201 - CLI output
        return 1
    print(result)  # noqa: T201 - CLI output
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser.

    Returns:
        Configured :class:`argparse.ArgumentParser`.
    """
    RichHelpFormatter.styles['argparse.groups'] = 'bold yellow'
    parser = argparse.ArgumentParser(
        prog='worldbuild',
        description='Rebuild a whole package corpus, once per package, in dependency order.',
        formatter_class=RichHelpFormatter,
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--verbose', '-v', action='store_true', help='Show debug output.')
    parser.add_argument('--quiet', '-q', action='store_true', help='Only show warnings and errors.')
    parser.add_argument('--json-log', action='store_true', help='Log one JSON object per line.')

    subparsers = parser.add_subparsers(dest='command')

    run_parser = subparsers.add_parser(
        'run',
        help='Build packages in dependency order.',
        formatter_class=RichHelpFormatter,
    )
    run_parser.add_argument(
        'packages',
        nargs='*',
        metavar='PACKAGE',
        help='Packages to build (default: every package in the catalog).',
    )
    run_parser.add_argument('--config', type=Path, default=None, help='Config file (default: ./worldbuild.toml).')
    run_parser.add_argument('--catalog', type=Path, default=None, help='Metadata catalog (overrides config).')
    run_parser.add_argument('--output', type=Path, default=None, help='Output directory; must not exist yet.')
    run_parser.add_argument('--source-dir', type=Path, default=None, help='Directory of per-package work trees.')
    run_parser.add_argument(
        '--skip',
        action='append',
        metavar='NAME',
        default=[],
        help='Never build NAME (repeatable). Its dependents are blocked.',
    )
    run_parser.add_argument('--probe', metavar='NAME', default=None, help='Build NAME before anything else.')
    run_parser.add_argument(
        '--filter',
        metavar='CMD',
        default=None,
        help='Preprocessing hook run before every build, e.g. "fix-desc {name}".',
    )
    run_parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Print the build order and exit without building.',
    )

    resume_parser = subparsers.add_parser(
        'resume',
        help='Continue an interrupted run from its checkpoint.',
        formatter_class=RichHelpFormatter,
    )
    resume_parser.add_argument('checkpoint', type=Path, metavar='CHECKPOINT', help='Path to checkpoint.jsonl.')
    resume_parser.add_argument('--config', type=Path, default=None, help='Config file (default: ./worldbuild.toml).')

    explain_parser = subparsers.add_parser(
        'explain',
        help='Explain an error code.',
        formatter_class=RichHelpFormatter,
    )
    explain_parser.add_argument('code', metavar='CODE', help='Error code, e.g. WB-OUTPUT-EXISTS.')

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Args:
        argv: Arguments without the program name (default: ``sys.argv[1:]``).

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose, quiet=args.quiet, json_log=args.json_log)

    try:
        command = args.command
        if command == 'run':
            return _cmd_run(args)
        if command == 'resume':
            return _cmd_resume(args)
        if command == 'explain':
            return _cmd_explain(args)

        parser.print_help()  # noqa: T201 - CLI output
        print(  # noqa: T201 - CLI output
            f'\n{parser.prog}: error: please provide a command',
            file=sys.stderr,
        )
        return 2

    except WorldBuildError as exc:
        render_error(exc)
        return 1
    except KeyboardInterrupt:
        logger.info('interrupted')
        return 130


def _main() -> None:
    """Wrapper for pyproject.toml [project.scripts] entry point."""
    sys.exit(main())


__all__ = [
    'build_parser',
    'main',
]
