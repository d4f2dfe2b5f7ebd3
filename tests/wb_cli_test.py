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


"""Tests for worldbuild.cli: parser, dispatch and end-to-end runs."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from worldbuild.backends import CatalogProvider
from worldbuild.checkpoint import CHECKPOINT_FILENAME, Checkpoint, PackageStatus, RunState
from worldbuild.cli import build_parser, main
from worldbuild.graph import build_graph
from worldbuild.lock import LOCK_FILENAME
from worldbuild.scheduler import schedule

CATALOG = """\
[packages.A]

[packages.B]
build = [["A"]]

[packages.B-doc]
variant_of = "B"
"""

UNRESOLVED_CATALOG = CATALOG + """
[packages.C]
build = [["X", "Y"]]
"""


def _project(tmp_path: Path, *, catalog: str = CATALOG, build_command: str = '["true"]') -> Path:
    """Write a catalog and config into ``tmp_path``; return the config path."""
    (tmp_path / 'catalog.toml').write_text(catalog, encoding='utf-8')
    config = tmp_path / 'worldbuild.toml'
    config.write_text(
        f'catalog = "catalog.toml"\nsource_dir = "src"\nbuild_command = {build_command}\n',
        encoding='utf-8',
    )
    return config


def _summary(output: Path) -> dict[str, object]:
    return json.loads((output / 'summary.json').read_text(encoding='utf-8'))


class TestBuildParser:
    """Tests for the argument parser structure."""

    def test_run_defaults(self) -> None:
        """Run with no arguments builds everything."""
        args = build_parser().parse_args(['run'])
        if args.command != 'run':
            raise AssertionError(f'Expected run, got {args.command}')
        if args.packages != [] or args.skip != [] or args.dry_run:
            raise AssertionError(f'Unexpected defaults: {args}')

    def test_skip_repeatable(self) -> None:
        """--skip may be given more than once."""
        args = build_parser().parse_args(['run', '--skip', 'gcc', '--skip', 'llvm'])
        if args.skip != ['gcc', 'llvm']:
            raise AssertionError(f'Expected both skips, got {args.skip}')

    def test_resume_takes_checkpoint(self) -> None:
        """Resume requires a checkpoint path."""
        args = build_parser().parse_args(['resume', 'out/checkpoint.jsonl'])
        if args.checkpoint != Path('out/checkpoint.jsonl'):
            raise AssertionError(f'Wrong checkpoint: {args.checkpoint}')

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        """--version prints and exits 0."""
        with pytest.raises(SystemExit) as exc_info:
            main(['--version'])
        if exc_info.value.code != 0:
            raise AssertionError(f'Expected exit 0, got {exc_info.value.code}')
        if 'worldbuild' not in capsys.readouterr().out:
            raise AssertionError('Version output missing program name')


class TestMain:
    """Tests for main() dispatch."""

    def test_no_command(self) -> None:
        """No subcommand prints help and exits 2."""
        if main(['-q']) != 2:
            raise AssertionError('Expected exit 2 without a command')

    def test_explain_known(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Explain prints the catalogued message."""
        if main(['-q', 'explain', 'WB-OUTPUT-EXISTS']) != 0:
            raise AssertionError('Expected exit 0')
        if not capsys.readouterr().out.startswith('WB-OUTPUT-EXISTS: '):
            raise AssertionError('Explanation not printed')

    def test_explain_unknown(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Unknown codes exit 1."""
        if main(['-q', 'explain', 'WB-NOPE']) != 1:
            raise AssertionError('Expected exit 1')
        if 'Unknown error code' not in capsys.readouterr().out:
            raise AssertionError('Unknown code not reported')


class TestRunCommand:
    """End-to-end tests for 'worldbuild run'."""

    def test_dry_run(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """The order goes to stdout, unresolved packages to stderr."""
        config = _project(tmp_path, catalog=UNRESOLVED_CATALOG)
        output = tmp_path / 'out'
        code = main(['-q', 'run', '--config', str(config), '--output', str(output), '--dry-run'])
        captured = capsys.readouterr()
        if code != 0:
            raise AssertionError(f'Expected exit 0, got {code}')
        if captured.out.splitlines() != ['A', 'B']:
            raise AssertionError(f'Unexpected order: {captured.out!r}')
        if 'unresolved: C: X | Y' not in captured.err:
            raise AssertionError(f'Unresolved package not reported: {captured.err!r}')
        if output.exists():
            raise AssertionError('Dry run created the output directory')

    def test_dry_run_named_packages(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """Only the named packages are scheduled."""
        config = _project(tmp_path)
        main(['-q', 'run', 'A', '--config', str(config), '--dry-run'])
        if capsys.readouterr().out.splitlines() != ['A']:
            raise AssertionError('Unnamed packages were scheduled')

    def test_successful_run(self, tmp_path: Path) -> None:
        """Everything builds: exit 0, summary written, no leftovers."""
        config = _project(tmp_path)
        output = tmp_path / 'out'
        code = main(['-q', 'run', '--config', str(config), '--output', str(output)])
        if code != 0:
            raise AssertionError(f'Expected exit 0, got {code}')
        summary = _summary(output)
        if summary['ok'] is not True or summary['built'] != ['A', 'B']:
            raise AssertionError(f'Unexpected summary: {summary}')
        if (output / CHECKPOINT_FILENAME).exists():
            raise AssertionError('Checkpoint left behind')
        if (output / LOCK_FILENAME).exists():
            raise AssertionError('Lock left behind')
        if not (output / 'logs' / 'A.log').is_file():
            raise AssertionError('Build log missing')

    def test_unresolved_fails_run(self, tmp_path: Path) -> None:
        """A package that could not be ordered makes the run exit 1."""
        config = _project(tmp_path, catalog=UNRESOLVED_CATALOG)
        output = tmp_path / 'out'
        if main(['-q', 'run', '--config', str(config), '--output', str(output)]) != 1:
            raise AssertionError('Expected exit 1')
        if _summary(output)['unbuildable'] != {'C': 'X | Y'}:
            raise AssertionError(f'Unexpected summary: {_summary(output)}')

    def test_failed_build(self, tmp_path: Path) -> None:
        """A failing builder blocks everything downstream."""
        config = _project(tmp_path, build_command='["false"]')
        output = tmp_path / 'out'
        if main(['-q', 'run', '--config', str(config), '--output', str(output)]) != 1:
            raise AssertionError('Expected exit 1')
        summary = _summary(output)
        if summary['failed'] != {'A': 'build failed (exit 1)'}:
            raise AssertionError(f'Unexpected failures: {summary["failed"]}')
        if summary['blocked'] != {'B': 'A'}:
            raise AssertionError(f'Unexpected blocked: {summary["blocked"]}')

    def test_skip_flag(self, tmp_path: Path) -> None:
        """--skip adds to the configured skip set."""
        config = _project(tmp_path)
        output = tmp_path / 'out'
        main(['-q', 'run', '--config', str(config), '--output', str(output), '--skip', 'A'])
        summary = _summary(output)
        if summary['skipped'] != {'A': 'skipped by request'}:
            raise AssertionError(f'Unexpected skipped: {summary["skipped"]}')

    def test_output_exists(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """A fresh run refuses an existing output directory."""
        config = _project(tmp_path)
        output = tmp_path / 'out'
        output.mkdir()
        if main(['-q', 'run', '--config', str(config), '--output', str(output)]) != 1:
            raise AssertionError('Expected exit 1')
        if 'WB-OUTPUT-EXISTS' not in capsys.readouterr().err:
            raise AssertionError('Error code not rendered')

    def test_missing_executable(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """A builder that is not on PATH is caught before anything runs."""
        config = _project(tmp_path, build_command='["worldbuild-no-such-builder"]')
        output = tmp_path / 'out'
        if main(['-q', 'run', '--config', str(config), '--output', str(output)]) != 1:
            raise AssertionError('Expected exit 1')
        if 'WB-EXECUTABLE-NOT-FOUND' not in capsys.readouterr().err:
            raise AssertionError('Error code not rendered')
        if output.exists():
            raise AssertionError('Output directory created despite the error')


class TestResumeCommand:
    """End-to-end tests for 'worldbuild resume'."""

    def test_missing_checkpoint(self, tmp_path: Path) -> None:
        """Resuming from nothing is an error."""
        config = _project(tmp_path)
        if main(['-q', 'resume', str(tmp_path / 'out' / CHECKPOINT_FILENAME), '--config', str(config)]) != 1:
            raise AssertionError('Expected exit 1')

    def test_resume_finishes_run(self, tmp_path: Path) -> None:
        """Resume builds only what is left and reports the whole run."""
        config = _project(tmp_path)
        provider = CatalogProvider.from_path(tmp_path / 'catalog.toml')
        graph = build_graph(['A', 'B'], provider)
        output = tmp_path / 'out'
        checkpoint = Checkpoint(output / CHECKPOINT_FILENAME)
        checkpoint.init(RunState(queue=schedule(graph).order, graph=graph))
        checkpoint.advance('A', PackageStatus.BUILT, {})

        code = main(['-q', 'resume', str(checkpoint.path), '--config', str(config)])
        if code != 0:
            raise AssertionError(f'Expected exit 0, got {code}')
        if _summary(output)['built'] != ['A', 'B']:
            raise AssertionError(f'Unexpected summary: {_summary(output)}')
        if checkpoint.path.exists():
            raise AssertionError('Checkpoint left behind')
