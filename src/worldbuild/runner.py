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

"""The resumable build loop.

Consumes the scheduled queue front to back. For each package exactly one
of four things happens:

    ┌──────────┬──────────────────────────────────────────────────────────┐
    │ Outcome  │ When                                                     │
    ├──────────┼──────────────────────────────────────────────────────────┤
    │ SKIPPED  │ The operator asked us never to build it.                 │
    │ BLOCKED  │ A build slot has no alternative left that could work.    │
    │ BUILT    │ The builder exited 0.                                    │
    │ FAILED   │ The builder exited non-zero (or could not be started).   │
    └──────────┴──────────────────────────────────────────────────────────┘

Anything but BUILT puts the package, and every variant of its family,
into the failure set, which is what later packages are checked against.
After each package the checkpoint is advanced; nothing else happens
until that record is on disk.

One package's problem never stops the loop. Only a checkpoint write
failure does, since continuing without it would make the run
unresumable.
"""

from __future__ import annotations

import json
import shutil
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from worldbuild.backends.builder import Builder
from worldbuild.backends.database import PackageDatabase
from worldbuild.checkpoint import Checkpoint, PackageStatus, RunState
from worldbuild.context import RunContext
from worldbuild.graph import DependencyGraph
from worldbuild.logging import package_context
from worldbuild.propagator import FailurePropagator

SKIP_REASON = 'skipped by request'
UNINSTALLED_VIRTUAL_REASON = 'virtual package not installed'


@dataclass(frozen=True)
class PackageOutcome:
    """Result of processing one queued package.

    Attributes:
        name: Package name.
        status: What happened.
        reason: Why it was not built (empty for ``BUILT``).
        log_path: The package's log file.
    """

    name: str
    status: PackageStatus
    reason: str = ''
    log_path: Path | None = None


@dataclass
class BuildReport:
    """Outcome of one :meth:`BuildLoop.run` call.

    Attributes:
        outcomes: One entry per package processed in the whole run, including
            those finished before a resume.
        failures: The complete failure set at the end of the loop.
        unavailable: Names that were never buildable packages (virtual
            capabilities the host lacks). Not counted against the run.
    """

    outcomes: list[PackageOutcome] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    unavailable: frozenset[str] = frozenset()

    def _names(self, status: PackageStatus) -> dict[str, str]:
        return {o.name: o.reason for o in self.outcomes if o.status == status}

    @property
    def built(self) -> list[str]:
        """Packages built, in build order."""
        return list(self._names(PackageStatus.BUILT))

    @property
    def skipped(self) -> dict[str, str]:
        """Skipped packages with their reasons."""
        return self._names(PackageStatus.SKIPPED)

    @property
    def blocked(self) -> dict[str, str]:
        """Blocked packages with the slot that could not be satisfied."""
        return self._names(PackageStatus.BLOCKED)

    @property
    def failed(self) -> dict[str, str]:
        """Packages whose build failed."""
        return self._names(PackageStatus.FAILED)

    @property
    def unbuildable(self) -> dict[str, str]:
        """Failed-set entries that were never processed.

        These are packages the scheduler could not order and variants of
        failed families.
        """
        processed = {o.name for o in self.outcomes}
        return {
            name: reason
            for name, reason in self.failures.items()
            if name not in processed and name not in self.unavailable
        }

    @property
    def ok(self) -> bool:
        """True if every package was built."""
        return all(o.status == PackageStatus.BUILT for o in self.outcomes) and not self.unbuildable

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready summary."""
        return {
            'ok': self.ok,
            'built': self.built,
            'skipped': self.skipped,
            'blocked': self.blocked,
            'failed': self.failed,
            'unbuildable': self.unbuildable,
        }

    def write_summary(self, path: Path) -> None:
        """Write :meth:`to_dict` as JSON to ``path``."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2) + '\n', encoding='utf-8')


def seed_failures(graph: DependencyGraph, failed: dict[str, str], skip: Iterable[str] = ()) -> None:
    """Add non-installed virtual packages and ``skip`` to ``failed``.

    Existing reasons are kept.
    """
    for node in graph.nodes.values():
        if node.is_virtual and not node.installed:
            failed.setdefault(node.name, UNINSTALLED_VIRTUAL_REASON)
    for name in skip:
        failed.setdefault(name, SKIP_REASON)


class BuildLoop:
    """Drives the builder over a queue, recording every step.

    Args:
        ctx: Run context (output locations, logger).
        builder: The external build action.
        checkpoint: Checkpoint to advance after every package.
        skip: Packages never to build.
    """

    def __init__(
        self,
        ctx: RunContext,
        builder: Builder,
        checkpoint: Checkpoint,
        *,
        skip: Iterable[str] = (),
    ) -> None:
        """Initialize the loop."""
        self.ctx = ctx
        self.builder = builder
        self.checkpoint = checkpoint
        self.skip = frozenset(skip)
        self.log = ctx.logger

    def run(self, state: RunState) -> BuildReport:
        """Process every package left in ``state.queue``.

        ``state`` is updated in place, so after an interruption it holds
        exactly what the checkpoint holds.

        Args:
            state: The run state to continue from.

        Returns:
            A :class:`BuildReport` covering every package of the run,
            including those recorded in ``state.history``.
        """
        graph = state.graph
        failed = state.failed
        seed_failures(graph, failed, self.skip)
        propagator = FailurePropagator(graph, failed)
        unavailable = frozenset(n.name for n in graph.nodes.values() if n.is_virtual)

        self.ctx.logs_dir.mkdir(parents=True, exist_ok=True)
        report = BuildReport(unavailable=unavailable)
        for done, status, reason in state.history:
            report.outcomes.append(PackageOutcome(done, status, reason, self.ctx.log_path(done)))
        total = len(state.queue)
        self.log.info('build_loop_started', queued=total, done=len(state.history), failed=len(failed))

        while state.queue:
            name = state.queue[0]
            with package_context(name, remaining=len(state.queue)):
                outcome = self._process(name, graph, failed, propagator)
                newly_failed: dict[str, str] = {}
                if outcome.status != PackageStatus.BUILT:
                    newly_failed[name] = outcome.reason
                    for variant in graph.family_variants(name):
                        if variant not in failed:
                            newly_failed[variant] = f'variant of {name}: {outcome.status.value}'
                for failed_name, reason in newly_failed.items():
                    failed.setdefault(failed_name, reason)
                self.checkpoint.advance(name, outcome.status, newly_failed, outcome.reason)
                state.queue.pop(0)
                state.history.append((name, outcome.status, outcome.reason))
            report.outcomes.append(outcome)

        report.failures = dict(failed)
        self.log.info(
            'build_loop_finished',
            built=len(report.built),
            skipped=len(report.skipped),
            blocked=len(report.blocked),
            failed=len(report.failed),
        )
        return report

    def _process(
        self,
        name: str,
        graph: DependencyGraph,
        failed: dict[str, str],
        propagator: FailurePropagator,
    ) -> PackageOutcome:
        log_path = self.ctx.log_path(name)

        if name in self.skip or failed.get(name) == SKIP_REASON:
            self._write_note(log_path, f'{name}: skipped by request')
            self.log.info('package_skipped')
            return PackageOutcome(name, PackageStatus.SKIPPED, SKIP_REASON, log_path)

        reason = failed.get(name) or propagator.blocked_reason(name)
        if reason:
            self._write_note(log_path, f'{name}: not built, unsatisfiable dependency: {reason}')
            self.log.warning('package_blocked', reason=reason)
            return PackageOutcome(name, PackageStatus.BLOCKED, reason, log_path)

        self.log.info('package_build_started', log=str(log_path))
        try:
            status = self.builder.build(name, log_path)
        except Exception as exc:
            self.log.error('builder_error', error=str(exc))
            status = -1
            reason = f'builder error: {exc}'
        else:
            reason = f'build failed (exit {status})'

        if status == 0:
            self._remove_source(name)
            self.log.info('package_built')
            return PackageOutcome(name, PackageStatus.BUILT, '', log_path)

        self._archive_source(name)
        self.log.warning('package_failed', reason=reason, log=str(log_path))
        return PackageOutcome(name, PackageStatus.FAILED, reason, log_path)

    @staticmethod
    def _write_note(log_path: Path, line: str) -> None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_path.write_text(line + '\n', encoding='utf-8')

    def _remove_source(self, name: str) -> None:
        tree = self.ctx.source_dir / name
        if not tree.exists():
            return
        try:
            shutil.rmtree(tree)
        except OSError as exc:
            self.log.warning('source_cleanup_failed', path=str(tree), error=str(exc))

    def _archive_source(self, name: str) -> None:
        tree = self.ctx.source_dir / name
        if not tree.exists():
            return
        target = self.ctx.failed_dir / name
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(tree), str(target))
        except OSError as exc:
            self.log.warning('source_archive_failed', path=str(tree), error=str(exc))
        else:
            self.log.debug('source_archived', path=str(target))


def _complete(ctx: RunContext, report: BuildReport, checkpoint: Checkpoint) -> BuildReport:
    report.write_summary(ctx.summary_path)
    checkpoint.discard()
    return report


def start_run(
    ctx: RunContext,
    state: RunState,
    builder: Builder,
    database: PackageDatabase,
    *,
    skip: Iterable[str] = (),
) -> BuildReport:
    """Run a fresh build of ``state.queue`` to completion.

    Cleans the host package database, writes the initial checkpoint
    (with ``skip`` already in its failure set, so a resume keeps
    skipping them), runs the build loop, then writes ``summary.json`` and removes the
    checkpoint.

    Args:
        ctx: Run context. The output directory must already exist.
        state: Scheduled queue, graph and initial failure set.
        builder: The external build action.
        database: The host package database.
        skip: Packages never to build.

    Returns:
        The :class:`BuildReport` of the run.
    """
    database.remove_stale_build_locks()
    seed_failures(state.graph, state.failed, skip)
    database.purge_non_essential(list(state.queue))
    checkpoint = Checkpoint(ctx.checkpoint_path)
    checkpoint.init(state)
    report = BuildLoop(ctx, builder, checkpoint, skip=skip).run(state)
    return _complete(ctx, report, checkpoint)


def resume_run(
    ctx: RunContext,
    checkpoint_path: Path,
    builder: Builder,
    database: PackageDatabase,
    *,
    skip: Iterable[str] = (),
) -> BuildReport:
    """Continue an interrupted run from ``checkpoint_path``.

    A crash can leave stale build locks, half-installed packages and a
    torn checkpoint record behind; all are cleaned before the first build.

    Raises:
        WorldBuildError: If the checkpoint is corrupted.
    """
    state = Checkpoint.restore(checkpoint_path)
    checkpoint = Checkpoint(checkpoint_path)
    checkpoint.repair()
    database.remove_stale_build_locks()
    database.purge_non_essential(list(state.queue))
    report = BuildLoop(ctx, builder, checkpoint, skip=skip).run(state)
    return _complete(ctx, report, checkpoint)


__all__ = [
    'SKIP_REASON',
    'UNINSTALLED_VIRTUAL_REASON',
    'BuildLoop',
    'BuildReport',
    'PackageOutcome',
    'PackageStatus',
    'resume_run',
    'seed_failures',
    'start_run',
]
