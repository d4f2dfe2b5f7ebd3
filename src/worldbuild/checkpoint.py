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

"""Append-only, crash-resumable checkpoint of a build run.

The checkpoint is a JSON Lines file. The first line is a full snapshot
of the run; every later line records one finished package::

    {"kind": "snapshot", "version": 1, "queue": ["a", "b"], "failed": {}, "history": [], "graph": {...}}
    {"kind": "advance", "name": "a", "status": "built", "reason": "", "failed": {}}
    {"kind": "advance", "name": "b", "status": "failed", "reason": "build failed (exit 2)",
     "failed": {"b": "build failed (exit 2)", "b-doc": "variant of b: failed"}}

Replaying the advances over the snapshot gives the exact state the run
was in after its last finished package, including the outcome of every
package processed so far.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Snapshot            │ The whole to-do list and dependency map, as   │
    │                     │ it stood before the first build.              │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Advance             │ "Crossed one item off the top, this is how    │
    │                     │ it ended, and these names failed with it."    │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ fsync barrier       │ The line is on disk before the next build     │
    │                     │ starts, so a crash loses at most the package  │
    │                     │ that was building.                            │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Torn tail           │ A crash mid-write can leave half a line at    │
    │                     │ the end. That step simply did not happen.     │
    └─────────────────────┴────────────────────────────────────────────────┘

The snapshot is written with ``tempfile`` + ``os.replace``; advances are
appended through an ``O_APPEND`` descriptor and fsynced. The file is data
only: it is parsed and validated on load, never executed. Loading never
writes; :meth:`Checkpoint.repair` cleans a torn tail before appending.

Usage::

    from worldbuild.checkpoint import Checkpoint, PackageStatus, RunState

    checkpoint = Checkpoint(Path('out/checkpoint.jsonl'))
    checkpoint.init(RunState(queue=order, graph=graph, failed=failed))
    checkpoint.advance('a', PackageStatus.BUILT, {})

    # After a crash:
    state = Checkpoint.restore(Path('out/checkpoint.jsonl'))
    Checkpoint(Path('out/checkpoint.jsonl')).repair()
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from worldbuild.errors import E, WorldBuildError
from worldbuild.graph import DependencyGraph
from worldbuild.logging import get_logger

logger = get_logger(__name__)

CHECKPOINT_FILENAME = 'checkpoint.jsonl'
FORMAT_VERSION = 1

_HINT = 'Inspect the checkpoint, or remove the output directory and start a fresh run.'


class PackageStatus(str, Enum):
    """What happened to a package in the build loop."""

    BUILT = 'built'
    SKIPPED = 'skipped'
    BLOCKED = 'blocked'
    FAILED = 'failed'


@dataclass
class RunState:
    """Everything the build loop needs to continue a run.

    Attributes:
        queue: Packages still to process, front first. Always a suffix of
            the order the run started with.
        graph: The dependency graph the order was computed from.
        failed: Failure set, name to reason.
        history: ``(name, status, reason)`` of every package already
            processed, in processing order.
    """

    queue: list[str]
    graph: DependencyGraph
    failed: dict[str, str] = field(default_factory=dict)
    history: list[tuple[str, PackageStatus, str]] = field(default_factory=list)


def _corrupted(path: Path, line_no: int, message: str) -> WorldBuildError:
    return WorldBuildError(code=E.CHECKPOINT_CORRUPTED, message=f'{path}:{line_no}: {message}', hint=_HINT)


def _is_str_list(value: object) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def _is_reason_map(value: object) -> bool:
    return isinstance(value, dict) and all(isinstance(k, str) and isinstance(v, str) for k, v in value.items())


def _is_history(value: object) -> bool:
    return isinstance(value, list) and all(
        isinstance(entry, list) and len(entry) == 3 and isinstance(entry[0], str) and isinstance(entry[2], str)
        for entry in value
    )


def _parse_status(path: Path, line_no: int, value: object) -> PackageStatus:
    try:
        return PackageStatus(value)
    except ValueError:
        raise _corrupted(path, line_no, f'unknown package status {value!r}') from None


def _fsync_dir(directory: Path) -> None:
    fd = os.open(str(directory), os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


class Checkpoint:
    """Writer for one run's checkpoint file.

    Args:
        path: Location of the checkpoint file.
    """

    def __init__(self, path: Path) -> None:
        """Bind to ``path``. Nothing is written until :meth:`init`."""
        self.path = path

    def init(self, state: RunState) -> None:
        """Write the initial snapshot, replacing any previous file atomically.

        Raises:
            OSError: If the file cannot be written.
        """
        record = {
            'kind': 'snapshot',
            'version': FORMAT_VERSION,
            'queue': list(state.queue),
            'failed': dict(state.failed),
            'history': [[name, status.value, reason] for name, status, reason in state.history],
            'graph': {'nodes': state.graph.to_records()},
        }
        content = json.dumps(record, separators=(',', ':')) + '\n'

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix='.checkpoint-', suffix='.tmp')
        closed = False
        try:
            os.write(fd, content.encode('utf-8'))
            os.fsync(fd)
            os.close(fd)
            closed = True
            os.replace(tmp_path, self.path)
        except BaseException:
            if not closed:
                os.close(fd)
            Path(tmp_path).unlink(missing_ok=True)
            raise
        _fsync_dir(self.path.parent)

        logger.debug('checkpoint_initialized', path=str(self.path), queued=len(state.queue))

    def advance(self, name: str, status: PackageStatus, failed: Mapping[str, str], reason: str = '') -> None:
        """Record that the queue front ``name`` ended as ``status``.

        ``failed`` holds the names this step added to the failure set.
        Returns only once the record is on disk.

        Raises:
            OSError: If the checkpoint does not exist or cannot be written.
        """
        record = {'kind': 'advance', 'name': name, 'status': status.value, 'reason': reason, 'failed': dict(failed)}
        line = json.dumps(record, separators=(',', ':')) + '\n'
        fd = os.open(str(self.path), os.O_WRONLY | os.O_APPEND)
        try:
            os.write(fd, line.encode('utf-8'))
            os.fsync(fd)
        finally:
            os.close(fd)

    def discard(self) -> None:
        """Remove the checkpoint after a completed run."""
        self.path.unlink(missing_ok=True)
        logger.debug('checkpoint_discarded', path=str(self.path))

    def repair(self) -> None:
        """Make the file safe to append to after a crash.

        A torn final record is cut off. A complete final record missing
        only its newline gets one.

        Raises:
            OSError: If the file cannot be read or written.
        """
        data = self.path.read_bytes()
        if not data or data.endswith(b'\n'):
            return
        tail = data.rsplit(b'\n', 1)[-1]
        try:
            self._parse_line(self.path, data.count(b'\n') + 1, tail)
        except WorldBuildError:
            os.truncate(self.path, len(data) - len(tail))
            logger.warning('checkpoint_torn_record_removed', path=str(self.path), size=len(tail))
        else:
            with self.path.open('ab') as sink:
                sink.write(b'\n')
                sink.flush()
                os.fsync(sink.fileno())
            logger.debug('checkpoint_newline_restored', path=str(self.path))

    @classmethod
    def restore(cls, path: Path) -> RunState:
        """Rebuild the run state recorded in ``path`` without modifying it.

        A torn final record (no trailing newline and not valid JSON) is
        ignored: that step never finished. Call :meth:`repair` before
        appending to the file again.

        Args:
            path: Checkpoint file.

        Returns:
            The :class:`RunState` after the last recorded package.

        Raises:
            WorldBuildError: If the file is missing, unreadable, or
                corrupted anywhere but a torn final record.
        """
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise WorldBuildError(
                code=E.CHECKPOINT_CORRUPTED,
                message=f'Failed to read checkpoint {path}: {exc}',
                hint='Pass the checkpoint.jsonl of the run to resume.',
            ) from exc

        raw_lines = data.split(b'\n')
        tail = raw_lines.pop()
        records: list[dict[str, Any]] = []
        for line_no, raw in enumerate(raw_lines, start=1):
            records.append(cls._parse_line(path, line_no, raw))

        if tail:
            try:
                records.append(cls._parse_line(path, len(raw_lines) + 1, tail))
            except WorldBuildError:
                logger.warning('checkpoint_torn_record_ignored', path=str(path), size=len(tail))

        if not records:
            raise _corrupted(path, 1, 'no snapshot record')
        state = cls._load_snapshot(path, records[0])

        for line_no, record in enumerate(records[1:], start=2):
            cls._apply_advance(path, line_no, record, state)

        logger.info(
            'checkpoint_restored',
            path=str(path),
            processed=len(records) - 1,
            remaining=len(state.queue),
            failed=len(state.failed),
        )
        return state

    @staticmethod
    def _parse_line(path: Path, line_no: int, raw: bytes) -> dict[str, Any]:
        try:
            record = json.loads(raw.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise _corrupted(path, line_no, f'invalid JSON: {exc}') from exc
        if not isinstance(record, dict):
            raise _corrupted(path, line_no, 'record is not a JSON object')
        return record

    @staticmethod
    def _load_snapshot(path: Path, record: dict[str, Any]) -> RunState:
        if record.get('kind') != 'snapshot':
            raise _corrupted(path, 1, f'expected a snapshot record, got kind {record.get("kind")!r}')
        version = record.get('version')
        if version != FORMAT_VERSION:
            raise WorldBuildError(
                code=E.CHECKPOINT_VERSION,
                message=f'{path}: checkpoint format version {version!r} is not supported (expected {FORMAT_VERSION})',
                hint='Resume with the worldbuild release that wrote it, or start a fresh run.',
            )
        queue = record.get('queue')
        failed = record.get('failed')
        history = record.get('history', [])
        graph_data = record.get('graph')
        if not _is_str_list(queue):
            raise _corrupted(path, 1, "'queue' must be a list of package names")
        if not _is_reason_map(failed):
            raise _corrupted(path, 1, "'failed' must map names to reasons")
        if not _is_history(history):
            raise _corrupted(path, 1, "'history' must be a list of [name, status, reason]")
        if not isinstance(graph_data, dict) or not isinstance(graph_data.get('nodes'), list):
            raise _corrupted(path, 1, "'graph' must hold a list of nodes")
        try:
            graph = DependencyGraph.from_records(graph_data['nodes'])
        except (KeyError, TypeError, ValueError) as exc:
            raise _corrupted(path, 1, f'malformed graph node: {exc}') from exc
        return RunState(
            queue=list(queue),
            graph=graph,
            failed=dict(failed),
            history=[(name, _parse_status(path, 1, status), reason) for name, status, reason in history],
        )

    @staticmethod
    def _apply_advance(path: Path, line_no: int, record: dict[str, Any], state: RunState) -> None:
        if record.get('kind') != 'advance':
            raise _corrupted(path, line_no, f'expected an advance record, got kind {record.get("kind")!r}')
        failed = record.get('failed')
        if not _is_reason_map(failed):
            raise _corrupted(path, line_no, "'failed' must map names to reasons")
        if not state.queue:
            raise _corrupted(path, line_no, 'more advance records than queued packages')
        name = record.get('name')
        if name != state.queue[0]:
            raise _corrupted(path, line_no, f'advance for {name!r} but the queue front is {state.queue[0]!r}')
        reason = record.get('reason', '')
        if not isinstance(reason, str):
            raise _corrupted(path, line_no, "'reason' must be a string")
        status = _parse_status(path, line_no, record.get('status'))
        state.queue.pop(0)
        state.history.append((name, status, reason))
        for failed_name, failed_reason in failed.items():
            state.failed.setdefault(failed_name, failed_reason)


__all__ = [
    'CHECKPOINT_FILENAME',
    'FORMAT_VERSION',
    'Checkpoint',
    'PackageStatus',
    'RunState',
]
