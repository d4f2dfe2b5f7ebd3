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


"""Tests for worldbuild.lock module."""

from __future__ import annotations

import json
import os
import socket
from pathlib import Path

import pytest
from worldbuild.errors import E, WorldBuildError
from worldbuild.lock import (
    LOCK_FILENAME,
    LockInfo,
    acquire_lock,
    is_stale,
    read_lock,
    release_lock,
    run_lock,
)
from worldbuild.logging import configure_logging

configure_logging(quiet=True)


def _write_lock(path: Path, **fields: object) -> None:
    data = {'pid': 99999999, 'hostname': socket.gethostname(), 'timestamp': 0.0, 'user': 'nobody'}
    data.update(fields)
    path.write_text(json.dumps(data), encoding='utf-8')


class TestReadLock:
    """Tests for read_lock()."""

    def test_missing(self, tmp_path: Path) -> None:
        """A missing lock file reads as None."""
        if read_lock(tmp_path / LOCK_FILENAME) is not None:
            raise AssertionError('Expected None for a missing lock')

    def test_corrupt(self, tmp_path: Path) -> None:
        """Garbage reads as None."""
        lock_path = tmp_path / LOCK_FILENAME
        lock_path.write_text('not json', encoding='utf-8')
        if read_lock(lock_path) is not None:
            raise AssertionError('Expected None for a corrupt lock')

    def test_fields(self, tmp_path: Path) -> None:
        """Recorded fields are parsed."""
        lock_path = tmp_path / LOCK_FILENAME
        _write_lock(lock_path, pid=42, hostname='h', timestamp=5.0)
        info = read_lock(lock_path)
        if info != LockInfo(pid=42, hostname='h', timestamp=5.0, user='nobody'):
            raise AssertionError(f'Unexpected lock info: {info}')


class TestIsStale:
    """Tests for is_stale()."""

    def test_own_process_is_live(self) -> None:
        """This process on this host is not stale."""
        info = LockInfo(pid=os.getpid(), hostname=socket.gethostname(), timestamp=0.0)
        if is_stale(info):
            raise AssertionError('Own lock reported stale')

    def test_dead_pid_same_host(self) -> None:
        """A dead PID on this host is stale."""
        info = LockInfo(pid=99999999, hostname=socket.gethostname(), timestamp=0.0)
        if not is_stale(info):
            raise AssertionError('Dead PID not reported stale')

    def test_other_host_never_stale_without_timeout(self) -> None:
        """Without a timeout a foreign host's lock is trusted."""
        info = LockInfo(pid=99999999, hostname='elsewhere.invalid', timestamp=0.0)
        if is_stale(info):
            raise AssertionError('Foreign lock reported stale')

    def test_timeout(self) -> None:
        """An old lock is stale once a timeout is given."""
        info = LockInfo(pid=os.getpid(), hostname='elsewhere.invalid', timestamp=0.0)
        if not is_stale(info, stale_timeout=1.0):
            raise AssertionError('Old lock not reported stale')


class TestAcquireLock:
    """Tests for acquire_lock() and release_lock()."""

    def test_lock_and_release(self, tmp_path: Path) -> None:
        """Acquire creates the lock file; release removes it."""
        lock_path = acquire_lock(tmp_path)
        if lock_path.name != LOCK_FILENAME:
            raise AssertionError(f'Wrong filename: {lock_path.name}')
        info = read_lock(lock_path)
        if info is None or info.pid != os.getpid():
            raise AssertionError(f'Lock not held by this process: {info}')
        release_lock(lock_path)
        if lock_path.exists():
            raise AssertionError('Lock file not removed')

    def test_second_acquire_fails(self, tmp_path: Path) -> None:
        """A live holder blocks a second acquire."""
        lock_path = acquire_lock(tmp_path)
        try:
            with pytest.raises(WorldBuildError) as exc_info:
                acquire_lock(tmp_path)
            if exc_info.value.code != E.LOCK_ACQUISITION_FAILED:
                raise AssertionError(f'Wrong code: {exc_info.value.code}')
        finally:
            release_lock(lock_path)

    def test_stale_lock_replaced(self, tmp_path: Path) -> None:
        """A dead holder's lock is taken over."""
        _write_lock(tmp_path / LOCK_FILENAME)
        lock_path = acquire_lock(tmp_path)
        try:
            info = read_lock(lock_path)
            if info is None or info.pid != os.getpid():
                raise AssertionError('Stale lock not replaced')
        finally:
            release_lock(lock_path)

    def test_corrupt_lock_replaced(self, tmp_path: Path) -> None:
        """An unreadable lock file is replaced."""
        (tmp_path / LOCK_FILENAME).write_text('{', encoding='utf-8')
        lock_path = acquire_lock(tmp_path)
        release_lock(lock_path)

    def test_release_leaves_foreign_lock(self, tmp_path: Path) -> None:
        """release_lock() does not remove another process's lock."""
        lock_path = tmp_path / LOCK_FILENAME
        _write_lock(lock_path, pid=os.getpid() + 1)
        release_lock(lock_path)
        if not lock_path.exists():
            raise AssertionError('Foreign lock removed')

    def test_release_nonexistent(self, tmp_path: Path) -> None:
        """Releasing a nonexistent lock file is safe."""
        release_lock(tmp_path / LOCK_FILENAME)


class TestRunLock:
    """Tests for the run_lock() context manager."""

    def test_context_manager(self, tmp_path: Path) -> None:
        """Lock is held inside the block and released after."""
        with run_lock(tmp_path) as lock_path:
            if not lock_path.exists():
                raise AssertionError('Lock not acquired in context')
        if lock_path.exists():
            raise AssertionError('Lock not released after context exit')

    def test_released_on_exception(self, tmp_path: Path) -> None:
        """Lock is released even if the block raises."""
        with pytest.raises(ValueError, match='test error'):
            with run_lock(tmp_path):
                raise ValueError('test error')
        if (tmp_path / LOCK_FILENAME).exists():
            raise AssertionError('Lock not released after exception')
