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

"""Advisory lock on a run's output directory.

A world build owns its output directory for hours or days: the
checkpoint, the per-package logs and the failed-source archive all live
there. Two processes appending to the same checkpoint would corrupt it,
so each run holds ``<output>/.worldbuild.lock`` while it works.

The lock records who holds it::

    {"pid": 4242, "hostname": "builder-3", "timestamp": 1760000000.0, "user": "build"}

A lock is stale when its process is gone (same host only) or, if a
``stale_timeout`` is given, when it is older than that. Runs legitimately
last for days, so by default only a dead process makes a lock stale.

Usage::

    from worldbuild.lock import run_lock

    with run_lock(Path('out')):
        ...  # safe to build and checkpoint
"""

from __future__ import annotations

import atexit
import json
import os
import socket
import time
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from pathlib import Path

from worldbuild.errors import E, WorldBuildError
from worldbuild.logging import get_logger

logger = get_logger(__name__)

LOCK_FILENAME = '.worldbuild.lock'


@dataclass(frozen=True)
class LockInfo:
    """Holder of a run lock.

    Attributes:
        pid: Process ID of the holder.
        hostname: Host the holder runs on.
        timestamp: Unix time the lock was taken.
        user: Login name of the holder.
    """

    pid: int
    hostname: str
    timestamp: float
    user: str = ''


def read_lock(lock_path: Path) -> LockInfo | None:
    """Return the holder recorded in ``lock_path``, or None if absent or unreadable."""
    try:
        data = json.loads(lock_path.read_text(encoding='utf-8'))
        return LockInfo(
            pid=int(data['pid']),
            hostname=str(data['hostname']),
            timestamp=float(data['timestamp']),
            user=str(data.get('user', '')),
        )
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError, KeyError, ValueError, TypeError):
        logger.warning('lock_file_corrupt', path=str(lock_path))
        return None


def _process_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by someone else.
        return True
    return True


def is_stale(info: LockInfo, *, stale_timeout: float | None = None) -> bool:
    """Return True if the holder described by ``info`` is gone.

    Args:
        info: Recorded holder.
        stale_timeout: Optional maximum lock age in seconds.
    """
    if stale_timeout is not None and time.time() - info.timestamp > stale_timeout:
        return True
    return info.hostname == socket.gethostname() and not _process_alive(info.pid)


def _held_error(lock_path: Path, info: LockInfo | None) -> WorldBuildError:
    pid = info.pid if info else '?'
    host = info.hostname if info else '?'
    return WorldBuildError(
        code=E.LOCK_ACQUISITION_FAILED,
        message=f'{lock_path.parent} is in use by PID {pid} on {host}',
        hint=f"If that run is gone, delete '{lock_path}'.",
    )


def acquire_lock(output_dir: Path, *, stale_timeout: float | None = None) -> Path:
    """Take the run lock for ``output_dir``.

    Args:
        output_dir: The run's output directory. Must exist.
        stale_timeout: Optional maximum age of someone else's lock.

    Returns:
        Path to the lock file.

    Raises:
        WorldBuildError: If a live process holds the lock.
    """
    lock_path = output_dir / LOCK_FILENAME
    existing = read_lock(lock_path)
    if existing is not None:
        if not is_stale(existing, stale_timeout=stale_timeout):
            raise _held_error(lock_path, existing)
        logger.warning('stale_lock_removed', path=str(lock_path), pid=existing.pid, hostname=existing.hostname)
        lock_path.unlink(missing_ok=True)
    elif lock_path.exists():
        logger.warning('corrupt_lock_removed', path=str(lock_path))
        lock_path.unlink(missing_ok=True)

    info = LockInfo(
        pid=os.getpid(),
        hostname=socket.gethostname(),
        timestamp=time.time(),
        user=os.environ.get('USER', os.environ.get('USERNAME', '')),
    )
    try:
        # O_EXCL: two runs racing past the checks above cannot both win.
        fd = os.open(str(lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError:
        raise _held_error(lock_path, read_lock(lock_path)) from None
    except OSError as exc:
        raise WorldBuildError(
            code=E.LOCK_ACQUISITION_FAILED,
            message=f'Failed to create {lock_path}: {exc}',
            hint='Check permissions on the output directory.',
        ) from exc
    try:
        os.write(fd, (json.dumps(asdict(info)) + '\n').encode('utf-8'))
    except BaseException:
        os.close(fd)
        lock_path.unlink(missing_ok=True)
        raise
    os.close(fd)

    logger.debug('lock_acquired', path=str(lock_path), pid=info.pid)
    atexit.register(_atexit_cleanup, lock_path, info.pid)
    return lock_path


def release_lock(lock_path: Path) -> None:
    """Remove ``lock_path`` if this process holds it. Safe to call twice."""
    existing = read_lock(lock_path)
    if existing is not None and existing.pid != os.getpid():
        logger.warning('lock_owned_by_other', path=str(lock_path), owner_pid=existing.pid)
        return
    lock_path.unlink(missing_ok=True)
    logger.debug('lock_released', path=str(lock_path))


def _atexit_cleanup(lock_path: Path, owner_pid: int) -> None:
    if os.getpid() == owner_pid:
        lock_path.unlink(missing_ok=True)


@contextmanager
def run_lock(output_dir: Path, *, stale_timeout: float | None = None) -> Generator[Path]:
    """Hold the run lock for ``output_dir`` for the duration of the block.

    Yields:
        Path to the lock file.

    Raises:
        WorldBuildError: If another live run holds the lock.
    """
    lock_path = acquire_lock(output_dir, stale_timeout=stale_timeout)
    try:
        yield lock_path
    finally:
        release_lock(lock_path)


__all__ = [
    'LOCK_FILENAME',
    'LockInfo',
    'acquire_lock',
    'is_stale',
    'read_lock',
    'release_lock',
    'run_lock',
]
