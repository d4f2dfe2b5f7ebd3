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

"""System package database protocol and the command-line backend.

The host's package database is one global mutable resource. worldbuild
touches it only between builds: once before the first build of a fresh
run, and once when a run resumes, to clear what a crashed run may have
left behind.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from worldbuild.backends._run import run_command
from worldbuild.logging import get_logger

log = get_logger('worldbuild.backends.database')


@runtime_checkable
class PackageDatabase(Protocol):
    """Protocol for system package database maintenance."""

    def purge_non_essential(self, names: list[str]) -> None:
        """Uninstall ``names`` from the host unless they are essential."""
        ...

    def remove_stale_build_locks(self) -> None:
        """Remove build locks left behind by an interrupted run."""
        ...


class CommandPackageDatabase:
    """A :class:`PackageDatabase` driven by configured commands.

    An empty command disables the corresponding operation. Failures are
    logged and do not stop the run: a dirty host makes later builds less
    trustworthy, not impossible.
    """

    def __init__(self, *, purge_command: list[str] | None = None, unlock_command: list[str] | None = None) -> None:
        """Initialize the backend.

        Args:
            purge_command: Command that receives package names as extra
                arguments and uninstalls the non-essential ones.
            unlock_command: Command that clears stale build locks.
        """
        self.purge_command = list(purge_command or [])
        self.unlock_command = list(unlock_command or [])

    def purge_non_essential(self, names: list[str]) -> None:
        """Run the purge command with ``names`` appended."""
        if not self.purge_command or not names:
            return
        result = run_command([*self.purge_command, *names])
        if result.ok:
            log.info('database_purged', count=len(names))
        else:
            log.warning('database_purge_failed', return_code=result.return_code)

    def remove_stale_build_locks(self) -> None:
        """Run the unlock command."""
        if not self.unlock_command:
            return
        result = run_command(list(self.unlock_command))
        if result.ok:
            log.info('build_locks_cleared')
        else:
            log.warning('build_lock_clear_failed', return_code=result.return_code)


__all__ = [
    'CommandPackageDatabase',
    'PackageDatabase',
]
