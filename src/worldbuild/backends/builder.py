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

"""Build action protocol and the command-line backend.

The build loop never compiles anything itself. It hands a package name
and a log file path to a :class:`Builder` and looks only at the exit
status.

Command templates are lists of arguments. Every ``{name}`` inside an
argument is replaced with the package name; if no argument mentions
``{name}``, the name is appended as the last argument::

    build_command  = ["buildpkg", "--clean", "{name}"]
    filter_command = ["fix-description"]    # runs: fix-description <name>
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from worldbuild.backends._run import run_command
from worldbuild.logging import get_logger

log = get_logger('worldbuild.backends.builder')

# Exit status reported when the builder executable cannot be started,
# matching what a POSIX shell reports for "command not found".
EXIT_NOT_EXECUTABLE = 127


def expand_command(template: list[str], name: str) -> list[str]:
    """Substitute ``{name}`` into a command template.

    Args:
        template: Command and arguments.
        name: Package name to substitute.

    Returns:
        The concrete command line.
    """
    if any('{name}' in arg for arg in template):
        return [arg.replace('{name}', name) for arg in template]
    return [*template, name]


@runtime_checkable
class Builder(Protocol):
    """Protocol for the external build action."""

    def build(self, name: str, log_path: Path) -> int:
        """Build ``name``, writing combined output to ``log_path``.

        Returns:
            The build's exit status; 0 means success.
        """
        ...


class CommandBuilder:
    """A :class:`Builder` that shells out to configured commands.

    If a filter command is configured it runs first, with its output at
    the top of the same log file. A non-zero filter exit is reported as
    the build's exit status and the build command is not started.
    """

    def __init__(
        self,
        build_command: list[str],
        *,
        filter_command: list[str] | None = None,
        cwd: Path | None = None,
    ) -> None:
        """Initialize the builder.

        Args:
            build_command: Build command template.
            filter_command: Optional preprocessing hook template, run on
                the package description before every build.
            cwd: Working directory for both commands.
        """
        self.build_command = list(build_command)
        self.filter_command = list(filter_command or [])
        self.cwd = cwd

    def _run_logged(self, template: list[str], name: str, log_path: Path, *, append: bool) -> int:
        cmd = expand_command(template, name)
        try:
            result = run_command(cmd, cwd=self.cwd, output_path=log_path, append=append)
        except OSError as exc:
            log.error('builder_not_executable', cmd=' '.join(cmd), error=str(exc))
            with log_path.open('a', encoding='utf-8') as sink:
                sink.write(f'worldbuild: cannot run {cmd[0]}: {exc}\n')
            return EXIT_NOT_EXECUTABLE
        return result.return_code

    def build(self, name: str, log_path: Path) -> int:
        """Run the filter hook (if any) and then the build command."""
        log_path.parent.mkdir(parents=True, exist_ok=True)
        append = False
        if self.filter_command:
            status = self._run_logged(self.filter_command, name, log_path, append=False)
            if status != 0:
                log.warning('filter_failed', package=name, return_code=status)
                return status
            append = True
        return self._run_logged(self.build_command, name, log_path, append=append)


__all__ = [
    'EXIT_NOT_EXECUTABLE',
    'Builder',
    'CommandBuilder',
    'expand_command',
]
