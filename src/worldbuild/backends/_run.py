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

"""Central subprocess abstraction for worldbuild.

Every external tool call (the builder, the filter hook, the package
database commands) goes through :func:`run_command`. This provides:

- Structured logging of every subprocess invocation.
- Combined stdout/stderr redirected into a per-package log file when
  ``output_path`` is given.
- No timeout by default: a build may legitimately take hours, and a hung
  build is recovered by killing the process and resuming from the
  checkpoint, not by an in-process deadline.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ run_command         │ A single function that runs any command.       │
    │                     │ Like a universal remote for external tools.   │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ CommandResult       │ Exit status, timing, and where the output     │
    │                     │ went. The build loop only reads the status.   │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ output_path         │ Send everything the command prints into a     │
    │                     │ file instead of memory. Build logs are big.   │
    └─────────────────────┴────────────────────────────────────────────────┘
"""

from __future__ import annotations

import os
import subprocess  # noqa: S404 - subprocess is the core purpose of this module
import time
from dataclasses import dataclass
from pathlib import Path

from worldbuild.logging import get_logger

log = get_logger('worldbuild.backends.run')


@dataclass(frozen=True)
class CommandResult:
    """Result of a subprocess invocation.

    Attributes:
        command: The command that was executed (as a list of strings).
        return_code: Process exit code (0 = success).
        stdout: Captured standard output (empty when redirected to a file).
        stderr: Captured standard error (empty when redirected to a file).
        duration: Wall-clock duration in milliseconds.
        output_path: File that received the combined output, if any.
    """

    command: list[str]
    return_code: int
    stdout: str = ''
    stderr: str = ''
    duration: float = 0.0
    output_path: Path | None = None

    @property
    def ok(self) -> bool:
        """Whether the command succeeded (return_code == 0)."""
        return self.return_code == 0

    @property
    def command_str(self) -> str:
        """The command as a single shell-style string."""
        return ' '.join(self.command)


def run_command(
    cmd: list[str],
    *,
    cwd: Path | str | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = None,
    output_path: Path | None = None,
    append: bool = False,
    check: bool = False,
) -> CommandResult:
    """Execute a subprocess command with logging and optional log capture.

    Args:
        cmd: Command and arguments as a list of strings.
        cwd: Working directory for the command.
        env: Extra environment variables to set (merged with current env).
        timeout: Maximum seconds to wait before killing the process.
            ``None`` waits forever.
        output_path: If set, stdout and stderr are interleaved into this
            file instead of being captured in memory.
        append: Append to ``output_path`` instead of truncating it.
        check: If ``True``, raise :class:`subprocess.CalledProcessError`
            on non-zero exit code.

    Returns:
        A :class:`CommandResult` with the command output and metadata.

    Raises:
        FileNotFoundError: If the executable does not exist.
        subprocess.CalledProcessError: If ``check=True`` and the command
            exits with a non-zero code.
        subprocess.TimeoutExpired: If the command exceeds ``timeout``.
    """
    cmd_str = ' '.join(cmd)
    log.debug('run_command', cmd=cmd_str, cwd=str(cwd or '.'), output=str(output_path or '-'))

    full_env: dict[str, str] | None = None
    if env:
        full_env = {**os.environ, **env}

    start = time.monotonic()
    try:
        if output_path is not None:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with output_path.open('a' if append else 'w', encoding='utf-8') as sink:
                result = subprocess.run(  # noqa: S603 - commands come from the operator's config
                    cmd,
                    cwd=cwd,
                    env=full_env,
                    stdin=subprocess.DEVNULL,
                    stdout=sink,
                    stderr=subprocess.STDOUT,
                    text=True,
                    timeout=timeout,
                )
        else:
            result = subprocess.run(  # noqa: S603 - commands come from the operator's config
                cmd,
                cwd=cwd,
                env=full_env,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
    except subprocess.TimeoutExpired:
        duration = (time.monotonic() - start) * 1000
        log.error('command_timeout', cmd=cmd_str, timeout=timeout, duration=duration)
        raise

    duration = (time.monotonic() - start) * 1000
    captured = output_path is None
    cmd_result = CommandResult(
        command=cmd,
        return_code=result.returncode,
        stdout=result.stdout if captured else '',
        stderr=result.stderr if captured else '',
        duration=duration,
        output_path=output_path,
    )

    if result.returncode != 0:
        log.warning(
            'command_failed',
            cmd=cmd_str,
            return_code=result.returncode,
            stderr=result.stderr[:500] if captured else '',
            log_file=str(output_path or ''),
            duration=duration,
        )
        if check:
            raise subprocess.CalledProcessError(
                result.returncode,
                cmd,
                output=result.stdout,
                stderr=result.stderr,
            )
    else:
        log.debug('command_ok', cmd=cmd_str, duration=duration)

    return cmd_result


__all__ = [
    'CalledProcessError',
    'CommandResult',
    'TimeoutExpired',
    'run_command',
]

# Re-export subprocess exceptions so consumers don't need to import
# subprocess directly (which triggers S404).
CalledProcessError = subprocess.CalledProcessError
TimeoutExpired = subprocess.TimeoutExpired
