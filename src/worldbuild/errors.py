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

"""Structured error system for worldbuild.

Every error has a unique ``WB-NAMED-KEY`` code, a human-readable message,
and an optional hint with a suggested fix.

Only configuration-class problems are raised as :class:`WorldBuildError`.
Per-package problems (a failed build, a missing dependency) are recorded
in the run's failure set and never raised past the build loop.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ErrorCode           │ A unique named ID like "WB-OUTPUT-EXISTS"     │
    │                     │ for each error. Readable at a glance.         │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ WorldBuildError     │ An exception you can raise. Carries the       │
    │                     │ error card so renderers can display it.       │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ERRORS catalog      │ Longer notes for the codes operators hit most. │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ explain()           │ Backs `worldbuild explain WB-...`.             │
    └─────────────────────┴────────────────────────────────────────────────┘

Code categories::

    WB-CONFIG-*       Configuration errors
    WB-OUTPUT-*       Output directory errors
    WB-EXECUTABLE-*   Missing external tools
    WB-PROVIDER-*     Metadata provider errors
    WB-CATALOG-*      Metadata catalog errors
    WB-GRAPH-*        Dependency graph errors
    WB-CHECKPOINT-*   Checkpoint / resume errors
    WB-LOCK-*         Run lock errors

Usage::

    from worldbuild.errors import WorldBuildError, E

    raise WorldBuildError(
        code=E.OUTPUT_EXISTS,
        message='Output directory out/ already exists',
        hint="Use 'worldbuild resume out/checkpoint.jsonl' to continue it.",
    )
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum
from typing import TextIO

from rich.console import Console
from rich.markup import escape as rich_escape


class ErrorCode(str, Enum):
    """Enumeration of all worldbuild diagnostic codes."""

    # Configuration
    CONFIG_NOT_FOUND = 'WB-CONFIG-NOT-FOUND'
    CONFIG_INVALID_KEY = 'WB-CONFIG-INVALID-KEY'
    CONFIG_INVALID_VALUE = 'WB-CONFIG-INVALID-VALUE'

    # Startup environment
    OUTPUT_EXISTS = 'WB-OUTPUT-EXISTS'
    EXECUTABLE_NOT_FOUND = 'WB-EXECUTABLE-NOT-FOUND'

    # Metadata
    PROVIDER_FAILED = 'WB-PROVIDER-FAILED'
    CATALOG_INVALID = 'WB-CATALOG-INVALID'

    # Dependency graph
    GRAPH_STATE_REGRESSION = 'WB-GRAPH-STATE-REGRESSION'

    # Checkpoint / resume
    CHECKPOINT_CORRUPTED = 'WB-CHECKPOINT-CORRUPTED'
    CHECKPOINT_VERSION = 'WB-CHECKPOINT-VERSION'

    # Run lock
    LOCK_ACQUISITION_FAILED = 'WB-LOCK-ACQUISITION-FAILED'


# Convenience alias for shorter imports.
E = ErrorCode


@dataclass(frozen=True)
class ErrorInfo:
    """Metadata for a single error code.

    Attributes:
        code: The ``WB-NAMED-KEY`` error code.
        message: Human-readable description of what went wrong.
        hint: Optional suggestion for how to fix the error.
    """

    code: ErrorCode
    message: str
    hint: str = ''


class WorldBuildError(Exception):
    """Base exception for all worldbuild errors.

    Args:
        code: The error code from :class:`ErrorCode`.
        message: Human-readable description of what went wrong.
        hint: Optional suggestion for how to fix the error.
    """

    def __init__(self, code: ErrorCode, message: str, hint: str = '') -> None:
        """Initialize with an error code, message, and optional hint."""
        self.info = ErrorInfo(code=code, message=message, hint=hint)
        super().__init__(f'[{code.value}] {message}')

    @property
    def code(self) -> ErrorCode:
        """The error code."""
        return self.info.code

    @property
    def hint(self) -> str:
        """Suggestion for fixing this error, or empty string."""
        return self.info.hint


ERRORS: dict[ErrorCode, ErrorInfo] = {
    E.OUTPUT_EXISTS: ErrorInfo(
        code=E.OUTPUT_EXISTS,
        message='The output directory of a fresh run must not exist yet.',
        hint="Pick a new --output directory, or continue the old run with 'worldbuild resume'.",
    ),
    E.EXECUTABLE_NOT_FOUND: ErrorInfo(
        code=E.EXECUTABLE_NOT_FOUND,
        message='A configured command names an executable that is not on PATH.',
        hint='Check build_command, filter_command, purge_command and unlock_command in worldbuild.toml.',
    ),
    E.PROVIDER_FAILED: ErrorInfo(
        code=E.PROVIDER_FAILED,
        message='The metadata provider could not describe a package.',
        hint='The package is still scheduled, with no dependencies. Fix its catalog entry and rerun.',
    ),
    E.CATALOG_INVALID: ErrorInfo(
        code=E.CATALOG_INVALID,
        message='The metadata catalog cannot be read, is not valid TOML, or has a malformed entry.',
        hint='Each [packages.<name>] table may only hold build, run and variant_of.',
    ),
    E.CHECKPOINT_CORRUPTED: ErrorInfo(
        code=E.CHECKPOINT_CORRUPTED,
        message='The checkpoint file cannot be trusted; the run cannot resume safely.',
        hint='Inspect the file, or discard it and start a fresh run.',
    ),
    E.LOCK_ACQUISITION_FAILED: ErrorInfo(
        code=E.LOCK_ACQUISITION_FAILED,
        message='Another worldbuild process holds the output directory.',
        hint='Wait for it to finish, or delete the stale .worldbuild.lock file.',
    ),
}


def explain(code: str) -> str | None:
    """Return a detailed explanation for an error code.

    Args:
        code: The error code string, e.g. ``"WB-OUTPUT-EXISTS"``.

    Returns:
        A formatted explanation string, or ``None`` if the code is unknown.
    """
    try:
        error_code = ErrorCode(code)
    except ValueError:
        return None

    info = ERRORS.get(error_code)
    if info is None:
        return f'{code}: No detailed explanation available.'

    lines = [f'{code}: {info.message}']
    if info.hint:
        lines.append(f'  Hint: {info.hint}')
    return '\n'.join(lines)


def render_error(exc: WorldBuildError, *, file: TextIO | None = None) -> None:
    """Render an error in compiler style, colored when writing to a TTY.

    Output format::

        error[WB-OUTPUT-EXISTS]: Output directory out already exists
          |
          = hint: Pick a new --output directory.

    Args:
        exc: The error to render.
        file: Output stream (defaults to ``sys.stderr``).
    """
    out = file or sys.stderr

    if out.isatty():
        console = Console(file=out, highlight=False)
        msg = rich_escape(exc.info.message)
        console.print(
            f'[bold red]error[/bold red][bold red]\\[{exc.code.value}][/bold red][bold]: {msg}[/bold]',
        )
        if exc.hint:
            console.print('  [dim]|[/dim]')
            console.print(f'  [dim]=[/dim] [cyan]hint[/cyan]: {rich_escape(exc.hint)}')
        console.print()
    else:
        print(f'error[{exc.code.value}]: {exc.info.message}', file=out)  # noqa: T201 - CLI output
        if exc.hint:
            print('  |', file=out)  # noqa: T201 - CLI output
            print(f'  = hint: {exc.hint}', file=out)  # noqa: T201 - CLI output
        print(file=out)  # noqa: T201 - CLI output


__all__ = [
    'E',
    'ERRORS',
    'ErrorCode',
    'ErrorInfo',
    'WorldBuildError',
    'explain',
    'render_error',
]
