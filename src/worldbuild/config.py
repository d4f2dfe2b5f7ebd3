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

"""Configuration loading from ``worldbuild.toml``.

All keys are top-level and optional::

    catalog        = "catalog.toml"           # metadata catalog
    output_dir     = "out"                    # must not exist for a fresh run
    source_dir     = "src"                    # one work tree per package
    build_command  = ["buildpkg", "{name}"]   # {name} is substituted
    filter_command = []                       # optional preprocessing hook
    purge_command  = []                       # receives package names as args
    unlock_command = []                       # clears stale build locks
    probe          = ""                       # package always built first
    skip           = []                       # packages never to build

Relative paths are resolved against the directory holding the config
file. Command-line flags override file values (see :mod:`worldbuild.cli`).

Usage::

    from worldbuild.config import load_config

    config = load_config(Path('worldbuild.toml'))
    config.build_command  # ('buildpkg', '{name}')
"""

from __future__ import annotations

import difflib
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import tomlkit
import tomlkit.exceptions

from worldbuild.errors import E, WorldBuildError
from worldbuild.logging import get_logger

logger = get_logger(__name__)

CONFIG_FILENAME = 'worldbuild.toml'

DEFAULT_BUILD_COMMAND: tuple[str, ...] = ('buildpkg', '{name}')

_TYPE_MAP: dict[str, type] = {
    'catalog': str,
    'output_dir': str,
    'source_dir': str,
    'build_command': list,
    'filter_command': list,
    'purge_command': list,
    'unlock_command': list,
    'probe': str,
    'skip': list,
}

VALID_KEYS: frozenset[str] = frozenset(_TYPE_MAP)

_PATH_KEYS: frozenset[str] = frozenset({'catalog', 'output_dir', 'source_dir'})
_COMMAND_KEYS: tuple[str, ...] = ('build_command', 'filter_command', 'purge_command', 'unlock_command')


@dataclass(frozen=True)
class BuildConfig:
    """Validated worldbuild settings.

    Attributes:
        catalog: Metadata catalog file.
        output_dir: Run output directory.
        source_dir: Directory of per-package work trees.
        build_command: Build command template.
        filter_command: Optional preprocessing hook template.
        purge_command: Optional command that uninstalls non-essential packages.
        unlock_command: Optional command that clears stale build locks.
        probe: Package built before everything else, or empty.
        skip: Packages never to build.
        config_path: File the settings were read from, if any.
    """

    catalog: Path = Path('catalog.toml')
    output_dir: Path = Path('out')
    source_dir: Path = Path('src')
    build_command: tuple[str, ...] = DEFAULT_BUILD_COMMAND
    filter_command: tuple[str, ...] = ()
    purge_command: tuple[str, ...] = ()
    unlock_command: tuple[str, ...] = ()
    probe: str = ''
    skip: frozenset[str] = frozenset()
    config_path: Path | None = None


def _invalid(key: str, message: str, context: str) -> WorldBuildError:
    return WorldBuildError(
        code=E.CONFIG_INVALID_VALUE,
        message=f"'{key}' {message}",
        hint=f'Check the value of {key} in {context}.',
    )


def _validate_value(key: str, value: Any, context: str) -> None:  # noqa: ANN401 - dynamic config values
    expected = _TYPE_MAP[key]
    if not isinstance(value, expected) or isinstance(value, bool):
        raise _invalid(key, f'must be {expected.__name__}, got {type(value).__name__}', context)
    if isinstance(value, list):
        for item in value:
            if not isinstance(item, str):
                raise _invalid(key, f'items must be strings, got {item!r}', context)
    if key == 'build_command' and not value:
        raise _invalid(key, 'must name a command', context)


def load_config(path: Path | None = None, *, required: bool = False) -> BuildConfig:
    """Load and validate ``worldbuild.toml``.

    Args:
        path: Config file. Defaults to ``worldbuild.toml`` in the current
            directory.
        required: Fail instead of using defaults when the file is missing.

    Returns:
        A validated :class:`BuildConfig`.

    Raises:
        WorldBuildError: If the file is required but missing, unreadable,
            or holds an invalid key or value.
    """
    config_path = path if path is not None else Path(CONFIG_FILENAME)

    if not config_path.is_file():
        if required:
            raise WorldBuildError(
                code=E.CONFIG_NOT_FOUND,
                message=f'Config file {config_path} does not exist',
                hint='Pass an existing file with --config, or omit it to use defaults.',
            )
        logger.debug('no_worldbuild_config', path=str(config_path))
        return BuildConfig()

    try:
        text = config_path.read_text(encoding='utf-8')
    except OSError as exc:
        raise WorldBuildError(
            code=E.CONFIG_NOT_FOUND,
            message=f'Failed to read {config_path}: {exc}',
        ) from exc

    try:
        raw: dict[str, Any] = tomlkit.parse(text).unwrap()
    except tomlkit.exceptions.TOMLKitError as exc:
        raise WorldBuildError(
            code=E.CONFIG_INVALID_VALUE,
            message=f'Failed to parse {config_path}: {exc}',
        ) from exc

    context = config_path.name
    for key in raw:
        if key not in VALID_KEYS:
            suggestion = difflib.get_close_matches(key, VALID_KEYS, n=1, cutoff=0.6)
            hint = f"Did you mean '{suggestion[0]}'?" if suggestion else f'Valid keys: {", ".join(sorted(VALID_KEYS))}.'
            raise WorldBuildError(
                code=E.CONFIG_INVALID_KEY,
                message=f"Unknown key '{key}' in {context}",
                hint=hint,
            )
    for key, value in raw.items():
        _validate_value(key, value, context)

    base = config_path.parent
    kwargs: dict[str, Any] = {}
    for key, value in raw.items():
        if key in _PATH_KEYS:
            kwargs[key] = base / value
        elif key in _COMMAND_KEYS:
            kwargs[key] = tuple(value)
        elif key == 'skip':
            kwargs[key] = frozenset(value)
        else:
            kwargs[key] = value

    logger.debug('config_loaded', path=str(config_path), keys=sorted(raw))
    return BuildConfig(**kwargs, config_path=config_path)


def check_executables(config: BuildConfig) -> None:
    """Make sure every configured command can be found.

    Raises:
        WorldBuildError: If a command's executable is not on ``PATH``.
    """
    for key in _COMMAND_KEYS:
        command: tuple[str, ...] = getattr(config, key)
        if not command:
            continue
        if shutil.which(command[0]) is None:
            raise WorldBuildError(
                code=E.EXECUTABLE_NOT_FOUND,
                message=f"{key}: executable '{command[0]}' not found",
                hint=f'Install {command[0]} or change {key} in {CONFIG_FILENAME}.',
            )


__all__ = [
    'CONFIG_FILENAME',
    'DEFAULT_BUILD_COMMAND',
    'VALID_KEYS',
    'BuildConfig',
    'check_executables',
    'load_config',
]
