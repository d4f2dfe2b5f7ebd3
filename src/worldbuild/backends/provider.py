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

"""Package metadata provider protocol and the TOML catalog backend.

The graph builder only ever talks to a :class:`MetadataProvider`. It asks
for one level of declared dependencies per package; nothing here resolves
transitively.

Catalog format::

    [virtual]
    libc = true        # capability provided by the host, already installed
    x11 = false        # known capability, not installed: can never be used

    [packages.foo]
    build = [["gcc", "clang"], ["make"]]   # each inner list is one slot
    run = [["libc"]]

    [packages.foo-doc]
    variant_of = "foo"                      # produced by building foo

Usage::

    from worldbuild.backends.provider import CatalogProvider

    provider = CatalogProvider.from_path(Path('catalog.toml'))
    deps = provider.get_package_dependencies('foo')
    deps.build  # [['gcc', 'clang'], ['make']]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import tomlkit
import tomlkit.exceptions

from worldbuild.errors import E, WorldBuildError
from worldbuild.logging import get_logger

logger = get_logger(__name__)

# Keys allowed inside a [packages.<name>] table.
_PACKAGE_KEYS: frozenset[str] = frozenset({'build', 'run', 'variant_of'})


@dataclass(frozen=True)
class PackageDependencies:
    """Declared dependencies of one package, as alternative groups.

    Attributes:
        build: Build-dependency slots; each slot lists its alternatives.
        run: Run-dependency slots; each slot lists its alternatives.
    """

    build: list[list[str]] = field(default_factory=list)
    run: list[list[str]] = field(default_factory=list)


@runtime_checkable
class MetadataProvider(Protocol):
    """Protocol for per-package metadata lookups."""

    def get_package_dependencies(self, name: str) -> PackageDependencies:
        """Return the build and run alternative groups declared by ``name``."""
        ...

    def get_family_relation(self, name: str) -> str | None:
        """Return the family root ``name`` is a variant of, or ``None``."""
        ...

    def list_virtual_packages(self) -> dict[str, bool]:
        """Return every virtual capability mapped to its installed state."""
        ...

    def list_all_package_names(self) -> list[str]:
        """Return the name of every buildable package in the corpus."""
        ...


def _catalog_error(path: Path, message: str) -> WorldBuildError:
    return WorldBuildError(
        code=E.CATALOG_INVALID,
        message=f'{path}: {message}',
        hint='Each [packages.<name>] table may only hold build, run and variant_of.',
    )


def _parse_groups(path: Path, name: str, key: str, value: Any) -> list[list[str]]:  # noqa: ANN401
    """Validate a ``build``/``run`` value: a list of lists of strings."""
    if not isinstance(value, list):
        raise _catalog_error(path, f"packages.{name}.{key} must be a list of lists, got {type(value).__name__}")
    groups: list[list[str]] = []
    for slot in value:
        if not isinstance(slot, list):
            raise _catalog_error(path, f'packages.{name}.{key} slots must be lists, got {slot!r}')
        for alt in slot:
            if not isinstance(alt, str):
                raise _catalog_error(path, f'packages.{name}.{key} alternatives must be strings, got {alt!r}')
        groups.append(list(slot))
    return groups


class CatalogProvider:
    """A :class:`MetadataProvider` backed by an in-memory catalog.

    Use :meth:`from_path` to load one from a TOML file.
    """

    def __init__(
        self,
        packages: dict[str, PackageDependencies],
        *,
        families: dict[str, str] | None = None,
        virtual: dict[str, bool] | None = None,
    ) -> None:
        """Initialize from already-validated catalog data.

        Args:
            packages: Declared dependencies, keyed by package name. Key
                order is the corpus order.
            families: Variant name to family root.
            virtual: Virtual capability name to installed state.
        """
        self._packages = dict(packages)
        self._families = dict(families or {})
        self._virtual = dict(virtual or {})

    @classmethod
    def from_path(cls, path: Path) -> CatalogProvider:
        """Load and validate a TOML catalog.

        Args:
            path: Path to the catalog file.

        Returns:
            A ready :class:`CatalogProvider`.

        Raises:
            WorldBuildError: If the file is unreadable or malformed.
        """
        try:
            text = path.read_text(encoding='utf-8')
        except OSError as exc:
            raise WorldBuildError(
                code=E.CATALOG_INVALID,
                message=f'Failed to read catalog {path}: {exc}',
                hint="Check the 'catalog' setting or the --catalog flag.",
            ) from exc

        try:
            raw: dict[str, Any] = tomlkit.parse(text).unwrap()
        except tomlkit.exceptions.TOMLKitError as exc:
            raise _catalog_error(path, f'invalid TOML: {exc}') from exc

        unknown = set(raw) - {'packages', 'virtual'}
        if unknown:
            raise _catalog_error(path, f'unknown top-level keys: {sorted(unknown)}')

        virtual_raw = raw.get('virtual', {})
        if not isinstance(virtual_raw, dict):
            raise _catalog_error(path, '[virtual] must be a table of name = true/false')
        virtual: dict[str, bool] = {}
        for name, installed in virtual_raw.items():
            if not isinstance(installed, bool):
                raise _catalog_error(path, f'virtual.{name} must be true or false, got {installed!r}')
            virtual[name] = installed

        packages_raw = raw.get('packages', {})
        if not isinstance(packages_raw, dict):
            raise _catalog_error(path, '[packages] must be a table')
        packages: dict[str, PackageDependencies] = {}
        families: dict[str, str] = {}
        for name, entry in packages_raw.items():
            if not isinstance(entry, dict):
                raise _catalog_error(path, f'packages.{name} must be a table')
            extra = set(entry) - _PACKAGE_KEYS
            if extra:
                raise _catalog_error(path, f'packages.{name} has unknown keys {sorted(extra)}')
            packages[name] = PackageDependencies(
                build=_parse_groups(path, name, 'build', entry.get('build', [])),
                run=_parse_groups(path, name, 'run', entry.get('run', [])),
            )
            parent = entry.get('variant_of')
            if parent is not None:
                if not isinstance(parent, str) or not parent:
                    raise _catalog_error(path, f'packages.{name}.variant_of must be a package name')
                families[name] = parent

        logger.debug('catalog_loaded', path=str(path), packages=len(packages), virtual=len(virtual))
        return cls(packages, families=families, virtual=virtual)

    def get_package_dependencies(self, name: str) -> PackageDependencies:
        """Return the declared dependencies of ``name``.

        Raises:
            WorldBuildError: If the catalog has no entry for ``name``.
        """
        try:
            return self._packages[name]
        except KeyError:
            raise WorldBuildError(
                code=E.PROVIDER_FAILED,
                message=f"No catalog entry for package '{name}'",
            ) from None

    def get_family_relation(self, name: str) -> str | None:
        """Return the family root of ``name``, or ``None`` for a root."""
        return self._families.get(name)

    def list_virtual_packages(self) -> dict[str, bool]:
        """Return virtual capabilities and whether each is installed."""
        return dict(self._virtual)

    def list_all_package_names(self) -> list[str]:
        """Return every catalog package, in catalog order."""
        return list(self._packages)


__all__ = [
    'CatalogProvider',
    'MetadataProvider',
    'PackageDependencies',
]
