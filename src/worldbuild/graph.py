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

"""Build/run dependency graph with alternative groups.

Builds one :class:`PackageNode` per package from a single round of
metadata lookups, plus the reverse-dependency index used to push
satisfaction forward (scheduler) and failure backward (build loop).

Key Concepts (ELI5)::

    ┌─────────────────────────┬─────────────────────────────────────────────┐
    │ Concept                 │ ELI5 Explanation                            │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Alternative group       │ "I need a C compiler: gcc OR clang". Any   │
    │                         │ one member fills the slot.                 │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Build dependency        │ Must be installable before we can build.   │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Run dependency          │ Must be installable before *others* may    │
    │                         │ use this package to satisfy their needs.   │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Virtual package         │ Something the host already provides (or    │
    │                         │ definitely lacks). Never built.            │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Family / variant        │ One build, several packages. Building      │
    │                         │ "foo" also produces "foo-doc".             │
    └─────────────────────────┴─────────────────────────────────────────────┘

Node states (monotonic)::

    UNORDERED ──▶ BUILDABLE ──▶ INSTALLABLE
                      │
                      └───────▶ BUILD_ONLY   (run deps can never be met)

Edge direction::

    nodes["foo"].build_deps = [AlternativeGroup(('gcc', 'clang'))]
    reverse_deps["gcc"]     = ['foo']
    reverse_deps["clang"]   = ['foo']

Usage::

    from worldbuild.graph import build_graph

    graph = build_graph(['zlib', 'libpng', 'zlib'], provider)
    graph.nodes['libpng'].build_deps  # [AlternativeGroup(names=('zlib',))]
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from worldbuild.backends.provider import MetadataProvider, PackageDependencies
from worldbuild.errors import E, WorldBuildError
from worldbuild.logging import get_logger

logger = get_logger(__name__)


class NodeState(str, Enum):
    """Scheduling state of a :class:`PackageNode`.

    ``BUILD_ONLY`` is terminal: the package is in the build order, but
    its run dependencies were never satisfied, so it can never satisfy
    anybody else's dependency.
    """

    UNORDERED = 'unordered'
    BUILDABLE = 'buildable'
    INSTALLABLE = 'installable'
    BUILD_ONLY = 'build-only'


_STATE_RANK: dict[NodeState, int] = {
    NodeState.UNORDERED: 0,
    NodeState.BUILDABLE: 1,
    NodeState.INSTALLABLE: 2,
    NodeState.BUILD_ONLY: 2,
}


@dataclass(frozen=True)
class AlternativeGroup:
    """One dependency slot: any single member satisfies it.

    Members keep their declared order (used when rendering a reason) and
    are de-duplicated on construction. An empty group can never be
    satisfied.

    Attributes:
        names: The alternatives, in declared order.
    """

    names: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        """Drop repeated alternatives, keeping the first occurrence."""
        object.__setattr__(self, 'names', tuple(dict.fromkeys(self.names)))

    @classmethod
    def for_package(cls, owner: str, alternatives: Iterable[str]) -> AlternativeGroup:
        """Build a group for ``owner``, dropping references to ``owner`` itself."""
        return cls(tuple(alt for alt in alternatives if alt != owner))

    def __iter__(self) -> Iterator[str]:
        """Iterate over the alternatives in declared order."""
        return iter(self.names)

    def __len__(self) -> int:
        """Return the number of alternatives."""
        return len(self.names)

    def __contains__(self, name: object) -> bool:
        """Return True if ``name`` is one of the alternatives."""
        return name in self.names

    def describe(self) -> str:
        """Render the slot as a human-readable disjunction, e.g. ``"a | b"``."""
        return ' | '.join(self.names) if self.names else '(no alternatives)'


def describe_groups(groups: Iterable[AlternativeGroup]) -> str:
    """Render several slots as ``"a | b, c"``."""
    return ', '.join(group.describe() for group in groups)


@dataclass
class PackageNode:
    """One package known to the run.

    Attributes:
        name: Unique package name.
        build_deps: Build-dependency slots.
        run_deps: Run-dependency slots.
        family: Family root this node is a variant of, or ``None``.
        is_virtual: Whether this is a pre-satisfied capability, never built.
        installed: For virtual nodes, whether the host provides it.
        state: Current scheduling state.
        unsatisfied_build: Names across build slots not yet satisfied.
        unsatisfied_run: Names across run slots not yet satisfied.
    """

    name: str
    build_deps: list[AlternativeGroup] = field(default_factory=list)
    run_deps: list[AlternativeGroup] = field(default_factory=list)
    family: str | None = None
    is_virtual: bool = False
    installed: bool = False
    state: NodeState = NodeState.UNORDERED
    unsatisfied_build: set[str] = field(default_factory=set, init=False)
    unsatisfied_run: set[str] = field(default_factory=set, init=False)

    def __post_init__(self) -> None:
        """Initialize the working sets from the declared slots."""
        self.reset()

    def reset(self) -> None:
        """Return to the pre-scheduling state."""
        self.state = NodeState.UNORDERED
        self.unsatisfied_build = {name for group in self.build_deps for name in group}
        self.unsatisfied_run = {name for group in self.run_deps for name in group}
        # An empty slot contributes no names but still blocks the node.
        if any(not group for group in self.build_deps):
            self.unsatisfied_build.add('')
        if any(not group for group in self.run_deps):
            self.unsatisfied_run.add('')

    def advance(self, state: NodeState) -> None:
        """Move to ``state``; moving backwards is a programming error.

        Raises:
            WorldBuildError: If ``state`` ranks below the current state.
        """
        if _STATE_RANK[state] < _STATE_RANK[self.state] or (
            self.state in (NodeState.INSTALLABLE, NodeState.BUILD_ONLY) and state != self.state
        ):
            raise WorldBuildError(
                code=E.GRAPH_STATE_REGRESSION,
                message=f'{self.name}: cannot move from {self.state.value} to {state.value}',
            )
        self.state = state

    @property
    def ordered(self) -> bool:
        """Whether the node has been placed in the build order."""
        return self.state != NodeState.UNORDERED

    def pending_build_groups(self, installable: set[str]) -> list[AlternativeGroup]:
        """Build slots with no installable alternative yet."""
        return [group for group in self.build_deps if installable.isdisjoint(group)]

    def pending_run_groups(self, installable: set[str]) -> list[AlternativeGroup]:
        """Run slots with no installable alternative yet."""
        return [group for group in self.run_deps if installable.isdisjoint(group)]

    def refresh(self, installable: set[str]) -> None:
        """Shrink the working sets given the names now installable.

        A slot is satisfied as soon as one alternative is installable;
        the working sets then hold only names of still-pending slots.
        """
        pending_build = self.pending_build_groups(installable)
        pending_run = self.pending_run_groups(installable)
        self.unsatisfied_build = {name for group in pending_build for name in group}
        self.unsatisfied_run = {name for group in pending_run for name in group}
        if any(not group for group in pending_build):
            self.unsatisfied_build.add('')
        if any(not group for group in pending_run):
            self.unsatisfied_run.add('')


@dataclass
class DependencyGraph:
    """All nodes of a run plus the reverse-dependency and family indexes.

    Attributes:
        nodes: Name to node. Virtual nodes first (provider order), then
            real nodes (input order).
        reverse_deps: Name to the dependents whose build or run slots
            mention it, in discovery order. Names that have no node
            (undeclared packages) may still appear as keys.
        variants: Family root to its variants, in discovery order.
    """

    nodes: dict[str, PackageNode] = field(default_factory=dict)
    reverse_deps: dict[str, list[str]] = field(default_factory=dict)
    variants: dict[str, list[str]] = field(default_factory=dict)

    def __len__(self) -> int:
        """Return the number of nodes in the graph."""
        return len(self.nodes)

    def __contains__(self, name: object) -> bool:
        """Return True if ``name`` has a node."""
        return name in self.nodes

    @property
    def names(self) -> list[str]:
        """All node names, in graph order."""
        return list(self.nodes)

    def add_node(self, node: PackageNode) -> None:
        """Insert ``node`` and index its dependencies and family."""
        self.nodes[node.name] = node
        for group in (*node.build_deps, *node.run_deps):
            for dep in group:
                dependents = self.reverse_deps.setdefault(dep, [])
                if node.name not in dependents:
                    dependents.append(node.name)
        if node.family is not None:
            self.variants.setdefault(node.family, []).append(node.name)

    def family_root(self, name: str) -> str:
        """Return the root of ``name``'s family.

        A parent that is not itself part of the graph cannot be built, so
        the variant then stands as its own root.
        """
        seen = {name}
        current = name
        while True:
            node = self.nodes.get(current)
            parent = node.family if node is not None else None
            if parent is None or parent not in self.nodes or parent in seen:
                return current
            seen.add(parent)
            current = parent

    def family_variants(self, root: str) -> list[str]:
        """Return every transitive variant of ``root`` (not ``root`` itself)."""
        result: list[str] = []
        stack = list(reversed(self.variants.get(root, [])))
        while stack:
            variant = stack.pop()
            if variant in result or variant == root:
                continue
            result.append(variant)
            stack.extend(reversed(self.variants.get(variant, [])))
        return result

    def reset(self) -> None:
        """Reset every node to its pre-scheduling state."""
        for node in self.nodes.values():
            node.reset()

    def to_records(self) -> list[dict[str, Any]]:
        """Serialize the declared graph (not scheduling state) to JSON-ready dicts."""
        return [
            {
                'name': node.name,
                'build': [list(group) for group in node.build_deps],
                'run': [list(group) for group in node.run_deps],
                'family': node.family,
                'virtual': node.is_virtual,
                'installed': node.installed,
            }
            for node in self.nodes.values()
        ]

    @classmethod
    def from_records(cls, records: list[dict[str, Any]]) -> DependencyGraph:
        """Rebuild a graph from :meth:`to_records` output.

        Raises:
            KeyError, TypeError, ValueError: If a record is malformed.
        """
        graph = cls()
        for record in records:
            name = record['name']
            if not isinstance(name, str):
                raise TypeError(f'node name must be a string, got {name!r}')
            slots = {key: _groups_from_record(name, key, record[key]) for key in ('build', 'run')}
            family = record.get('family')
            if family is not None and not isinstance(family, str):
                raise TypeError(f'{name}.family must be a package name, got {family!r}')
            graph.add_node(
                PackageNode(
                    name=name,
                    build_deps=slots['build'],
                    run_deps=slots['run'],
                    family=family,
                    is_virtual=bool(record.get('virtual', False)),
                    installed=bool(record.get('installed', False)),
                )
            )
        return graph


def _groups_from_record(name: str, key: str, value: object) -> list[AlternativeGroup]:
    if not isinstance(value, list):
        raise TypeError(f'{name}.{key} must be a list of slots')
    groups: list[AlternativeGroup] = []
    for slot in value:
        if not isinstance(slot, list) or not all(isinstance(alt, str) for alt in slot):
            raise TypeError(f'{name}.{key} slots must be lists of names, got {slot!r}')
        groups.append(AlternativeGroup(tuple(slot)))
    return groups


def _make_slots(owner: str, declared: list[list[str]]) -> list[AlternativeGroup]:
    """Turn declared slots into groups.

    A slot that only named ``owner`` itself is dropped: the package
    trivially satisfies its own requirement. A slot declared empty stays
    empty and can never be satisfied.
    """
    slots: list[AlternativeGroup] = []
    for alternatives in declared:
        group = AlternativeGroup.for_package(owner, alternatives)
        if not group and alternatives:
            logger.debug('self_dependency_dropped', package=owner)
            continue
        slots.append(group)
    return slots


def build_graph(names: Iterable[str], provider: MetadataProvider) -> DependencyGraph:
    """Build the dependency graph for ``names``.

    Each distinct name is looked up exactly once. Lookup failures are
    logged and the package is kept with no dependencies.

    Args:
        names: Packages to build, in input order. Duplicates are ignored.
        provider: Source of per-package metadata.

    Returns:
        A :class:`DependencyGraph` with virtual nodes first.
    """
    unique = list(dict.fromkeys(names))
    wanted = set(unique)
    graph = DependencyGraph()

    try:
        virtual = provider.list_virtual_packages()
    except Exception as exc:
        logger.warning('virtual_lookup_failed', error=str(exc))
        virtual = {}

    for name, installed in virtual.items():
        if name in wanted:
            logger.debug('virtual_shadowed_by_package', package=name)
            continue
        graph.add_node(PackageNode(name=name, is_virtual=True, installed=installed))

    for name in unique:
        try:
            deps = provider.get_package_dependencies(name)
        except Exception as exc:
            logger.warning(
                'dependency_lookup_failed',
                package=name,
                error=str(exc),
                detail=f"couldn't get dependencies for {name}",
            )
            deps = PackageDependencies()
        try:
            family = provider.get_family_relation(name)
        except Exception as exc:
            logger.warning('family_lookup_failed', package=name, error=str(exc))
            family = None
        if family == name:
            family = None
        graph.add_node(
            PackageNode(
                name=name,
                build_deps=_make_slots(name, deps.build),
                run_deps=_make_slots(name, deps.run),
                family=family,
            )
        )

    logger.debug(
        'built_dependency_graph',
        packages=len(unique),
        virtual=len(graph) - len(unique),
        edges=sum(len(dependents) for dependents in graph.reverse_deps.values()),
    )
    return graph


__all__ = [
    'AlternativeGroup',
    'DependencyGraph',
    'NodeState',
    'PackageNode',
    'build_graph',
    'describe_groups',
]
