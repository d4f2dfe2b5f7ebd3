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

"""Topological build order with buildable vs. installable promotion.

A modified Kahn's algorithm. A plain topological sort has one notion of
"done"; here a package has two:

- **buildable**: every build slot has an installable alternative, so the
  package can go into the build order;
- **installable**: additionally every run slot is satisfied, so the
  package can itself satisfy other packages' slots.

Key Concepts (ELI5)::

    ┌─────────────────────────┬─────────────────────────────────────────────┐
    │ Concept                 │ ELI5 Explanation                            │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Work queue              │ Packages whose build needs are met, in     │
    │                         │ the order we discovered them (FIFO).       │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Probe                   │ A canary package built first, to check    │
    │                         │ the build environment works at all.        │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Unresolved              │ Never became buildable. Reported with the  │
    │                         │ slots that stayed open, e.g. "X | Y".      │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Build-only              │ Built, but its run needs never resolved,   │
    │                         │ so nothing else may depend on it.          │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Family collapse         │ "foo-doc" is built by building "foo", so   │
    │                         │ the final order lists only "foo".          │
    └─────────────────────────┴─────────────────────────────────────────────┘

Algorithm::

    queue ← installed virtual nodes, then dependency-free real nodes
    while queue:
        node ← queue.popleft()
        UNORDERED and build slots met → append to order, BUILDABLE
        run slots met (or virtual)    → INSTALLABLE, notify dependents
    leftover UNORDERED  → unresolved
    leftover BUILDABLE  → BUILD_ONLY

Virtual nodes take part in the walk but never appear in the order: they
are satisfied by the host, not built.

Usage::

    from worldbuild.scheduler import collapse_families, schedule

    result = schedule(graph, probe='hello')
    order = collapse_families(result.order, graph)
"""

from __future__ import annotations

from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field

from worldbuild.graph import DependencyGraph, NodeState, PackageNode, describe_groups
from worldbuild.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScheduleResult:
    """Outcome of :func:`schedule`.

    Attributes:
        order: Real packages in build order, before family collapsing.
        unresolved: Packages that never became buildable, with the
            still-open slots as reason.
        build_only: Packages that are in ``order`` but never became
            installable, with the still-open run slots as reason.
    """

    order: list[str] = field(default_factory=list)
    unresolved: dict[str, str] = field(default_factory=dict)
    build_only: dict[str, str] = field(default_factory=dict)


class _Walk:
    """Mutable bookkeeping for one :func:`schedule` call."""

    def __init__(self, graph: DependencyGraph, failed: Mapping[str, str]) -> None:
        self.graph = graph
        self.failed = failed
        self.queue: deque[str] = deque()
        self.order: list[str] = []
        self.installable: set[str] = set()

    def enqueue(self, name: str) -> None:
        """Queue ``name`` followed by its family variants."""
        self.queue.append(name)
        for variant in self.graph.family_variants(name):
            if variant not in self.failed and not self.graph.nodes[variant].is_virtual:
                self.queue.append(variant)

    def place(self, node: PackageNode) -> None:
        """Append ``node`` to the build order."""
        node.advance(NodeState.BUILDABLE)
        if not node.is_virtual:
            self.order.append(node.name)

    def promote(self, node: PackageNode) -> None:
        """Mark ``node`` installable and push the news to its dependents."""
        node.advance(NodeState.INSTALLABLE)
        self.installable.add(node.name)
        for dependent_name in self.graph.reverse_deps.get(node.name, []):
            dependent = self.graph.nodes.get(dependent_name)
            if dependent is None or dependent.is_virtual or dependent_name in self.failed:
                continue
            if dependent.state not in (NodeState.UNORDERED, NodeState.BUILDABLE):
                continue
            dependent.refresh(self.installable)
            if dependent.state == NodeState.UNORDERED and not dependent.unsatisfied_build:
                self.enqueue(dependent_name)
            elif dependent.state == NodeState.BUILDABLE and not dependent.unsatisfied_run:
                self.enqueue(dependent_name)

    def drain(self) -> None:
        """Process the queue until it is empty."""
        while self.queue:
            node = self.graph.nodes[self.queue.popleft()]
            if node.state in (NodeState.INSTALLABLE, NodeState.BUILD_ONLY):
                continue
            if node.state == NodeState.UNORDERED:
                # Variants ride along with their parent but still wait for
                # their own build slots.
                if node.unsatisfied_build:
                    continue
                self.place(node)
            if node.unsatisfied_run and not node.is_virtual:
                continue
            self.promote(node)


def schedule(
    graph: DependencyGraph,
    *,
    probe: str | None = None,
    failed: Mapping[str, str] | None = None,
) -> ScheduleResult:
    """Compute the build order for ``graph``.

    Resets every node's scheduling state first, so the same graph can be
    scheduled more than once.

    Args:
        graph: The dependency graph.
        probe: Package to build before anything else, if it is in the graph.
        failed: Packages known to be unusable (e.g. non-installed virtual
            packages). They are never ordered and never satisfy a slot.

    Returns:
        A :class:`ScheduleResult`.
    """
    failed = failed or {}
    graph.reset()
    walk = _Walk(graph, failed)

    for node in graph.nodes.values():
        if node.is_virtual and node.installed and node.name not in failed:
            walk.enqueue(node.name)
    for node in graph.nodes.values():
        if node.is_virtual or node.name in failed:
            continue
        if not node.unsatisfied_build and not node.unsatisfied_run:
            walk.enqueue(node.name)

    if probe is not None:
        probe_node = graph.nodes.get(probe)
        if probe_node is None or probe_node.is_virtual or probe in failed:
            logger.warning('probe_not_schedulable', probe=probe)
        else:
            walk.place(probe_node)
            walk.promote(probe_node)
            logger.debug('probe_scheduled', probe=probe)

    walk.drain()

    result = ScheduleResult(order=walk.order)
    for node in graph.nodes.values():
        if node.is_virtual or node.name in failed:
            continue
        if node.state == NodeState.UNORDERED and not node.unsatisfied_build:
            # Build slots were met from the start but the run slots never
            # were, so nothing ever queued it.
            walk.place(node)
        if node.state == NodeState.UNORDERED:
            reason = describe_groups(
                [
                    *node.pending_build_groups(walk.installable),
                    *node.pending_run_groups(walk.installable),
                ]
            )
            result.unresolved[node.name] = reason
            logger.warning('package_unresolved', package=node.name, reason=reason)
        elif node.state == NodeState.BUILDABLE:
            node.advance(NodeState.BUILD_ONLY)
            reason = describe_groups(node.pending_run_groups(walk.installable))
            result.build_only[node.name] = reason
            logger.warning('package_build_only', package=node.name, reason=reason)

    logger.info(
        'schedule_computed',
        ordered=len(result.order),
        unresolved=len(result.unresolved),
        build_only=len(result.build_only),
    )
    return result


def collapse_families(order: list[str], graph: DependencyGraph) -> list[str]:
    """Replace each package with its family root, keeping first occurrences.

    Building a family root produces all of its variants, so each family
    appears once, at the position of its earliest member. Applying this
    twice gives the same result as applying it once.

    Args:
        order: Build order, possibly containing variants.
        graph: The dependency graph the order was computed from.

    Returns:
        The collapsed order.
    """
    return list(dict.fromkeys(graph.family_root(name) for name in order))


__all__ = [
    'ScheduleResult',
    'collapse_families',
    'schedule',
]
