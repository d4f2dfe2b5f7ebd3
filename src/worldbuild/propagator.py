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

"""Failure propagation: is a package still buildable given what failed?

Before each build attempt the build loop asks whether every build slot
still has a usable alternative. "Usable" is recursive: the alternative
must not have failed, and it must itself be fully installable, i.e. its
build *and* run slots must be usable too.

Circular declarations are common in real corpora (a compiler that
build-depends on itself through its runtime library). A package already
on the ancestor stack of the current query is assumed usable, which
keeps the recursion finite.

The query never changes the failure set. Recording a blocked package is
the build loop's job.

Usage::

    from worldbuild.propagator import FailurePropagator

    propagator = FailurePropagator(graph, failed)
    reason = propagator.blocked_reason('libpng')
    if reason:
        ...  # "zlib" or "gcc | clang"
"""

from __future__ import annotations

from collections.abc import Mapping

from worldbuild.graph import DependencyGraph

# Reason reported for a name the graph knows nothing about.
UNKNOWN_PACKAGE = 'unknown package'


def _check(
    name: str,
    graph: DependencyGraph,
    failed: Mapping[str, str],
    include_run_deps: bool,
    ancestors: set[str],
    memo: dict[str, str],
) -> tuple[str, bool]:
    """Return ``(reason, tentative)`` for ``name``.

    ``tentative`` is true when a positive answer leaned on an ancestor
    being assumed usable. Such answers are only valid inside the current
    recursion and are kept out of the memo.
    """
    node = graph.nodes.get(name)
    if node is None:
        return UNKNOWN_PACKAGE, False
    if node.is_virtual:
        return ('', False) if node.installed else (f'{name} (not installed)', False)

    slots = [*node.build_deps, *node.run_deps] if include_run_deps else list(node.build_deps)
    tentative = False
    ancestors.add(name)
    try:
        for group in slots:
            usable = False
            for alt in group:
                if alt in failed or alt not in graph.nodes:
                    continue
                if alt in ancestors:
                    usable = True
                    tentative = True
                    break
                if alt in memo:
                    if not memo[alt]:
                        usable = True
                        break
                    continue
                reason, alt_tentative = _check(alt, graph, failed, True, ancestors, memo)
                if not reason:
                    if not alt_tentative:
                        memo[alt] = ''
                    usable = True
                    tentative = tentative or alt_tentative
                    break
                memo[alt] = reason
            if not usable:
                return group.describe(), False
    finally:
        ancestors.discard(name)
    return '', tentative


def is_satisfiable(
    name: str,
    graph: DependencyGraph,
    failed: Mapping[str, str],
    *,
    include_run_deps: bool,
    ancestors: set[str] | None = None,
    memo: dict[str, str] | None = None,
) -> str:
    """Check whether ``name`` can still be built (or installed).

    Args:
        name: Package to check.
        graph: The dependency graph.
        failed: Failure set (name to reason). Never modified.
        include_run_deps: Also require every run slot to be usable.
            Dependencies are always checked with run slots included.
        ancestors: Names already being checked further up the stack.
        memo: Results cached for this query (name to reason, empty for
            usable). Reuse it only while ``failed`` is unchanged.

    Returns:
        ``''`` if satisfiable, otherwise the first unsatisfiable slot
        rendered as ``"a | b | c"``.
    """
    reason, _ = _check(
        name,
        graph,
        failed,
        include_run_deps,
        set() if ancestors is None else set(ancestors),
        {} if memo is None else memo,
    )
    return reason


class FailurePropagator:
    """Blocked-package queries bound to one graph and failure set.

    The failure set is held by reference, so packages the build loop
    records as failed are seen by the next query. Every query gets a
    fresh memo.
    """

    def __init__(self, graph: DependencyGraph, failed: Mapping[str, str]) -> None:
        """Bind to ``graph`` and the live failure set ``failed``."""
        self.graph = graph
        self.failed = failed

    def blocked_reason(self, name: str) -> str:
        """Return why ``name`` cannot be built now, or ``''`` if it can."""
        return is_satisfiable(name, self.graph, self.failed, include_run_deps=False, memo={})

    def installable_reason(self, name: str) -> str:
        """Return why ``name`` cannot be installed now, or ``''`` if it can."""
        return is_satisfiable(name, self.graph, self.failed, include_run_deps=True, memo={})


__all__ = [
    'UNKNOWN_PACKAGE',
    'FailurePropagator',
    'is_satisfiable',
]
