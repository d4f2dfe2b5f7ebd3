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

"""Tests for worldbuild.propagator module."""

from __future__ import annotations

from worldbuild.graph import DependencyGraph, build_graph
from worldbuild.logging import configure_logging
from worldbuild.propagator import UNKNOWN_PACKAGE, FailurePropagator, is_satisfiable
from tests._fakes import FakeProvider

configure_logging(quiet=True)


def _graph(packages: dict[str, dict[str, object]], **kwargs: dict[str, bool]) -> DependencyGraph:
    return build_graph(list(packages), FakeProvider(packages, **kwargs))


def _blocked(name: str, graph: DependencyGraph, failed: dict[str, str]) -> str:
    return is_satisfiable(name, graph, failed, include_run_deps=False)


class TestIsSatisfiable:
    """Tests for is_satisfiable()."""

    def test_satisfiable(self) -> None:
        """Nothing failed: empty reason."""
        graph = _graph({'a': {}, 'b': {'build': [['a']]}})
        assert _blocked('b', graph, {}) == ''

    def test_failed_dependency(self) -> None:
        """A failed sole alternative is the reason."""
        graph = _graph({'a': {}, 'b': {'build': [['a']]}})
        assert _blocked('b', graph, {'a': 'build failed (exit 1)'}) == 'a'

    def test_surviving_alternative(self) -> None:
        """One usable alternative keeps the slot satisfied."""
        graph = _graph({'a': {}, 'b': {}, 'c': {'build': [['a', 'b']]}})
        assert _blocked('c', graph, {'a': 'x'}) == ''
        assert _blocked('c', graph, {'a': 'x', 'b': 'y'}) == 'a | b'

    def test_first_failing_slot_reported(self) -> None:
        """Only the first unsatisfiable slot is named."""
        graph = _graph({'a': {}, 'b': {}, 'c': {'build': [['a'], ['b']]}})
        assert _blocked('c', graph, {'a': 'x', 'b': 'y'}) == 'a'

    def test_dependencies_must_be_installable(self) -> None:
        """A dependency whose run deps failed is not usable."""
        graph = _graph({'r': {}, 'a': {'run': [['r']]}, 'b': {'build': [['a']]}})
        assert _blocked('b', graph, {'r': 'x'}) == 'a'

    def test_include_run_deps_for_top_level(self) -> None:
        """Run slots of the queried package count only when asked."""
        graph = _graph({'r': {}, 'a': {'run': [['r']]}})
        failed = {'r': 'x'}
        assert is_satisfiable('a', graph, failed, include_run_deps=False) == ''
        assert is_satisfiable('a', graph, failed, include_run_deps=True) == 'r'

    def test_transitive_failure(self) -> None:
        """Failure deep in the chain blocks the top."""
        graph = _graph({'a': {}, 'b': {'build': [['a']]}, 'c': {'build': [['b']]}})
        assert _blocked('c', graph, {'a': 'x'}) == 'b'

    def test_unknown_dependency(self) -> None:
        """A dependency the graph does not know is unusable."""
        graph = _graph({'b': {'build': [['ghost']]}})
        assert _blocked('b', graph, {}) == 'ghost'

    def test_unknown_package(self) -> None:
        """Querying an unknown name reports it as unknown."""
        graph = _graph({'a': {}})
        assert _blocked('ghost', graph, {}) == UNKNOWN_PACKAGE

    def test_installed_virtual(self) -> None:
        """Installed virtual packages are usable."""
        graph = _graph({'a': {'build': [['libc']]}}, virtual={'libc': True})
        assert _blocked('a', graph, {}) == ''

    def test_uninstalled_virtual(self) -> None:
        """Uninstalled virtual packages are not, even when not in the failure set."""
        graph = _graph({'a': {'build': [['x11']]}}, virtual={'x11': False})
        assert _blocked('a', graph, {}) == 'x11'

    def test_cycle_terminates(self) -> None:
        """Circular declarations are tentatively satisfiable."""
        graph = _graph({'a': {'build': [['b']]}, 'b': {'build': [['a']]}})
        assert _blocked('a', graph, {}) == ''
        assert is_satisfiable('a', graph, {}, include_run_deps=True) == ''

    def test_cycle_with_real_failure(self) -> None:
        """A cycle does not mask a genuine failure inside it."""
        graph = _graph({'a': {'build': [['b']]}, 'b': {'build': [['a'], ['c']]}, 'c': {}})
        assert _blocked('a', graph, {'c': 'x'}) == 'b'

    def test_never_mutates_failure_set(self) -> None:
        """The failure set is read-only to the query."""
        graph = _graph({'a': {}, 'b': {'build': [['a']]}, 'c': {'build': [['b']]}})
        failed = {'a': 'x'}
        _blocked('c', graph, failed)
        assert failed == {'a': 'x'}

    def test_memo_records_settled_results(self) -> None:
        """Settled answers for dependencies land in the memo."""
        graph = _graph({'a': {}, 'b': {'build': [['a']]}})
        memo: dict[str, str] = {}
        is_satisfiable('b', graph, {}, include_run_deps=False, memo=memo)
        assert memo == {'a': ''}

    def test_tentative_results_not_memoized(self) -> None:
        """Answers that leaned on the cycle guard are not cached."""
        graph = _graph({'a': {'build': [['b']]}, 'b': {'build': [['a']]}})
        memo: dict[str, str] = {}
        is_satisfiable('a', graph, {}, include_run_deps=False, memo=memo)
        assert 'b' not in memo

    def test_monotonic(self) -> None:
        """Growing the failure set never unblocks a package."""
        packages: dict[str, dict[str, object]] = {
            'a': {},
            'b': {'build': [['a']]},
            'c': {'build': [['a', 'b']], 'run': [['b']]},
            'd': {'build': [['c'], ['b', 'e']]},
            'e': {'build': [['d']]},
            'f': {'build': [['e', 'a']]},
        }
        graph = _graph(packages)
        names = list(packages)
        for base in names:
            small = {base: 'x'}
            for extra in names:
                large = {**small, extra: 'y'}
                for name in names:
                    if _blocked(name, graph, small):
                        assert _blocked(name, graph, large), f'{name} unblocked by failing {extra}'


class TestFailurePropagator:
    """Tests for FailurePropagator."""

    def test_sees_live_failures(self) -> None:
        """Failures added after construction are taken into account."""
        graph = _graph({'a': {}, 'b': {'build': [['a']]}})
        failed: dict[str, str] = {}
        propagator = FailurePropagator(graph, failed)
        assert propagator.blocked_reason('b') == ''
        failed['a'] = 'build failed (exit 2)'
        assert propagator.blocked_reason('b') == 'a'

    def test_installable_reason(self) -> None:
        """installable_reason() also checks run slots."""
        graph = _graph({'r': {}, 'a': {'run': [['r']]}})
        propagator = FailurePropagator(graph, {'r': 'x'})
        assert propagator.blocked_reason('a') == ''
        assert propagator.installable_reason('a') == 'r'
