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

"""Fake Builder for tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path


class FakeBuilder:
    """Builder test double that records calls and fails on demand.

    Args:
        fail: Name to the non-zero exit status its build returns.
        on_build: Optional hook called with the package name before the
            build "runs", e.g. to simulate a crash.
    """

    def __init__(
        self,
        *,
        fail: dict[str, int] | None = None,
        on_build: Callable[[str], None] | None = None,
    ) -> None:
        """Configure failures."""
        self.fail = dict(fail or {})
        self.on_build = on_build
        self.calls: list[str] = []

    def build(self, name: str, log_path: Path) -> int:
        """Record the call, write a one-line log and return the canned status."""
        if self.on_build is not None:
            self.on_build(name)
        self.calls.append(name)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        status = self.fail.get(name, 0)
        log_path.write_text(f'building {name}: exit {status}\n', encoding='utf-8')
        return status
