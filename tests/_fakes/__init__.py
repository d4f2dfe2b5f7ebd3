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

"""Shared test fakes for worldbuild.

Reusable fake implementations of the MetadataProvider, Builder and
PackageDatabase protocols, so individual test modules don't need to
duplicate boilerplate classes.

Usage::

    from tests._fakes import FakeBuilder, FakeProvider

    provider = FakeProvider({'a': {}, 'b': {'build': [['a']]}})
    builder = FakeBuilder(fail={'b': 2})
"""

from tests._fakes._builder import FakeBuilder as FakeBuilder
from tests._fakes._database import FakeDatabase as FakeDatabase
from tests._fakes._provider import FakeProvider as FakeProvider

__all__ = [
    'FakeBuilder',
    'FakeDatabase',
    'FakeProvider',
]
