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

"""Backends for the external collaborators of a worldbuild run.

Each collaborator is a :class:`typing.Protocol` with one concrete
implementation:

- :class:`~worldbuild.backends.provider.MetadataProvider`:
  :class:`~worldbuild.backends.provider.CatalogProvider` (TOML catalog)
- :class:`~worldbuild.backends.builder.Builder`:
  :class:`~worldbuild.backends.builder.CommandBuilder` (subprocess)
- :class:`~worldbuild.backends.database.PackageDatabase`:
  :class:`~worldbuild.backends.database.CommandPackageDatabase` (subprocess)
"""

from worldbuild.backends.builder import Builder as Builder, CommandBuilder as CommandBuilder
from worldbuild.backends.database import (
    CommandPackageDatabase as CommandPackageDatabase,
    PackageDatabase as PackageDatabase,
)
from worldbuild.backends.provider import (
    CatalogProvider as CatalogProvider,
    MetadataProvider as MetadataProvider,
    PackageDependencies as PackageDependencies,
)

__all__ = [
    'Builder',
    'CatalogProvider',
    'CommandBuilder',
    'CommandPackageDatabase',
    'MetadataProvider',
    'PackageDatabase',
    'PackageDependencies',
]
