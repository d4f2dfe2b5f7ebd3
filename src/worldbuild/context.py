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

"""Per-run context passed explicitly to every component.

Output directory layout::

    out/
    ├── .worldbuild.lock      run lock
    ├── checkpoint.jsonl      resumable state (removed when the run ends)
    ├── summary.json          outcome of every package (written at the end)
    ├── logs/<name>.log       one log per processed package
    └── failed/<name>/        source trees of failed builds, for inspection
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import structlog

from worldbuild.checkpoint import CHECKPOINT_FILENAME
from worldbuild.logging import get_logger

SUMMARY_FILENAME = 'summary.json'


@dataclass(frozen=True)
class RunContext:
    """Where a run writes, and how it reports.

    Attributes:
        output_dir: Root of everything the run produces.
        source_dir: Directory holding one work tree per package.
        logger: Run-level structured logger.
    """

    output_dir: Path
    source_dir: Path
    logger: structlog.stdlib.BoundLogger = field(
        default_factory=lambda: get_logger('worldbuild.run'),
        compare=False,
        repr=False,
    )

    @property
    def logs_dir(self) -> Path:
        """Directory of per-package build logs."""
        return self.output_dir / 'logs'

    @property
    def failed_dir(self) -> Path:
        """Directory the source trees of failed builds are moved into."""
        return self.output_dir / 'failed'

    @property
    def checkpoint_path(self) -> Path:
        """Location of the run's checkpoint."""
        return self.output_dir / CHECKPOINT_FILENAME

    @property
    def summary_path(self) -> Path:
        """Location of the end-of-run summary."""
        return self.output_dir / SUMMARY_FILENAME

    def log_path(self, name: str) -> Path:
        """Return the build log path for package ``name``."""
        return self.logs_dir / f'{name}.log'


__all__ = [
    'SUMMARY_FILENAME',
    'RunContext',
]
