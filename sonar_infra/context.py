# /*
# Copyright 2026 The Sonar Infra Authors.
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
# */

"""Explicit snapshot of the process identity the pipeline runs under."""

from __future__ import annotations

import grp
import os
import pwd
import subprocess
from dataclasses import dataclass
from pathlib import Path

from sonar_infra.constants import REEXEC_DEPTH_ENV


def _group_names(gids) -> frozenset[str]:
    names = set()
    for gid in gids:
        try:
            names.add(grp.getgrgid(gid).gr_name)
        except KeyError:
            continue
    return frozenset(names)


def _sudo_cached() -> bool:
    """Return whether sudo can run without prompting."""
    try:
        result = subprocess.run(["sudo", "-n", "true"], capture_output=True, timeout=10)
    except (subprocess.SubprocessError, OSError):
        return False
    return result.returncode == 0


def _reexec_depth() -> int:
    try:
        return int(os.environ.get(REEXEC_DEPTH_ENV, "0"))
    except ValueError:
        return 0


@dataclass(frozen=True)
class ExecutionContext:
    """Identity facts queried live at stage entry.

    ``effective_groups`` are the groups of this process. ``configured_groups``
    come from the group database and are what a freshly spawned login
    process would receive; a group only in the latter was granted after this
    process started.

    Attributes:
        user: Login name.
        uid: Effective user id.
        effective_groups: Group names active in this process.
        configured_groups: Group names the user belongs to in the database.
        sudo_cached: Whether sudo currently runs without a prompt.
        reexec_depth: How many times this run already re-executed itself.
        cwd: Working directory at capture time.
    """

    user: str
    uid: int
    effective_groups: frozenset[str]
    configured_groups: frozenset[str]
    sudo_cached: bool
    reexec_depth: int
    cwd: Path

    @property
    def is_root(self) -> bool:
        return self.uid == 0

    def group_configured(self, group: str) -> bool:
        return group in self.configured_groups

    def group_effective(self, group: str) -> bool:
        return group in self.effective_groups

    @classmethod
    def capture(cls) -> ExecutionContext:
        """Build a context from the live process state."""
        uid = os.geteuid()
        user = pwd.getpwuid(os.getuid()).pw_name
        effective = _group_names(os.getgroups()) | _group_names([os.getegid()])
        try:
            configured = _group_names(os.getgrouplist(user, os.getgid()))
        except OSError:
            configured = effective
        return cls(
            user=user,
            uid=uid,
            effective_groups=effective,
            configured_groups=configured,
            sudo_cached=uid == 0 or _sudo_cached(),
            reexec_depth=_reexec_depth(),
            cwd=Path.cwd(),
        )
