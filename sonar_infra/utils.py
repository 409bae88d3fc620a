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

"""Utility functions for kubectl, privileged commands, and command checks."""

from __future__ import annotations

import os
import shlex
import subprocess
from pathlib import Path

import sh

from sonar_infra import logger
from sonar_infra.constants import OS_RELEASE_FILE
from sonar_infra.errors import PreconditionError


def command_exists(cmd: str) -> bool:
    """Return whether a command is resolvable on the system PATH.

    Args:
        cmd: Name of the CLI command to check.
    """
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode:
        return False
    return True


def require_command(cmd: str) -> None:
    """Fail fast when a required command is not on PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        PreconditionError: If the command is not found.
    """
    if not command_exists(cmd):
        raise PreconditionError(f"Required command '{cmd}' not found. Please install it first.")


def is_root() -> bool:
    """Return whether the current process runs with euid 0."""
    return os.geteuid() == 0


def privileged(*args: str, **kwargs):
    """Run a command with root privileges via sudo (or directly as root).

    Keyword arguments are passed through to ``sh`` (``_in``, ``_fg``, ...).

    Args:
        *args: Command and its arguments.

    Returns:
        The ``sh`` result of the command.

    Raises:
        sh.ErrorReturnCode: If the command exits non-zero.
    """
    logger.debug("privileged: %s", " ".join(args))
    if is_root():
        return sh.Command(args[0])(*args[1:], **kwargs)
    return sh.sudo(*args, **kwargs)


def run_kubectl(args: list[str], timeout: int = 30) -> tuple[bool, str, str]:
    """Run a kubectl command via subprocess and return (success, stdout, stderr).

    Uses subprocess instead of sh so that readiness waits keep stdout and
    stderr separate and never raise on a non-zero exit.

    Args:
        args: kubectl arguments, e.g. ``["get", "namespace", "sonarqube"]``.
        timeout: Seconds before the kubectl process is abandoned.

    Returns:
        Tuple of (success, stdout, stderr).
    """
    logger.debug("kubectl %s", " ".join(args))
    try:
        result = subprocess.run(
            ["kubectl", *args],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        return result.returncode == 0, result.stdout, result.stderr
    except (subprocess.SubprocessError, OSError) as exc:
        return False, "", str(exc)


def read_os_release(path: Path = OS_RELEASE_FILE) -> dict[str, str]:
    """Parse an os-release file into a dict.

    Args:
        path: Location of the os-release file.

    Returns:
        Mapping of keys (``ID``, ``PRETTY_NAME``, ...) to unquoted values;
        empty if the file cannot be read.
    """
    try:
        text = path.read_text()
    except OSError:
        return {}
    values: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, raw = line.partition("=")
        parts = shlex.split(raw)
        values[key] = parts[0] if parts else ""
    return values
