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

"""Docker access guard: sudo refresh, group grant, and process re-exec.

Group membership changes only apply to process trees spawned after the
change, so a user added to the ``docker`` group cannot use the daemon from
the current process. The guard models this as three states:

* ``ELEVATED``       - the daemon answers an info query from this process.
* ``GROUP_GRANTED``  - the group database lists the user, but this process
  predates the grant. Remedy: replace the process under ``sg docker``.
* ``UNPRIVILEGED``   - the user is not in the group at all. Remedy: grant,
  then replace the process (bootstrap only).

The re-exec depth travels in the environment so that a replaced process
that still cannot reach the daemon fails instead of looping.
"""

from __future__ import annotations

import itertools
import os
import shlex
import sys
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import NoReturn

import docker
import requests
import sh

from sonar_infra import console, logger
from sonar_infra.constants import MAX_REEXEC_DEPTH, REEXEC_DEPTH_ENV, RUNTIME_GROUP
from sonar_infra.context import ExecutionContext
from sonar_infra.errors import PrivilegeError
from sonar_infra.utils import privileged, require_command

REMEDIATION_HINT = (
    f"Run 'newgrp {RUNTIME_GROUP}' (or log out and back in), then rerun: sonar-infra setup run"
)


class AccessState(Enum):
    UNPRIVILEGED = "unprivileged"
    GROUP_GRANTED = "group-granted"
    ELEVATED = "elevated"


class AccessOutcome(Enum):
    READY = "ready"
    REEXEC_REQUIRED = "reexec-required"
    FATAL = "fatal"


@dataclass(frozen=True)
class AccessDecision:
    """Result of one guard evaluation.

    Attributes:
        outcome: What the caller must do next.
        state: The classified access state.
        reason: Human-readable explanation for logs and errors.
        grant: Whether the group must be granted before re-exec.
    """

    outcome: AccessOutcome
    state: AccessState
    reason: str
    grant: bool = False


# ============================================================================
# Probes
# ============================================================================

def ensure_sudo_credentials(ctx: ExecutionContext) -> None:
    """Make sure sudo will not prompt during later privileged steps.

    Args:
        ctx: Current execution context.

    Raises:
        PrivilegeError: If the interactive sudo prompt fails.
    """
    if ctx.is_root or ctx.sudo_cached:
        return
    console.print("[yellow]ℹ️  Sudo permission required. You may be prompted for your password.[/yellow]")
    try:
        sh.sudo("-v", _fg=True)
    except sh.ErrorReturnCode as err:
        raise PrivilegeError(
            "Unable to obtain sudo credentials",
            hint="The setup needs a user with sudo rights.",
        ) from err


def probe_runtime() -> bool:
    """Return whether the docker daemon answers an info query from this process."""
    try:
        client = docker.from_env()
    except docker.errors.DockerException as err:
        logger.debug("docker client unavailable: %s", err)
        return False
    try:
        client.info()
        return True
    except (docker.errors.DockerException, requests.exceptions.RequestException) as err:
        logger.debug("docker info failed: %s", err)
        return False
    finally:
        client.close()


# ============================================================================
# State machine
# ============================================================================

def classify(ctx: ExecutionContext, runtime_usable: bool, group: str = RUNTIME_GROUP) -> AccessState:
    """Map live facts to an access state."""
    if runtime_usable:
        return AccessState.ELEVATED
    if ctx.group_configured(group) and not ctx.group_effective(group):
        return AccessState.GROUP_GRANTED
    return AccessState.UNPRIVILEGED


def decide(
    ctx: ExecutionContext,
    state: AccessState,
    *,
    allow_grant: bool = False,
    group: str = RUNTIME_GROUP,
) -> AccessDecision:
    """Apply the single transition rule for *state*.

    Args:
        ctx: Current execution context.
        state: Classified access state.
        allow_grant: Whether an absent group may be granted here.
        group: Group that owns the docker socket.

    Returns:
        The decision the caller must act on.
    """
    if state is AccessState.ELEVATED:
        return AccessDecision(AccessOutcome.READY, state, "docker is usable without sudo")
    if ctx.is_root or ctx.group_effective(group):
        return AccessDecision(
            AccessOutcome.FATAL, state,
            "docker daemon is not responding although this process has access to it",
        )
    if ctx.reexec_depth >= MAX_REEXEC_DEPTH:
        return AccessDecision(
            AccessOutcome.FATAL, state,
            f"docker is still unusable after re-executing under the '{group}' group",
        )
    if state is AccessState.GROUP_GRANTED:
        return AccessDecision(
            AccessOutcome.REEXEC_REQUIRED, state,
            f"'{ctx.user}' is in the '{group}' group but this session predates it",
        )
    if allow_grant:
        return AccessDecision(
            AccessOutcome.REEXEC_REQUIRED, state,
            f"'{ctx.user}' is not in the '{group}' group yet", grant=True,
        )
    return AccessDecision(
        AccessOutcome.FATAL, state,
        f"'{ctx.user}' is not in the '{group}' group and docker requires sudo",
    )


def grant_group(user: str, group: str = RUNTIME_GROUP) -> None:
    """Create *group* if needed and add *user* to it.

    Raises:
        PrivilegeError: If usermod fails.
    """
    console.print(f"[yellow]ℹ️  Adding user '{user}' to the '{group}' group[/yellow]")
    try:
        privileged("groupadd", "-f", group)
        privileged("usermod", "-aG", group, user)
    except sh.ErrorReturnCode as err:
        raise PrivilegeError(f"Failed to add '{user}' to the '{group}' group", hint=REMEDIATION_HINT) from err


def ensure_runtime_access(
    ctx: ExecutionContext,
    *,
    allow_grant: bool = False,
    group: str = RUNTIME_GROUP,
    probe: Callable[[], bool] = probe_runtime,
) -> AccessDecision:
    """Evaluate docker access for the current process.

    Refreshes sudo, probes the daemon, and grants the group when the
    decision requires it. Never re-executes; the caller does that.

    Args:
        ctx: Current execution context.
        allow_grant: Whether an absent group may be granted here.
        group: Group that owns the docker socket.
        probe: Daemon probe, defaults to a docker SDK info query.

    Returns:
        The decision the caller must act on.
    """
    ensure_sudo_credentials(ctx)
    state = classify(ctx, probe(), group)
    decision = decide(ctx, state, allow_grant=allow_grant, group=group)
    logger.debug("access state=%s outcome=%s (%s)", state.value, decision.outcome.value, decision.reason)

    if decision.outcome is AccessOutcome.READY:
        console.print("[green]✅ Docker is usable without sudo[/green]")
    elif decision.outcome is AccessOutcome.REEXEC_REQUIRED:
        console.print(f"[yellow]ℹ️  {decision.reason.capitalize()}[/yellow]")
        if decision.grant:
            grant_group(ctx.user, group)
    return decision


# ============================================================================
# Re-exec
# ============================================================================

def reexec_argv(*args: str) -> list[str]:
    """Build the argv of a fresh run of this program.

    Global options given before the subcommand (``-v``) are kept when the
    subcommand is replaced. They are all flags, so every leading ``-``
    token belongs to them.

    Args:
        *args: Replacement subcommand and arguments, or none to reuse the
            current ones.
    """
    program = [sys.executable, sys.argv[0]]
    current = sys.argv[1:]
    if not args:
        return [*program, *current]
    global_options = list(itertools.takewhile(lambda arg: arg.startswith("-"), current))
    return [*program, *global_options, *args]


def reexec_under_group(ctx: ExecutionContext, argv: list[str], group: str = RUNTIME_GROUP) -> NoReturn:
    """Replace the current process with *argv* running under *group*.

    Args:
        ctx: Current execution context, used for the re-exec depth.
        argv: Command line of the replacement process.
        group: Group the replacement process runs under.

    Raises:
        PrivilegeError: If the re-exec cap is reached.
    """
    if ctx.reexec_depth >= MAX_REEXEC_DEPTH:
        raise PrivilegeError("Refusing to re-execute more than once per run", hint=REMEDIATION_HINT)
    require_command("sg")

    os.environ[REEXEC_DEPTH_ENV] = str(ctx.reexec_depth + 1)
    command = shlex.join(argv)
    console.print(f"[yellow]ℹ️  Re-executing under the '{group}' group (no logout required)[/yellow]")
    logger.debug("exec: sg %s -c %s", group, command)
    sys.stdout.flush()
    sys.stderr.flush()
    os.execvp("sg", ["sg", group, "-c", command])


def require_runtime_access(
    ctx: ExecutionContext,
    argv: list[str],
    *,
    allow_grant: bool = False,
    probe: Callable[[], bool] = probe_runtime,
) -> None:
    """Return once docker is usable, re-exec when needed, raise when hopeless.

    Args:
        ctx: Current execution context.
        argv: Command line to re-execute when the group is not yet effective.
        allow_grant: Whether an absent group may be granted here.
        probe: Daemon probe override.

    Raises:
        PrivilegeError: On a FATAL decision.
    """
    decision = ensure_runtime_access(ctx, allow_grant=allow_grant, probe=probe)
    if decision.outcome is AccessOutcome.READY:
        return
    if decision.outcome is AccessOutcome.REEXEC_REQUIRED:
        reexec_under_group(ctx, argv)
    raise PrivilegeError(decision.reason, hint=REMEDIATION_HINT)
