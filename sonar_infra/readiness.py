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

"""Namespace and workload readiness polling with diagnostic fallback."""

from __future__ import annotations

import time
from dataclasses import dataclass

from sonar_infra import console, logger
from sonar_infra.config import DeployConfig
from sonar_infra.constants import (
    DIAGNOSTIC_EVENT_LINES,
    KUBECTL_GRACE_SECONDS,
    PODS_PRESENT_POLL_INTERVAL_SECONDS,
    PRESENCE_CHECK_TIMEOUT_SECONDS,
)
from sonar_infra.errors import StageTimeoutError
from sonar_infra.polling import StageStatus, TimeoutPolicy, poll_until
from sonar_infra.utils import run_kubectl


@dataclass(frozen=True)
class ReadinessTarget:
    """Pods to wait for, built fresh for every wait.

    Attributes:
        namespace: Namespace of the pods.
        selector: Label selector of the pods.
        timeout_seconds: Hard limit for the whole wait.
        name: Display name, defaults to the selector.
    """

    namespace: str
    selector: str
    timeout_seconds: int
    name: str = ""

    @property
    def label(self) -> str:
        return self.name or self.selector


def workload_targets(deploy_cfg: DeployConfig) -> list[ReadinessTarget]:
    """Return the PostgreSQL and SonarQube targets, in wait order."""
    return [
        ReadinessTarget(deploy_cfg.namespace, deploy_cfg.postgres_selector,
                        deploy_cfg.postgres_timeout_seconds, "PostgreSQL"),
        ReadinessTarget(deploy_cfg.namespace, deploy_cfg.sonarqube_selector,
                        deploy_cfg.sonarqube_timeout_seconds, "SonarQube"),
    ]


# ============================================================================
# Namespace
# ============================================================================

def namespace_exists(name: str) -> bool:
    ok, _, _ = run_kubectl(["get", "namespace", name])
    return ok


def wait_for_namespace(name: str, max_attempts: int, interval: float) -> StageStatus:
    """Poll at a fixed interval until *name* exists.

    Args:
        name: Namespace to wait for.
        max_attempts: Number of existence checks before giving up.
        interval: Seconds between checks.

    Returns:
        StageStatus.SUCCESS once the namespace exists.

    Raises:
        StageTimeoutError: If the namespace is absent after every check.
    """
    console.print(f"[yellow]ℹ️  Waiting for namespace '{name}' to exist...[/yellow]")
    try:
        poll_until(
            lambda: namespace_exists(name),
            max_attempts=max_attempts,
            interval=interval,
            policy=TimeoutPolicy.FATAL,
            description=f"namespace '{name}'",
        )
    except StageTimeoutError as err:
        raise StageTimeoutError(
            f"Namespace '{name}' did not appear in time ({max_attempts} checks)",
            hint="Check the Terraform apply output for errors.",
        ) from err
    console.print(f"[green]✅ Namespace '{name}' exists[/green]")
    return StageStatus.SUCCESS


# ============================================================================
# Pods
# ============================================================================

def pods_present(target: ReadinessTarget, timeout: int = 30) -> bool:
    ok, stdout, _ = run_kubectl(
        ["get", "pods", "-n", target.namespace, "-l", target.selector, "-o", "name"], timeout=timeout,
    )
    return ok and bool(stdout.strip())


def _pods_ready(target: ReadinessTarget, timeout: int) -> bool:
    ok, _, stderr = run_kubectl([
        "wait", "--namespace", target.namespace,
        "--for=condition=Ready", "pod",
        f"--selector={target.selector}",
        f"--timeout={timeout}s",
    ], timeout=timeout + KUBECTL_GRACE_SECONDS)
    if not ok:
        logger.debug("kubectl wait for %s failed: %s", target.label, stderr.strip())
    return ok


def dump_diagnostics(namespace: str) -> None:
    """Print pod states and the most recent events of *namespace*."""
    _, pods, pods_err = run_kubectl(["get", "pods", "-n", namespace, "-o", "wide"])
    console.print(pods or pods_err, markup=False, highlight=False)

    _, events, events_err = run_kubectl(["get", "events", "-n", namespace, "--sort-by=.lastTimestamp"])
    tail = "\n".join(events.splitlines()[-DIAGNOSTIC_EVENT_LINES:])
    console.print(tail or events_err, markup=False, highlight=False)


def wait_for_pods_ready(
    target: ReadinessTarget,
    *,
    policy: TimeoutPolicy,
    presence_interval: int = PODS_PRESENT_POLL_INTERVAL_SECONDS,
) -> StageStatus:
    """Wait up to ``target.timeout_seconds`` for the target's pods to be Ready.

    ``kubectl wait`` fails at once when the selector matches nothing, so the
    pods are first polled into existence; one blocking ``kubectl wait`` then
    spends whatever remains of the same deadline.

    Args:
        target: Pods to wait for.
        policy: FATAL raises on timeout, DEGRADED returns DEGRADED.
        presence_interval: Seconds between pod existence checks.

    Returns:
        SUCCESS, or DEGRADED after printing diagnostics.

    Raises:
        StageTimeoutError: On timeout under the FATAL policy.
    """
    console.print(
        f"[yellow]ℹ️  Waiting for {target.label} pods in namespace '{target.namespace}' "
        f"with selector '{target.selector}' (timeout {target.timeout_seconds}s)...[/yellow]"
    )
    deadline = time.monotonic() + target.timeout_seconds

    def _remaining() -> int:
        return int(deadline - time.monotonic())

    ready = poll_until(
        lambda: pods_present(target, timeout=max(1, min(PRESENCE_CHECK_TIMEOUT_SECONDS, _remaining()))),
        max_attempts=max(1, target.timeout_seconds // presence_interval),
        interval=presence_interval,
        policy=TimeoutPolicy.DEGRADED,
        description=f"{target.label} pods exist",
        deadline=deadline,
    )
    remaining = _remaining()
    if ready and remaining < 1:
        logger.debug("no time left to wait for %s pods to become Ready", target.label)
        ready = False
    if ready:
        ready = poll_until(
            lambda: _pods_ready(target, remaining),
            max_attempts=1,
            interval=0,
            policy=TimeoutPolicy.DEGRADED,
            description=f"{target.label} pods Ready",
        )

    if ready:
        console.print(f"[green]✅ {target.label} pods are ready[/green]")
        return StageStatus.SUCCESS

    console.print(
        f"[yellow]⚠️  Pod readiness wait failed for selector '{target.selector}'. Showing diagnostics:[/yellow]"
    )
    dump_diagnostics(target.namespace)
    if policy is TimeoutPolicy.FATAL:
        raise StageTimeoutError(
            f"{target.label} pods not ready within {target.timeout_seconds}s",
            hint=f"Inspect: kubectl get pods -n {target.namespace}",
        )
    return StageStatus.DEGRADED


def wait_for_workload_ready(target: ReadinessTarget) -> StageStatus:
    """Wait for a workload, degrading instead of aborting on timeout."""
    return wait_for_pods_ready(target, policy=TimeoutPolicy.DEGRADED)
