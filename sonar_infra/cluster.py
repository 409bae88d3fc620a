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

"""minikube cluster lifecycle, ingress addon, and hosts entry."""

from __future__ import annotations

import re
from pathlib import Path

import sh
from rich.panel import Panel

from sonar_infra import console, logger
from sonar_infra.config import MinikubeConfig, ToolVersions, kubernetes_version
from sonar_infra.constants import (
    HOSTS_FILE,
    INGRESS_ADDON,
    INGRESS_CONTROLLER_SELECTOR,
    INGRESS_READY_TIMEOUT_SECONDS,
    KUBECTL_GRACE_SECONDS,
    MINIKUBE_RUNNING_STATE,
    NODE_READY_TIMEOUT_SECONDS,
    NS_INGRESS,
)
from sonar_infra.errors import ClusterError, StageTimeoutError
from sonar_infra.polling import StageStatus, TimeoutPolicy, poll_until
from sonar_infra.readiness import ReadinessTarget, wait_for_pods_ready
from sonar_infra.utils import privileged, run_kubectl


# ============================================================================
# Cluster operations
# ============================================================================

def cluster_running() -> bool:
    """Return whether the minikube host reports Running."""
    try:
        state = str(sh.minikube("status", "--format", "{{.Host}}")).strip()
    except sh.ErrorReturnCode as e:
        state = e.stdout.decode(errors="replace").strip()
    logger.debug("minikube host state: %s", state or "<none>")
    return state == MINIKUBE_RUNNING_STATE


def start_cluster(mk_cfg: MinikubeConfig, versions: ToolVersions) -> StageStatus:
    """Start minikube, or leave an already-running cluster untouched.

    Args:
        mk_cfg: Driver and resource sizing.
        versions: Pinned versions, used for the default Kubernetes version.

    Returns:
        SUCCESS after a start, SKIPPED if the cluster was already running.

    Raises:
        ClusterError: If ``minikube start`` fails.
        StageTimeoutError: If the node does not become Ready.
    """
    k8s_version = kubernetes_version(mk_cfg, versions)
    console.print(Panel.fit(
        f"Starting minikube (driver={mk_cfg.driver}, cpus={mk_cfg.cpus}, memory={mk_cfg.memory_mb}MB)",
        style="bold blue",
    ))
    status = StageStatus.SUCCESS
    if cluster_running():
        console.print("[green]✓ minikube is already running, skipping start[/green]")
        status = StageStatus.SKIPPED
    else:
        try:
            sh.minikube(
                "start",
                f"--driver={mk_cfg.driver}",
                f"--cpus={mk_cfg.cpus}",
                f"--memory={mk_cfg.memory_mb}mb",
                f"--kubernetes-version={k8s_version}",
            )
        except sh.ErrorReturnCode as e:
            raise ClusterError(
                f"minikube start failed: {e.stderr.decode(errors='replace')[-500:]}",
                hint="Run 'minikube delete' if an old cluster with different settings exists.",
            ) from e
        console.print("[green]✅ minikube started[/green]")

    wait_for_node_ready()
    return status


def wait_for_node_ready(timeout: int = NODE_READY_TIMEOUT_SECONDS) -> None:
    """Block until every node is Ready.

    Raises:
        StageTimeoutError: If the nodes are not Ready within *timeout*.
    """
    console.print("[yellow]ℹ️  Waiting for Kubernetes node to become Ready...[/yellow]")

    def _nodes_ready() -> bool:
        ok, _, stderr = run_kubectl(
            ["wait", "--for=condition=Ready", "nodes", "--all", f"--timeout={timeout}s"],
            timeout=timeout + KUBECTL_GRACE_SECONDS,
        )
        if not ok:
            logger.debug("node wait failed: %s", stderr.strip())
        return ok

    try:
        poll_until(_nodes_ready, max_attempts=1, interval=0,
                   policy=TimeoutPolicy.FATAL, description="node readiness")
    except StageTimeoutError as err:
        raise StageTimeoutError(
            f"Kubernetes node not Ready within {timeout}s",
            hint="Inspect 'minikube logs'; a cluster that cannot become ready cannot host workloads.",
        ) from err
    console.print("[green]✅ Node is ready[/green]")


# ============================================================================
# Ingress
# ============================================================================

def enable_ingress(timeout: int = INGRESS_READY_TIMEOUT_SECONDS) -> StageStatus:
    """Enable the ingress addon and wait for its controller.

    The enable call is best-effort; the controller wait is fatal.

    Raises:
        StageTimeoutError: If the controller pod is not Ready within *timeout*.
    """
    console.print(Panel.fit("Enabling NGINX ingress controller", style="bold blue"))
    try:
        sh.minikube("addons", "enable", INGRESS_ADDON)
    except sh.ErrorReturnCode as e:
        console.print(f"[yellow]⚠️  'minikube addons enable {INGRESS_ADDON}' failed, continuing: "
                      f"{e.stderr.decode(errors='replace').strip()[:200]}[/yellow]")

    target = ReadinessTarget(NS_INGRESS, INGRESS_CONTROLLER_SELECTOR, timeout, "ingress controller")
    return wait_for_pods_ready(target, policy=TimeoutPolicy.FATAL)


# ============================================================================
# Hosts entry
# ============================================================================

def cluster_ip() -> str:
    """Return the minikube node IP.

    Raises:
        ClusterError: If ``minikube ip`` fails.
    """
    try:
        return str(sh.minikube("ip")).strip()
    except sh.ErrorReturnCode as e:
        raise ClusterError("Unable to determine the minikube IP") from e


def render_hosts(current: str, ip: str, host: str) -> str | None:
    """Return hosts file content mapping *host* to *ip*, or None if already mapped.

    Stale lines for *host* are dropped before the new mapping is appended.
    """
    host_re = re.escape(host)
    if re.search(rf"^\s*{re.escape(ip)}\s+{host_re}(\s|$)", current, re.MULTILINE):
        return None
    kept = [line for line in current.splitlines() if not re.search(rf"\s{host_re}$", line)]
    kept.append(f"{ip} {host}")
    return "\n".join(kept) + "\n"


def ensure_hosts_entry(host: str, ip: str | None = None, hosts_file: Path = HOSTS_FILE) -> StageStatus:
    """Map *host* to the minikube IP in the hosts file, best-effort.

    Returns:
        SKIPPED if the mapping already exists, SUCCESS if written,
        DEGRADED if the file could not be updated.
    """
    if ip is None:
        try:
            ip = cluster_ip()
        except ClusterError as e:
            console.print(f"[yellow]⚠️  {e}, skipping hosts entry[/yellow]")
            return StageStatus.DEGRADED
    try:
        current = hosts_file.read_text()
    except OSError as e:
        console.print(f"[yellow]⚠️  Cannot read {hosts_file}: {e}[/yellow]")
        return StageStatus.DEGRADED

    content = render_hosts(current, ip, host)
    if content is None:
        console.print(f"[green]✓ {hosts_file} already maps {host} -> {ip}[/green]")
        return StageStatus.SKIPPED

    console.print(f"[yellow]ℹ️  Ensuring {hosts_file} contains {host} -> {ip}[/yellow]")
    try:
        privileged("cp", str(hosts_file), f"{hosts_file}.bak")
        privileged("tee", str(hosts_file), _in=content)
    except sh.ErrorReturnCode as e:
        console.print(f"[yellow]⚠️  Failed to update {hosts_file}: {e}[/yellow]")
        return StageStatus.DEGRADED
    console.print(f"[green]✅ {host} -> {ip} written to {hosts_file}[/green]")
    return StageStatus.SUCCESS
