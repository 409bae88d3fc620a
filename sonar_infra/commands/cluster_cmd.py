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

"""Cluster subcommands (start, ingress, hosts)."""

from __future__ import annotations

import typer

from sonar_infra.cluster import enable_ingress, ensure_hosts_entry, start_cluster
from sonar_infra.config import DeployConfig, MinikubeConfig, ToolVersions

app = typer.Typer(help="minikube cluster lifecycle.")


@app.command()
def start(
    cpus: int | None = typer.Option(None, "--cpus", help="CPUs for the node (overrides MINIKUBE_CPUS)"),
    memory_mb: int | None = typer.Option(None, "--memory-mb", help="Memory in MB (overrides MINIKUBE_MEMORY_MB)"),
    kubernetes_version: str | None = typer.Option(
        None, "--kubernetes-version", help="Kubernetes version without the 'v' prefix"),
) -> None:
    """Start minikube (no-op when running) and wait for the node."""
    mk_cfg = MinikubeConfig()
    overrides: dict = {}
    if cpus is not None:
        overrides["cpus"] = cpus
    if memory_mb is not None:
        overrides["memory_mb"] = memory_mb
    if kubernetes_version is not None:
        overrides["kubernetes_version"] = kubernetes_version
    if overrides:
        mk_cfg = mk_cfg.model_copy(update=overrides)

    start_cluster(mk_cfg, ToolVersions())


@app.command()
def ingress() -> None:
    """Enable the ingress addon and wait for its controller."""
    enable_ingress()


@app.command()
def hosts(
    host: str | None = typer.Option(None, "--host", help="Host name to map (overrides SONAR_INGRESS_HOST)"),
) -> None:
    """Map the ingress host to the minikube IP in /etc/hosts."""
    ensure_hosts_entry(host or DeployConfig().ingress_host)
