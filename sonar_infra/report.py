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

"""Final access instructions."""

from __future__ import annotations

from rich.panel import Panel

from sonar_infra import console
from sonar_infra.cluster import cluster_ip
from sonar_infra.config import DeployConfig
from sonar_infra.errors import ClusterError
from sonar_infra.polling import StageStatus


def print_access_instructions(deploy_cfg: DeployConfig, ip: str | None = None) -> None:
    """Print how to reach SonarQube from Linux and from Windows via WSL2."""
    if ip is None:
        try:
            ip = cluster_ip()
        except ClusterError:
            ip = "<minikube ip>"

    ns = deploy_cfg.namespace
    host = deploy_cfg.ingress_host
    body = "\n".join([
        "[bold]1) Native Linux (Ubuntu Server)[/bold]",
        f"   Ensure DNS/hosts resolves {host} -> {ip}, then open:",
        f"       http://{host}",
        "",
        "[bold]2) Windows + WSL2[/bold] (keep the terminal open while you browse)",
        f"       minikube service {deploy_cfg.service_name} -n {ns} --url",
        "   Open the printed http://127.0.0.1:<port> URL in your Windows browser.",
        "",
        "[bold]Verification (optional)[/bold]",
        f"       kubectl get pods -n {ns}",
        f"       kubectl get ingress -n {ns}",
    ])
    console.print()
    console.print(Panel(body, title="Setup completed", title_align="left", style="green"))


def print_stage_summary(stages: dict[str, StageStatus]) -> None:
    """Print one line per stage with its final status."""
    styles = {
        StageStatus.SUCCESS: "green",
        StageStatus.SKIPPED: "dim",
        StageStatus.DEGRADED: "yellow",
    }
    for name, status in stages.items():
        style = styles[status]
        console.print(f"  [{style}]{status.value:<9}[/{style}] {name}")
