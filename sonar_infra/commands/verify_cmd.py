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

"""Verify subcommands (namespace, workloads, health) for an existing deployment."""

from __future__ import annotations

import typer

from sonar_infra.config import DeployConfig
from sonar_infra.health import verify_http_health
from sonar_infra.readiness import wait_for_namespace, wait_for_workload_ready, workload_targets

app = typer.Typer(help="Check an existing deployment.")


@app.command()
def namespace(
    max_attempts: int | None = typer.Option(None, "--max-attempts", help="Existence checks before failing"),
    interval: float | None = typer.Option(None, "--interval", help="Seconds between checks"),
) -> None:
    """Wait for the SonarQube namespace to exist."""
    deploy_cfg = DeployConfig()
    wait_for_namespace(
        deploy_cfg.namespace,
        max_attempts=max_attempts or deploy_cfg.namespace_max_attempts,
        interval=deploy_cfg.namespace_interval_seconds if interval is None else interval,
    )


@app.command()
def workloads() -> None:
    """Wait for the PostgreSQL and SonarQube pods; timeouts only warn."""
    for target in workload_targets(DeployConfig()):
        wait_for_workload_ready(target)


@app.command()
def health(
    local_port: int | None = typer.Option(None, "--local-port", help="Local port for the port-forward"),
    max_attempts: int | None = typer.Option(None, "--max-attempts", help="Status polls before giving up"),
) -> None:
    """Poll the SonarQube status endpoint through a port-forward."""
    deploy_cfg = DeployConfig()
    verify_http_health(
        deploy_cfg.namespace,
        deploy_cfg.service_name,
        deploy_cfg.service_port,
        local_port or deploy_cfg.local_port,
        max_attempts=max_attempts or deploy_cfg.health_max_attempts,
        interval=deploy_cfg.health_interval_seconds,
    )
