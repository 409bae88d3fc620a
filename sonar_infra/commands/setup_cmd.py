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

"""Composite setup subcommands (run, bootstrap)."""

from __future__ import annotations

import typer

from sonar_infra.config import (
    DeployConfig,
    MinikubeConfig,
    SetupOptions,
    ToolVersions,
    display_config,
)
from sonar_infra.orchestrator import run_bootstrap, run_setup

app = typer.Typer(help="Composite setup workflows.")


@app.command()
def run(
    skip_base_packages: bool = typer.Option(
        False, "--skip-base-packages", help="Skip apt base package installation"),
    skip_tools: bool = typer.Option(
        False, "--skip-tools", help="Skip the tool presence checks and installs"),
    skip_ingress: bool = typer.Option(
        False, "--skip-ingress", help="Skip enabling the ingress addon"),
    skip_hosts_entry: bool = typer.Option(
        False, "--skip-hosts-entry", help="Skip the /etc/hosts mapping"),
    skip_apply: bool = typer.Option(
        False, "--skip-apply", help="Skip the Terraform apply"),
    skip_verify: bool = typer.Option(
        False, "--skip-verify", help="Skip readiness polling and the HTTP check"),
    cpus: int | None = typer.Option(
        None, "--cpus", help="minikube CPUs (overrides MINIKUBE_CPUS)"),
    memory_mb: int | None = typer.Option(
        None, "--memory-mb", help="minikube memory in MB (overrides MINIKUBE_MEMORY_MB)"),
) -> None:
    """Full setup: tools, minikube, ingress, Terraform, readiness, health.

    Use --skip-* flags to opt out of individual steps. Exits 0 even when a
    workload wait or the HTTP check only degraded.
    """
    options = SetupOptions(
        skip_base_packages=skip_base_packages,
        skip_tools=skip_tools,
        skip_ingress=skip_ingress,
        skip_hosts_entry=skip_hosts_entry,
        skip_apply=skip_apply,
        skip_verify=skip_verify,
    )
    versions = ToolVersions()
    mk_cfg = MinikubeConfig()
    overrides: dict = {}
    if cpus is not None:
        overrides["cpus"] = cpus
    if memory_mb is not None:
        overrides["memory_mb"] = memory_mb
    if overrides:
        mk_cfg = mk_cfg.model_copy(update=overrides)
    deploy_cfg = DeployConfig()

    display_config(options, versions, mk_cfg, deploy_cfg)
    run_setup(options, versions, mk_cfg, deploy_cfg)


@app.command()
def bootstrap() -> None:
    """Grant docker access if needed, then continue with 'setup run'."""
    run_bootstrap()
