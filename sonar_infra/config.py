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

"""Configuration classes and config models."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.table import Table

from sonar_infra import console
from sonar_infra.constants import (
    DEFAULT_HEALTH_MAX_ATTEMPTS,
    DEFAULT_HEALTH_POLL_INTERVAL_SECONDS,
    DEFAULT_INGRESS_HOST,
    DEFAULT_LOCAL_PORT,
    DEFAULT_MINIKUBE_CPUS,
    DEFAULT_MINIKUBE_DRIVER,
    DEFAULT_MINIKUBE_MEMORY_MB,
    DEFAULT_NAMESPACE,
    DEFAULT_NAMESPACE_MAX_ATTEMPTS,
    DEFAULT_NAMESPACE_POLL_INTERVAL_SECONDS,
    DEFAULT_POSTGRES_SELECTOR,
    DEFAULT_POSTGRES_TIMEOUT_SECONDS,
    DEFAULT_SERVICE_NAME,
    DEFAULT_SERVICE_PORT,
    DEFAULT_SONARQUBE_SELECTOR,
    DEFAULT_SONARQUBE_TIMEOUT_SECONDS,
    DEFAULT_TERRAFORM_DIR,
    DEPENDENCIES,
)


# ============================================================================
# Configuration classes
# ============================================================================

class ToolVersions(BaseSettings):
    """Pinned tool versions, auto-loaded from *_VERSION env vars.

    Attributes:
        minikube_version: minikube release tag.
        kubectl_version: kubectl release tag, also the default cluster version.
        helm_version: Helm release tag.
        terraform_version: Terraform release version (no ``v`` prefix).
    """

    model_config = SettingsConfigDict(extra="ignore")

    minikube_version: str = Field(default=DEPENDENCIES["minikube"]["version"], pattern=r"^v[\d.]+$")
    kubectl_version: str = Field(default=DEPENDENCIES["kubectl"]["version"], pattern=r"^v[\d.]+$")
    helm_version: str = Field(default=DEPENDENCIES["helm"]["version"], pattern=r"^v[\d.]+$")
    terraform_version: str = Field(default=str(DEPENDENCIES["terraform"]["version"]), pattern=r"^[\d.]+$")


class MinikubeConfig(BaseSettings):
    """minikube cluster sizing, auto-loaded from MINIKUBE_* env vars.

    Attributes:
        driver: minikube driver name.
        cpus: CPUs allocated to the node.
        memory_mb: Memory allocated to the node, in megabytes.
        kubernetes_version: Kubernetes version without the ``v`` prefix, or
            None to follow the pinned kubectl version.
    """

    model_config = SettingsConfigDict(env_prefix="MINIKUBE_", extra="ignore")

    driver: str = DEFAULT_MINIKUBE_DRIVER
    cpus: int = Field(default=DEFAULT_MINIKUBE_CPUS, ge=1, le=64)
    memory_mb: int = Field(default=DEFAULT_MINIKUBE_MEMORY_MB, ge=1800)
    kubernetes_version: str | None = Field(default=None, pattern=r"^[\d.]+$")


class DeployConfig(BaseSettings):
    """Deployment and verification settings, auto-loaded from SONAR_* env vars.

    Attributes:
        namespace: Namespace created by the Terraform apply.
        postgres_selector: Label selector of the PostgreSQL pods.
        postgres_timeout_seconds: Readiness timeout for PostgreSQL.
        sonarqube_selector: Label selector of the SonarQube pods.
        sonarqube_timeout_seconds: Readiness timeout for SonarQube.
        namespace_max_attempts: Namespace existence checks before giving up.
        namespace_interval_seconds: Delay between namespace checks.
        service_name: SonarQube service targeted by the port-forward.
        service_port: Service port inside the cluster.
        local_port: Local port of the port-forward.
        health_max_attempts: Status endpoint polls before giving up.
        health_interval_seconds: Delay between status polls.
        terraform_dir: Directory holding the Terraform configuration.
        ingress_host: Host name routed by the ingress.
    """

    model_config = SettingsConfigDict(env_prefix="SONAR_", extra="ignore")

    namespace: str = DEFAULT_NAMESPACE
    postgres_selector: str = DEFAULT_POSTGRES_SELECTOR
    postgres_timeout_seconds: int = Field(default=DEFAULT_POSTGRES_TIMEOUT_SECONDS, ge=1)
    sonarqube_selector: str = DEFAULT_SONARQUBE_SELECTOR
    sonarqube_timeout_seconds: int = Field(default=DEFAULT_SONARQUBE_TIMEOUT_SECONDS, ge=1)
    namespace_max_attempts: int = Field(default=DEFAULT_NAMESPACE_MAX_ATTEMPTS, ge=1)
    namespace_interval_seconds: float = Field(default=DEFAULT_NAMESPACE_POLL_INTERVAL_SECONDS, ge=0)
    service_name: str = DEFAULT_SERVICE_NAME
    service_port: int = Field(default=DEFAULT_SERVICE_PORT, ge=1, le=65535)
    local_port: int = Field(default=DEFAULT_LOCAL_PORT, ge=1, le=65535)
    health_max_attempts: int = Field(default=DEFAULT_HEALTH_MAX_ATTEMPTS, ge=1)
    health_interval_seconds: float = Field(default=DEFAULT_HEALTH_POLL_INTERVAL_SECONDS, ge=0)
    terraform_dir: Path = DEFAULT_TERRAFORM_DIR
    ingress_host: str = DEFAULT_INGRESS_HOST


def kubernetes_version(mk_cfg: MinikubeConfig, versions: ToolVersions) -> str:
    """Resolve the cluster Kubernetes version.

    Args:
        mk_cfg: minikube configuration, possibly carrying an explicit version.
        versions: Pinned tool versions.

    Returns:
        The version string without a ``v`` prefix.
    """
    return mk_cfg.kubernetes_version or versions.kubectl_version.removeprefix("v")


# ============================================================================
# Setup options
# ============================================================================

@dataclass(frozen=True)
class SetupOptions:
    """Opt-out switches for the setup pipeline.

    Attributes:
        skip_base_packages: Skip the apt base package install.
        skip_tools: Skip the tool presence ensurer.
        skip_ingress: Skip enabling the ingress addon.
        skip_hosts_entry: Skip the /etc/hosts mapping.
        skip_apply: Skip the Terraform apply.
        skip_verify: Skip readiness polling and the HTTP health check.
    """

    skip_base_packages: bool = False
    skip_tools: bool = False
    skip_ingress: bool = False
    skip_hosts_entry: bool = False
    skip_apply: bool = False
    skip_verify: bool = False


def display_config(
    options: SetupOptions,
    versions: ToolVersions,
    mk_cfg: MinikubeConfig,
    deploy_cfg: DeployConfig,
) -> None:
    """Print the resolved configuration as a table."""
    table = Table(title="Resolved configuration", show_header=True, header_style="bold")
    table.add_column("Setting")
    table.add_column("Value")

    table.add_row("minikube", versions.minikube_version)
    table.add_row("kubectl", versions.kubectl_version)
    table.add_row("helm", versions.helm_version)
    table.add_row("terraform", versions.terraform_version)
    table.add_row("driver", mk_cfg.driver)
    table.add_row("cpus", str(mk_cfg.cpus))
    table.add_row("memory", f"{mk_cfg.memory_mb}MB")
    table.add_row("kubernetes", kubernetes_version(mk_cfg, versions))
    table.add_row("namespace", deploy_cfg.namespace)
    table.add_row("terraform dir", str(deploy_cfg.terraform_dir))
    skipped = [name.removeprefix("skip_") for name, value in asdict(options).items() if value]
    table.add_row("skipped steps", ", ".join(skipped) or "none")
    console.print(table)
