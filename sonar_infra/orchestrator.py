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

"""Orchestration functions that compose domain modules into workflows."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace

from rich.panel import Panel

from sonar_infra import console
from sonar_infra.apply import apply_infrastructure, require_terraform_dir
from sonar_infra.cluster import enable_ingress, ensure_hosts_entry, start_cluster
from sonar_infra.config import DeployConfig, MinikubeConfig, SetupOptions, ToolVersions
from sonar_infra.constants import RUNTIME_GROUP
from sonar_infra.context import ExecutionContext
from sonar_infra.errors import PreconditionError, PrivilegeError
from sonar_infra.guard import (
    REMEDIATION_HINT,
    AccessOutcome,
    ensure_runtime_access,
    ensure_sudo_credentials,
    probe_runtime,
    reexec_argv,
    reexec_under_group,
    require_runtime_access,
)
from sonar_infra.health import HealthStatus, verify_http_health
from sonar_infra.polling import StageStatus
from sonar_infra.readiness import wait_for_namespace, wait_for_workload_ready, workload_targets
from sonar_infra.report import print_access_instructions, print_stage_summary
from sonar_infra.tools import ensure_tool, ensure_tools, install_base_packages, tool_inventory
from sonar_infra.utils import command_exists, read_os_release


@dataclass
class PipelineReport:
    """Per-stage outcome of a completed run.

    Attributes:
        stages: Stage name to status, in execution order.
        health: Result of the HTTP check, or None if it did not run.
    """

    stages: dict[str, StageStatus] = field(default_factory=dict)
    health: HealthStatus | None = None

    def record(self, stage: str, status: StageStatus) -> None:
        self.stages[stage] = status

    @property
    def degraded(self) -> bool:
        return StageStatus.DEGRADED in self.stages.values()


# ============================================================================
# Internal helpers
# ============================================================================

def _detect_os() -> None:
    values = read_os_release()
    if not values:
        console.print("[yellow]⚠️  Unable to detect OS (/etc/os-release missing). Proceeding anyway.[/yellow]")
        return
    if values.get("ID") != "ubuntu":
        console.print(f"[yellow]⚠️  Detected OS ID={values.get('ID', 'unknown')}. "
                      "This setup is intended for Ubuntu.[/yellow]")
    console.print(f"[yellow]ℹ️  Detected OS: {values.get('PRETTY_NAME', 'unknown')}[/yellow]")


def preflight(ctx: ExecutionContext, deploy_cfg: DeployConfig, *, require_apply_dir: bool = True) -> None:
    """Check the OS, refresh sudo, and require the Terraform directory.

    Raises:
        PrivilegeError: If sudo credentials cannot be obtained.
        PreconditionError: If the Terraform directory is missing.
    """
    console.print(Panel.fit("Running pre-flight checks", style="bold blue"))
    _detect_os()
    ensure_sudo_credentials(ctx)
    if require_apply_dir:
        require_terraform_dir(deploy_cfg.terraform_dir)
    console.print("[green]✅ Pre-flight checks passed[/green]")


def _run_verification(deploy_cfg: DeployConfig, report: PipelineReport) -> None:
    """Namespace wait (fatal), workload waits and HTTP check (advisory)."""
    report.record("namespace", wait_for_namespace(
        deploy_cfg.namespace,
        max_attempts=deploy_cfg.namespace_max_attempts,
        interval=deploy_cfg.namespace_interval_seconds,
    ))
    for target in workload_targets(deploy_cfg):
        report.record(target.label, wait_for_workload_ready(target))

    report.health = verify_http_health(
        deploy_cfg.namespace,
        deploy_cfg.service_name,
        deploy_cfg.service_port,
        deploy_cfg.local_port,
        max_attempts=deploy_cfg.health_max_attempts,
        interval=deploy_cfg.health_interval_seconds,
    )
    if report.health is HealthStatus.HEALTHY:
        report.record("health check", StageStatus.SUCCESS)
    else:
        console.print("[yellow]⚠️  HTTP readiness check did not confirm within timeout.[/yellow]")
        report.record("health check", StageStatus.DEGRADED)


# ============================================================================
# Public API
# ============================================================================

def run_setup(
    options: SetupOptions | None = None,
    versions: ToolVersions | None = None,
    mk_cfg: MinikubeConfig | None = None,
    deploy_cfg: DeployConfig | None = None,
    *,
    ctx: ExecutionContext | None = None,
    argv: list[str] | None = None,
    probe: Callable[[], bool] = probe_runtime,
) -> PipelineReport:
    """Run the full pipeline from pre-flight to access instructions.

    Stages run strictly in order. Fatal failures raise; workload timeouts and
    an unhealthy HTTP check are recorded as DEGRADED and the run completes.
    When docker needs a group that this process does not have yet, the
    process is replaced and the new one starts over; completed stages are
    idempotent.

    Args:
        options: Opt-out switches, defaults to running every stage.
        versions: Pinned tool versions, defaults to env/dependencies.yaml.
        mk_cfg: minikube sizing, defaults to MINIKUBE_* env.
        deploy_cfg: Deployment settings, defaults to SONAR_* env.
        ctx: Execution context, captured live when omitted.
        argv: Command line to re-execute under the docker group.
        probe: Docker daemon probe.

    Returns:
        The per-stage report.

    Raises:
        SetupError: On any fatal stage.
    """
    options = options or SetupOptions()
    versions = versions or ToolVersions()
    mk_cfg = mk_cfg or MinikubeConfig()
    deploy_cfg = deploy_cfg or DeployConfig()
    ctx = ctx or ExecutionContext.capture()
    argv = argv or reexec_argv()
    report = PipelineReport()

    preflight(ctx, deploy_cfg, require_apply_dir=not options.skip_apply)

    if options.skip_base_packages:
        report.record("base packages", StageStatus.SKIPPED)
    else:
        install_base_packages()
        report.record("base packages", StageStatus.SUCCESS)

    runtime, *tools = tool_inventory(versions)
    if options.skip_tools:
        report.record("container runtime", StageStatus.SKIPPED)
    else:
        console.print(Panel.fit("Ensuring container runtime", style="bold blue"))
        installed = ensure_tool(runtime, ctx.user)
        report.record("container runtime", StageStatus.SUCCESS if installed else StageStatus.SKIPPED)
        if installed:
            # the installer may have granted the docker group
            ctx = replace(ExecutionContext.capture(), reexec_depth=ctx.reexec_depth)

    console.print(Panel.fit("Checking docker access", style="bold blue"))
    require_runtime_access(ctx, argv, probe=probe)
    report.record("docker access", StageStatus.SUCCESS)

    if options.skip_tools:
        report.record("tools", StageStatus.SKIPPED)
    else:
        installed_tools = ensure_tools(tools, ctx.user)
        report.record("tools", StageStatus.SUCCESS if installed_tools else StageStatus.SKIPPED)

    report.record("cluster", start_cluster(mk_cfg, versions))

    if options.skip_ingress:
        report.record("ingress", StageStatus.SKIPPED)
    else:
        report.record("ingress", enable_ingress())

    if options.skip_hosts_entry:
        report.record("hosts entry", StageStatus.SKIPPED)
    else:
        report.record("hosts entry", ensure_hosts_entry(deploy_cfg.ingress_host))

    if options.skip_apply:
        report.record("terraform apply", StageStatus.SKIPPED)
    else:
        apply_infrastructure(deploy_cfg.terraform_dir)
        report.record("terraform apply", StageStatus.SUCCESS)

    if not options.skip_verify:
        _run_verification(deploy_cfg, report)

    console.print(Panel.fit("Summary", style="bold blue"))
    print_stage_summary(report.stages)
    print_access_instructions(deploy_cfg)
    return report


def run_bootstrap(
    *,
    ctx: ExecutionContext | None = None,
    probe: Callable[[], bool] = probe_runtime,
) -> PipelineReport:
    """Make docker usable for the current user, then run the setup.

    Unlike :func:`run_setup`, the bootstrap may add the user to the docker
    group. When the group is not effective yet, the process is replaced by
    ``setup run`` under the group and this function does not return.

    Raises:
        PreconditionError: If docker is not installed.
        PrivilegeError: If docker access cannot be obtained.
    """
    ctx = ctx or ExecutionContext.capture()
    console.print(Panel.fit("Bootstrap", style="bold blue"))
    if not command_exists("docker"):
        raise PreconditionError(
            "Docker not installed",
            hint="Install Docker first, or run 'sonar-infra setup run' which installs it.",
        )

    decision = ensure_runtime_access(ctx, allow_grant=True, probe=probe)
    if decision.outcome is AccessOutcome.REEXEC_REQUIRED:
        reexec_under_group(ctx, reexec_argv("setup", "run"), RUNTIME_GROUP)
    if decision.outcome is AccessOutcome.FATAL:
        raise PrivilegeError(decision.reason, hint=REMEDIATION_HINT)
    return run_setup(ctx=ctx, argv=reexec_argv("setup", "run"), probe=probe)
