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

"""Terraform apply of the namespace and the two Helm releases."""

from __future__ import annotations

from pathlib import Path

import sh
from rich.panel import Panel

from sonar_infra import console
from sonar_infra.errors import ApplyError, PreconditionError


def require_terraform_dir(terraform_dir: Path) -> None:
    """Raise unless *terraform_dir* is a directory.

    Raises:
        PreconditionError: If the directory is missing.
    """
    if not terraform_dir.is_dir():
        raise PreconditionError(
            f"Expected Terraform directory not found: {terraform_dir}",
            hint="Run from the repository (keep its layout intact) or set SONAR_TERRAFORM_DIR.",
        )


def apply_infrastructure(terraform_dir: Path) -> None:
    """Run ``terraform init`` and ``terraform apply`` in *terraform_dir*.

    The Terraform configuration is opaque here; only success or failure
    matters. Re-applying is idempotent.

    Args:
        terraform_dir: Directory holding the Terraform configuration.

    Raises:
        PreconditionError: If the directory is missing.
        ApplyError: If init or apply fails.
    """
    require_terraform_dir(terraform_dir)
    console.print(Panel.fit("Deploying Kubernetes resources via Terraform", style="bold blue"))
    try:
        sh.terraform("init", "-input=false", _cwd=str(terraform_dir))
    except sh.ErrorReturnCode as e:
        raise ApplyError(
            f"terraform init failed: {e.stderr.decode(errors='replace').strip()[-500:]}",
            hint=f"Run 'terraform init' in {terraform_dir} to see the full output.",
        ) from e
    try:
        sh.terraform("apply", "-auto-approve", "-input=false", _cwd=str(terraform_dir), _fg=True)
    except sh.ErrorReturnCode as e:
        raise ApplyError("terraform apply failed", hint="Fix the error above and rerun; apply is idempotent.") from e
    console.print("[green]✅ Terraform apply completed[/green]")
