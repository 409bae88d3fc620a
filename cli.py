#!/usr/bin/env python3
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

"""
cli.py - SonarQube on Minikube setup CLI.

Subcommands:
    setup     Composite workflows (run, bootstrap)
    install   Prerequisites (tools, base-packages)
    cluster   minikube lifecycle (start, ingress, hosts)
    verify    Checks against an existing deployment (namespace, workloads, health)

Examples:
    # First run as a user who is not in the docker group yet
    ./cli.py setup bootstrap

    # Full setup (default - no flags needed!)
    ./cli.py setup run

    # Re-deploy on a running cluster without touching tools or ingress
    ./cli.py setup run --skip-base-packages --skip-tools --skip-ingress

    # Only check that SonarQube answers
    ./cli.py verify health

Environment Variables:
    MINIKUBE_CPUS, MINIKUBE_MEMORY_MB, MINIKUBE_DRIVER   cluster sizing
    MINIKUBE_VERSION, KUBECTL_VERSION, HELM_VERSION, TERRAFORM_VERSION   tool pins
    SONAR_NAMESPACE, SONAR_TERRAFORM_DIR, SONAR_LOCAL_PORT, ...   deployment

For detailed usage information, run: ./cli.py --help
"""

from __future__ import annotations

import logging
import sys

import typer

from sonar_infra import console
from sonar_infra.commands import (
    cluster_cmd,
    install_cmd,
    setup_cmd,
    verify_cmd,
)
from sonar_infra.errors import SetupError

app = typer.Typer(
    help="SonarQube on Minikube setup CLI.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log commands and poll attempts"),
) -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.add_typer(setup_cmd.app, name="setup")
app.add_typer(install_cmd.app, name="install")
app.add_typer(cluster_cmd.app, name="cluster")
app.add_typer(verify_cmd.app, name="verify")


def main() -> None:
    try:
        app()
    except SetupError as e:
        console.print(f"[red]❌ {e}[/red]")
        if e.hint:
            console.print(f"[yellow]   {e.hint}[/yellow]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
