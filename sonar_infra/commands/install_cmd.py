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

"""Install subcommands (tools, base-packages)."""

from __future__ import annotations

import typer

from sonar_infra.config import ToolVersions
from sonar_infra.constants import TOOL_ORDER
from sonar_infra.context import ExecutionContext
from sonar_infra.guard import ensure_sudo_credentials
from sonar_infra.tools import ensure_tools, install_base_packages, tool_inventory

app = typer.Typer(help="Install prerequisites.")


@app.command()
def tools(
    only: list[str] = typer.Option(
        [], "--only", help=f"Restrict to these tools ({', '.join(TOOL_ORDER)}); repeatable"),
) -> None:
    """Install any missing tool at its pinned version."""
    unknown = sorted(set(only) - set(TOOL_ORDER))
    if unknown:
        raise typer.BadParameter(f"unknown tool(s): {', '.join(unknown)}", param_hint="--only")

    ctx = ExecutionContext.capture()
    ensure_sudo_credentials(ctx)
    specs = [spec for spec in tool_inventory(ToolVersions()) if not only or spec.name in only]
    ensure_tools(specs, ctx.user)


@app.command("base-packages")
def base_packages() -> None:
    """Install the apt packages the installers rely on."""
    ensure_sudo_credentials(ExecutionContext.capture())
    install_base_packages()
