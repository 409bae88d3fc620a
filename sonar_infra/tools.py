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

"""Tool presence ensurer: docker, minikube, kubectl, helm, terraform."""

from __future__ import annotations

import tarfile
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path

import requests
import sh
from rich.panel import Panel

from sonar_infra import console, logger
from sonar_infra.config import ToolVersions
from sonar_infra.constants import (
    APT_KEYRING_DIR,
    DOCKER_APT_SOURCE,
    DOCKER_KEYRING,
    DOWNLOAD_CHUNK_BYTES,
    DOWNLOAD_TIMEOUT_SECONDS,
    RUNTIME_GROUP,
    TOOL_INSTALL_DIR,
    dep_value,
)
from sonar_infra.errors import ToolInstallError
from sonar_infra.utils import command_exists, privileged, read_os_release

INSTALL_ERRORS = (
    sh.ErrorReturnCode,
    requests.exceptions.RequestException,
    OSError,
    tarfile.TarError,
    zipfile.BadZipFile,
    KeyError,
)


@dataclass(frozen=True)
class ToolSpec:
    """One entry of the tool inventory.

    Attributes:
        name: Command name, also the installed binary name.
        version: Pinned version, informational for apt-managed tools.
        source: Download URL, or apt repository URL for ``apt`` tools.
        kind: Install method: ``apt``, ``deb``, ``binary``, ``tar`` or ``zip``.
        member: Path of the binary inside a ``tar`` or ``zip`` archive.
    """

    name: str
    version: str
    source: str
    kind: str
    member: str | None = None


def _release_url(name: str, version: str) -> str:
    template = dep_value(name, "url")
    return template.format(version=version, bare_version=version.removeprefix("v"))


def tool_inventory(versions: ToolVersions) -> list[ToolSpec]:
    """Build the ordered tool list for the pinned versions.

    Args:
        versions: Pinned tool versions.

    Returns:
        Specs in install order: runtime, cluster manager, API client,
        package manager, declarative applier.
    """
    return [
        ToolSpec("docker", "stable", dep_value("docker", "repo_url"), "apt"),
        ToolSpec("minikube", versions.minikube_version,
                 _release_url("minikube", versions.minikube_version), "deb"),
        ToolSpec("kubectl", versions.kubectl_version,
                 _release_url("kubectl", versions.kubectl_version), "binary"),
        ToolSpec("helm", versions.helm_version,
                 _release_url("helm", versions.helm_version), "tar", dep_value("helm", "member")),
        ToolSpec("terraform", versions.terraform_version,
                 _release_url("terraform", versions.terraform_version), "zip", dep_value("terraform", "member")),
    ]


# ============================================================================
# Download and unpack
# ============================================================================

def download(url: str, dest: Path) -> Path:
    """Stream *url* to *dest*.

    Raises:
        requests.exceptions.RequestException: On HTTP or connection errors.
    """
    logger.debug("downloading %s -> %s", url, dest)
    with requests.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT_SECONDS) as response:
        response.raise_for_status()
        with open(dest, "wb") as f:
            for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_BYTES):
                f.write(chunk)
    return dest


def extract_member(archive: Path, kind: str, member: str, workdir: Path) -> Path:
    """Extract a single file from a tar.gz or zip archive.

    Args:
        archive: Archive path.
        kind: ``tar`` or ``zip``.
        member: Path of the file inside the archive.
        workdir: Directory to write the extracted file into.

    Returns:
        Path of the extracted file.

    Raises:
        KeyError: If the member is not in the archive.
    """
    target = workdir / Path(member).name
    if kind == "tar":
        with tarfile.open(archive, "r:gz") as tar:
            source = tar.extractfile(member)
            if source is None:
                raise KeyError(member)
            with source, open(target, "wb") as out:
                out.write(source.read())
    else:
        with zipfile.ZipFile(archive) as zf, zf.open(member) as source, open(target, "wb") as out:
            out.write(source.read())
    return target


def install_binary(path: Path, name: str) -> None:
    privileged("install", "-m", "0755", str(path), str(TOOL_INSTALL_DIR / name))


# ============================================================================
# Docker (apt repository)
# ============================================================================

def _best_effort(*args: str) -> None:
    try:
        privileged(*args)
    except sh.ErrorReturnCode as err:
        logger.debug("ignored failure of %s: %s", " ".join(args), err)


def install_docker(user: str) -> None:
    """Install Docker Engine from the Docker apt repository.

    Enables and starts the service and adds *user* to the docker group;
    those final steps are best-effort.

    Args:
        user: Login to add to the docker group.
    """
    codename = read_os_release().get("VERSION_CODENAME")
    if not codename:
        raise OSError("VERSION_CODENAME missing from os-release")
    arch = str(sh.dpkg("--print-architecture")).strip()

    response = requests.get(dep_value("docker", "gpg_url"), timeout=DOWNLOAD_TIMEOUT_SECONDS)
    response.raise_for_status()

    privileged("install", "-m", "0755", "-d", APT_KEYRING_DIR)
    privileged("gpg", "--batch", "--yes", "--dearmor", "-o", DOCKER_KEYRING, _in=response.content)
    privileged("chmod", "a+r", DOCKER_KEYRING)
    source = f"deb [arch={arch} signed-by={DOCKER_KEYRING}] {dep_value('docker', 'repo_url')} {codename} stable\n"
    privileged("tee", DOCKER_APT_SOURCE, _in=source)
    privileged("apt-get", "update", "-y")
    privileged("apt-get", "install", "-y", *dep_value("docker", "packages", default=[]))

    _best_effort("systemctl", "enable", "docker")
    _best_effort("systemctl", "start", "docker")
    _best_effort("groupadd", "-f", RUNTIME_GROUP)
    _best_effort("usermod", "-aG", RUNTIME_GROUP, user)


# ============================================================================
# Ensurer
# ============================================================================

def install_tool(spec: ToolSpec, user: str) -> None:
    """Run the install method of *spec* without checking the result."""
    if spec.kind == "apt":
        install_docker(user)
        return
    with tempfile.TemporaryDirectory(prefix=f"sonar-infra-{spec.name}-") as tmp:
        workdir = Path(tmp)
        artifact = download(spec.source, workdir / Path(spec.source).name)
        if spec.kind == "deb":
            privileged("dpkg", "-i", str(artifact))
        elif spec.kind == "binary":
            install_binary(artifact, spec.name)
        elif spec.kind in ("tar", "zip"):
            install_binary(extract_member(artifact, spec.kind, spec.member or spec.name, workdir), spec.name)
        else:
            raise ToolInstallError(f"Unknown install kind '{spec.kind}' for {spec.name}")


def ensure_tool(spec: ToolSpec, user: str) -> bool:
    """Install *spec* unless its command is already on PATH.

    Args:
        spec: Tool to ensure.
        user: Login used by installers that grant group access.

    Returns:
        True if the tool was installed now, False if it was already present.

    Raises:
        ToolInstallError: If the install fails or the command is still
            missing afterwards.
    """
    if command_exists(spec.name):
        console.print(f"[green]✓ {spec.name} already installed, skipping[/green]")
        return False

    console.print(f"[yellow]ℹ️  Installing {spec.name} ({spec.version})...[/yellow]")
    try:
        install_tool(spec, user)
    except INSTALL_ERRORS as err:
        raise ToolInstallError(
            f"Failed to install {spec.name}: {err}",
            hint=f"Install {spec.name} manually from {spec.source} and rerun.",
        ) from err

    if not command_exists(spec.name):
        raise ToolInstallError(
            f"{spec.name} is still missing after installation",
            hint=f"Check that {TOOL_INSTALL_DIR} is on PATH.",
        )
    console.print(f"[green]✅ {spec.name} installed[/green]")
    return True


def ensure_tools(specs: list[ToolSpec], user: str) -> list[str]:
    """Ensure every tool in order, stopping at the first failure.

    Returns:
        Names of the tools installed during this call.
    """
    console.print(Panel.fit("Ensuring required tools", style="bold blue"))
    return [spec.name for spec in specs if ensure_tool(spec, user)]


def install_base_packages(packages: list[str] | None = None) -> None:
    """Install the apt packages the installers rely on.

    Raises:
        ToolInstallError: If apt-get fails.
    """
    packages = packages or dep_value("base_packages", default=[])
    console.print(Panel.fit("Installing base system dependencies", style="bold blue"))
    try:
        privileged("apt-get", "update", "-y")
        privileged("apt-get", "install", "-y", *packages)
    except sh.ErrorReturnCode as err:
        raise ToolInstallError("Failed to install base packages", hint="Check apt sources and connectivity.") from err
    console.print("[green]✅ Base packages installed[/green]")
