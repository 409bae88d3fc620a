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

"""Constants, dependency loading, and dep_value helper."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

# -- Resolved paths --
PACKAGE_DIR = Path(__file__).resolve().parent
PROJECT_DIR = PACKAGE_DIR.parent


def load_dependencies() -> dict:
    """Load pinned tool versions and download sources from dependencies.yaml.

    Returns:
        Parsed YAML content as a nested dictionary.
    """
    deps_file = PACKAGE_DIR / "dependencies.yaml"
    with open(deps_file) as f:
        return yaml.safe_load(f)


DEPENDENCIES = load_dependencies()


def dep_value(*keys: str, default: Any = None) -> Any:
    """Safely traverse the DEPENDENCIES dict by key path.

    Args:
        *keys: Sequence of dictionary keys to traverse.
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.
    """
    node = DEPENDENCIES
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


# -- Privilege guard --
RUNTIME_GROUP = "docker"
REEXEC_DEPTH_ENV = "SONAR_INFRA_REEXEC_DEPTH"
MAX_REEXEC_DEPTH = 1

# -- Tools --
TOOL_ORDER = ("docker", "minikube", "kubectl", "helm", "terraform")
TOOL_INSTALL_DIR = Path("/usr/local/bin")
DOWNLOAD_CHUNK_BYTES = 1 << 16
DOWNLOAD_TIMEOUT_SECONDS = 120
APT_KEYRING_DIR = "/etc/apt/keyrings"
DOCKER_KEYRING = f"{APT_KEYRING_DIR}/docker.gpg"
DOCKER_APT_SOURCE = "/etc/apt/sources.list.d/docker.list"

# -- Cluster --
NODE_READY_TIMEOUT_SECONDS = 300
MINIKUBE_RUNNING_STATE = "Running"

# -- Ingress --
INGRESS_ADDON = "ingress"
NS_INGRESS = "ingress-nginx"
INGRESS_CONTROLLER_SELECTOR = "app.kubernetes.io/component=controller"
INGRESS_READY_TIMEOUT_SECONDS = 300

# -- Readiness --
PODS_PRESENT_POLL_INTERVAL_SECONDS = 5
PRESENCE_CHECK_TIMEOUT_SECONDS = 30
KUBECTL_GRACE_SECONDS = 10
DIAGNOSTIC_EVENT_LINES = 50

# -- Deployment defaults --
DEFAULT_NAMESPACE = "sonarqube"
DEFAULT_POSTGRES_SELECTOR = "app=postgresql"
DEFAULT_SONARQUBE_SELECTOR = "app=sonarqube"
DEFAULT_POSTGRES_TIMEOUT_SECONDS = 600
DEFAULT_SONARQUBE_TIMEOUT_SECONDS = 900
DEFAULT_NAMESPACE_MAX_ATTEMPTS = 60
DEFAULT_NAMESPACE_POLL_INTERVAL_SECONDS = 2.0
DEFAULT_TERRAFORM_DIR = PROJECT_DIR / "terraform"
DEFAULT_INGRESS_HOST = "sonarqube.local"

# -- Health check --
DEFAULT_SERVICE_NAME = "sonarqube-sonarqube"
DEFAULT_SERVICE_PORT = 9000
DEFAULT_LOCAL_PORT = 9000
STATUS_ENDPOINT = "/api/system/status"
STATUS_FIELD = "status"
STATUS_UP = "UP"
DEFAULT_HEALTH_MAX_ATTEMPTS = 90
DEFAULT_HEALTH_POLL_INTERVAL_SECONDS = 2.0
HTTP_REQUEST_TIMEOUT_SECONDS = 5
TUNNEL_BIND_MAX_ATTEMPTS = 20
TUNNEL_BIND_POLL_INTERVAL_SECONDS = 0.5
TUNNEL_STOP_TIMEOUT_SECONDS = 5

# -- Minikube defaults --
DEFAULT_MINIKUBE_DRIVER = "docker"
DEFAULT_MINIKUBE_CPUS = 2
DEFAULT_MINIKUBE_MEMORY_MB = 4096

# -- Host files --
HOSTS_FILE = Path("/etc/hosts")
OS_RELEASE_FILE = Path("/etc/os-release")
