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

"""Fatal error types raised by pipeline stages."""

from __future__ import annotations


class SetupError(RuntimeError):
    """A fatal stage failure that aborts the pipeline.

    Attributes:
        hint: Optional remediation shown to the operator after the message.
    """

    def __init__(self, message: str, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class PreconditionError(SetupError):
    """A required input (directory, tool, OS facility) is missing."""


class PrivilegeError(SetupError):
    """The container runtime cannot be made usable for the current user."""


class ToolInstallError(SetupError):
    """A required tool is still absent after its install attempt."""


class ClusterError(SetupError):
    """minikube failed to start or report its state."""


class ApplyError(SetupError):
    """The Terraform apply failed."""


class StageTimeoutError(SetupError):
    """A bounded wait with a fatal timeout policy ran out of attempts."""


class TunnelError(SetupError):
    """The port-forward tunnel could not be established."""
