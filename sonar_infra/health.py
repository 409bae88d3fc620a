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

"""HTTP health verification through a scoped kubectl port-forward."""

from __future__ import annotations

import signal
import socket
import subprocess
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import IO

import requests
from rich.panel import Panel

from sonar_infra import console, logger
from sonar_infra.constants import (
    HTTP_REQUEST_TIMEOUT_SECONDS,
    STATUS_ENDPOINT,
    STATUS_FIELD,
    STATUS_UP,
    TUNNEL_BIND_MAX_ATTEMPTS,
    TUNNEL_BIND_POLL_INTERVAL_SECONDS,
    TUNNEL_STOP_TIMEOUT_SECONDS,
)
from sonar_infra.errors import StageTimeoutError, TunnelError
from sonar_infra.polling import TimeoutPolicy, poll_until
from sonar_infra.utils import run_kubectl

UNWIND_SIGNALS = (signal.SIGTERM, signal.SIGHUP)


class HealthStatus(Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass
class TunnelSession:
    """A running port-forward owned by the health verifier.

    Attributes:
        namespace: Namespace of the service.
        service: Service name.
        local_port: Port bound on 127.0.0.1.
        remote_port: Service port inside the cluster.
        process: The kubectl port-forward process.
        stderr_log: File collecting the process stderr.
    """

    namespace: str
    service: str
    local_port: int
    remote_port: int
    process: subprocess.Popen
    stderr_log: IO[str] | None = None

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.local_port}"

    def running(self) -> bool:
        return self.process.poll() is None

    def exit_message(self) -> str:
        """Return the tail of what kubectl wrote to stderr."""
        if self.stderr_log is None:
            return ""
        self.stderr_log.flush()
        self.stderr_log.seek(0)
        return self.stderr_log.read().strip()[-200:]


# ============================================================================
# Tunnel
# ============================================================================

def _port_open(port: int) -> bool:
    try:
        with socket.create_connection(("127.0.0.1", port), timeout=1):
            return True
    except OSError:
        return False


def stop_process(proc: subprocess.Popen, timeout: float = TUNNEL_STOP_TIMEOUT_SECONDS) -> None:
    """Terminate *proc*, escalating to kill if it does not exit in time."""
    if proc.poll() is not None:
        return
    proc.terminate()
    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()


def _raise_system_exit(signum, frame) -> None:
    raise SystemExit(128 + signum)


@contextmanager
def _unwind_on_signals() -> Iterator[None]:
    """Turn SIGTERM and SIGHUP into SystemExit so ``finally`` blocks run.

    Handlers can only be installed from the main thread; elsewhere this is
    a no-op.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = {sig: signal.signal(sig, _raise_system_exit) for sig in UNWIND_SIGNALS}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


@contextmanager
def port_forward(
    namespace: str,
    service: str,
    remote_port: int,
    local_port: int,
    *,
    bind_attempts: int = TUNNEL_BIND_MAX_ATTEMPTS,
    bind_interval: float = TUNNEL_BIND_POLL_INTERVAL_SECONDS,
) -> Iterator[TunnelSession]:
    """Forward ``127.0.0.1:<local_port>`` to ``svc/<service>:<remote_port>``.

    The process is started in its own session and is always stopped on
    exit from the block: normal return, exception, KeyboardInterrupt, or
    SIGTERM/SIGHUP delivered to this process.

    Args:
        namespace: Namespace of the service.
        service: Service name.
        remote_port: Service port inside the cluster.
        local_port: Local port to bind.
        bind_attempts: Connection checks before the tunnel is declared dead.
        bind_interval: Seconds between connection checks.

    Yields:
        The running tunnel session.

    Raises:
        TunnelError: If kubectl exits early or the port never accepts connections.
    """
    # not a pipe: nothing drains stderr while the status is polled
    with _unwind_on_signals(), tempfile.TemporaryFile(mode="w+", prefix="sonar-infra-pf-") as stderr_log:
        proc = subprocess.Popen(
            ["kubectl", "-n", namespace, "port-forward", f"svc/{service}", f"{local_port}:{remote_port}"],
            stdout=subprocess.DEVNULL,
            stderr=stderr_log,
            text=True,
            start_new_session=True,
        )
        session = TunnelSession(namespace, service, local_port, remote_port, proc, stderr_log)
        try:
            def _bound() -> bool:
                if not session.running():
                    raise TunnelError(f"kubectl port-forward exited early: {session.exit_message()}")
                return _port_open(local_port)

            try:
                poll_until(_bound, max_attempts=bind_attempts, interval=bind_interval,
                           policy=TimeoutPolicy.FATAL, description=f"port-forward to {service}")
            except StageTimeoutError as err:
                raise TunnelError(f"127.0.0.1:{local_port} never accepted connections") from err

            logger.debug("tunnel ready: %s -> svc/%s:%d", session.url, service, remote_port)
            yield session
        finally:
            stop_process(proc)
            logger.debug("tunnel to svc/%s stopped", service)


# ============================================================================
# Status polling
# ============================================================================

def fetch_status(base_url: str) -> str | None:
    """Return the ``status`` field of the status endpoint, or None on any failure."""
    try:
        response = requests.get(f"{base_url}{STATUS_ENDPOINT}", timeout=HTTP_REQUEST_TIMEOUT_SECONDS)
        response.raise_for_status()
        payload = response.json()
    except (requests.exceptions.RequestException, ValueError) as err:
        logger.debug("status request failed: %s", err)
        return None
    if not isinstance(payload, dict):
        return None
    status = payload.get(STATUS_FIELD)
    return str(status) if status is not None else None


def verify_http_health(
    namespace: str,
    service: str,
    remote_port: int,
    local_port: int,
    max_attempts: int,
    interval: float,
) -> HealthStatus:
    """Poll the status endpoint through a temporary tunnel.

    Never raises for an unhealthy service; the caller reports the result
    without failing the run.

    Args:
        namespace: Namespace of the service.
        service: Service name.
        remote_port: Service port inside the cluster.
        local_port: Local port for the tunnel.
        max_attempts: Status polls before giving up.
        interval: Seconds between polls.

    Returns:
        HEALTHY once the status is UP, UNHEALTHY on exhaustion or tunnel failure.
    """
    console.print(Panel.fit(
        f"Verifying HTTP readiness via port-forward (localhost:{local_port})", style="bold blue",
    ))

    def _up(session: TunnelSession) -> bool:
        if not session.running():
            raise TunnelError(f"kubectl port-forward exited during polling: {session.exit_message()}")
        status = fetch_status(session.url)
        logger.debug("status endpoint reported %s", status)
        return status is not None and status.upper() == STATUS_UP

    healthy = False
    try:
        with port_forward(namespace, service, remote_port, local_port) as session:
            healthy = poll_until(
                lambda: _up(session),
                max_attempts=max_attempts,
                interval=interval,
                policy=TimeoutPolicy.DEGRADED,
                description=f"{service} status endpoint",
            )
    except TunnelError as err:
        console.print(f"[yellow]⚠️  {err}[/yellow]")

    if healthy:
        console.print(f"[green]✅ {service} is responding on localhost:{local_port}[/green]")
        return HealthStatus.HEALTHY

    console.print(f"[yellow]⚠️  {service} did not report {STATUS_UP} in time via port-forward. "
                  f"Showing pod status:[/yellow]")
    _, pods, pods_err = run_kubectl(["get", "pods", "-n", namespace, "-o", "wide"])
    console.print(pods or pods_err, markup=False, highlight=False)
    return HealthStatus.UNHEALTHY
