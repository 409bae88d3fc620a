"""
Shared pytest fixtures for sonar_infra tests.

This module provides:
- KubectlScript: scripted replacement for run_kubectl with call history
- FakeSh: stand-in for the ``sh`` module that records commands
- FakeProcess: stand-in for the kubectl port-forward process
- make_ctx: ExecutionContext factory
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import partial
from pathlib import Path

import pytest
import sh

from sonar_infra.context import ExecutionContext


def error_return_code(cmd: str = "cmd", stderr: bytes = b"boom", stdout: bytes = b"") -> sh.ErrorReturnCode:
    """Build a real sh exit-code exception."""
    return sh.ErrorReturnCode_1(cmd, stdout, stderr)


# =============================================================================
# kubectl
# =============================================================================

class KubectlScript:
    """
    Replace run_kubectl with fragment-matched responses.

    Responses registered for a fragment are consumed in order; the last one
    repeats. Unmatched commands fail.

    Usage:
        def test_ns(kubectl):
            kubectl.on("get namespace", (False, "", "NotFound"), (True, "ns", ""))
            ...
            assert kubectl.count("get namespace") == 2
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self._rules: list[tuple[str, list[tuple[bool, str, str]]]] = []

    def on(self, fragment: str, *responses: tuple[bool, str, str]) -> KubectlScript:
        self._rules.append((fragment, list(responses)))
        return self

    def __call__(self, args: list[str], timeout: int = 30) -> tuple[bool, str, str]:
        self.calls.append(list(args))
        command = " ".join(args)
        for fragment, responses in self._rules:
            if fragment in command:
                return responses.pop(0) if len(responses) > 1 else responses[0]
        return False, "", f"mock not configured for: {command}"

    def count(self, fragment: str) -> int:
        return sum(1 for call in self.calls if fragment in " ".join(call))


@pytest.fixture
def kubectl(monkeypatch) -> KubectlScript:
    script = KubectlScript()
    for module in ("sonar_infra.readiness", "sonar_infra.cluster", "sonar_infra.health"):
        monkeypatch.setattr(f"{module}.run_kubectl", script)
    return script


# =============================================================================
# sh
# =============================================================================

class FakeSh:
    """Record ``sh.<command>(...)`` calls; fail or answer by argument prefix."""

    ErrorReturnCode = sh.ErrorReturnCode

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.kwargs: list[dict] = []
        self._failures: list[tuple[str, tuple, Exception]] = []
        self._outputs: list[tuple[str, tuple, str]] = []

    def fail(self, command: str, *prefix: str, stderr: bytes = b"boom", stdout: bytes = b"") -> FakeSh:
        self._failures.append((command, prefix, error_return_code(command, stderr, stdout)))
        return self

    def output(self, command: str, *prefix: str, text: str) -> FakeSh:
        self._outputs.append((command, prefix, text))
        return self

    def called(self, command: str, *prefix: str) -> bool:
        return any(c[0] == command and c[1:1 + len(prefix)] == prefix for c in self.calls)

    def __getattr__(self, name: str):
        if name.startswith("_"):
            raise AttributeError(name)
        return partial(self._run, name)

    def _run(self, name: str, *args, **kwargs):
        self.calls.append((name, *args))
        self.kwargs.append(kwargs)
        for command, prefix, exc in self._failures:
            if command == name and args[:len(prefix)] == prefix:
                raise exc
        for command, prefix, text in self._outputs:
            if command == name and args[:len(prefix)] == prefix:
                return text
        return ""


@pytest.fixture
def fake_sh() -> FakeSh:
    return FakeSh()


# =============================================================================
# Processes and sleeping
# =============================================================================

@dataclass
class FakeProcess:
    """Popen stand-in that stays alive until terminated.

    ``stderr_text`` is what the process writes to its stderr file.
    """

    args: list[str]
    exit_code: int | None = None
    terminated: bool = False
    killed: bool = False
    stderr_text: str = ""

    def poll(self) -> int | None:
        return self.exit_code

    def terminate(self) -> None:
        self.terminated = True
        self.exit_code = -15

    def kill(self) -> None:
        self.killed = True
        self.exit_code = -9

    def wait(self, timeout: float | None = None) -> int | None:
        return self.exit_code


@dataclass
class SleepRecorder:
    durations: list[float] = field(default_factory=list)

    def __call__(self, seconds: float) -> None:
        self.durations.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.durations)


@pytest.fixture
def no_sleep(monkeypatch) -> SleepRecorder:
    """Make every bounded poll instant while recording requested delays."""
    recorder = SleepRecorder()
    monkeypatch.setattr("sonar_infra.polling.time.sleep", recorder)
    return recorder


# =============================================================================
# Execution context
# =============================================================================

@pytest.fixture
def make_ctx(tmp_path: Path):
    def _make(**overrides) -> ExecutionContext:
        values = dict(
            user="dev",
            uid=1000,
            effective_groups=frozenset({"dev"}),
            configured_groups=frozenset({"dev"}),
            sudo_cached=True,
            reexec_depth=0,
            cwd=tmp_path,
        )
        values.update(overrides)
        return ExecutionContext(**values)
    return _make
