"""
Tests for namespace and workload readiness polling.
"""

import pytest

from sonar_infra import readiness
from sonar_infra.config import DeployConfig
from sonar_infra.errors import StageTimeoutError
from sonar_infra.polling import StageStatus, TimeoutPolicy
from sonar_infra.readiness import (
    ReadinessTarget,
    wait_for_namespace,
    wait_for_pods_ready,
    wait_for_workload_ready,
    workload_targets,
)

SONARQUBE = ReadinessTarget("sonarqube", "app=sonarqube", 20, "SonarQube")


class TestWaitForNamespace:
    """Test the fixed-interval namespace poll."""

    def test_absent_namespace_checks_exactly_max_attempts(self, kubectl, no_sleep):
        kubectl.on("get namespace", (False, "", "NotFound"))

        with pytest.raises(StageTimeoutError, match="did not appear") as exc:
            wait_for_namespace("sonarqube", max_attempts=60, interval=2)

        assert kubectl.count("get namespace sonarqube") == 60
        assert no_sleep.durations == [2] * 59
        assert "Terraform" in exc.value.hint

    def test_namespace_appearing_on_third_check(self, kubectl, no_sleep):
        kubectl.on("get namespace", (False, "", ""), (False, "", ""), (True, "namespace/sonarqube", ""))

        assert wait_for_namespace("sonarqube", max_attempts=60, interval=2) is StageStatus.SUCCESS
        assert kubectl.count("get namespace") == 3
        assert no_sleep.total == 4


class TestWaitForPodsReady:
    """Test the presence poll followed by one blocking kubectl wait."""

    def test_zero_pods_degrades_with_diagnostics(self, kubectl, no_sleep):
        kubectl.on("-o name", (True, "", ""))
        kubectl.on("-o wide", (True, "No resources found in sonarqube namespace.", ""))
        kubectl.on("get events", (True, "LAST SEEN   TYPE   REASON\n", ""))

        assert wait_for_workload_ready(SONARQUBE) is StageStatus.DEGRADED
        assert kubectl.count("-o name") == 4
        assert kubectl.count("wait --namespace") == 0
        assert kubectl.count("-o wide") == 1
        assert kubectl.count("get events") == 1

    def test_ready_pods_succeed(self, kubectl, no_sleep):
        kubectl.on("-o name", (True, "", ""), (True, "pod/sonarqube-0", ""))
        kubectl.on("wait --namespace sonarqube", (True, "pod/sonarqube-0 condition met", ""))

        assert wait_for_workload_ready(SONARQUBE) is StageStatus.SUCCESS
        assert kubectl.count("get events") == 0
        wait = next(call for call in kubectl.calls if call[0] == "wait")
        assert "--selector=app=sonarqube" in wait

    def test_wait_timeout_degrades(self, kubectl, no_sleep):
        kubectl.on("-o name", (True, "pod/sonarqube-0", ""))
        kubectl.on("wait --namespace", (False, "", "timed out waiting for the condition"))
        kubectl.on("-o wide", (True, "sonarqube-0   0/1   Running", ""))
        kubectl.on("get events", (True, "", ""))

        assert wait_for_workload_ready(SONARQUBE) is StageStatus.DEGRADED
        assert kubectl.count("wait --namespace") == 1
        assert kubectl.count("-o wide") == 1

    def test_fatal_policy_raises(self, kubectl, no_sleep):
        kubectl.on("-o name", (True, "", ""))
        kubectl.on("-o wide", (True, "", ""))
        kubectl.on("get events", (True, "", ""))

        with pytest.raises(StageTimeoutError, match="SonarQube pods not ready within 20s"):
            wait_for_pods_ready(SONARQUBE, policy=TimeoutPolicy.FATAL)

    def test_events_are_trimmed_to_the_tail(self, kubectl, no_sleep, capsys):
        events = "\n".join(f"event-{i}" for i in range(80))
        kubectl.on("-o name", (True, "", ""))
        kubectl.on("-o wide", (True, "", ""))
        kubectl.on("get events", (True, events, ""))

        wait_for_workload_ready(SONARQUBE)

        err = capsys.readouterr().err
        assert "event-79" in err
        assert "event-29" not in err
        assert "event-30" in err


class SlowClock:
    """Monotonic clock that advances on sleeps and on every kubectl call."""

    def __init__(self, call_cost: float):
        self.now = 1000.0
        self.call_cost = call_cost

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds

    def slow(self, run):
        def _run(args, timeout=30):
            self.now += self.call_cost
            return run(args, timeout=timeout)
        return _run


class TestWaitDeadline:
    """Test that slow kubectl calls count against the workload timeout."""

    @pytest.fixture
    def clock(self, monkeypatch, kubectl):
        clock = SlowClock(call_cost=3)
        monkeypatch.setattr("sonar_infra.polling.time.monotonic", clock.monotonic)
        monkeypatch.setattr("sonar_infra.polling.time.sleep", clock.sleep)
        monkeypatch.setattr(readiness, "run_kubectl", clock.slow(kubectl))
        return clock

    def test_zero_pods_stays_within_timeout(self, clock, kubectl):
        kubectl.on("-o name", (True, "", ""))
        kubectl.on("-o wide", (True, "", ""))
        kubectl.on("get events", (True, "", ""))
        start = clock.now

        status = wait_for_workload_ready(ReadinessTarget("sonarqube", "app=sonarqube", 600, "SonarQube"))

        assert status is StageStatus.DEGRADED
        # one presence check may start just before the deadline, then two diagnostic calls
        assert clock.now - start <= 600 + 3 + 6
        assert kubectl.count("-o name") < 600 // 5

    def test_presence_check_timeout_shrinks_near_deadline(self, clock, kubectl, monkeypatch):
        kubectl.on("-o name", (True, "", ""))
        kubectl.on("-o wide", (True, "", ""))
        kubectl.on("get events", (True, "", ""))
        timeouts = []

        def _record(args, timeout=30):
            if "name" in args:
                timeouts.append(timeout)
            return kubectl(args, timeout=timeout)

        monkeypatch.setattr(readiness, "run_kubectl", clock.slow(_record))
        wait_for_workload_ready(ReadinessTarget("sonarqube", "app=sonarqube", 20, "SonarQube"))

        assert timeouts == [20, 12, 4, 1]

    def test_no_wait_when_pods_appear_after_deadline(self, clock, kubectl):
        clock.call_cost = 25
        kubectl.on("-o name", (True, "pod/sonarqube-0", ""))
        kubectl.on("-o wide", (True, "", ""))
        kubectl.on("get events", (True, "", ""))

        status = wait_for_workload_ready(ReadinessTarget("sonarqube", "app=sonarqube", 20, "SonarQube"))

        assert status is StageStatus.DEGRADED
        assert kubectl.count("wait --namespace") == 0


class TestWorkloadTargets:
    def test_database_first(self):
        targets = workload_targets(DeployConfig())
        assert [t.name for t in targets] == ["PostgreSQL", "SonarQube"]
        assert targets[0].timeout_seconds == 600
        assert targets[1].timeout_seconds == 900
        assert {t.namespace for t in targets} == {"sonarqube"}
