"""Tests for the per-environment pipeline and run summary."""

import threading
import time

import pytest

from core.errors import ProviderReadError, StateReadError
from core.models import DriftKind, Environment, EnvironmentResult
from core.pipeline import fncReconcileEnvironment, fncRunEnvironments, fncSummarise, fncWithPrincipalNames

from conftest import SUB, arm_assignment, schedule_instance, state_document

READER_GUID = "acdd72a7-3385-48ef-bd42-f606fba81ae7"


@pytest.fixture
def dev():
    return Environment(name="dev", subscription_id=SUB)


class TestReconcileEnvironment:
    """normalise -> exclude -> classify for one environment."""

    def test_end_to_end(self, dev):
        managed_ok = arm_assignment("managed")
        cond_drift = arm_assignment("cond", condition="x == 1", condition_version="2.0")
        unmanaged = arm_assignment("unmanaged")
        pim = arm_assignment("pim")
        inherited = arm_assignment("root", scope="/")

        state = state_document([
            {"id": managed_ok["id"].upper(), "condition": None, "condition_version": None},
            {"id": cond_drift["id"], "condition": "x == 2", "condition_version": "2.0"},
        ])
        instances = [schedule_instance(pim["id"], "2025-01-01T00:00:00Z")]

        result = fncReconcileEnvironment(
            dev, [managed_ok, cond_drift, unmanaged, pim, inherited], instances, state,
            role_names={READER_GUID: "Reader"},
        )

        assert result.ok
        assert result.live_count == 4
        assert result.managed_count == 2
        assert result.excluded == 1
        assert [(r.assignment.principal_id, r.drift_kind) for r in result.drift] == [
            ("principal-cond", DriftKind.CONDITION_MISMATCH),
            ("principal-unmanaged", DriftKind.MISSING),
        ]
        assert all(r.environment == "dev" for r in result.drift)
        assert result.drift[0].assignment.role_name == "Reader"

    def test_missing_pim_data_flags_everything_unmanaged(self, dev):
        pim = arm_assignment("pim")

        result = fncReconcileEnvironment(dev, [pim], None, state_document([]))

        assert result.excluded == 0
        assert [r.drift_kind for r in result.drift] == [DriftKind.MISSING]

    def test_bad_state_raises(self, dev):
        with pytest.raises(StateReadError):
            fncReconcileEnvironment(dev, [], [], "not-a-state")


def test_with_principal_names(dev):
    result = fncReconcileEnvironment(dev, [arm_assignment("a"), arm_assignment("b")], [], state_document([]))

    named = fncWithPrincipalNames(result.drift, {"principal-a": {"name": "Alice", "type": "User"}})

    assert named[0].assignment.principal_display_name == "Alice"
    assert named[1].assignment.display_name == "Not Found"
    assert named[1] is result.drift[1]


class TestRunEnvironments:
    """Error isolation and ordering across environments."""

    def envs(self, *names):
        return [Environment(name=n, subscription_id=f"sub-{n}") for n in names]

    def test_read_errors_are_scoped(self):
        def worker(env):
            if env.name == "broken":
                raise ProviderReadError(env.name, "403 Forbidden")
            if env.name == "nostate":
                raise StateReadError(env.name, "state file not found")
            return EnvironmentResult(environment=env.name)

        results = fncRunEnvironments(self.envs("dev", "broken", "nostate", "prod"), worker)

        assert [r.environment for r in results] == ["dev", "broken", "nostate", "prod"]
        assert [r.ok for r in results] == [True, False, False, True]
        assert "403 Forbidden" in results[1].error

    def test_unexpected_errors_propagate(self):
        def worker(env):
            raise KeyError("bug")

        with pytest.raises(KeyError):
            fncRunEnvironments(self.envs("dev"), worker)

    def test_parallel_results_keep_config_order(self):
        seen = set()
        lock = threading.Lock()

        def worker(env):
            time.sleep(0.05 if env.name == "a" else 0.0)
            with lock:
                seen.add(threading.current_thread().name)
            return EnvironmentResult(environment=env.name)

        results = fncRunEnvironments(self.envs("a", "b", "c", "d"), worker, parallel=4)

        assert [r.environment for r in results] == ["a", "b", "c", "d"]
        assert seen


class TestSummarise:
    """Run-level fold."""

    def test_summary_separates_drift_and_failures(self, dev):
        drifted = fncReconcileEnvironment(dev, [arm_assignment("a")], [], state_document([]))
        clean = EnvironmentResult(environment="prod")
        failed = EnvironmentResult(environment="test", error="[test] state read failed: boom")

        summary = fncSummarise([drifted, clean, failed])

        assert summary["total"] == 1
        assert summary["drift_found"] is True
        assert list(summary["grouped"]) == ["dev", "prod"]
        assert summary["checked"] == ["dev", "prod"]
        assert summary["failed"] == {"test": "[test] state read failed: boom"}
        assert summary["by_kind"] == {"Missing": 1, "ConditionMismatch": 0}

    def test_no_drift(self):
        summary = fncSummarise([EnvironmentResult(environment="dev")])

        assert summary["drift_found"] is False
        assert summary["failed"] == {}
