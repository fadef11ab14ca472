"""Unit tests for sensor delegation and Prometheus metrics."""

import pytest
from prometheus_client import CollectorRegistry

from helmapp.sensors import OperatorSensor, PrometheusMonitor, SensorDelegate


class StatefulSensor(OperatorSensor):
    def __init__(self, tag):
        self.tag = tag
        self.completed = []
        self.transitions = []

    def on_reconcile_start(self, name, namespace, generation, phase):
        return {"tag": self.tag}

    def on_reconcile_complete(self, name, namespace, state, success, error=None):
        self.completed.append((name, state, success))

    def on_phase_transition(self, name, namespace, from_phase, to_phase):
        self.transitions.append((from_phase, to_phase))


class BrokenSensor(OperatorSensor):
    def on_reconcile_start(self, name, namespace, generation, phase):
        raise RuntimeError("broken")

    def on_phase_transition(self, name, namespace, from_phase, to_phase):
        raise RuntimeError("broken")


class TestSensorDelegate:
    """Tests for fan-out to several sensors."""

    def test_each_sensor_gets_its_own_state(self):
        a, b = StatefulSensor("a"), StatefulSensor("b")
        delegate = SensorDelegate()
        delegate.add(a)
        delegate.add(b)
        state = delegate.on_reconcile_start("phpmyadmin", "default", 1, "Detecting")
        delegate.on_reconcile_complete("phpmyadmin", "default", state, True)
        assert a.completed == [("phpmyadmin", {"tag": "a"}, True)]
        assert b.completed == [("phpmyadmin", {"tag": "b"}, True)]

    def test_failing_sensor_does_not_stop_others(self):
        good = StatefulSensor("good")
        delegate = SensorDelegate()
        delegate.add(BrokenSensor())
        delegate.add(good)
        state = delegate.on_reconcile_start("phpmyadmin", "default", 1, "")
        delegate.on_phase_transition("phpmyadmin", "default", "", "Detecting")
        delegate.on_reconcile_complete("phpmyadmin", "default", state, True)
        assert good.transitions == [("", "Detecting")]
        assert good.completed[0][1] == {"tag": "good"}

    def test_no_sensors(self):
        delegate = SensorDelegate()
        assert delegate.on_reconcile_start("phpmyadmin", "default", 1, "") is None
        delegate.on_reconcile_complete("phpmyadmin", "default", None, True)

    def test_remove_and_clear(self):
        a = StatefulSensor("a")
        delegate = SensorDelegate()
        delegate.add(a)
        delegate.remove(a)
        delegate.on_phase_transition("phpmyadmin", "default", "", "Detecting")
        assert a.transitions == []
        delegate.add(a)
        delegate.clear()
        assert delegate.on_reconcile_start("phpmyadmin", "default", 1, "") is None


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def monitor(registry):
    return PrometheusMonitor(registry=registry)


class TestPrometheusMonitor:
    """Tests for metrics recorded by PrometheusMonitor."""

    def test_reconcile_success(self, monitor, registry):
        state = monitor.on_reconcile_start("phpmyadmin", "default", 1, "")
        monitor.on_reconcile_complete("phpmyadmin", "default", state, True)
        labels = {
            "name": "phpmyadmin",
            "namespace": "default",
            "phase": "New",
            "result": "success",
        }
        assert registry.get_sample_value("helmapp_reconcile_total", labels) == 1
        assert registry.get_sample_value("helmapp_reconcile_duration_seconds_count", labels) == 1

    def test_reconcile_error(self, monitor, registry):
        state = monitor.on_reconcile_start("phpmyadmin", "default", 1, "Detecting")
        monitor.on_reconcile_complete(
            "phpmyadmin", "default", state, False, RuntimeError("boom")
        )
        assert registry.get_sample_value(
            "helmapp_reconcile_errors_total",
            {"name": "phpmyadmin", "namespace": "default", "error_type": "RuntimeError"},
        ) == 1

    def test_queue_and_backoff(self, monitor, registry):
        monitor.on_reconcile_queued("phpmyadmin", "default", 3)
        monitor.on_reconcile_requeued("phpmyadmin", "default", 10.0, 2)
        labels = {"name": "phpmyadmin", "namespace": "default"}
        assert registry.get_sample_value("helmapp_reconcile_queue_depth") == 3
        assert registry.get_sample_value("helmapp_reconcile_requeues_total", labels) == 1
        assert registry.get_sample_value("helmapp_reconcile_backoff_seconds", labels) == 10.0

    def test_dequeue_lowers_queue_depth(self, monitor, registry):
        monitor.on_reconcile_queued("phpmyadmin", "default", 2)
        monitor.on_reconcile_dequeued("phpmyadmin", "default", 0.5, 1)
        assert registry.get_sample_value("helmapp_reconcile_queue_depth") == 1
        assert registry.get_sample_value(
            "helmapp_reconcile_queue_wait_seconds_count", {"namespace": "default"}
        ) == 1

    def test_phase_transition(self, monitor, registry):
        monitor.on_phase_transition("phpmyadmin", "default", "", "Detecting")
        assert registry.get_sample_value(
            "helmapp_phase_transitions_total",
            {"namespace": "default", "from_phase": "New", "to_phase": "Detecting"},
        ) == 1

    def test_install_and_status_updates(self, monitor, registry):
        state = monitor.on_install_start("phpmyadmin", "default", "phpmyadmin")
        monitor.on_install_complete("phpmyadmin", "default", "phpmyadmin", state, True)
        monitor.on_status_update("phpmyadmin", "default", ["phase", "conditions"])
        assert registry.get_sample_value(
            "helmapp_release_install_total",
            {"namespace": "default", "chart": "phpmyadmin", "result": "success"},
        ) == 1
        assert registry.get_sample_value(
            "helmapp_status_updates_total",
            {"name": "phpmyadmin", "namespace": "default", "update_field": "phase"},
        ) == 1

    def test_chart_fetch_failure(self, monitor, registry):
        state = monitor.on_chart_fetch_start("phpmyadmin", "default", "index")
        monitor.on_chart_fetch_complete(
            "phpmyadmin", "default", "index", state, False, ConnectionError("refused")
        )
        assert registry.get_sample_value(
            "helmapp_chart_fetch_errors_total",
            {"namespace": "default", "operation": "index", "error_type": "ConnectionError"},
        ) == 1
