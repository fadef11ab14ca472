"""HelmApp Operator Sensor Framework.

Non-invasive instrumentation of operator lifecycle events through a
hook-based pattern.

Key components:
- OperatorSensor: Base class defining lifecycle hooks for operator events
- SensorDelegate: Fan-out pattern for routing events to multiple sensor backends
- PrometheusMonitor: Prometheus metrics exporter

Usage:
    from helmapp.sensors import OperatorSensor, SensorDelegate

    delegate = SensorDelegate()
    delegate.add(PrometheusMonitor())
"""

from helmapp.sensors.base import OperatorSensor
from helmapp.sensors.delegate import SensorDelegate
from helmapp.sensors.prometheus import PrometheusMonitor
from helmapp.sensors.server import init_metrics_server

__all__ = [
    'OperatorSensor',
    'SensorDelegate',
    'PrometheusMonitor',
    'init_metrics_server',
]
