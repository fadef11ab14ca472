"""Sensor delegation for fan-out pattern.

This module provides SensorDelegate, which implements the delegation pattern
for routing sensor events to multiple monitoring backends simultaneously.
Each backend receives the same events and can maintain independent state.
"""

from typing import Set, Dict, List, Optional, Any
import logging

from helmapp.sensors.base import OperatorSensor

logger = logging.getLogger(__name__)


class SensorDelegate(OperatorSensor):
    """Delegate sensor that fans out events to multiple backends.

    This class maintains a set of child sensors and forwards all lifecycle
    events to each one. State tracking is handled per-sensor, so each backend
    receives its own state dict from start/complete hook pairs. A failing
    sensor is logged and never interrupts reconciliation.

    Example:
        delegate = SensorDelegate()
        delegate.add(LoggingSensor())
        delegate.add(PrometheusMonitor())

        state = delegate.on_reconcile_start("my-app", "default", 5, "Detecting")
        delegate.on_reconcile_complete("my-app", "default", state, True)
    """

    def __init__(self) -> None:
        """Initialize empty sensor delegate."""
        self._sensors: Set[OperatorSensor] = set()

    def add(self, sensor: OperatorSensor) -> None:
        """Add a sensor to the delegate.

        Args:
            sensor: Sensor instance to add
        """
        logger.info(f"Adding sensor: {sensor.__class__.__name__}")
        self._sensors.add(sensor)

    def remove(self, sensor: OperatorSensor) -> None:
        """Remove a sensor from the delegate.

        Args:
            sensor: Sensor instance to remove
        """
        logger.info(f"Removing sensor: {sensor.__class__.__name__}")
        self._sensors.discard(sensor)

    def clear(self) -> None:
        """Remove all sensors from the delegate."""
        logger.info(f"Clearing {len(self._sensors)} sensors")
        self._sensors.clear()

    def _start(self, hook: str, *args) -> Optional[Dict[OperatorSensor, Any]]:
        """Call a start hook on every sensor and collect their states."""
        if not self._sensors:
            return None

        states = {}
        for sensor in self._sensors:
            try:
                state = getattr(sensor, hook)(*args)
                if state is not None:
                    states[sensor] = state
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.{hook}: {e}",
                    exc_info=True,
                )

        return states if states else None

    def _complete(
        self, hook: str, state: Optional[Dict[OperatorSensor, Any]], *args, **kwargs
    ) -> None:
        """Call a complete hook on every sensor with its own state.

        The sensor state is passed in place of the `state` keyword.
        """
        for sensor in self._sensors:
            try:
                sensor_state = state.get(sensor) if state else None
                getattr(sensor, hook)(*args, state=sensor_state, **kwargs)
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.{hook}: {e}",
                    exc_info=True,
                )

    def _notify(self, hook: str, *args) -> None:
        for sensor in self._sensors:
            try:
                getattr(sensor, hook)(*args)
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.{hook}: {e}",
                    exc_info=True,
                )

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_start(
        self,
        name: str,
        namespace: str,
        generation: Optional[int],
        phase: str,
    ) -> Optional[Dict[OperatorSensor, Any]]:
        """Delegate reconcile_start to all sensors.

        Returns:
            Dict mapping each sensor to its returned state, or None if no sensors
        """
        return self._start("on_reconcile_start", name, namespace, generation, phase)

    def on_reconcile_complete(
        self,
        name: str,
        namespace: str,
        state: Optional[Dict[OperatorSensor, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Delegate reconcile_complete to all sensors with their specific state."""
        self._complete(
            "on_reconcile_complete",
            state,
            name=name,
            namespace=namespace,
            success=success,
            error=error,
        )

    def on_reconcile_queued(self, name: str, namespace: str, queue_depth: int) -> None:
        self._notify("on_reconcile_queued", name, namespace, queue_depth)

    def on_reconcile_dequeued(
        self, name: str, namespace: str, wait_time: float, queue_depth: int
    ) -> None:
        self._notify("on_reconcile_dequeued", name, namespace, wait_time, queue_depth)

    def on_reconcile_requeued(
        self, name: str, namespace: str, delay: float, failures: int
    ) -> None:
        self._notify("on_reconcile_requeued", name, namespace, delay, failures)

    def on_phase_transition(
        self, name: str, namespace: str, from_phase: str, to_phase: str
    ) -> None:
        self._notify("on_phase_transition", name, namespace, from_phase, to_phase)

    # =============================================================================
    # Chart Operation Hooks
    # =============================================================================

    def on_chart_fetch_start(
        self, name: str, namespace: str, operation: str
    ) -> Optional[Dict[OperatorSensor, Any]]:
        return self._start("on_chart_fetch_start", name, namespace, operation)

    def on_chart_fetch_complete(
        self,
        name: str,
        namespace: str,
        operation: str,
        state: Optional[Dict[OperatorSensor, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        self._complete(
            "on_chart_fetch_complete",
            state,
            name=name,
            namespace=namespace,
            operation=operation,
            success=success,
            error=error,
        )

    def on_install_start(
        self, name: str, namespace: str, chart: str
    ) -> Optional[Dict[OperatorSensor, Any]]:
        return self._start("on_install_start", name, namespace, chart)

    def on_install_complete(
        self,
        name: str,
        namespace: str,
        chart: str,
        state: Optional[Dict[OperatorSensor, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        self._complete(
            "on_install_complete",
            state,
            name=name,
            namespace=namespace,
            chart=chart,
            success=success,
            error=error,
        )

    def on_uninstall_start(
        self, name: str, namespace: str
    ) -> Optional[Dict[OperatorSensor, Any]]:
        return self._start("on_uninstall_start", name, namespace)

    def on_uninstall_complete(
        self,
        name: str,
        namespace: str,
        state: Optional[Dict[OperatorSensor, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        self._complete(
            "on_uninstall_complete",
            state,
            name=name,
            namespace=namespace,
            success=success,
            error=error,
        )

    # =============================================================================
    # Status Update Hooks
    # =============================================================================

    def on_status_update(
        self, name: str, namespace: str, update_fields: List[str]
    ) -> None:
        self._notify("on_status_update", name, namespace, update_fields)

    def asdict(self) -> Dict[str, Any]:
        """Merge the state of all sensors, keyed by sensor class name."""
        return {
            sensor.__class__.__name__: sensor.asdict() for sensor in self._sensors
        }
