"""Prometheus monitoring backend for the HelmApp operator.

This module provides PrometheusMonitor, which collects operator lifecycle events
and exposes them as Prometheus metrics:

1. Reconciliation Loop Health - Duration, queue depth, retries, errors
2. Lifecycle - Phase transitions and status updates
3. Chart Operations - Repository fetches, installs and uninstalls

All metrics include labels for multi-dimensional analysis (name, namespace, etc.).
"""

from typing import Dict, List, Optional, Any
import time
import logging

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram, Gauge

from helmapp.sensors.base import OperatorSensor

logger = logging.getLogger(__name__)


def _result(success: bool) -> str:
    return 'success' if success else 'failure'


def _error_type(error: Optional[Exception]) -> str:
    return error.__class__.__name__ if error else ''


class PrometheusMonitor(OperatorSensor):
    """Prometheus metrics monitor for the HelmApp operator.

    Exposes metrics via prometheus_client that can be scraped by Prometheus.
    Metrics are organized into three categories:
    - helmapp_reconcile_* - Reconciliation loop metrics
    - helmapp_phase_* / helmapp_status_* - Lifecycle metrics
    - helmapp_chart_* / helmapp_release_* - Chart operation metrics

    Example:
        monitor = PrometheusMonitor()

        state = monitor.on_reconcile_start("my-app", "default", 5, "Detecting")
        monitor.on_reconcile_complete("my-app", "default", state, True)
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        """Initialize Prometheus metrics."""
        super().__init__()

        # =============================================================================
        # Reconciliation Loop Metrics
        # =============================================================================

        self.reconcile_duration = Histogram(
            'helmapp_reconcile_duration_seconds',
            'Time spent in a reconciliation step',
            labelnames=['name', 'namespace', 'phase', 'result'],
            buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
            registry=registry,
        )

        self.reconcile_total = Counter(
            'helmapp_reconcile_total',
            'Total number of reconciliation steps',
            labelnames=['name', 'namespace', 'phase', 'result'],
            registry=registry,
        )

        self.reconcile_errors = Counter(
            'helmapp_reconcile_errors_total',
            'Total number of reconciliation errors',
            labelnames=['name', 'namespace', 'error_type'],
            registry=registry,
        )

        self.reconcile_queue_depth = Gauge(
            'helmapp_reconcile_queue_depth',
            'Number of keys waiting in the work queue',
            registry=registry,
        )

        self.reconcile_queue_wait_seconds = Histogram(
            'helmapp_reconcile_queue_wait_seconds',
            'Time spent waiting in the work queue',
            labelnames=['namespace'],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
            registry=registry,
        )

        self.reconcile_requeues = Counter(
            'helmapp_reconcile_requeues_total',
            'Total number of retries scheduled with backoff',
            labelnames=['name', 'namespace'],
            registry=registry,
        )

        self.reconcile_backoff_seconds = Gauge(
            'helmapp_reconcile_backoff_seconds',
            'Current retry delay of a resource',
            labelnames=['name', 'namespace'],
            registry=registry,
        )

        # =============================================================================
        # Lifecycle Metrics
        # =============================================================================

        self.phase_transitions = Counter(
            'helmapp_phase_transitions_total',
            'Total number of phase transitions',
            labelnames=['namespace', 'from_phase', 'to_phase'],
            registry=registry,
        )

        self.status_updates = Counter(
            'helmapp_status_updates_total',
            'Total number of status updates',
            labelnames=['name', 'namespace', 'update_field'],
            registry=registry,
        )

        # =============================================================================
        # Chart Operation Metrics
        # =============================================================================

        self.chart_fetch_duration = Histogram(
            'helmapp_chart_fetch_duration_seconds',
            'Time spent fetching from chart repositories',
            labelnames=['namespace', 'operation', 'result'],
            buckets=[0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=registry,
        )

        self.chart_fetch_errors = Counter(
            'helmapp_chart_fetch_errors_total',
            'Total number of chart repository errors',
            labelnames=['namespace', 'operation', 'error_type'],
            registry=registry,
        )

        self.release_install_duration = Histogram(
            'helmapp_release_install_duration_seconds',
            'Time taken to install or upgrade a release',
            labelnames=['namespace', 'chart', 'result'],
            buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0],
            registry=registry,
        )

        self.release_install_total = Counter(
            'helmapp_release_install_total',
            'Total number of release installs',
            labelnames=['namespace', 'chart', 'result'],
            registry=registry,
        )

        self.release_uninstall_total = Counter(
            'helmapp_release_uninstall_total',
            'Total number of release uninstalls',
            labelnames=['namespace', 'result'],
            registry=registry,
        )

        logger.info("PrometheusMonitor initialized with all metrics")

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_start(
        self,
        name: str,
        namespace: str,
        generation: Optional[int],
        phase: str,
    ) -> Optional[Dict[str, Any]]:
        """Record reconciliation start time."""
        return {
            'start_time': time.time(),
            'phase': phase or 'New',
        }

    def on_reconcile_complete(
        self,
        name: str,
        namespace: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Record reconciliation duration and result."""
        if state:
            duration = time.time() - state['start_time']
            labels = dict(
                name=name,
                namespace=namespace,
                phase=state['phase'],
                result=_result(success),
            )
            self.reconcile_duration.labels(**labels).observe(duration)
            self.reconcile_total.labels(**labels).inc()

        if error:
            self.reconcile_errors.labels(
                name=name,
                namespace=namespace,
                error_type=_error_type(error),
            ).inc()

    def on_reconcile_queued(self, name: str, namespace: str, queue_depth: int) -> None:
        """Record work queue depth."""
        self.reconcile_queue_depth.set(queue_depth)

    def on_reconcile_dequeued(
        self, name: str, namespace: str, wait_time: float, queue_depth: int
    ) -> None:
        """Record time spent waiting in queue and the remaining depth."""
        self.reconcile_queue_depth.set(queue_depth)
        self.reconcile_queue_wait_seconds.labels(namespace=namespace).observe(wait_time)

    def on_reconcile_requeued(
        self, name: str, namespace: str, delay: float, failures: int
    ) -> None:
        self.reconcile_requeues.labels(name=name, namespace=namespace).inc()
        self.reconcile_backoff_seconds.labels(name=name, namespace=namespace).set(delay)

    def on_phase_transition(
        self, name: str, namespace: str, from_phase: str, to_phase: str
    ) -> None:
        self.phase_transitions.labels(
            namespace=namespace,
            from_phase=from_phase or 'New',
            to_phase=to_phase or 'New',
        ).inc()

    # =============================================================================
    # Chart Operation Hooks
    # =============================================================================

    def on_chart_fetch_start(
        self, name: str, namespace: str, operation: str
    ) -> Optional[Dict[str, Any]]:
        return {'start_time': time.time()}

    def on_chart_fetch_complete(
        self,
        name: str,
        namespace: str,
        operation: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        if state:
            self.chart_fetch_duration.labels(
                namespace=namespace,
                operation=operation,
                result=_result(success),
            ).observe(time.time() - state['start_time'])
        if error:
            self.chart_fetch_errors.labels(
                namespace=namespace,
                operation=operation,
                error_type=_error_type(error),
            ).inc()

    def on_install_start(
        self, name: str, namespace: str, chart: str
    ) -> Optional[Dict[str, Any]]:
        return {'start_time': time.time()}

    def on_install_complete(
        self,
        name: str,
        namespace: str,
        chart: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        labels = dict(namespace=namespace, chart=chart, result=_result(success))
        if state:
            self.release_install_duration.labels(**labels).observe(
                time.time() - state['start_time']
            )
        self.release_install_total.labels(**labels).inc()

    def on_uninstall_complete(
        self,
        name: str,
        namespace: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        self.release_uninstall_total.labels(
            namespace=namespace, result=_result(success)
        ).inc()

    # =============================================================================
    # Status Update Hooks
    # =============================================================================

    def on_status_update(
        self, name: str, namespace: str, update_fields: List[str]
    ) -> None:
        """Record status updates per field."""
        for field in update_fields:
            self.status_updates.labels(
                name=name,
                namespace=namespace,
                update_field=field,
            ).inc()
