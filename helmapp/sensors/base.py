"""Base sensor classes for operator monitoring.

This module defines the base OperatorSensor class that provides lifecycle hooks
for monitoring various operator events. All hooks are no-ops by default, allowing
subclasses to override only the events they care about.

The hook pattern:
- Hooks come in pairs: on_X_start() and on_X_complete()
- Start hooks return an optional state dict for tracking multi-phase operations
- Complete hooks receive the state dict from their corresponding start hook
- All hooks are optional - sensors only implement what they need
"""

from typing import Dict, List, Optional, Any
import logging

logger = logging.getLogger(__name__)


class OperatorSensor:
    """Base sensor class for HelmApp operator monitoring.

    This class defines lifecycle hooks for three main categories:
    1. Reconciliation lifecycle (work queue and reconcile steps)
    2. Chart operations (repository fetches, installs and uninstalls)
    3. Status updates and phase transitions

    All methods are no-ops by default. Subclasses override only the hooks
    they need to monitor.

    Example:
        class LoggingSensor(OperatorSensor):
            def on_reconcile_start(self, name, namespace, generation, phase) -> Dict:
                return {'start_time': time.time()}

            def on_reconcile_complete(self, name, namespace, state, success, error=None):
                duration = time.time() - state['start_time']
                logger.info(f"Reconciled {name} in {duration}s")
    """

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
        """Called when a reconciliation step begins.

        Args:
            name: HelmApp resource name
            namespace: Kubernetes namespace
            generation: Resource generation number
            phase: Phase the step starts from

        Returns:
            Optional state dict passed to on_reconcile_complete
        """
        pass

    def on_reconcile_complete(
        self,
        name: str,
        namespace: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Called when a reconciliation step completes.

        Args:
            name: HelmApp resource name
            namespace: Kubernetes namespace
            state: State dict returned from on_reconcile_start
            success: Whether the step succeeded
            error: Exception if the step failed
        """
        pass

    def on_reconcile_queued(
        self,
        name: str,
        namespace: str,
        queue_depth: int,
    ) -> None:
        """Called when a key is added to the work queue.

        Args:
            name: HelmApp resource name
            namespace: Kubernetes namespace
            queue_depth: Number of keys waiting in the queue
        """
        pass

    def on_reconcile_dequeued(
        self,
        name: str,
        namespace: str,
        wait_time: float,
        queue_depth: int,
    ) -> None:
        """Called when a worker takes a key from the work queue.

        Args:
            name: HelmApp resource name
            namespace: Kubernetes namespace
            wait_time: Time spent in queue (seconds)
            queue_depth: Keys still waiting after this one was taken
        """
        pass

    def on_reconcile_requeued(
        self,
        name: str,
        namespace: str,
        delay: float,
        failures: int,
    ) -> None:
        """Called when a key is scheduled for a retry with backoff."""
        pass

    def on_phase_transition(
        self,
        name: str,
        namespace: str,
        from_phase: str,
        to_phase: str,
    ) -> None:
        """Called when a HelmApp moves to another phase."""
        pass

    # =============================================================================
    # Chart Operation Hooks
    # =============================================================================

    def on_chart_fetch_start(
        self,
        name: str,
        namespace: str,
        operation: str,
    ) -> Optional[Dict[str, Any]]:
        """Called when a chart repository request begins.

        Args:
            name: HelmApp resource name
            namespace: Kubernetes namespace
            operation: What is fetched (index, content)

        Returns:
            Optional state dict passed to on_chart_fetch_complete
        """
        pass

    def on_chart_fetch_complete(
        self,
        name: str,
        namespace: str,
        operation: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Called when a chart repository request completes."""
        pass

    def on_install_start(
        self,
        name: str,
        namespace: str,
        chart: str,
    ) -> Optional[Dict[str, Any]]:
        """Called when a release install or upgrade begins."""
        pass

    def on_install_complete(
        self,
        name: str,
        namespace: str,
        chart: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Called when a release install or upgrade completes."""
        pass

    def on_uninstall_start(
        self,
        name: str,
        namespace: str,
    ) -> Optional[Dict[str, Any]]:
        """Called when a release uninstall begins."""
        pass

    def on_uninstall_complete(
        self,
        name: str,
        namespace: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Called when a release uninstall completes."""
        pass

    # =============================================================================
    # Status Update Hooks
    # =============================================================================

    def on_status_update(
        self,
        name: str,
        namespace: str,
        update_fields: List[str],
    ) -> None:
        """Called when status is updated.

        Args:
            name: HelmApp resource name
            namespace: Kubernetes namespace
            update_fields: List of status fields that were updated
        """
        pass

    # =============================================================================
    # Utility Methods
    # =============================================================================

    def asdict(self) -> Dict[str, Any]:
        """Return sensor state as dictionary.

        This method should be overridden by sensors that maintain state
        (like Monitor classes with counters and metrics).

        Returns:
            Dictionary representation of sensor state
        """
        return {}
