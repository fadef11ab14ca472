"""HTTP server for exposing Prometheus metrics.

The built-in prometheus_client HTTP server runs in a background thread so it
never blocks the operator event loop.
"""

import logging
from threading import Thread
from prometheus_client import start_http_server

logger = logging.getLogger(__name__)


def start_metrics_server(port: int) -> None:
    """Serve the default registry at http://0.0.0.0:port/metrics."""
    try:
        start_http_server(port)
        logger.info(f"Prometheus metrics server started on port {port}")
    except OSError as e:
        logger.error(f"Failed to start metrics server on port {port}: {e}")
        raise


def init_metrics_server(port: int) -> Thread:
    """Start the metrics server in a daemon thread."""
    thread = Thread(
        target=start_metrics_server, args=(port,), name="helmapp-metrics", daemon=True
    )
    thread.start()
    return thread
