import kopf
import logging
import helmapp.handlers.helmapp as helmapp_handlers
import helmapp.handlers.probes as probes
from helmapp.types.settings import Settings
from helmapp.resources import BaseResource, HelmApp
from helmapp.web import ChartRepoClient
from helmapp.installer import HelmInstaller
from helmapp.controller import Controller, Reconciler, build_validator
from helmapp.sensors import init_metrics_server, SensorDelegate, PrometheusMonitor
from kubernetes_asyncio import config
from kubernetes_asyncio.client.api_client import ApiClient


# Configure Kopf settings
@kopf.on.startup()
async def setup(
    settings: kopf.OperatorSettings, memo: kopf.Memo, logger: logging.Logger, **kwargs
):
    # Load Kubernetes config - try in-cluster first (for production), then local kubeconfig (for dev)
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        logger.info("In-cluster config not found, trying local kubeconfig")
        try:
            await config.load_kube_config()
            logger.info("Loaded local Kubernetes configuration")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise

    memo.conf = conf = Settings()

    # Create a shared ApiClient for all resources to prevent connection leaks
    memo.api_client = ApiClient()
    BaseResource.shared_api_client = memo.api_client
    logger.info("Shared Kubernetes API client initialized")

    # Initialize sensor infrastructure
    sensor_delegate = SensorDelegate()
    sensor_delegate.add(PrometheusMonitor())
    memo.sensor = sensor_delegate
    logger.info("Sensor infrastructure initialized with PrometheusMonitor")

    # Initialize Prometheus metrics server
    try:
        init_metrics_server(conf.metrics_port)
    except Exception as e:
        logger.error(f"Failed to start metrics server: {e}")
        logger.warning("Continuing without metrics server")

    memo.repo_client = ChartRepoClient(
        index_cache_ttl=conf.index_cache_ttl_seconds,
        timeout=conf.chart_repo_timeout_seconds,
    )
    installer = HelmInstaller(helm_bin=conf.helm_bin, timeout=conf.helm_timeout_seconds)
    reconciler = Reconciler(
        store=HelmApp.default(),
        repo_client=memo.repo_client,
        installer=installer,
        validator=build_validator(conf.pre_install_validation, installer),
        sensor=sensor_delegate,
        settings=conf,
    )
    memo.controller = Controller(reconciler, settings=conf, sensor=sensor_delegate)
    memo.controller.start()
    logger.info(
        f"Reconciling HelmApps with {conf.worker_count} workers, "
        f"pre-install validation `{conf.pre_install_validation}`"
    )

    # Post warnings and errors as Kubernetes events
    settings.posting.enabled = True
    settings.posting.level = logging.WARNING


@kopf.on.cleanup()
async def cleanup(memo: kopf.Memo, logger: logging.Logger, **kwargs):
    """Cleanup handler for operator shutdown."""
    logger.info("Shutting down operator...")

    controller = memo.get("controller")
    if controller is not None:
        await controller.stop()

    repo_client = memo.get("repo_client")
    if repo_client is not None:
        await repo_client.close()
        logger.info("Chart repository client closed")

    api_client = memo.get("api_client")
    if api_client is not None:
        await api_client.close()
        logger.info("Shared API client closed")

    logger.info("Operator shutdown complete")


__all__ = [
    "helmapp_handlers",
    "probes",
]
