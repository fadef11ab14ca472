import os
from typing import Any

_TRUE, _FALSE = {"True", "true", "yes", "1"}, {"False", "false", "no", "0"}


def _getenv(name: str, *default: Any) -> Any:
    try:
        v = os.environ[name]
        if v in _TRUE:
            return True
        elif v in _FALSE:
            return False
        else:
            return v
    except KeyError:
        pass
    if default:
        return default[0]
    raise KeyError(name)


# ------------------------------------------------
# ---- Defaults and environment variables ----
# ------------------------------------------------

#: Number of reconciliation workers draining the work queue
WORKER_COUNT = int(_getenv("WORKER_COUNT", 2))

#: First retry delay in seconds for a failing resource; doubles on every failure
BACKOFF_BASE_SECONDS = float(_getenv("BACKOFF_BASE_SECONDS", 5.0))

#: Upper bound in seconds of the retry delay
BACKOFF_MAX_SECONDS = float(_getenv("BACKOFF_MAX_SECONDS", 300.0))

#: Upper bound in seconds of a single reconciliation step
RECONCILE_TIMEOUT_SECONDS = float(_getenv("RECONCILE_TIMEOUT_SECONDS", 600.0))

#: Timeout in seconds for chart repository HTTP calls
CHART_REPO_TIMEOUT_SECONDS = float(_getenv("CHART_REPO_TIMEOUT_SECONDS", 30.0))

#: Seconds a fetched repository index is reused; 0 disables caching
INDEX_CACHE_TTL_SECONDS = float(_getenv("INDEX_CACHE_TTL_SECONDS", 60.0))

#: Helm binary used to render, install and uninstall releases
HELM_BIN = str(_getenv("HELM_BIN", "helm"))

#: Timeout in seconds for a single helm command
HELM_TIMEOUT_SECONDS = float(_getenv("HELM_TIMEOUT_SECONDS", 300.0))

#: Pre-install validation strategy, one of `dry-run` or `static`
PRE_INSTALL_VALIDATION = str(_getenv("PRE_INSTALL_VALIDATION", "dry-run"))

#: Only HelmApps matching this label selector are reconciled (empty means all)
WATCH_LABEL_SELECTOR = str(_getenv("WATCH_LABEL_SELECTOR", ""))

#: Port of the Prometheus metrics endpoint
METRICS_PORT = int(_getenv("METRICS_PORT", 8000))


class Settings:
    """Operator settings"""

    worker_count: int = WORKER_COUNT
    backoff_base_seconds: float = BACKOFF_BASE_SECONDS
    backoff_max_seconds: float = BACKOFF_MAX_SECONDS
    reconcile_timeout_seconds: float = RECONCILE_TIMEOUT_SECONDS
    chart_repo_timeout_seconds: float = CHART_REPO_TIMEOUT_SECONDS
    index_cache_ttl_seconds: float = INDEX_CACHE_TTL_SECONDS
    helm_bin: str = HELM_BIN
    helm_timeout_seconds: float = HELM_TIMEOUT_SECONDS
    pre_install_validation: str = PRE_INSTALL_VALIDATION
    watch_label_selector: str = WATCH_LABEL_SELECTOR
    metrics_port: int = METRICS_PORT

    def __init__(
        self,
        *args,
        worker_count: int = None,
        backoff_base_seconds: float = None,
        backoff_max_seconds: float = None,
        reconcile_timeout_seconds: float = None,
        chart_repo_timeout_seconds: float = None,
        index_cache_ttl_seconds: float = None,
        helm_bin: str = None,
        helm_timeout_seconds: float = None,
        pre_install_validation: str = None,
        watch_label_selector: str = None,
        metrics_port: int = None,
        **kwargs,
    ):
        if worker_count is not None:
            self.worker_count = worker_count

        if backoff_base_seconds is not None:
            self.backoff_base_seconds = backoff_base_seconds

        if backoff_max_seconds is not None:
            self.backoff_max_seconds = backoff_max_seconds

        if reconcile_timeout_seconds is not None:
            self.reconcile_timeout_seconds = reconcile_timeout_seconds

        if chart_repo_timeout_seconds is not None:
            self.chart_repo_timeout_seconds = chart_repo_timeout_seconds

        if index_cache_ttl_seconds is not None:
            self.index_cache_ttl_seconds = index_cache_ttl_seconds

        if helm_bin is not None:
            self.helm_bin = helm_bin

        if helm_timeout_seconds is not None:
            self.helm_timeout_seconds = helm_timeout_seconds

        if pre_install_validation is not None:
            self.pre_install_validation = pre_install_validation

        if watch_label_selector is not None:
            self.watch_label_selector = watch_label_selector

        if metrics_port is not None:
            self.metrics_port = metrics_port
