from .helmapp_spec import HelmAppSpec, HelmAppStore, PRE_STATUS_CONFIGURED
from .helmapp_status import (
    HelmAppStatus,
    Phase,
    ConditionType,
    ConditionStatus,
    DEFAULT_CONDITION_TYPES,
    DETECTING_CONDITION_TYPES,
)
from .helmapp_resources import HelmAppResources
from .chart_index import (
    ChartIndex,
    ChartVersion,
    ChartContent,
    ReleaseManifest,
)

__all__ = [
    "HelmAppSpec",
    "HelmAppStore",
    "PRE_STATUS_CONFIGURED",
    "HelmAppStatus",
    "Phase",
    "ConditionType",
    "ConditionStatus",
    "DEFAULT_CONDITION_TYPES",
    "DETECTING_CONDITION_TYPES",
    "HelmAppResources",
    "ChartIndex",
    "ChartVersion",
    "ChartContent",
    "ReleaseManifest",
]
