from .helmapp_spec import HelmAppSpecSchema, HelmAppStoreSchema, OverridesField
from .helmapp_status import HelmAppStatusSchema
from .chart_index import ChartIndexSchema, ChartVersionSchema

__all__ = [
    "HelmAppSpecSchema",
    "HelmAppStoreSchema",
    "OverridesField",
    "HelmAppStatusSchema",
    "ChartIndexSchema",
    "ChartVersionSchema",
]
