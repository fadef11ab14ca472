from .base import BaseResource
from .helmapp import HelmApp, HelmAppObject

__all__ = ["BaseResource", "HelmApp", "HelmAppObject"]
