import kopf
from typing import Any, Dict


class EventRecorder:
    """Posts Kubernetes events about a HelmApp through kopf."""

    def normal(self, body: Dict[str, Any], reason: str, message: str) -> None:
        kopf.info(body, reason=reason, message=message)

    def warning(self, body: Dict[str, Any], reason: str, message: str) -> None:
        kopf.warn(body, reason=reason, message=message)
