"""HelmApp status model and the condition store that operates on it.

Conditions are kept as plain dicts (camelCase keys, exactly as persisted) so
that a status loaded from the cluster can be compared with the mutated copy
without any conversion.
"""
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from helmapp.types.base import BaseModel
from helmapp.utils.helpers import upsert_condition, now
from helmapp.utils.errors import PackageNotFound, VersionNotFound, RenderError, ApplyFatal


class Phase(str, Enum):
    NEW = ""
    DETECTING = "Detecting"
    CONFIGURING = "Configuring"
    INSTALLING = "Installing"
    INSTALLED = "Installed"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Phase":
        """Map a persisted phase to the enum; unknown values restart the lifecycle."""
        try:
            return cls(value or "")
        except ValueError:
            return cls.NEW


class ConditionType(str, Enum):
    CHART_READY = "ChartReady"
    CHART_PARSED = "ChartParsed"
    PRE_INSTALLED = "PreInstalled"
    INSTALLED = "Installed"


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


#: Condition types every HelmApp carries from its first reconciliation
DEFAULT_CONDITION_TYPES = (
    ConditionType.CHART_READY,
    ConditionType.CHART_PARSED,
    ConditionType.PRE_INSTALLED,
    ConditionType.INSTALLED,
)

#: Conditions that must all be True before leaving the Detecting phase
DETECTING_CONDITION_TYPES = (
    ConditionType.CHART_READY,
    ConditionType.CHART_PARSED,
    ConditionType.PRE_INSTALLED,
)

#: Failure reasons that wait for a spec change instead of being retried
PARKED_REASONS = frozenset(
    cls.__name__ for cls in (PackageNotFound, VersionNotFound, RenderError, ApplyFatal)
)


def _value(v: Any) -> Any:
    return v.value if isinstance(v, Enum) else v


class HelmAppStatus(BaseModel):
    """HelmApp CRD status"""

    phase: str
    readme: str
    values: Dict[str, str]
    conditions: List[Dict[str, Any]]
    current_version: Optional[str]
    overrides: Optional[Dict[str, Any]]
    last_error: Optional[str]
    release: Optional[Dict[str, Any]]
    detected: Optional[Dict[str, Any]]
    observed_generation: Optional[int]

    @property
    def current_phase(self) -> Phase:
        return Phase.parse(self.phase)

    def set_phase(self, phase: Phase) -> None:
        self.phase = phase.value

    def get_condition(self, type: ConditionType) -> Tuple[int, Optional[Dict[str, Any]]]:
        """Return the index and the condition of the given type, (-1, None) if absent."""
        for i, cond in enumerate(self.conditions or []):
            if cond.get("type") == _value(type):
                return i, cond
        return -1, None

    def set_condition(
        self,
        type: ConditionType,
        status: ConditionStatus,
        reason: str = "",
        message: str = "",
        generation: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Upsert a condition by type.

        The transition time moves only when the status changes.
        """
        newc = {
            "type": _value(type),
            "status": _value(status),
            "reason": reason,
            "message": message,
        }
        if generation is not None:
            newc["observedGeneration"] = generation
        self.conditions = upsert_condition(self.conditions, newc, timestamp=now())
        return self.get_condition(type)[1]

    def is_condition_true(self, type: ConditionType) -> bool:
        _, cond = self.get_condition(type)
        return cond is not None and cond.get("status") == ConditionStatus.TRUE.value

    def init_conditions(self, types=DEFAULT_CONDITION_TYPES) -> None:
        """Add every missing condition type as Unknown."""
        for type in types:
            _, cond = self.get_condition(type)
            if cond is None:
                self.set_condition(type, ConditionStatus.UNKNOWN, "Initialized")

    def reset_conditions(self, types=DEFAULT_CONDITION_TYPES, reason: str = "") -> None:
        for type in types:
            self.set_condition(type, ConditionStatus.UNKNOWN, reason)

    def parked_on(self, type: ConditionType, generation: Optional[int]) -> bool:
        """True if the condition holds a non-retryable failure for this generation.

        Such a failure stays in place until the tenant edits the spec, which
        bumps `metadata.generation`.
        """
        _, cond = self.get_condition(type)
        return (
            cond is not None
            and cond.get("status") == ConditionStatus.FALSE.value
            and cond.get("reason") in PARKED_REASONS
            and cond.get("observedGeneration") == generation
        )
