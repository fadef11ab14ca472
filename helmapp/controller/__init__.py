from .controller import Controller
from .events import EventRecorder
from .phases import PHASE_HANDLERS, PhaseContext, PhaseResult
from .queue import RateLimitingQueue
from .reconciler import Reconciler
from .validation import (
    DryRunValidator,
    PreInstallValidator,
    StaticValidator,
    build_validator,
)

__all__ = [
    "Controller",
    "EventRecorder",
    "PHASE_HANDLERS",
    "PhaseContext",
    "PhaseResult",
    "RateLimitingQueue",
    "Reconciler",
    "PreInstallValidator",
    "DryRunValidator",
    "StaticValidator",
    "build_validator",
]
