"""Run context carried through one environment's pipeline."""

from deployx.context.serialization import run_context_from_dict, run_context_to_dict
from deployx.context.types import (
    CanaryHealth,
    Environment,
    EnvironmentOutcome,
    InfraOutcome,
    Outcome,
    RunContext,
    StageKind,
    StageResult,
)

__all__ = [
    "CanaryHealth",
    "Environment",
    "EnvironmentOutcome",
    "InfraOutcome",
    "Outcome",
    "RunContext",
    "StageKind",
    "StageResult",
    "run_context_from_dict",
    "run_context_to_dict",
]
