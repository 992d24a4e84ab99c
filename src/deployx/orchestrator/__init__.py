"""Top-level orchestration across environments."""

from deployx.orchestrator.dispatch import (
    CommandDispatcher,
    HandoffMessage,
    OutboxDispatcher,
    build_handoff,
    handoff_from_dict,
    handoff_to_dict,
    load_handoff,
)
from deployx.orchestrator.kernel import (
    DeploymentRequest,
    EnvironmentReport,
    OrchestrationReport,
    Orchestrator,
    PromotionRecord,
    orchestration_report_to_dict,
)

__all__ = [
    "CommandDispatcher",
    "DeploymentRequest",
    "EnvironmentReport",
    "HandoffMessage",
    "OrchestrationReport",
    "Orchestrator",
    "OutboxDispatcher",
    "PromotionRecord",
    "build_handoff",
    "handoff_from_dict",
    "handoff_to_dict",
    "load_handoff",
    "orchestration_report_to_dict",
]
