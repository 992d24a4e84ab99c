"""Canary deployment sub-protocol."""

from deployx.canary.controller import CanaryController
from deployx.canary.types import CanaryReport, CanarySession, CanaryState

__all__ = ["CanaryController", "CanaryReport", "CanarySession", "CanaryState"]
