"""Per-environment stage pipeline."""

from deployx.pipeline.environment import EnvironmentPipeline

__all__ = ["EnvironmentPipeline"]
