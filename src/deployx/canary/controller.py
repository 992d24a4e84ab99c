"""Canary rollout: deploy a slice, watch it, then promote or roll back."""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Callable

from deployx.canary.types import CanaryReport, CanaryState
from deployx.context.types import CanaryHealth, EnvironmentOutcome, Outcome

if TYPE_CHECKING:
    from deployx.canary.types import (
        CanarySession,
        PromoteOperation,
        RollbackOperation,
        SliceDeployOperation,
    )
    from deployx.context.types import Environment
    from deployx.stages.types import DeployTarget, HealthProbe

logger = logging.getLogger(__name__)


class CanaryController:
    """Drive Deploying -> Monitoring -> Promoting | RollingBack -> Done.

    Monitoring stops on the first failed probe. ``wait(seconds)`` returns True
    when the rollout was cancelled; the default waits on ``cancel_event`` so an
    operator abort interrupts Monitoring and forces a rollback.
    """

    def __init__(
        self,
        *,
        deploy_slice: SliceDeployOperation,
        probe: HealthProbe,
        promote: PromoteOperation,
        rollback: RollbackOperation,
        clock: Callable[[], float] = time.monotonic,
        wait: Callable[[float], bool] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._deploy_slice = deploy_slice
        self._probe = probe
        self._promote = promote
        self._rollback = rollback
        self._clock = clock
        self._cancel_event = cancel_event or threading.Event()
        self._wait = wait or self._cancel_event.wait

    def run(
        self,
        environment: Environment,
        artifact_reference: str,
        target: DeployTarget,
        session: CanarySession,
    ) -> CanaryReport:
        states: list[CanaryState] = [CanaryState.DEPLOYING]
        logger.info(
            "canary: deploying %s to %d%% of %s traffic",
            artifact_reference,
            session.percentage,
            environment.value,
        )

        if not session.health_check_target:
            states.append(CanaryState.DONE)
            return CanaryReport(
                status=EnvironmentOutcome.FAILURE,
                health=CanaryHealth.SKIPPED,
                probes=0,
                message="Canary failed: no health check target configured",
                states=tuple(states),
            )

        try:
            slice_report = self._deploy_slice(environment, artifact_reference, target, session.percentage)
            slice_ok = slice_report.outcome == Outcome.SUCCESS
            slice_detail = slice_report.message
            deployed_url = slice_report.deployed_url
        except Exception as e:
            logger.error("canary slice deployment raised: %s", e)
            slice_ok, slice_detail, deployed_url = False, str(e), None

        if not slice_ok:
            states.append(CanaryState.DONE)
            detail = f": {slice_detail}" if slice_detail else ""
            return CanaryReport(
                status=EnvironmentOutcome.FAILURE,
                health=CanaryHealth.SKIPPED,
                probes=0,
                message=f"Canary slice deployment failed{detail}",
                states=tuple(states),
            )

        states.append(CanaryState.MONITORING)
        healthy, probes, aborted = self._monitor(session)
        logger.info("canary: monitoring ended healthy=%s after %d probe(s) aborted=%s", healthy, probes, aborted)

        if healthy:
            states.append(CanaryState.PROMOTING)
            promoted = self._attempt(self._promote, environment, target, "promote")
            states.append(CanaryState.DONE)
            if promoted:
                return CanaryReport(
                    status=EnvironmentOutcome.SUCCESS,
                    health=CanaryHealth.HEALTHY,
                    probes=probes,
                    message=f"Canary healthy after {probes} probe(s); promoted to 100% traffic",
                    states=tuple(states),
                    deployed_url=deployed_url,
                )
            return CanaryReport(
                status=EnvironmentOutcome.FAILURE,
                health=CanaryHealth.HEALTHY,
                probes=probes,
                message="Canary healthy but promotion to 100% traffic failed",
                states=tuple(states),
                deployed_url=deployed_url,
            )

        cause = "aborted by operator" if aborted else f"health probe {probes} failed"
        if not session.rollback_on_failure and not aborted:
            states.append(CanaryState.DONE)
            return CanaryReport(
                status=EnvironmentOutcome.FAILURE,
                health=CanaryHealth.UNHEALTHY,
                probes=probes,
                message=f"Canary unhealthy ({cause}); rollback disabled, canary left in place",
                states=tuple(states),
            )

        states.append(CanaryState.ROLLING_BACK)
        rolled_back = self._attempt(self._rollback, environment, target, "rollback")
        states.append(CanaryState.DONE)
        if rolled_back:
            return CanaryReport(
                status=EnvironmentOutcome.ROLLED_BACK,
                health=CanaryHealth.UNHEALTHY,
                probes=probes,
                message=f"Canary unhealthy ({cause}); rolled back to 0% canary traffic",
                states=tuple(states),
                aborted=aborted,
            )
        return CanaryReport(
            status=EnvironmentOutcome.FAILURE,
            health=CanaryHealth.UNHEALTHY,
            probes=probes,
            message=f"Canary unhealthy ({cause}) and rollback failed",
            states=tuple(states),
            aborted=aborted,
        )

    def _monitor(self, session: CanarySession) -> tuple[bool, int, bool]:
        """Return (healthy, probes_made, aborted)."""
        url = session.health_check_target
        assert url is not None
        end = self._clock() + session.observation_window_seconds
        probes = 0

        while True:
            if self._cancel_event.is_set():
                return False, probes, True

            probes += 1
            if not self._probe_once(url):
                logger.warning("canary: probe %d failed for %s", probes, url)
                return False, probes, False

            remaining = end - self._clock()
            if remaining <= 0:
                return True, probes, False
            if self._wait(min(session.probe_interval_seconds, remaining)):
                return False, probes, True
            if self._clock() >= end:
                return True, probes, False

    def _probe_once(self, url: str) -> bool:
        try:
            return bool(self._probe(url))
        except Exception as e:
            logger.warning("canary: probe raised for %s: %s", url, e)
            return False

    def _attempt(self, operation: Callable[..., Outcome], environment: Environment, target: DeployTarget, name: str) -> bool:
        try:
            return operation(environment, target) == Outcome.SUCCESS
        except Exception as e:
            logger.error("canary %s raised: %s", name, e)
            return False
