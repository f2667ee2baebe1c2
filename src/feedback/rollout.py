"""Percentage rollout of learned rules with stepwise ramp-up or rollback."""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Callable

from src.models import FeedbackAction

from .models import DetectionRule, SuppressionRule

LOGGER = logging.getLogger(__name__)

ROLLOUT_STEPS = (10, 25, 50, 100)

ACTIVE = "active"
COMPLETE = "complete"
ROLLED_BACK = "rolled_back"


@dataclass
class Experiment:
    rule: SuppressionRule | DetectionRule
    percentage: int
    started_at: float
    impressions: int = 0
    acceptances: int = 0
    rejections: int = 0
    status: str = ACTIVE

    @property
    def rejection_rate(self) -> float:
        decided = self.acceptances + self.rejections
        return self.rejections / decided if decided else 0.0


class RolloutManager:
    """Tracks one experiment per learned rule.

    A text falls inside a rule's rollout when its deterministic bucket
    (0..99, derived from the rule id and the text) is below the current
    percentage. After ``min_decisions`` accept/reject outcomes an experiment
    either ramps to the next step or is rolled back.
    """

    def __init__(
        self,
        *,
        steps: tuple[int, ...] = ROLLOUT_STEPS,
        min_decisions: int = 20,
        max_rejection_rate: float = 0.3,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not steps or list(steps) != sorted(steps) or steps[-1] != 100:
            raise ValueError("rollout steps must be ascending and end at 100")
        self.steps = steps
        self.min_decisions = min_decisions
        self.max_rejection_rate = max_rejection_rate
        self._clock = clock
        self._experiments: dict[str, Experiment] = {}

    def __contains__(self, rule_id: str) -> bool:
        return rule_id in self._experiments

    def experiment(self, rule_id: str) -> Experiment | None:
        return self._experiments.get(rule_id)

    def start(self, rule: SuppressionRule | DetectionRule) -> Experiment:
        existing = self._experiments.get(rule.rule_id)
        if existing is not None:
            return existing
        experiment = Experiment(rule=rule, percentage=self.steps[0], started_at=self._clock())
        self._experiments[rule.rule_id] = experiment
        LOGGER.info("Rolling out rule %s to %d%%", rule.rule_id, experiment.percentage)
        return experiment

    @staticmethod
    def bucket(rule_id: str, text: str) -> int:
        digest = hashlib.sha256(f"{rule_id}|{text}".encode("utf-8")).hexdigest()
        return int(digest[:8], 16) % 100

    def in_rollout(self, rule_id: str, text: str) -> bool:
        experiment = self._experiments.get(rule_id)
        if experiment is None or experiment.status == ROLLED_BACK:
            return False
        return self.bucket(rule_id, text) < experiment.percentage

    def record_impression(self, rule_id: str) -> None:
        experiment = self._experiments.get(rule_id)
        if experiment is not None:
            experiment.impressions += 1

    def record_outcome(self, rule_id: str, action: FeedbackAction) -> None:
        experiment = self._experiments.get(rule_id)
        if experiment is None or experiment.status != ACTIVE:
            return
        if action is FeedbackAction.ACCEPTED:
            experiment.acceptances += 1
        elif action in (FeedbackAction.REJECTED, FeedbackAction.MODIFIED):
            experiment.rejections += 1

    def evaluate(self, rule_id: str) -> str:
        """Ramp up or roll back ``rule_id`` when enough outcomes have been seen."""

        experiment = self._experiments[rule_id]
        if experiment.status != ACTIVE:
            return experiment.status
        if experiment.acceptances + experiment.rejections < self.min_decisions:
            return experiment.status

        if experiment.rejection_rate > self.max_rejection_rate:
            experiment.status = ROLLED_BACK
            LOGGER.warning(
                "Rolled back rule %s (rejection rate %.0f%%)",
                rule_id,
                experiment.rejection_rate * 100,
            )
            return experiment.status

        later = [step for step in self.steps if step > experiment.percentage]
        experiment.percentage = later[0] if later else 100
        experiment.acceptances = experiment.rejections = 0
        if experiment.percentage >= 100:
            experiment.status = COMPLETE
        LOGGER.info("Rule %s now at %d%% (%s)", rule_id, experiment.percentage, experiment.status)
        return experiment.status

    def evaluate_all(self) -> dict[str, str]:
        return {rule_id: self.evaluate(rule_id) for rule_id in list(self._experiments)}

    def detection_rules(self) -> list[DetectionRule]:
        return [
            e.rule
            for e in self._experiments.values()
            if isinstance(e.rule, DetectionRule) and e.status != ROLLED_BACK
        ]

    def suppression_rules(self) -> list[SuppressionRule]:
        return [
            e.rule
            for e in self._experiments.values()
            if isinstance(e.rule, SuppressionRule) and e.status != ROLLED_BACK
        ]

    def summary(self) -> dict[str, dict]:
        return {
            rule_id: {
                "percentage": e.percentage,
                "status": e.status,
                "impressions": e.impressions,
                "acceptances": e.acceptances,
                "rejections": e.rejections,
            }
            for rule_id, e in self._experiments.items()
        }
