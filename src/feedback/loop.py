"""Feedback intake and the background learning cycle.

``process_feedback`` is cheap: it anonymises and stores the event, nudges
the pattern confidence and, once enough new feedback has accumulated,
schedules a learning cycle as a background task. The learning cycle mines
patterns, generates rules, validates them against held-out samples and
starts rollouts for the ones that pass.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Sequence

from src.models import FeedbackAction, Issue

from .learning import ConfidenceModel, PatternMiner, RuleGenerator, RuleValidator, held_out_samples
from .models import FeedbackEvent, LabeledSample, pattern_signature
from .rollout import RolloutManager
from .store import FeedbackStore, anonymize

LOGGER = logging.getLogger(__name__)

LEARNED_ENGINE_NAME = "learned"

_INVERTED = {
    FeedbackAction.REJECTED: FeedbackAction.ACCEPTED,
    FeedbackAction.ACCEPTED: FeedbackAction.REJECTED,
}


@dataclass(frozen=True)
class FeedbackReceipt:
    stored: bool
    confidence: float
    learning_scheduled: bool


@dataclass
class LearningCycleReport:
    started_at: float
    duration_ms: float = 0.0
    records_analysed: int = 0
    false_positive_candidates: int = 0
    missed_error_candidates: int = 0
    rules_generated: int = 0
    rules_validated: int = 0
    rejected: dict[str, str] = field(default_factory=dict)
    rollout_changes: dict[str, str] = field(default_factory=dict)


class FeedbackLoop:
    def __init__(
        self,
        *,
        store: FeedbackStore | None = None,
        confidence: ConfidenceModel | None = None,
        miner: PatternMiner | None = None,
        generator: RuleGenerator | None = None,
        validator: RuleValidator | None = None,
        rollout: RolloutManager | None = None,
        min_feedback_threshold: int = 10,
        cooldown_seconds: float = 300.0,
        analysis_window: int = 500,
        extra_samples: Sequence[LabeledSample] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store or FeedbackStore()
        self.confidence = confidence or ConfidenceModel()
        self.miner = miner or PatternMiner()
        self.generator = generator or RuleGenerator(clock=clock)
        self.validator = validator or RuleValidator()
        self.rollout = rollout or RolloutManager(clock=clock)
        self.min_feedback_threshold = min_feedback_threshold
        self.cooldown_seconds = cooldown_seconds
        self.analysis_window = analysis_window
        self._extra_samples = list(extra_samples)
        self._clock = clock

        self._pending = 0
        self._total = 0
        self._last_cycle_at: float | None = None
        self._cycle_task: asyncio.Task[LearningCycleReport] | None = None
        self._last_report: LearningCycleReport | None = None

    @property
    def learning_active(self) -> bool:
        return self._cycle_task is not None and not self._cycle_task.done()

    @property
    def last_report(self) -> LearningCycleReport | None:
        return self._last_report

    async def process_feedback(self, event: FeedbackEvent) -> FeedbackReceipt:
        record = anonymize(event)
        self.store.append(record)
        self._total += 1
        self._pending += 1

        updated = self.confidence.update(record.pattern, record.action, record.confidence)
        self._record_rollout_outcome(event, record.pattern)

        scheduled = False
        if self._should_learn():
            self._cycle_task = asyncio.get_running_loop().create_task(self.run_learning_cycle())
            self._cycle_task.add_done_callback(self._log_cycle_failure)
            scheduled = True

        LOGGER.debug(
            "Stored %s feedback for %s (confidence %.3f)",
            record.action.value,
            record.pattern,
            updated,
        )
        return FeedbackReceipt(stored=True, confidence=updated, learning_scheduled=scheduled)

    def _record_rollout_outcome(self, event: FeedbackEvent, pattern: str) -> None:
        if event.issue.source_engine == LEARNED_ENGINE_NAME:
            # Learned detection rules carry their rule id as the short message
            self.rollout.record_outcome(event.issue.short_message, event.action)
        inverted = _INVERTED.get(event.action)
        if inverted is None:
            return
        # Feedback on an issue a suppression rule would hide is evidence about that rule
        for rule in self.rollout.suppression_rules():
            if rule.pattern == pattern:
                self.rollout.record_outcome(rule.rule_id, inverted)

    def _should_learn(self) -> bool:
        if self._pending < self.min_feedback_threshold or self.learning_active:
            return False
        if self._last_cycle_at is None:
            return True
        return self._clock() - self._last_cycle_at > self.cooldown_seconds

    async def run_learning_cycle(self) -> LearningCycleReport:
        """Mine stored feedback and roll out rules that pass validation."""

        started = self._clock()
        perf_start = time.perf_counter()
        report = LearningCycleReport(started_at=started)
        self._pending = 0
        try:
            records = self.store.recent(self.analysis_window)
            report.records_analysed = len(records)

            false_positives = self.miner.false_positives(records)
            missed = self.miner.missed_errors(records)
            report.false_positive_candidates = len(false_positives)
            report.missed_error_candidates = len(missed)

            rules = [self.generator.suppression_rule(c) for c in false_positives]
            rules += [self.generator.detection_rule(c) for c in missed]
            rules = [rule for rule in rules if rule.rule_id not in self.rollout]
            report.rules_generated = len(rules)

            samples = held_out_samples(records) + self._extra_samples
            for rule in rules:
                validation = self.validator.validate(rule, samples)
                if not validation.passed:
                    report.rejected[rule.rule_id] = validation.reason or "failed validation"
                    LOGGER.info("Rule %s failed validation: %s", rule.rule_id, validation.reason)
                    continue
                self.rollout.start(rule)
                report.rules_validated += 1

            report.rollout_changes = self.rollout.evaluate_all()
            # Yield so that callers awaiting feedback are not starved on large stores
            await asyncio.sleep(0)
        finally:
            self._last_cycle_at = self._clock()
            report.duration_ms = (time.perf_counter() - perf_start) * 1000
            self._last_report = report

        LOGGER.info(
            "Learning cycle analysed %d record(s): %d rule(s) generated, %d validated",
            report.records_analysed,
            report.rules_generated,
            report.rules_validated,
        )
        return report

    @staticmethod
    def _log_cycle_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Learning cycle failed", exc_info=exc)

    async def wait_for_learning(self) -> LearningCycleReport | None:
        if self._cycle_task is None:
            return None
        return await self._cycle_task

    def adjust(self, issues: Sequence[Issue], text: str) -> list[Issue]:
        """Apply rolled-out suppressions and learned confidences to ``issues``."""

        suppressions = [
            rule
            for rule in self.rollout.suppression_rules()
            if self.rollout.in_rollout(rule.rule_id, text)
        ]
        adjusted: list[Issue] = []
        for issue in issues:
            hidden_by = next((rule for rule in suppressions if rule.matches(issue, text)), None)
            if hidden_by is not None:
                self.rollout.record_impression(hidden_by.rule_id)
                continue
            pattern = pattern_signature(
                issue.source_engine, text[issue.offset : issue.end], issue.message
            )
            learned = self.confidence.get(pattern)
            if learned is not None and learned != issue.confidence:
                issue = issue.model_copy(update={"confidence": learned})
            adjusted.append(issue)
        return adjusted

    async def aclose(self) -> None:
        if self.learning_active:
            await self.wait_for_learning()
        self.store.compact()

    def status(self) -> dict:
        return {
            "learning_active": self.learning_active,
            "total_feedback": self._total,
            "pending_feedback": self._pending,
            "last_cycle_at": self._last_cycle_at,
            "learned_patterns": len(self.confidence),
            "experiments": self.rollout.summary(),
        }
