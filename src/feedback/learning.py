"""Confidence updates, pattern mining, rule generation and rule validation."""

from __future__ import annotations

import hashlib
import logging
import time
from collections import Counter
from typing import Callable, Iterable, Sequence

from src.models import FeedbackAction

from .models import (
    DetectionRule,
    FeedbackRecord,
    LabeledSample,
    PatternCandidate,
    SuppressionRule,
    ValidationReport,
    compile_trigger,
)

LOGGER = logging.getLogger(__name__)

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.95

# Multipliers applied to ``learning_rate * confidence`` for negative actions
_PENALTIES = {
    FeedbackAction.REJECTED: 2.0,
    FeedbackAction.MODIFIED: 0.5,
    FeedbackAction.IGNORED: 0.1,
}


class ConfidenceModel:
    """Per-pattern confidence nudged towards user behaviour."""

    def __init__(self, *, learning_rate: float = 0.1) -> None:
        self.learning_rate = learning_rate
        self._scores: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._scores)

    def __contains__(self, pattern: str) -> bool:
        return pattern in self._scores

    def adjustment(self, action: FeedbackAction, confidence: float) -> float:
        if action is FeedbackAction.ACCEPTED:
            return self.learning_rate * (1 - confidence)
        return -self.learning_rate * confidence * _PENALTIES[action]

    def get(self, pattern: str, default: float | None = None) -> float | None:
        return self._scores.get(pattern, default)

    def update(self, pattern: str, action: FeedbackAction, confidence: float) -> float:
        """Apply one piece of feedback and return the new confidence."""

        current = self._scores.get(pattern, confidence)
        updated = current + self.adjustment(action, current)
        updated = max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, updated))
        self._scores[pattern] = updated
        return updated

    def snapshot(self) -> dict[str, float]:
        return dict(self._scores)


class PatternMiner:
    """Groups feedback records into false-positive and missed-error candidates."""

    def __init__(
        self,
        *,
        false_positive_min_confidence: float = 0.7,
        false_positive_min_count: int = 3,
        missed_error_min_count: int = 2,
    ) -> None:
        self.false_positive_min_confidence = false_positive_min_confidence
        self.false_positive_min_count = false_positive_min_count
        self.missed_error_min_count = missed_error_min_count

    def false_positives(self, records: Iterable[FeedbackRecord]) -> list[PatternCandidate]:
        """Confident issues users keep rejecting."""

        selected = (
            r
            for r in records
            if r.action is FeedbackAction.REJECTED
            and r.confidence > self.false_positive_min_confidence
            and r.flagged_text
        )
        return self._group(selected, self.false_positive_min_count)

    def missed_errors(self, records: Iterable[FeedbackRecord]) -> list[PatternCandidate]:
        """Issues users had to correct by hand rather than accept."""

        selected = (
            r
            for r in records
            if r.action is FeedbackAction.MODIFIED and r.correction and r.flagged_text
        )
        return self._group(selected, self.missed_error_min_count)

    @staticmethod
    def _group(records: Iterable[FeedbackRecord], min_count: int) -> list[PatternCandidate]:
        groups: dict[str, PatternCandidate] = {}
        for record in records:
            candidate = groups.get(record.pattern)
            if candidate is None:
                candidate = PatternCandidate(
                    pattern=record.pattern,
                    source_engine=record.source_engine,
                    category=record.category,
                    flagged_text=record.flagged_text,
                    message=record.message,
                )
                groups[record.pattern] = candidate
            candidate.count += 1
            candidate.total_confidence += record.confidence
            if record.correction:
                candidate.corrections.append(record.correction)
        selected = [c for c in groups.values() if c.count >= min_count]
        # Most frequent first, ties broken by signature for determinism
        return sorted(selected, key=lambda c: (-c.count, c.pattern))


def _rule_id(prefix: str, pattern: str) -> str:
    return f"{prefix}-{hashlib.sha1(pattern.encode('utf-8')).hexdigest()[:10]}"


class RuleGenerator:
    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    def suppression_rule(self, candidate: PatternCandidate) -> SuppressionRule:
        return SuppressionRule(
            rule_id=_rule_id("fp", candidate.pattern),
            pattern=candidate.pattern,
            source_engine=candidate.source_engine,
            trigger=candidate.flagged_text.strip(),
            message=candidate.message,
            confidence=max(MIN_CONFIDENCE, candidate.average_confidence - 0.3),
            feedback_count=candidate.count,
            created_at=self._clock(),
        )

    def detection_rule(self, candidate: PatternCandidate) -> DetectionRule:
        counts = Counter(c.strip() for c in candidate.corrections if c.strip())
        suggestions = tuple(
            text for text, _ in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:3]
        )
        return DetectionRule(
            rule_id=_rule_id("det", candidate.pattern),
            pattern=candidate.pattern,
            trigger=candidate.flagged_text.strip(),
            message=f"Did you mean '{suggestions[0]}'?" if suggestions else candidate.message,
            suggestions=suggestions,
            category=candidate.category,
            confidence=0.8,
            feedback_count=candidate.count,
            created_at=self._clock(),
        )


class RuleValidator:
    """Checks a learned rule against held-out labelled samples.

    Detection rules must stay under the false-positive ceiling on samples
    that are not errors and fire on every held-out positive of their own
    pattern. Suppression rules must not hide more than the same ceiling of
    genuine errors.
    """

    def __init__(self, *, max_false_positive_rate: float = 0.05) -> None:
        self.max_false_positive_rate = max_false_positive_rate

    def validate(
        self,
        rule: SuppressionRule | DetectionRule,
        samples: Sequence[LabeledSample],
    ) -> ValidationReport:
        if isinstance(rule, DetectionRule):
            return self._validate_detection(rule, samples)
        return self._validate_suppression(rule, samples)

    def _validate_detection(
        self, rule: DetectionRule, samples: Sequence[LabeledSample]
    ) -> ValidationReport:
        trigger = compile_trigger(rule.trigger)
        negatives = [s for s in samples if not s.is_error]
        positives = [s for s in samples if s.is_error and s.pattern == rule.pattern]
        fp_rate = _hit_rate(trigger, negatives)
        if not positives:
            return ValidationReport(rule.rule_id, False, fp_rate, None, "no held-out positives")
        recall = _hit_rate(trigger, positives)
        if fp_rate > self.max_false_positive_rate:
            return ValidationReport(
                rule.rule_id, False, fp_rate, recall, f"false-positive rate {fp_rate:.2%} too high"
            )
        if recall < 1.0:
            return ValidationReport(
                rule.rule_id, False, fp_rate, recall, f"fires on only {recall:.0%} of positives"
            )
        return ValidationReport(rule.rule_id, True, fp_rate, recall)

    def _validate_suppression(
        self, rule: SuppressionRule, samples: Sequence[LabeledSample]
    ) -> ValidationReport:
        trigger = compile_trigger(rule.trigger)
        genuine = [s for s in samples if s.is_error]
        hidden_rate = _hit_rate(trigger, genuine, whole=True)
        if hidden_rate > self.max_false_positive_rate:
            return ValidationReport(
                rule.rule_id,
                False,
                hidden_rate,
                reason=f"would hide {hidden_rate:.2%} of genuine errors",
            )
        return ValidationReport(rule.rule_id, True, hidden_rate)


def _hit_rate(trigger, samples: Sequence[LabeledSample], *, whole: bool = False) -> float:
    if not samples:
        return 0.0
    if whole:
        hits = sum(1 for s in samples if trigger.fullmatch(s.text.strip()))
    else:
        hits = sum(1 for s in samples if trigger.search(s.text))
    return hits / len(samples)


def held_out_samples(records: Iterable[FeedbackRecord]) -> list[LabeledSample]:
    """Label stored spans: accepted/modified are errors, rejected are not."""

    samples: list[LabeledSample] = []
    for record in records:
        if not record.flagged_text or record.action is FeedbackAction.IGNORED:
            continue
        samples.append(
            LabeledSample(
                text=record.flagged_text,
                is_error=record.action is not FeedbackAction.REJECTED,
                pattern=record.pattern,
            )
        )
    return samples
