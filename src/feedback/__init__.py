"""Feedback-driven rule evolution for the checking core."""

from __future__ import annotations

from .learning import ConfidenceModel, PatternMiner, RuleGenerator, RuleValidator, held_out_samples
from .loop import LEARNED_ENGINE_NAME, FeedbackLoop, FeedbackReceipt, LearningCycleReport
from .models import (
    DetectionRule,
    FeedbackContext,
    FeedbackEvent,
    FeedbackRecord,
    LabeledSample,
    PatternCandidate,
    SuppressionRule,
    ValidationReport,
    pattern_signature,
)
from .rollout import RolloutManager
from .store import FeedbackStore, anonymize

__all__ = [
    "ConfidenceModel",
    "DetectionRule",
    "FeedbackContext",
    "FeedbackEvent",
    "FeedbackLoop",
    "FeedbackReceipt",
    "FeedbackRecord",
    "FeedbackStore",
    "LEARNED_ENGINE_NAME",
    "LabeledSample",
    "LearningCycleReport",
    "PatternCandidate",
    "PatternMiner",
    "RolloutManager",
    "RuleGenerator",
    "RuleValidator",
    "SuppressionRule",
    "ValidationReport",
    "anonymize",
    "held_out_samples",
    "pattern_signature",
]
