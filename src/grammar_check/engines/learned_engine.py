from __future__ import annotations

from src.feedback import LEARNED_ENGINE_NAME, RolloutManager
from src.models import IssueCategory


class LearnedRulesEngine:
    """Surfaces detection rules learned from feedback for texts in their rollout."""

    name = LEARNED_ENGINE_NAME
    family = "grammar"
    categories = frozenset(IssueCategory)
    languages: tuple[str, ...] = ()

    def __init__(self, rollout: RolloutManager) -> None:
        self._rollout = rollout

    async def check(self, text: str) -> list[dict]:
        findings: list[dict] = []
        for rule in self._rollout.detection_rules():
            if not self._rollout.in_rollout(rule.rule_id, text):
                continue
            spans = rule.find(text)
            if spans:
                self._rollout.record_impression(rule.rule_id)
            for start, end in spans:
                findings.append(
                    {
                        "offset": start,
                        "length": end - start,
                        "message": rule.message,
                        "short_message": rule.rule_id,
                        "category": rule.category.value,
                        "suggestions": list(rule.suggestions),
                        "confidence": rule.confidence,
                    }
                )
        return findings
