"""Closed set of analysis engines registered by the checker factory."""

from __future__ import annotations

from .base import ENGINE_FAMILIES, CheckerEngine, supports_language
from .language_tool_engine import LanguageToolEngine, filter_matches, retry_with_backoff
from .learned_engine import LearnedRulesEngine
from .llm_engine import LLMProofreadEngine
from .pattern_engine import DEFAULT_PATTERN_RULES, PatternGrammarEngine, PatternRule
from .spelling_engine import SpellingEngine
from .style_engine import ReadabilityReport, StyleEngine, StyleFinding, analyze_readability

__all__ = [
    "CheckerEngine",
    "DEFAULT_PATTERN_RULES",
    "ENGINE_FAMILIES",
    "LLMProofreadEngine",
    "LanguageToolEngine",
    "LearnedRulesEngine",
    "PatternGrammarEngine",
    "PatternRule",
    "ReadabilityReport",
    "SpellingEngine",
    "StyleEngine",
    "StyleFinding",
    "analyze_readability",
    "filter_matches",
    "retry_with_backoff",
    "supports_language",
]
