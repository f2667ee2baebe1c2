"""Grammar-checking orchestration core."""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = [
    "feedback",
    "grammar_check",
    "llm",
    "models",
    "prompt",
]
