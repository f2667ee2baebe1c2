"""LLM provider layer used by the optional proofreading engine."""
