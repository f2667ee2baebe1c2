"""Prompt templates for the LLM proofreading engine."""
