from __future__ import annotations

import os
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv

from .gemini_llm import GeminiLLM
from .mistral_llm import MistralLLM
from .provider import LLMProvider, ProviderFactory


def _gemini_factory(
    *,
    system_prompt: str | Path,
    filter_json: bool,
    dotenv_path: str | Path | None,
) -> LLMProvider:
    return GeminiLLM(system_prompt=system_prompt, filter_json=filter_json, dotenv_path=dotenv_path)


def _mistral_factory(
    *,
    system_prompt: str | Path,
    filter_json: bool,
    dotenv_path: str | Path | None,
) -> LLMProvider:
    return MistralLLM(system_prompt=system_prompt, filter_json=filter_json, dotenv_path=dotenv_path)


_PROVIDER_FACTORIES: dict[str, ProviderFactory] = {
    "gemini": _gemini_factory,
    "mistral": _mistral_factory,
}


def _split_names(value: str | None) -> list[str]:
    if not value:
        return []
    return [chunk.strip().lower() for chunk in value.split(",") if chunk.strip()]


def provider_order(
    *,
    primary: str | None = None,
    fallbacks: Sequence[str] | None = None,
) -> list[str]:
    """Resolve provider names from arguments, then ``LLM_PRIMARY``/``LLM_FALLBACK``."""

    candidates = _split_names(primary) if primary else _split_names(os.environ.get("LLM_PRIMARY"))
    if fallbacks:
        candidates.extend(name.strip().lower() for name in fallbacks)
    else:
        candidates.extend(_split_names(os.environ.get("LLM_FALLBACK")))
    if not candidates:
        candidates = list(_PROVIDER_FACTORIES)

    order: list[str] = []
    for name in candidates:
        if name in order:
            continue
        if name not in _PROVIDER_FACTORIES:
            raise ValueError(f"Unknown LLM provider '{name}'")
        order.append(name)
    return order


def create_provider_chain(
    *,
    system_prompt: str | Path,
    filter_json: bool = False,
    dotenv_path: str | Path | None = None,
    primary: str | None = None,
    fallbacks: Sequence[str] | None = None,
) -> list[LLMProvider]:
    """Instantiate the configured providers in priority order."""

    if dotenv_path is not None:
        # Ordering variables must be visible before they are read
        load_dotenv(dotenv_path=str(dotenv_path), override=True)

    return [
        _PROVIDER_FACTORIES[name](
            system_prompt=system_prompt,
            filter_json=filter_json,
            dotenv_path=dotenv_path,
        )
        for name in provider_order(primary=primary, fallbacks=fallbacks)
    ]
