from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Any, Sequence

from dotenv import load_dotenv
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from .json_utils import parse_json_response
from .provider import LLMParseError, LLMQuotaError, load_system_prompt


class GeminiLLM:
    """Gemini SDK wrapper with a fixed system instruction.

    Rate-limit responses (HTTP 429) are retried with exponential backoff up
    to ``GEMINI_MAX_RETRIES`` times, then surfaced as :class:`LLMQuotaError`
    so the service can fall back to the next provider.
    """

    name = "gemini"
    MODEL = "gemini-2.5-flash"

    def __init__(
        self,
        system_prompt: str | Path,
        *,
        client: genai.Client | None = None,
        dotenv_path: str | Path | None = None,
        filter_json: bool = False,
        min_request_interval: float | None = None,
        max_retries: int | None = None,
    ) -> None:
        self._system_prompt = load_system_prompt(system_prompt)

        if dotenv_path is not None:
            load_dotenv(dotenv_path=Path(dotenv_path))
        else:
            load_dotenv()
        self._client = client or genai.Client()
        self._filter_json = filter_json

        if min_request_interval is None:
            min_request_interval = _read_float_env("GEMINI_MIN_REQUEST_INTERVAL", default=0.0)
        self._min_request_interval = max(0.0, min_request_interval)

        if max_retries is None:
            max_retries = int(_read_float_env("GEMINI_MAX_RETRIES", default=0))
        self._max_retries = max(0, max_retries)

        # First request is never delayed
        self._last_request_time = 0.0

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    def generate(
        self,
        user_prompts: Sequence[str],
        *,
        filter_json: bool | None = None,
    ) -> Any:
        if not user_prompts:
            raise ValueError("user_prompts must not be empty.")

        apply_filter = self._filter_json if filter_json is None else filter_json
        config = types.GenerateContentConfig(
            system_instruction=self._system_prompt,
            temperature=0.2,
            response_mime_type="application/json" if apply_filter else None,
        )

        for attempt in range(self._max_retries + 1):
            self._enforce_rate_limit()
            try:
                response = self._client.models.generate_content(
                    model=self.MODEL,
                    contents="\n".join(user_prompts),
                    config=config,
                )
            except genai_errors.APIError as exc:
                self._last_request_time = time.time()
                if getattr(exc, "code", None) != 429:
                    raise
                if attempt >= self._max_retries:
                    raise LLMQuotaError("Gemini provider: rate limited (exhausted retries)") from exc
                base = self._min_request_interval or 0.1
                time.sleep(base * (2**attempt))
                continue

            self._last_request_time = time.time()
            if not apply_filter:
                return response
            return self._parse_response_json(response, prompts=list(user_prompts))

        raise RuntimeError("Retry loop completed without returning or raising")

    def health_check(self) -> bool:
        return True

    def _parse_response_json(self, response: Any, prompts: list[str] | None = None) -> Any:
        text = getattr(response, "text", None)
        if not isinstance(text, str):
            raise LLMParseError(
                "Response object does not expose a text attribute for JSON parsing.",
                response_text=str(response),
                prompts=prompts,
            )
        try:
            return parse_json_response(text)
        except (ValueError, json.JSONDecodeError) as exc:
            raise LLMParseError(str(exc), response_text=text, prompts=prompts) from exc

    def _enforce_rate_limit(self) -> None:
        if self._min_request_interval <= 0:
            return
        elapsed = time.time() - self._last_request_time
        if elapsed < self._min_request_interval:
            time.sleep(self._min_request_interval - elapsed)


def _read_float_env(var_name: str, *, default: float) -> float:
    raw = os.environ.get(var_name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default
