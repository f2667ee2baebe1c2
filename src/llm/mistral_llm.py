from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Sequence, cast

from dotenv import load_dotenv
from mistralai import Mistral, models

from .json_utils import parse_json_response
from .provider import (
    LLMParseError,
    LLMProviderConfigurationError,
    LLMQuotaError,
    load_system_prompt,
)


class MistralLLM:
    """Mistral SDK wrapper using the ``beta.conversations`` API."""

    name = "mistral"
    MODEL = "mistral-medium-latest"

    def __init__(
        self,
        system_prompt: str | Path,
        *,
        client: Mistral | None = None,
        dotenv_path: str | Path | None = None,
        filter_json: bool = False,
    ) -> None:
        self._system_prompt = load_system_prompt(system_prompt)

        if dotenv_path is not None:
            # Explicit environment values take precedence over the file
            load_dotenv(dotenv_path=Path(dotenv_path))
        else:
            load_dotenv()

        if client is None:
            # The SDK does not read MISTRAL_API_KEY on its own
            api_key = os.environ.get("MISTRAL_API_KEY")
            if not api_key:
                raise LLMProviderConfigurationError(
                    "MISTRAL_API_KEY environment variable is required but not set. "
                    "Please set it in your .env file or environment."
                )
            client = Mistral(api_key=api_key)
        self._client = client
        self._filter_json = filter_json

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
        inputs = cast(
            models.ConversationInputs,
            [models.MessageInputEntry(role="user", content="\n".join(user_prompts))],
        )
        try:
            response = self._client.beta.conversations.start(
                inputs=inputs,
                instructions=self._system_prompt,
                model=self.MODEL,
                completion_args={"temperature": 0.2},
                tools=[],
            )
        except Exception as exc:
            if getattr(exc, "status_code", None) == 429:
                raise LLMQuotaError("Mistral provider: quota exhausted or rate limited") from exc
            raise

        if not apply_filter:
            return response
        return self._parse_response_json(response, prompts=list(user_prompts))

    def health_check(self) -> bool:
        return True

    def _parse_response_json(self, response: Any, prompts: list[str] | None = None) -> Any:
        text = _response_text(response)
        if text is None:
            raise LLMParseError(
                "Response message content is not a string; expected `outputs` or `choices` shapes.",
                response_text=str(response),
                prompts=prompts,
            )
        try:
            return parse_json_response(text)
        except (ValueError, json.JSONDecodeError) as exc:
            raise LLMParseError(str(exc), response_text=text, prompts=prompts) from exc


def _response_text(response: Any) -> str | None:
    # conversations API: response.outputs[*].content
    outputs = getattr(response, "outputs", None)
    if isinstance(outputs, list):
        for entry in outputs:
            content = entry.get("content") if isinstance(entry, dict) else getattr(entry, "content", None)
            if isinstance(content, str) and content.strip():
                return content

    # chat completions: response.choices[0].message.content
    choices = getattr(response, "choices", None)
    if choices:
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if isinstance(content, str):
            return content
    return None
