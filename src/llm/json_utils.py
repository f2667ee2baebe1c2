"""JSON extraction and repair for LLM responses."""

from __future__ import annotations

import json
from typing import Any

from json_repair import repair_json

_PAIRS = (("[", "]"), ("{", "}"))


def parse_json_response(text: str) -> Any:
    """Parse the outermost JSON array or object embedded in ``text``.

    Models often wrap JSON in prose or code fences and occasionally emit
    trailing commas or unquoted keys; the fragment is repaired before it is
    parsed.

    Raises:
        ValueError: If no JSON delimiters are found
        json.JSONDecodeError: If the repaired fragment still cannot be parsed
    """

    if not isinstance(text, str):
        raise ValueError(f"Expected string input, got {type(text)}")

    starts = [(text.find(open_), open_, close) for open_, close in _PAIRS if open_ in text]
    if not starts:
        raise ValueError("Response text does not contain JSON object or array delimiters.")
    # Whichever container opens first wins; arrays win a tie
    start, _, close = min(starts, key=lambda item: item[0])
    end = text.rfind(close)
    if end <= start:
        raise ValueError("Response text does not contain matching JSON delimiters.")

    return json.loads(repair_json(text[start : end + 1]))
