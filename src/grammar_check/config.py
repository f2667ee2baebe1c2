"""Runtime configuration for the checking core.

Defaults live on :class:`CheckerConfig`; ``from_env`` overlays values from
the environment (optionally after loading a ``.env`` file). Malformed
numeric values are ignored and the default is kept.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "GRAMMAR_CHECK_"

DEFAULT_STRATEGIES = ("local", "remote", "public_api")
SELF_TEST_POLICIES = ("warn", "fail")


@dataclass
class CheckerConfig:
    """Settings shared by the loader, dispatcher, cache and health monitor."""

    # Language / input
    language: str = "en-GB"
    min_text_length: int = 3

    # Module loader
    load_strategies: tuple[str, ...] = DEFAULT_STRATEGIES
    remote_server_url: str | None = None
    remote_probe_timeout: float = 5.0
    self_test_policy: str = "warn"

    # Result cache
    cache_enabled: bool = True
    cache_ttl_seconds: float = 300.0
    cache_fast_capacity: int = 100
    cache_slow_capacity: int = 1000
    cache_promote_threshold: int = 2

    # Health monitor
    failure_limit: int = 3
    degraded_rate: float = 0.3
    critical_engines: tuple[str, ...] = ("languagetool", "spelling")

    # Result filtering
    relaxed_min_confidence: float = 0.5

    # Optional engines
    llm_enabled: bool = False
    feedback_enabled: bool = True
    feedback_log_path: Path | None = None

    # Engine retry (LanguageTool transient errors)
    engine_max_retries: int = 2
    engine_retry_base_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.self_test_policy not in SELF_TEST_POLICIES:
            raise ValueError(
                f"self_test_policy must be one of {SELF_TEST_POLICIES}, got {self.self_test_policy!r}"
            )
        if self.min_text_length < 0:
            raise ValueError("min_text_length must not be negative")

    @classmethod
    def from_env(cls, dotenv_path: str | Path | None = None) -> "CheckerConfig":
        """Build a configuration from ``GRAMMAR_CHECK_*`` environment variables."""

        if dotenv_path is not None:
            load_dotenv(dotenv_path=Path(dotenv_path))
        else:
            load_dotenv()

        defaults = cls()
        strategies = _split_names(_env("LOAD_STRATEGIES")) or list(defaults.load_strategies)
        critical = _split_names(_env("CRITICAL_ENGINES")) or list(defaults.critical_engines)
        log_path = _env("FEEDBACK_LOG")

        return cls(
            language=_env("LANGUAGE") or defaults.language,
            min_text_length=_read_int_env("MIN_TEXT_LENGTH", default=defaults.min_text_length),
            load_strategies=tuple(strategies),
            remote_server_url=_env("REMOTE_SERVER") or None,
            remote_probe_timeout=_read_float_env(
                "REMOTE_PROBE_TIMEOUT", default=defaults.remote_probe_timeout
            ),
            self_test_policy=(_env("SELF_TEST_POLICY") or defaults.self_test_policy).lower(),
            cache_enabled=_read_bool_env("CACHE_ENABLED", default=defaults.cache_enabled),
            cache_ttl_seconds=_read_float_env("CACHE_TTL", default=defaults.cache_ttl_seconds),
            cache_fast_capacity=_read_int_env(
                "CACHE_FAST_CAPACITY", default=defaults.cache_fast_capacity
            ),
            cache_slow_capacity=_read_int_env(
                "CACHE_SLOW_CAPACITY", default=defaults.cache_slow_capacity
            ),
            cache_promote_threshold=_read_int_env(
                "CACHE_PROMOTE_THRESHOLD", default=defaults.cache_promote_threshold
            ),
            failure_limit=_read_int_env("FAILURE_LIMIT", default=defaults.failure_limit),
            degraded_rate=_read_float_env("DEGRADED_RATE", default=defaults.degraded_rate),
            critical_engines=tuple(critical),
            relaxed_min_confidence=_read_float_env(
                "RELAXED_MIN_CONFIDENCE", default=defaults.relaxed_min_confidence
            ),
            llm_enabled=_read_bool_env("LLM_ENABLED", default=defaults.llm_enabled),
            feedback_enabled=_read_bool_env(
                "FEEDBACK_ENABLED", default=defaults.feedback_enabled
            ),
            feedback_log_path=Path(log_path) if log_path else None,
            engine_max_retries=_read_int_env(
                "ENGINE_MAX_RETRIES", default=defaults.engine_max_retries
            ),
            engine_retry_base_delay=_read_float_env(
                "ENGINE_RETRY_BASE_DELAY", default=defaults.engine_retry_base_delay
            ),
        )


def _env(name: str) -> str | None:
    value = os.environ.get(ENV_PREFIX + name)
    if value is None:
        return None
    return value.strip()


def _split_names(value: str | None) -> list[str]:
    if not value:
        return []
    return [chunk.strip().lower() for chunk in value.split(",") if chunk.strip()]


def _read_float_env(name: str, *, default: float) -> float:
    raw = _env(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        LOGGER.warning("Ignoring invalid value for %s%s: %r", ENV_PREFIX, name, raw)
        return default


def _read_int_env(name: str, *, default: int) -> int:
    raw = _env(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        LOGGER.warning("Ignoring invalid value for %s%s: %r", ENV_PREFIX, name, raw)
        return default


def _read_bool_env(name: str, *, default: bool) -> bool:
    raw = _env(name)
    if raw is None or raw == "":
        return default
    return raw.lower() in ("1", "true", "yes", "on")
