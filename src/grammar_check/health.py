"""Per-engine health tracking.

The dispatcher reports every engine outcome here after the join, so the
counters only change between checks and never mid-flight.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Iterable, Protocol

from src.models import EngineHealthRecord, HealthReport, HealthStatus

LOGGER = logging.getLogger(__name__)

FAILURE_LOG_SIZE = 100


class HealthObserver(Protocol):
    def record_success(self, engine_name: str) -> None: ...

    def record_failure(self, engine_name: str, error: BaseException) -> None: ...


@dataclass(frozen=True)
class FailureEntry:
    engine_name: str
    error: str
    timestamp: float


class EngineHealthMonitor:
    def __init__(
        self,
        *,
        failure_limit: int = 3,
        degraded_rate: float = 0.3,
        critical_engines: Iterable[str] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.failure_limit = failure_limit
        self.degraded_rate = degraded_rate
        self.critical_engines = tuple(critical_engines)
        self._clock = clock
        self._records: dict[str, EngineHealthRecord] = {}
        self._failures: deque[FailureEntry] = deque(maxlen=FAILURE_LOG_SIZE)

    def register(self, engine_name: str) -> None:
        self._records.setdefault(engine_name, EngineHealthRecord(engine_name=engine_name))

    def _record(self, engine_name: str) -> EngineHealthRecord:
        self.register(engine_name)
        return self._records[engine_name]

    def record_success(self, engine_name: str) -> None:
        record = self._record(engine_name)
        record.total_successes += 1
        record.consecutive_failures = 0
        self._update_status(record)

    def record_failure(self, engine_name: str, error: BaseException) -> None:
        record = self._record(engine_name)
        record.total_failures += 1
        record.consecutive_failures += 1
        record.last_error = f"{type(error).__name__}: {error}"
        self._failures.append(
            FailureEntry(engine_name=engine_name, error=record.last_error, timestamp=self._clock())
        )
        self._update_status(record)

    def classify(self, record: EngineHealthRecord) -> HealthStatus:
        if record.consecutive_failures >= self.failure_limit or (
            record.total_failures > 0 and record.total_successes == 0
        ):
            return HealthStatus.FAILING
        if record.consecutive_failures >= 2 or (
            record.total_runs > 0 and record.failure_rate >= self.degraded_rate
        ):
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    def _update_status(self, record: EngineHealthRecord) -> None:
        status = self.classify(record)
        if status is not record.status:
            log = LOGGER.warning if status.rank > record.status.rank else LOGGER.info
            log(
                "Engine '%s' health changed from %s to %s",
                record.engine_name,
                record.status.value,
                status.value,
            )
            record.status = status

    def status_of(self, engine_name: str) -> HealthStatus:
        record = self._records.get(engine_name)
        return record.status if record is not None else HealthStatus.HEALTHY

    def recent_failures(self) -> list[FailureEntry]:
        return list(self._failures)

    def report(self) -> HealthReport:
        engines = {name: record.model_copy() for name, record in self._records.items()}

        overall = HealthStatus.HEALTHY
        for record in engines.values():
            if record.status.rank > overall.rank:
                overall = record.status

        critical_issues: list[str] = []
        recommendations: list[str] = []
        for name, record in engines.items():
            if record.status is HealthStatus.HEALTHY:
                continue
            if name in self.critical_engines and record.status is HealthStatus.FAILING:
                critical_issues.append(f"Critical engine '{name}' is failing: {record.last_error}")
            if record.status is HealthStatus.FAILING:
                recommendations.append(
                    f"Reinitialize engine {name} after {record.consecutive_failures} consecutive failures"
                )
            else:
                recommendations.append(
                    f"Monitor engine {name}: failure rate {record.failure_rate:.0%}"
                )
        if critical_issues:
            overall = HealthStatus.FAILING

        return HealthReport(
            overall=overall,
            engines=engines,
            critical_failures=len(critical_issues),
            critical_issues=critical_issues,
            recommendations=recommendations,
            timestamp=self._clock(),
        )

    def reset(self) -> None:
        """Forget all history. Engines stay registered."""

        for name in list(self._records):
            self._records[name] = EngineHealthRecord(engine_name=name)
        self._failures.clear()
        LOGGER.info("Engine health monitoring reset")
