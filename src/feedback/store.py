"""Anonymisation and bounded storage of feedback records."""

from __future__ import annotations

import hashlib
import json
import logging
from collections import deque
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from .models import FeedbackEvent, FeedbackRecord, pattern_signature

LOGGER = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10_000


def anonymize(event: FeedbackEvent) -> FeedbackRecord:
    """Strip identifying data from ``event``.

    The user id is dropped, the full text is replaced by its sha256 digest
    and the timestamp is truncated to the hour.
    """

    text = event.context.text
    flagged = event.flagged_text
    return FeedbackRecord(
        issue_id=event.issue.id,
        source_engine=event.issue.source_engine,
        category=event.issue.category,
        message=event.issue.message,
        confidence=event.issue.confidence,
        action=event.action,
        flagged_text=flagged,
        correction=(event.context.correction or None),
        text_hash=hashlib.sha256(text.encode("utf-8")).hexdigest() if text else "",
        domain=event.context.domain,
        timestamp=float(int(event.context.timestamp // 3600) * 3600),
        pattern=pattern_signature(event.issue.source_engine, flagged, event.issue.message),
    )


class FeedbackStore:
    """Append-only store keeping the newest ``capacity`` records.

    With a ``path`` every record is also appended to a JSONL file. The file is
    rewritten with only the retained records once it grows past twice the
    capacity.
    """

    def __init__(self, *, capacity: int = DEFAULT_CAPACITY, path: Path | None = None) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.path = Path(path) if path is not None else None
        self._records: deque[FeedbackRecord] = deque(maxlen=capacity)
        self._lines_on_disk = 0
        if self.path is not None:
            self._load()

    def __len__(self) -> int:
        return len(self._records)

    def append(self, record: FeedbackRecord) -> None:
        self._records.append(record)
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(record.model_dump_json() + "\n")
        self._lines_on_disk += 1
        if self._lines_on_disk > 2 * self.capacity:
            self.compact()

    def extend(self, records: Iterable[FeedbackRecord]) -> None:
        for record in records:
            self.append(record)

    def recent(self, count: int | None = None) -> list[FeedbackRecord]:
        records = list(self._records)
        if count is None:
            return records
        return records[-count:] if count > 0 else []

    def compact(self) -> None:
        """Rewrite the JSONL file with only the retained records."""

        if self.path is None:
            return
        temp_file = self.path.with_suffix(".tmp")
        try:
            with open(temp_file, "w", encoding="utf-8") as f:
                for record in self._records:
                    f.write(record.model_dump_json() + "\n")
            temp_file.replace(self.path)
        except OSError:
            if temp_file.exists():
                temp_file.unlink()
            raise
        self._lines_on_disk = len(self._records)
        LOGGER.info("Compacted feedback log %s to %d record(s)", self.path, len(self._records))

    def _load(self) -> None:
        assert self.path is not None
        if not self.path.exists():
            return
        skipped = 0
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                self._lines_on_disk += 1
                try:
                    self._records.append(FeedbackRecord.model_validate(json.loads(line)))
                except (json.JSONDecodeError, ValidationError):
                    skipped += 1
        if skipped:
            LOGGER.warning("Skipped %d malformed feedback record(s) in %s", skipped, self.path)
        LOGGER.info("Loaded %d feedback record(s) from %s", len(self._records), self.path)
