"""Durable progress records, one JSON file keyed by content-unit id.

File layout::

    {"<unitId>": {"completed": true, "completedAt": 1704123000000}}

Reads are served from an in-memory copy so a write is visible to the very
next evaluation. If the file cannot be read or written the store keeps
working in memory for the rest of the process (``degraded``); completion
still works for the current visit but does not survive a restart.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from .errors import PersistenceUnavailable
from .models import ProgressRecord

logger = logging.getLogger("liveplan.progress")


class ProgressStore:
    """Key -> ProgressRecord map. Only the completion aggregator writes to it."""

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path is not None else None
        self._records: dict[str, ProgressRecord] = {}
        self._degraded = self.path is None
        if self.path is not None:
            self.reload()

    @property
    def degraded(self) -> bool:
        """True when progress only lives in memory."""
        return self._degraded

    def get(self, content_unit_id: str) -> ProgressRecord | None:
        return self._records.get(content_unit_id)

    def is_completed(self, content_unit_id: str) -> bool:
        record = self._records.get(content_unit_id)
        return record is not None and record.completed

    def all(self) -> dict[str, ProgressRecord]:
        return dict(self._records)

    def put(self, record: ProgressRecord) -> None:
        """Store ``record`` in memory and, unless degraded, on disk."""
        self._records[record.content_unit_id] = record
        if self._degraded:
            return
        try:
            self._write()
        except PersistenceUnavailable as e:
            self._degrade(e)

    def reload(self) -> None:
        """Re-read the backing file. Unreadable entries read as not completed."""
        if self.path is None:
            return
        try:
            raw = self._read()
        except PersistenceUnavailable as e:
            self._degrade(e)
            return
        self._records = {
            str(unit_id): ProgressRecord.from_json(str(unit_id), entry)
            for unit_id, entry in raw.items()
        }
        self._degraded = False

    # ---- Internal ----

    def _read(self) -> dict:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise PersistenceUnavailable(f"Cannot read {self.path}: {e}") from e

        try:
            data = json.loads(text) if text.strip() else {}
        except json.JSONDecodeError:
            logger.warning("Progress file %s is corrupt; treating all units as not completed", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Progress file %s has unexpected shape; ignoring it", self.path)
            return {}
        return data

    def _write(self) -> None:
        payload = {unit_id: record.to_json() for unit_id, record in self._records.items()}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".progress-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2, sort_keys=True)
                    f.write("\n")
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceUnavailable(f"Cannot write {self.path}: {e}") from e

    def _degrade(self, error: PersistenceUnavailable) -> None:
        if not self._degraded:
            logger.warning("%s; keeping progress in memory for this session", error)
        self._degraded = True
