from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Protocol

from .errors import StorageError
from .models import SCHEMA_VERSION, SessionLog, SessionRecord
from .timeutil import hours_between, parse_iso_utc, to_iso_utc, utc_now

logger = logging.getLogger(__name__)


class PushScheduler(Protocol):
    def schedule_push(self) -> None: ...


def _parse_timestamp(value) -> datetime | None:
    # The original bot stored the clock-in stamp as {"time": "..."} in one release.
    if isinstance(value, dict):
        value = value.get("time")
    if not isinstance(value, str):
        return None
    try:
        return parse_iso_utc(value)
    except (ValueError, OverflowError):
        return None


def migrate_record(key: str, payload) -> SessionRecord | None:
    """Normalize any record shape ever written into the current one.

    Handles records keyed by display name (with a ``userId`` field), string
    ``hours``, wrapped ``active`` stamps and missing ``logs``. Hours are
    recomputed from start/end and logs that never closed are dropped.
    """
    if not isinstance(payload, dict):
        return None

    version = payload.get("version", 0)
    if isinstance(version, int) and version > SCHEMA_VERSION:
        logger.warning("Record %r has newer schema version %s, reading what is understood", key, version)

    user_id = str(payload.get("userId") or key)
    display_name = payload.get("displayName") or payload.get("username") or ""
    if not display_name and key != user_id:
        display_name = key

    logs: list[SessionLog] = []
    raw_logs = payload.get("logs")
    if not isinstance(raw_logs, list):
        raw_logs = []
    for item in raw_logs:
        if not isinstance(item, dict):
            continue
        start = _parse_timestamp(item.get("start"))
        end = _parse_timestamp(item.get("end"))
        if start is None or end is None or end <= start:
            logger.warning("Dropping malformed log for user=%s: %r", user_id, item)
            continue
        logs.append(SessionLog(start=start, end=end, hours=hours_between(start, end)))

    logs.sort(key=lambda log: log.start)
    return SessionRecord(
        user_id=user_id,
        display_name=str(display_name),
        active=_parse_timestamp(payload.get("active")),
        logs=logs,
    )


def _merge(into: SessionRecord, other: SessionRecord) -> None:
    into.logs = sorted(into.logs + other.logs, key=lambda log: log.start)
    if into.active is None:
        into.active = other.active
    if not into.display_name:
        into.display_name = other.display_name


def _read_json_object(path: Path, label: str) -> dict:
    if not path.exists():
        logger.info("No %s file at %s, starting empty", label, path)
        return {}

    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        logger.warning("Unreadable %s file at %s, starting empty", label, path, exc_info=True)
        return {}

    if not isinstance(document, dict):
        logger.warning("Unexpected %s document type %s, starting empty", label, type(document).__name__)
        return {}
    return document


def _atomic_write(path: Path, text: str) -> None:
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    except OSError as exc:
        raise StorageError(f"Failed to write {path}: {exc}") from exc

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except OSError as exc:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise StorageError(f"Failed to write {path}: {exc}") from exc


class RecordStore:
    """Owns every SessionRecord and the JSON snapshot they are persisted to."""

    def __init__(
        self,
        path: str | Path,
        history_path: str | Path,
        mirror: PushScheduler | None = None,
    ) -> None:
        self.path = Path(path)
        self.history_path = Path(history_path)
        self.mirror = mirror
        self._records: dict[str, SessionRecord] = {}

    def attach_mirror(self, mirror: PushScheduler) -> None:
        self.mirror = mirror

    def load(self) -> None:
        document = _read_json_object(self.path, "timesheet")

        records: dict[str, SessionRecord] = {}
        for key, payload in document.items():
            record = migrate_record(str(key), payload)
            if record is None:
                logger.warning("Skipping unreadable record %r", key)
                continue
            if record.user_id in records:
                _merge(records[record.user_id], record)
            else:
                records[record.user_id] = record

        self._records = records
        logger.info("Loaded %d timesheet records from %s", len(records), self.path)

    def dumps(self) -> str:
        payload = {user_id: record.to_dict() for user_id, record in self._records.items()}
        return json.dumps(payload, indent=2)

    def flush(self) -> bool:
        """Write the snapshot and queue a remote push.

        A failed disk write is logged and left for the next flush; the
        in-memory records stay authoritative either way.
        """
        try:
            _atomic_write(self.path, self.dumps())
        except StorageError:
            logger.exception("Failed to flush timesheet")
            return False

        if self.mirror is not None:
            self.mirror.schedule_push()
        return True

    def get(self, user_id: str) -> SessionRecord | None:
        return self._records.get(user_id)

    def get_or_create(self, user_id: str, display_name: str) -> SessionRecord:
        record = self._records.get(user_id)
        if record is None:
            record = SessionRecord(user_id=user_id, display_name=display_name)
            self._records[user_id] = record
        return record

    def records(self) -> list[SessionRecord]:
        return list(self._records.values())

    def load_history(self) -> dict:
        return _read_json_object(self.history_path, "history")

    def archive_and_reset(
        self,
        cutoff: tuple[datetime, datetime] | None = None,
        archived_at: datetime | None = None,
    ) -> int:
        """Move logs into the history file and return how many were moved.

        Without a cutoff every record is archived, open sessions included,
        and the store is emptied. With a ``(start, end)`` cutoff only logs
        starting inside that window move; open sessions stay.
        """
        stamp = to_iso_utc(archived_at or utc_now())
        archived: dict[str, dict] = {}
        remaining: dict[str, list[SessionLog]] = {}
        moved = 0

        for record in self._records.values():
            if cutoff is None:
                taken, kept = record.logs, []
            else:
                start, end = cutoff
                taken = [log for log in record.logs if start <= log.start <= end]
                kept = [log for log in record.logs if not start <= log.start <= end]
            remaining[record.user_id] = kept

            if not taken and (cutoff is not None or record.active is None):
                continue

            entry = {
                "userId": record.user_id,
                "displayName": record.display_name,
                "logs": [log.to_dict() for log in taken],
            }
            if cutoff is None and record.active is not None:
                entry["active"] = to_iso_utc(record.active)
            archived[record.user_id] = entry
            moved += len(taken)

        # History must be on disk before anything leaves the live records.
        if archived:
            history = self.load_history()
            history[stamp] = archived
            _atomic_write(self.history_path, json.dumps(history, indent=2))

        if cutoff is None:
            self._records = {}
        else:
            for record in self._records.values():
                record.logs = remaining[record.user_id]

        self.flush()
        logger.info("Archived %d logs from %d users under %s", moved, len(archived), stamp)
        return moved
