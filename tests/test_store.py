import json
from datetime import datetime, timezone

from clock_bot.models import SessionLog
from clock_bot.store import RecordStore, migrate_record


class RecordingMirror:
    def __init__(self) -> None:
        self.calls = 0

    def schedule_push(self) -> None:
        self.calls += 1


def make_store(tmp_path, mirror=None) -> RecordStore:
    return RecordStore(tmp_path / "timesheet.json", tmp_path / "history.json", mirror=mirror)


def test_load_missing_file_is_empty(tmp_path) -> None:
    store = make_store(tmp_path)
    store.load()

    assert store.records() == []


def test_load_corrupt_file_is_empty(tmp_path) -> None:
    (tmp_path / "timesheet.json").write_text("{not json", encoding="utf-8")
    store = make_store(tmp_path)
    store.load()

    assert store.records() == []


def test_load_non_object_document_is_empty(tmp_path) -> None:
    (tmp_path / "timesheet.json").write_text("[1, 2]", encoding="utf-8")
    store = make_store(tmp_path)
    store.load()

    assert store.records() == []


def test_flush_then_load_round_trips(tmp_path) -> None:
    mirror = RecordingMirror()
    store = make_store(tmp_path, mirror)
    record = store.get_or_create("100", "Alice")
    record.logs.append(
        SessionLog.between(
            datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc),
            datetime(2024, 1, 1, 9, 20, 7, tzinfo=timezone.utc),
        )
    )
    record.active = datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)

    assert store.flush() is True
    assert mirror.calls == 1

    reloaded = make_store(tmp_path)
    reloaded.load()

    assert reloaded.records() == [record]
    assert reloaded.dumps() == store.dumps()


def test_flush_failure_is_reported_not_raised(tmp_path) -> None:
    mirror = RecordingMirror()
    store = RecordStore(tmp_path / "missing-dir" / "timesheet.json", tmp_path / "history.json", mirror=mirror)
    store.get_or_create("100", "Alice")

    assert store.flush() is False
    assert mirror.calls == 0
    assert store.get("100") is not None


def test_migrate_legacy_record_shapes() -> None:
    record = migrate_record(
        "100",
        {
            "active": {"time": "2024-01-02T09:00:00.000Z"},
            "logs": [
                {"start": "2024-01-01T00:00:00.000Z", "end": "2024-01-01T02:30:00.000Z", "hours": "2.50"},
                {"start": "2024-01-01T05:00:00.000Z"},
            ],
        },
    )

    assert record.user_id == "100"
    assert record.active == datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)
    assert len(record.logs) == 1
    assert record.logs[0].hours == 2.5


def test_migrate_recomputes_inconsistent_hours() -> None:
    record = migrate_record(
        "100",
        {"logs": [{"start": "2024-01-01T00:00:00Z", "end": "2024-01-01T01:00:00Z", "hours": 7}]},
    )

    assert record.logs[0].hours == 1.0
    assert record.active is None


def test_load_merges_display_name_keyed_records(tmp_path) -> None:
    document = {
        "100": {
            "userId": "100",
            "displayName": "Alice",
            "logs": [{"start": "2024-01-02T00:00:00Z", "end": "2024-01-02T01:00:00Z", "hours": 1}],
        },
        "Alice": {
            "userId": "100",
            "logs": [{"start": "2024-01-01T00:00:00Z", "end": "2024-01-01T01:00:00Z", "hours": 1}],
        },
    }
    (tmp_path / "timesheet.json").write_text(json.dumps(document), encoding="utf-8")
    store = make_store(tmp_path)
    store.load()

    [record] = store.records()
    assert record.user_id == "100"
    assert record.display_name == "Alice"
    assert [log.start.day for log in record.logs] == [1, 2]


def test_archive_and_reset_moves_everything(tmp_path) -> None:
    store = make_store(tmp_path)
    alice = store.get_or_create("100", "Alice")
    alice.logs.append(
        SessionLog.between(
            datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc),
            datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc),
        )
    )
    bob = store.get_or_create("200", "Bob")
    bob.active = datetime(2024, 1, 1, 11, 0, tzinfo=timezone.utc)
    store.flush()
    before = [log.to_dict() for log in alice.logs]

    archived_at = datetime(2024, 2, 1, tzinfo=timezone.utc)
    moved = store.archive_and_reset(archived_at=archived_at)

    assert moved == 1
    reloaded = make_store(tmp_path)
    reloaded.load()
    assert reloaded.records() == []

    history = reloaded.load_history()
    entry = history[archived_at.isoformat()]
    assert entry["100"]["logs"] == before
    assert entry["200"]["active"] == "2024-01-01T11:00:00+00:00"


def test_archive_with_cutoff_keeps_active_sessions(tmp_path) -> None:
    store = make_store(tmp_path)
    store.get_or_create("100", "Alice").logs.extend(
        [
            SessionLog.between(
                datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc),
                datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc),
            ),
            SessionLog.between(
                datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc),
                datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc),
            ),
        ]
    )
    store.get("100").active = datetime(2024, 3, 2, 9, 0, tzinfo=timezone.utc)

    cutoff = (datetime(2024, 1, 1, tzinfo=timezone.utc), datetime(2024, 1, 31, tzinfo=timezone.utc))
    assert store.archive_and_reset(cutoff) == 1

    remaining = store.get("100")
    assert remaining.active is not None
    assert [log.start.month for log in remaining.logs] == [3]


def test_history_accumulates_archives(tmp_path) -> None:
    store = make_store(tmp_path)
    for day in (1, 2):
        store.get_or_create("100", "Alice").logs.append(
            SessionLog.between(
                datetime(2024, 1, day, 9, 0, tzinfo=timezone.utc),
                datetime(2024, 1, day, 10, 0, tzinfo=timezone.utc),
            )
        )
        store.archive_and_reset(archived_at=datetime(2024, 2, day, tzinfo=timezone.utc))

    assert len(store.load_history()) == 2


def test_load_skips_non_list_logs(tmp_path) -> None:
    document = {"100": {"displayName": "Alice", "logs": 5}, "200": {"logs": True}}
    (tmp_path / "timesheet.json").write_text(json.dumps(document), encoding="utf-8")
    store = make_store(tmp_path)
    store.load()

    assert store.get("100").logs == []
    assert store.get("200").logs == []


def test_load_ignores_out_of_range_timestamps(tmp_path) -> None:
    document = {
        "100": {
            "active": "0001-01-01T00:00:00+05:00",
            "logs": [{"start": "0001-01-01T00:00:00+05:00", "end": "2024-01-01T01:00:00Z", "hours": 1}],
        },
        "200": {"active": "9999-12-31T23:00:00-05:00"},
    }
    (tmp_path / "timesheet.json").write_text(json.dumps(document), encoding="utf-8")
    store = make_store(tmp_path)
    store.load()

    assert store.get("100").active is None
    assert store.get("100").logs == []
    assert store.get("200").active is None
