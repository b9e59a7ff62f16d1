import threading

import pytest

from backend.errors import ConflictError, StorageError, ValidationError
from database.db import ATTENDANCE_PAGE_SIZE, AttendanceStore
from database.models import Role, UserAccount


def _insert_at(store, clock, when: tuple, barcode: str, device_id: str):
    clock.set(*when)
    return store.insert_attendance(barcode, device_id)


def test_insert_returns_stored_record_at_head_of_history(store):
    store.insert_attendance("OLD", "gate2")
    record = store.insert_attendance("A123", "gate1")

    assert record.id >= 1
    assert record.barcode == "A123"
    assert record.device_id == "gate1"
    assert record.timestamp == "2024-01-01 09:00:00"

    rows = store.query_attendance()
    # Same second: the newest id still comes first.
    assert rows[0] == record


def test_insert_defaults_device_and_requires_barcode(store):
    assert store.insert_attendance("B1", None).device_id == "unknown"
    assert store.insert_attendance("B2", "").device_id == "unknown"

    with pytest.raises(ValidationError):
        store.insert_attendance("", "gate1")
    with pytest.raises(ValidationError):
        store.insert_attendance(None, "gate1")
    assert len(store.query_attendance()) == 2


def test_query_by_date_and_device(store, clock):
    _insert_at(store, clock, (2023, 12, 31, 23, 59, 59), "X0", "gate1")
    early = _insert_at(store, clock, (2024, 1, 1, 8, 0, 0), "X1", "gate1")
    _insert_at(store, clock, (2024, 1, 1, 9, 0, 0), "X2", "gate2")
    late = _insert_at(store, clock, (2024, 1, 1, 23, 59, 59), "X3", "gate1")
    _insert_at(store, clock, (2024, 1, 2, 0, 0, 0), "X4", "gate1")

    rows = store.query_attendance(date="2024-01-01", device_id="gate1")
    assert rows == [late, early]

    assert len(store.query_attendance(date="2024-01-01")) == 3
    assert len(store.query_attendance(device_id="gate1")) == 4


def test_query_is_capped_but_range_is_not(store):
    conn = store.connect()
    conn.executemany(
        "INSERT INTO attendance (barcode, device_id, timestamp) VALUES (?, ?, ?)",
        [(f"B{i}", "gate1", f"2024-01-01 10:{i // 60:02d}:{i % 60:02d}") for i in range(ATTENDANCE_PAGE_SIZE + 5)],
    )
    conn.commit()
    conn.close()

    capped = store.query_attendance()
    assert len(capped) == ATTENDANCE_PAGE_SIZE
    assert capped[0].barcode == f"B{ATTENDANCE_PAGE_SIZE + 4}"

    uncapped = store.query_attendance_range(start="2024-01-01", end="2024-01-01")
    assert len(uncapped) == ATTENDANCE_PAGE_SIZE + 5


def test_range_is_inclusive_on_both_ends(store, clock):
    _insert_at(store, clock, (2024, 1, 1, 23, 0, 0), "before", "gate1")
    first = _insert_at(store, clock, (2024, 1, 2, 0, 0, 0), "first", "gate1")
    other = _insert_at(store, clock, (2024, 1, 3, 12, 0, 0), "other", "gate2")
    last = _insert_at(store, clock, (2024, 1, 4, 23, 59, 59), "last", "gate1")
    _insert_at(store, clock, (2024, 1, 5, 0, 0, 0), "after", "gate1")

    rows = store.query_attendance_range(start="2024-01-02", end="2024-01-04")
    assert rows == [last, other, first]

    assert store.query_attendance_range(start="2024-01-02", end="2024-01-04", device_id="all") == rows
    assert store.query_attendance_range(start="2024-01-02", end="2024-01-04", device_id="gate2") == [other]
    assert len(store.query_attendance_range()) == 5


def test_invalid_dates_are_rejected(store):
    with pytest.raises(ValidationError):
        store.query_attendance(date="01/01/2024")
    with pytest.raises(ValidationError):
        store.query_attendance_range(start="2024-13-01")


def test_list_devices_is_distinct_and_sorted(store):
    for device in ["gate2", "gate1", "gate2", "annex"]:
        store.insert_attendance("X", device)
    assert store.list_devices() == ["annex", "gate1", "gate2"]


def test_stats_on_empty_store(store):
    stats = store.compute_stats()
    assert stats.to_dict() == {
        "total": 0,
        "total_today": 0,
        "total_week": 0,
        "unique_today": 0,
        "most_active_device": "N/A",
    }
    assert store.device_activity() == []


def test_stats_and_device_activity(store, clock):
    _insert_at(store, clock, (2024, 1, 2, 23, 0, 0), "X1", "gate3")
    _insert_at(store, clock, (2024, 1, 5, 10, 0, 0), "X2", "gate3")
    _insert_at(store, clock, (2024, 1, 9, 10, 0, 0), "X3", "gate3")
    _insert_at(store, clock, (2024, 1, 9, 11, 0, 0), "X4", "gate3")
    _insert_at(store, clock, (2024, 1, 9, 13, 0, 0), "A123", "gate1")
    _insert_at(store, clock, (2024, 1, 10, 8, 0, 0), "A123", "gate1")
    _insert_at(store, clock, (2024, 1, 10, 9, 0, 0), "A123", "gate2")
    _insert_at(store, clock, (2024, 1, 10, 10, 0, 0), "B1", "gate2")
    clock.set(2024, 1, 10, 12, 0, 0)

    stats = store.compute_stats()
    assert stats.total == 8
    assert stats.total_today == 3
    assert stats.total_week == 7
    assert stats.unique_today == 2
    # gate3 is busiest overall but idle for the last 24 hours; gate1 wins the tie with gate2.
    assert stats.most_active_device == "gate1"

    assert store.compute_stats() == stats

    activity = [a.to_dict() for a in store.device_activity()]
    assert activity == [
        {"device_id": "gate2", "scans_today": 2},
        {"device_id": "gate1", "scans_today": 1},
    ]


def test_create_and_read_users(store):
    account = store.create_user("bob", "hash-1", Role.ADMIN)
    assert isinstance(account, UserAccount)
    assert account.username == "bob"
    assert account.role is Role.ADMIN
    assert "password_hash" not in account.to_dict()

    assert store.get_user("bob") == account
    assert store.get_user("Bob") is None

    credentials = store.get_user_credentials("bob")
    assert credentials.account == account
    assert credentials.password_hash == "hash-1"
    assert store.get_user_credentials("nobody") is None


def test_duplicate_username_is_a_conflict(store):
    store.create_user("bob", "hash-1", Role.USER)
    with pytest.raises(ConflictError):
        store.create_user("bob", "hash-2", Role.ADMIN)
    # Usernames are case-sensitive.
    store.create_user("BOB", "hash-3", Role.USER)


def test_concurrent_create_user_has_exactly_one_winner(store):
    barrier = threading.Barrier(2)
    outcomes: list[str] = []

    def create(password_hash: str) -> None:
        barrier.wait()
        try:
            store.create_user("racer", password_hash, Role.USER)
            outcomes.append("created")
        except ConflictError:
            outcomes.append("conflict")

    threads = [threading.Thread(target=create, args=(f"hash-{i}",)) for i in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["conflict", "created"]
    assert [u.username for u in store.list_users()] == ["racer"]


def test_list_users_newest_first(store):
    for name in ["a", "b", "c"]:
        store.create_user(name, "h", Role.USER)
    assert [u.username for u in store.list_users()] == ["c", "b", "a"]
    assert len(store.list_users(limit=2)) == 2


def test_update_and_delete_report_matches(store):
    store.create_user("bob", "old", Role.USER)

    assert store.update_password_hash("bob", "new") is True
    assert store.get_user_credentials("bob").password_hash == "new"
    assert store.update_password_hash("ghost", "new") is False

    assert store.delete_user("bob") is True
    assert store.delete_user("bob") is False
    assert store.get_user("bob") is None


def test_ensure_user_only_inserts_once(store):
    assert store.ensure_user("admin", "h1", Role.ADMIN) is True
    assert store.ensure_user("admin", "h2", Role.ADMIN) is False
    assert store.get_user_credentials("admin").password_hash == "h1"


def test_storage_faults_surface_as_storage_error(tmp_path):
    broken = AttendanceStore(tmp_path / "missing-dir" / "nested" / "scantrack.db")
    with pytest.raises(StorageError):
        broken.query_attendance()
