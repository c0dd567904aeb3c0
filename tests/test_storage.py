"""
Tests for storage backends, conditional writes and transaction support
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone
from enum import Enum
from dataclasses import dataclass
from typing import Optional

from loan_recovery.storage import (
    InMemoryStorage, SQLiteStorage, StorageRecord, create_storage
)


test_data = {
    "id": "case_001",
    "loan_id": "LN001",
    "total_collected_amount": "800",
    "telecaller_id": None,
    "is_active": True,
}


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    """Both backends behave the same through the interface"""
    backend = InMemoryStorage() if request.param == "memory" else SQLiteStorage(":memory:")
    yield backend
    backend.close()


class TestStorageBasics:
    """CRUD through the storage interface"""

    def test_save_load_roundtrip(self, storage):
        storage.save("cases", "case_001", test_data)
        assert storage.load("cases", "case_001") == test_data
        assert storage.exists("cases", "case_001")
        assert not storage.exists("cases", "missing")

    def test_find_matches_null_and_bool(self, storage):
        storage.save("cases", "case_001", test_data)
        storage.save("cases", "case_002", dict(test_data, id="case_002", telecaller_id="T1"))

        unassigned = storage.find("cases", {"telecaller_id": None})
        assert [r["id"] for r in unassigned] == ["case_001"]
        assert len(storage.find("cases", {"is_active": True})) == 2

    def test_delete_and_count(self, storage):
        storage.save("cases", "case_001", test_data)
        assert storage.count("cases") == 1
        assert storage.delete("cases", "case_001")
        assert not storage.delete("cases", "case_001")
        assert storage.count("cases") == 0

    def test_loaded_records_are_copies(self, storage):
        storage.save("cases", "case_001", test_data)
        loaded = storage.load("cases", "case_001")
        loaded["loan_id"] = "CHANGED"
        assert storage.load("cases", "case_001")["loan_id"] == "LN001"


class TestCompareAndUpdate:
    """Conditional replace used by the payment ledger"""

    def test_applies_when_expected_values_hold(self, storage):
        storage.save("cases", "case_001", test_data)
        updated = dict(test_data, total_collected_amount="1000")

        assert storage.compare_and_update(
            "cases", "case_001", {"total_collected_amount": "800"}, updated
        )
        assert storage.load("cases", "case_001")["total_collected_amount"] == "1000"

    def test_rejects_stale_expectation(self, storage):
        storage.save("cases", "case_001", dict(test_data, total_collected_amount="900"))
        updated = dict(test_data, total_collected_amount="1000")

        assert not storage.compare_and_update(
            "cases", "case_001", {"total_collected_amount": "800"}, updated
        )
        assert storage.load("cases", "case_001")["total_collected_amount"] == "900"

    def test_missing_record_is_not_created(self, storage):
        assert not storage.compare_and_update("cases", "nope", {}, test_data)
        assert storage.load("cases", "nope") is None

    def test_null_and_bool_expectations(self, storage):
        storage.save("cases", "case_001", test_data)
        assert storage.compare_and_update(
            "cases", "case_001", {"telecaller_id": None, "is_active": True},
            dict(test_data, telecaller_id="T1")
        )
        assert not storage.compare_and_update(
            "cases", "case_001", {"telecaller_id": None}, test_data
        )


class TestTransactions:
    """atomic() on SQLite commits or rolls back as a unit"""

    def test_rollback_on_error(self):
        storage = SQLiteStorage(":memory:")
        storage.save("cases", "case_001", test_data)

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("cases", "case_001", dict(test_data, loan_id="LN999"))
                raise RuntimeError("boom")

        assert storage.load("cases", "case_001")["loan_id"] == "LN001"
        storage.close()

    def test_commit(self):
        storage = SQLiteStorage(":memory:")
        with storage.atomic():
            storage.save("cases", "case_001", test_data)
        assert storage.exists("cases", "case_001")
        storage.close()

    def test_persists_to_file(self, tmp_path):
        path = tmp_path / "recovery.db"
        storage = SQLiteStorage(path)
        storage.save("cases", "case_001", test_data)
        storage.close()

        reopened = SQLiteStorage(path)
        assert reopened.load("cases", "case_001") == test_data
        reopened.close()


class Colour(Enum):
    RED = "red"


@dataclass
class SampleRecord(StorageRecord):
    amount: Decimal
    colour: Colour
    due: Optional[datetime] = None


class TestStorageRecord:
    def test_to_dict_serializes_decimal_enum_and_datetime(self):
        now = datetime(2024, 5, 1, 10, 30, tzinfo=timezone.utc)
        record = SampleRecord(id="r1", created_at=now, updated_at=now,
                              amount=Decimal("12.50"), colour=Colour.RED, due=now)
        data = record.to_dict()

        assert data["amount"] == "12.50"
        assert data["colour"] == "red"
        assert data["due"] == now.isoformat()
        assert data["created_at"] == now.isoformat()


class TestCreateStorage:
    def test_backends_by_name(self):
        assert isinstance(create_storage("memory"), InMemoryStorage)
        assert isinstance(create_storage("sqlite", ":memory:"), SQLiteStorage)

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unsupported storage backend"):
            create_storage("postgres")
