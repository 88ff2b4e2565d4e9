"""Tests for catalog record CRUD, soft delete and statistics."""

from decimal import Decimal

import pytest

from droxstock.core.exceptions import RecordNotFoundError, DuplicateRecordError, NoDataError
from droxstock.services.daparto_service import daparto_service


def _payload(number, **fields):
    data = {
        "interne_artikelnummer": number,
        "tiltle": "Luftfilter",
        "teilemarke_teilenummer": "MANN C2201",
        "preis": Decimal("12.90"),
        "zustand": 0,
        "pfand": 0,
        "versandklasse": 1,
        "lieferzeit": 2,
    }
    data.update(fields)
    return data


class TestCreate:
    def test_create(self, db):
        record = daparto_service.create(db, _payload("L-1"))
        assert record.id is not None
        assert record.preis == Decimal("12.90")

    def test_duplicate_number(self, db, make_record):
        make_record("L-1")
        with pytest.raises(DuplicateRecordError) as exc:
            daparto_service.create(db, _payload("L-1"))
        assert exc.value.field == "interne_artikelnummer"

    def test_duplicate_of_deleted_record_hints_restore(self, db, make_record):
        record = make_record("L-1")
        daparto_service.soft_delete(db, record.id)
        with pytest.raises(DuplicateRecordError) as exc:
            daparto_service.create(db, _payload("L-1"))
        assert "restore it instead" in exc.value.message


class TestUpdate:
    def test_changes_are_reported(self, db, make_record):
        record = make_record("L-1", preis=Decimal("10.00"), lieferzeit=3)

        result = daparto_service.update(db, record.id, {"preis": Decimal("11.50"), "lieferzeit": 3})

        assert result["changes"] == {"preis": {"old": Decimal("10.00"), "new": Decimal("11.50")}}
        assert result["record"].preis == Decimal("11.50")

    def test_no_changes(self, db, make_record):
        record = make_record("L-1", preis=Decimal("10.00"))

        result = daparto_service.update(db, record.id, {"preis": "10", "tiltle": None})

        assert result["changes"] == {}
        assert result["message"] == "No changes detected"

    def test_renumber_into_existing(self, db, make_record):
        make_record("L-1")
        other = make_record("L-2")
        with pytest.raises(DuplicateRecordError):
            daparto_service.update(db, other.id, {"interne_artikelnummer": "L-1"})


class TestSoftDelete:
    def test_delete_and_restore(self, db, make_record):
        record = make_record("L-1")

        daparto_service.soft_delete(db, record.id)
        with pytest.raises(RecordNotFoundError):
            daparto_service.get(db, record.id)
        assert daparto_service.get(db, record.id, with_trashed=True).is_deleted

        restored = daparto_service.restore(db, record.id)
        assert restored.deleted_at is None
        assert daparto_service.get_by_number(db, "L-1").id == record.id

    def test_restore_live_record_is_noop(self, db, make_record):
        record = make_record("L-1")
        assert daparto_service.restore(db, record.id).deleted_at is None

    def test_deleted_record_hidden_from_listing(self, db, make_record):
        make_record("L-1")
        gone = make_record("L-2")
        daparto_service.soft_delete(db, gone.id)

        result = daparto_service.list_records(db)

        assert [r.interne_artikelnummer for r in result["records"]] == ["L-1"]
        assert result["total"] == 1

    def test_delete_all(self, db, make_record):
        make_record("L-1")
        make_record("L-2")
        gone = make_record("L-3")
        daparto_service.soft_delete(db, gone.id)

        result = daparto_service.soft_delete_all(db)

        assert result["records_deleted"] == 2
        assert daparto_service.list_records(db)["total"] == 0
        assert daparto_service.stats(db)["deleted_parts"] == 3
        assert daparto_service.restore(db, gone.id).deleted_at is None

    def test_delete_all_on_empty_catalog(self, db, make_record):
        daparto_service.soft_delete(db, make_record("L-1").id)
        with pytest.raises(NoDataError) as exc:
            daparto_service.soft_delete_all(db)
        assert exc.value.message == "No data to delete"


class TestListing:
    def test_filters_and_sorting(self, db, make_record):
        make_record("B-1", teilemarke_teilenummer="BOSCH 1", preis=Decimal("30.00"))
        make_record("B-2", teilemarke_teilenummer="BOSCH 2", preis=Decimal("10.00"))
        make_record("M-1", teilemarke_teilenummer="MANN 1", preis=Decimal("20.00"))

        result = daparto_service.list_records(
            db, brand="bosch", sort_by="preis", sort_order="asc"
        )
        assert [r.interne_artikelnummer for r in result["records"]] == ["B-2", "B-1"]

        result = daparto_service.list_records(db, min_price=Decimal("15"), max_price=Decimal("25"))
        assert [r.interne_artikelnummer for r in result["records"]] == ["M-1"]

    def test_unknown_sort_field_falls_back(self, db, make_record):
        make_record("A-1")
        result = daparto_service.list_records(db, sort_by="hashed_password")
        assert result["total"] == 1

    def test_pagination(self, db, make_record):
        for i in range(5):
            make_record(f"P-{i}")
        result = daparto_service.list_records(db, page=2, page_size=2, sort_by="interne_artikelnummer", sort_order="asc")
        assert [r.interne_artikelnummer for r in result["records"]] == ["P-2", "P-3"]
        assert result["total_pages"] == 3


class TestStats:
    def test_stats(self, db, make_record):
        make_record("S-1", teilemarke_teilenummer="BOSCH 1", preis=Decimal("10.00"))
        make_record("S-2", teilemarke_teilenummer="MANN 1", preis=Decimal("30.00"))
        gone = make_record("S-3", preis=Decimal("500.00"))
        daparto_service.soft_delete(db, gone.id)

        assert daparto_service.stats(db) == {
            "total_parts": 2,
            "total_brands": 2,
            "average_price": 20.0,
            "total_value": 40.0,
            "deleted_parts": 1,
        }

    def test_empty_catalog(self, db):
        stats = daparto_service.stats(db)
        assert stats["total_parts"] == 0
        assert stats["average_price"] == 0.0
