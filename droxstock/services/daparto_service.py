"""Daparto catalog service — record CRUD with soft delete and restore."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from droxstock.core.exceptions import RecordNotFoundError, DuplicateRecordError, NoDataError
from droxstock.db.session import atomic
from droxstock.models import Daparto

logger = logging.getLogger("droxstock.catalog")

SORTABLE_FIELDS = (
    "interne_artikelnummer", "tiltle", "teilemarke_teilenummer", "preis",
    "zustand", "lieferzeit", "created_at", "updated_at",
)


class DapartoService:
    """Handles catalog records. Soft-deleted records are hidden unless asked for."""

    @staticmethod
    def get(db: Session, record_id: int, with_trashed: bool = False) -> Daparto:
        query = db.query(Daparto).filter(Daparto.id == record_id)
        if not with_trashed:
            query = query.filter(Daparto.deleted_at.is_(None))
        record = query.first()
        if not record:
            raise RecordNotFoundError(f"Daparto record {record_id} not found")
        return record

    @staticmethod
    def get_by_number(db: Session, interne_artikelnummer: str) -> Daparto:
        record = (
            db.query(Daparto)
            .filter(
                Daparto.interne_artikelnummer == interne_artikelnummer,
                Daparto.deleted_at.is_(None),
            )
            .first()
        )
        if not record:
            raise RecordNotFoundError(
                f"Daparto record '{interne_artikelnummer}' not found",
                field="interne_artikelnummer",
            )
        return record

    @staticmethod
    def list_records(
        db: Session,
        search: Optional[str] = None,
        brand: Optional[str] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        page: int = 1,
        page_size: int = 15,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Dict[str, Any]:
        """List live records with search, brand prefix and price range filters."""
        query = db.query(Daparto).filter(Daparto.deleted_at.is_(None))

        if search:
            pattern = f"%{search}%"
            query = query.filter(
                Daparto.tiltle.ilike(pattern)
                | Daparto.teilemarke_teilenummer.ilike(pattern)
                | Daparto.interne_artikelnummer.ilike(pattern)
            )
        if brand:
            query = query.filter(Daparto.teilemarke_teilenummer.ilike(f"{brand}%"))
        if min_price is not None:
            query = query.filter(Daparto.preis >= min_price)
        if max_price is not None:
            query = query.filter(Daparto.preis <= max_price)

        column = getattr(Daparto, sort_by if sort_by in SORTABLE_FIELDS else "created_at")
        ordering = column.asc() if sort_order == "asc" else column.desc()

        total = query.count()
        records = (
            query.order_by(ordering, Daparto.id.asc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {
            "records": records,
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": (total + page_size - 1) // page_size,
        }

    @staticmethod
    def _check_number_free(db: Session, number: str, exclude_id: Optional[int] = None) -> None:
        query = db.query(Daparto).filter(Daparto.interne_artikelnummer == number)
        if exclude_id is not None:
            query = query.filter(Daparto.id != exclude_id)
        existing = query.first()
        if existing:
            hint = " (soft-deleted, restore it instead)" if existing.is_deleted else ""
            raise DuplicateRecordError(
                f"A record with interne_artikelnummer '{number}' already exists{hint}",
                field="interne_artikelnummer",
            )

    @staticmethod
    def create(db: Session, data: Dict[str, Any]) -> Daparto:
        DapartoService._check_number_free(db, data["interne_artikelnummer"])
        with atomic(db, "create daparto record"):
            record = Daparto(**{k: v for k, v in data.items() if k in Daparto.FIELDS})
            db.add(record)
        db.refresh(record)
        logger.info("Created daparto %s (%s)", record.id, record.interne_artikelnummer)
        return record

    @staticmethod
    def update(db: Session, record_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply changed fields only.

        Returns:
            {"record": Daparto, "changes": {field: {"old": ..., "new": ...}}}
            with an empty ``changes`` when nothing differs.
        """
        record = DapartoService.get(db, record_id)
        changes = {}
        for field, value in data.items():
            if field not in Daparto.FIELDS or value is None:
                continue
            current = getattr(record, field)
            if field == "preis":
                value = Decimal(str(value)).quantize(Decimal("0.01"))
                current = Decimal(str(current)).quantize(Decimal("0.01"))
            if current != value:
                changes[field] = {"old": current, "new": value}

        if not changes:
            return {"record": record, "changes": {}, "message": "No changes detected"}

        if "interne_artikelnummer" in changes:
            DapartoService._check_number_free(
                db, changes["interne_artikelnummer"]["new"], exclude_id=record.id
            )

        with atomic(db, "update daparto record"):
            for field, change in changes.items():
                setattr(record, field, change["new"])
        db.refresh(record)
        logger.info("Updated daparto %s: %s", record.id, ", ".join(changes))
        return {"record": record, "changes": changes, "message": "Record updated"}

    @staticmethod
    def soft_delete(db: Session, record_id: int) -> Daparto:
        record = DapartoService.get(db, record_id)
        with atomic(db, "delete daparto record"):
            record.deleted_at = datetime.now(timezone.utc)
        logger.info("Soft-deleted daparto %s", record.id)
        return record

    @staticmethod
    def soft_delete_all(db: Session) -> Dict[str, Any]:
        """Soft-delete every live record in one statement."""
        live = db.query(Daparto).filter(Daparto.deleted_at.is_(None))
        total = live.count()
        if total == 0:
            raise NoDataError("No data to delete")

        deleted_at = datetime.now(timezone.utc)
        with atomic(db, "delete all daparto records"):
            live.update({Daparto.deleted_at: deleted_at}, synchronize_session=False)
        db.expire_all()
        logger.warning("Soft-deleted all %d daparto records", total)
        return {"records_deleted": total, "deleted_at": deleted_at}

    @staticmethod
    def restore(db: Session, record_id: int) -> Daparto:
        """Bring a soft-deleted record back. Restoring a live record is a no-op."""
        record = DapartoService.get(db, record_id, with_trashed=True)
        if not record.is_deleted:
            return record
        with atomic(db, "restore daparto record"):
            record.deleted_at = None
        db.refresh(record)
        logger.info("Restored daparto %s", record.id)
        return record

    @staticmethod
    def stats(db: Session) -> Dict[str, Any]:
        live = db.query(Daparto).filter(Daparto.deleted_at.is_(None))
        total, brands, average, total_value = live.with_entities(
            func.count(Daparto.id),
            func.count(func.distinct(Daparto.teilemarke_teilenummer)),
            func.avg(Daparto.preis),
            func.sum(Daparto.preis),
        ).one()
        return {
            "total_parts": total,
            "total_brands": brands,
            "average_price": round(float(average), 2) if average is not None else 0.0,
            "total_value": round(float(total_value), 2) if total_value is not None else 0.0,
            "deleted_parts": db.query(Daparto).filter(Daparto.deleted_at.isnot(None)).count(),
        }


daparto_service = DapartoService()
