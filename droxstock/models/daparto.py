"""Daparto catalog record."""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, func
from droxstock.db.base import Base


class Daparto(Base):
    """Spare-part catalog entry keyed by its internal article number."""
    __tablename__ = "dapartos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    interne_artikelnummer = Column(String(100), unique=True, nullable=False, index=True)
    tiltle = Column(String(255), nullable=True)
    teilemarke_teilenummer = Column(String(255), nullable=False, index=True)
    preis = Column(Numeric(10, 2), nullable=False)
    zustand = Column(Integer, nullable=False)
    pfand = Column(Integer, nullable=False, default=0)
    versandklasse = Column(Integer, nullable=False)
    lieferzeit = Column(Integer, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime, nullable=True, index=True)

    FIELDS = (
        "interne_artikelnummer", "preis", "zustand", "tiltle",
        "teilemarke_teilenummer", "pfand", "versandklasse", "lieferzeit",
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
