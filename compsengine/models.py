# compsengine/models.py
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class ComparableSale(Base):
    """
    One cached comparable set for a (property, area, filters) query.

    Optional filter columns are NULL when the caller did not supply them. Lookups
    go through key_digest, which keeps "bedrooms unset" apart from "bedrooms = 0".
    """
    __tablename__ = "comparable_sales"
    __table_args__ = (
        Index("ix_comparable_sales_lookup", "property_id", "zip_code"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # --- cache key ---
    property_id: Mapped[str] = mapped_column(String(64))
    zip_code: Mapped[str] = mapped_column(String(10))
    bedrooms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bathrooms: Mapped[float | None] = mapped_column(Float, nullable=True)
    square_footage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    radius: Mapped[float] = mapped_column(Float, default=0.5)
    property_type: Mapped[str | None] = mapped_column(String(40), nullable=True)
    # sha256 of the key columns; unique so concurrent misses cannot both insert
    key_digest: Mapped[str] = mapped_column(String(64), unique=True)

    # --- payload: {"comparables": [...], "stats": {...}} serialized once ---
    comparables_data: Mapped[str] = mapped_column(Text)
    comparable_count: Mapped[int] = mapped_column(Integer, default=0)

    # denormalized stats for admin queries
    avg_sale_price: Mapped[float] = mapped_column(Float, default=0.0)
    avg_price_per_sqft: Mapped[float] = mapped_column(Float, default=0.0)
    avg_days_on_market: Mapped[int] = mapped_column(Integer, default=0)
    inventory_level: Mapped[str] = mapped_column(String(16), default="low")

    data_source: Mapped[str] = mapped_column(String(40), default="batchdata")
    strategy: Mapped[str | None] = mapped_column(String(40), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- telemetry ---
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    last_accessed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    access_count: Mapped[int] = mapped_column(Integer, default=1)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    api_cost_charged: Mapped[float] = mapped_column(Float, default=0.0)
