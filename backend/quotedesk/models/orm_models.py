"""ORM Models for Quotedesk — SQLAlchemy 2.0"""
import uuid
from datetime import datetime, date
from typing import Optional
from sqlalchemy import (
    JSON, String, Text, Integer, Numeric, DateTime, Date, Uuid,
    ForeignKey, Index
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from quotedesk.db import Base


def gen_uuid():
    return str(uuid.uuid4())


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")
# Money columns come back as float so pricing math never mixes Decimal and float
Money = Numeric(12, 2, asdecimal=False)


# ── CATALOG ───────────────────────────────────────────────────────────────────
class CatalogType(Base):
    __tablename__ = "catalog_types"
    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=gen_uuid)
    team_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sort_order: Mapped[Optional[int]] = mapped_column(Integer)
    kinds: Mapped[list["CatalogKind"]] = relationship("CatalogKind", back_populates="type")


class CatalogKind(Base):
    __tablename__ = "catalog_kinds"
    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=gen_uuid)
    team_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    type_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("catalog_types.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sort_order: Mapped[Optional[int]] = mapped_column(Integer)
    type: Mapped["CatalogType"] = relationship("CatalogType", back_populates="kinds")


class CatalogModel(Base):
    __tablename__ = "catalog_models"
    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=gen_uuid)
    team_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    kind_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("catalog_kinds.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Optional[float]] = mapped_column(Money)     # flat base price
    image_url: Mapped[Optional[str]] = mapped_column(Text)


class CatalogPriceTier(Base):
    __tablename__ = "catalog_price_tiers"
    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=gen_uuid)
    model_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("catalog_models.id", ondelete="CASCADE"), index=True
    )
    min_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    max_qty: Mapped[Optional[int]] = mapped_column(Integer)       # NULL = unbounded
    price: Mapped[float] = mapped_column(Money, nullable=False)


class CatalogMethod(Base):
    __tablename__ = "catalog_methods"
    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=gen_uuid)
    team_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    kind_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("catalog_kinds.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Optional[float]] = mapped_column(Money)


class CatalogModelMethod(Base):
    __tablename__ = "catalog_model_methods"
    model_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("catalog_models.id", ondelete="CASCADE"), primary_key=True
    )
    method_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("catalog_methods.id", ondelete="CASCADE"), primary_key=True
    )


class CatalogPrintPosition(Base):
    __tablename__ = "catalog_print_positions"
    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=gen_uuid)
    kind_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("catalog_kinds.id", ondelete="CASCADE"), index=True
    )
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    sort_order: Mapped[Optional[int]] = mapped_column(Integer)


# ── QUOTES ────────────────────────────────────────────────────────────────────
class QuoteRow(Base):
    __tablename__ = "quotes"
    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=gen_uuid)
    team_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    # draft | sent | approved | rejected | in_progress | completed
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft", index=True)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, default="UAH")
    customer_id: Mapped[Optional[str]] = mapped_column(String(64))
    title: Mapped[Optional[str]] = mapped_column(String(255))
    comment: Mapped[Optional[str]] = mapped_column(Text)
    deadline_at: Mapped[Optional[date]] = mapped_column(Date)
    deadline_note: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    items: Mapped[list["QuoteItemRow"]] = relationship(
        "QuoteItemRow", back_populates="quote", order_by="QuoteItemRow.position"
    )
    history: Mapped[list["QuoteStatusHistoryRow"]] = relationship(
        "QuoteStatusHistoryRow", back_populates="quote"
    )


class QuoteItemRow(Base):
    __tablename__ = "quote_items"
    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=gen_uuid)
    quote_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    qty: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="pcs")
    unit_price: Mapped[float] = mapped_column(Money, nullable=False, default=0.0)
    line_total: Mapped[float] = mapped_column(Money, nullable=False, default=0.0)
    # Catalog selection ids are soft references: rows may outlive catalog edits
    catalog_type_id: Mapped[Optional[str]] = mapped_column(String(36))
    catalog_kind_id: Mapped[Optional[str]] = mapped_column(String(36))
    catalog_model_id: Mapped[Optional[str]] = mapped_column(String(36))
    print_position_id: Mapped[Optional[str]] = mapped_column(String(36))
    print_width_mm: Mapped[Optional[float]] = mapped_column(Numeric(10, 2, asdecimal=False))
    print_height_mm: Mapped[Optional[float]] = mapped_column(Numeric(10, 2, asdecimal=False))
    # [{"method_id", "count", "print_position_id", "print_width_mm", "print_height_mm"}]
    methods: Mapped[Optional[list]] = mapped_column(JSONType)
    # {"name", "size", "content_type", "url"}
    attachment: Mapped[Optional[dict]] = mapped_column(JSONType)
    quote: Mapped["QuoteRow"] = relationship("QuoteRow", back_populates="items")
    __table_args__ = (Index("ix_quote_items_quote_position", "quote_id", "position"),)


class QuoteStatusHistoryRow(Base):
    """Append-only: rows are inserted once and never updated or deleted."""
    __tablename__ = "quote_status_history"
    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=gen_uuid)
    quote_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_status: Mapped[Optional[str]] = mapped_column(String(20))
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)
    changed_by: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    quote: Mapped["QuoteRow"] = relationship("QuoteRow", back_populates="history")

