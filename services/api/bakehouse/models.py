"""SQLAlchemy ORM models for the bakehouse API.

Tables:
- ingredients / inventory_adjustments: raw ingredient ledger and its audit trail
- products / bill_of_materials: sellable items and what one unit consumes
- locations: where finished goods go
- batches / batch_items: production runs
- freezer_stock: finished goods produced by batches
- orders / order_items: customer orders with price snapshots
- invoices / invoice_items: generated once per approved order
- activity_logs: append-only admin activity feed
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Text,
    Integer,
    Boolean,
    ForeignKey,
    Index,
    Numeric,
    UniqueConstraint,
    CheckConstraint,
    desc,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import JSON

from .db import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


# Quantities keep four places so per-unit BOM amounts like 0.0125 survive
Quantity = Numeric(12, 4)
Money = Numeric(10, 2)
JsonDoc = JSON().with_variant(JSONB(), "postgresql")


class Ingredient(Base):
    """Raw ingredient with its on-hand quantity (the ledger row)."""
    __tablename__ = "ingredients"
    __table_args__ = (
        CheckConstraint("on_hand >= 0", name="ck_ingredients_on_hand_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    # Display tag only (lb, gallon, count); never converted
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    on_hand: Mapped[Decimal] = mapped_column(Quantity, nullable=False, default=Decimal("0"))
    reorder_threshold: Mapped[Decimal] = mapped_column(Quantity, nullable=False, default=Decimal("0"))
    cost_per_unit: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 4), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def is_low(self) -> bool:
        return (self.on_hand or 0) <= (self.reorder_threshold or 0)


class InventoryAdjustment(Base):
    """Audit record for every change to an ingredient's on-hand quantity."""
    __tablename__ = "inventory_adjustments"
    __table_args__ = (
        Index("ix_inventory_adjustments_ingredient", "ingredient_id", desc("created_at")),
        Index("ix_inventory_adjustments_ref", "ref_type", "ref_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    ingredient_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False
    )
    # receive | waste | correction | production
    adjustment_type: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)  # signed delta
    previous_quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    new_quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    adjusted_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    ref_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # batch, manual
    ref_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    ingredient: Mapped["Ingredient"] = relationship("Ingredient")


class Product(Base):
    """Sellable product (a bagel SKU)."""
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    bom: Mapped[list["BillOfMaterial"]] = relationship(
        "BillOfMaterial", back_populates="product", cascade="all, delete-orphan"
    )


class BillOfMaterial(Base):
    """Quantity of one ingredient consumed per unit of a product."""
    __tablename__ = "bill_of_materials"
    __table_args__ = (
        UniqueConstraint("product_id", "ingredient_id", name="uq_bom_product_ingredient"),
        CheckConstraint("quantity >= 0", name="ck_bom_quantity_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ingredient_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("ingredients.id"), nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)

    product: Mapped["Product"] = relationship("Product", back_populates="bom")
    ingredient: Mapped["Ingredient"] = relationship("Ingredient")


class Location(Base):
    __tablename__ = "locations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    # basement | popup | wholesale | delivery
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Batch(Base):
    """Scheduled production run."""
    __tablename__ = "batches"
    __table_args__ = (
        Index("ix_batches_status", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    batch_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    shift: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # morning, afternoon, evening
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # planned | in_progress | completed | cancelled
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="planned")
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    items: Mapped[list["BatchItem"]] = relationship(
        "BatchItem", back_populates="batch", cascade="all, delete-orphan",
        order_by="BatchItem.position"
    )


class BatchItem(Base):
    __tablename__ = "batch_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    batch_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("batches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    batch: Mapped["Batch"] = relationship("Batch", back_populates="items")
    product: Mapped["Product"] = relationship("Product")


class FreezerStock(Base):
    """Finished goods on hand, one row per stocking event."""
    __tablename__ = "freezer_stock"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    batch_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("batches.id", ondelete="SET NULL"), nullable=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    product: Mapped["Product"] = relationship("Product")


class Order(Base):
    """Customer delivery order."""
    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_status", "status"),
        Index("ix_orders_fulfillment_date", "fulfillment_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(320), nullable=False)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    delivery_address: Mapped[str] = mapped_column(Text, nullable=False)
    delivery_city: Mapped[str] = mapped_column(String(120), nullable=False)
    delivery_state: Mapped[str] = mapped_column(String(60), nullable=False)
    delivery_zip: Mapped[str] = mapped_column(String(20), nullable=False)
    delivery_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    location_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("locations.id", ondelete="SET NULL"), nullable=True
    )
    fulfillment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    fulfillment_window: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # new | approved | baking | ready | completed | cancelled
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="new")
    subtotal: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total: Mapped[Decimal] = mapped_column(Money, nullable=False)

    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # pending | authorized | captured | cancelled | failed
    stripe_payment_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan",
        order_by="OrderItem.position"
    )
    location: Mapped[Optional["Location"]] = relationship("Location")


class OrderItem(Base):
    """Order line with the unit price captured at submission time."""
    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total: Mapped[Decimal] = mapped_column(Money, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    order: Mapped["Order"] = relationship("Order", back_populates="items")
    product: Mapped["Product"] = relationship("Product")


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    invoice_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    # One invoice per order
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id"), unique=True, nullable=False
    )

    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(320), nullable=False)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    delivery_address: Mapped[str] = mapped_column(Text, nullable=False)
    delivery_city: Mapped[str] = mapped_column(String(120), nullable=False)
    delivery_state: Mapped[str] = mapped_column(String(60), nullable=False)
    delivery_zip: Mapped[str] = mapped_column(String(20), nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(Money, nullable=False)
    tax: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(Money, nullable=False)
    # draft | sent | paid | cancelled
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")

    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    items: Mapped[list["InvoiceItem"]] = relationship(
        "InvoiceItem", back_populates="invoice", cascade="all, delete-orphan",
        order_by="InvoiceItem.position"
    )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    invoice_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), nullable=False)
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total: Mapped[Decimal] = mapped_column(Money, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="items")


class ActivityLog(Base):
    """Admin activity feed (batch.completed, order.approved, ...)."""
    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_entity", "entity_type", "entity_id"),
        Index("ix_activity_logs_created_at", desc("created_at")),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(40), nullable=False)
    entity_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    details: Mapped[dict] = mapped_column(JsonDoc, nullable=False, default=dict)
    actor: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
