"""Pydantic schemas for the bakehouse API.

Request/response models for:
- Ingredients and inventory adjustments
- Products with their bill of materials, locations
- Batches, freezer stock
- Orders, invoices, activity

Decimal fields serialize as JSON strings.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, Literal

from pydantic import BaseModel, Field

AdjustmentType = Literal["receive", "waste", "correction", "production"]
LocationType = Literal["basement", "popup", "wholesale", "delivery"]
FulfillmentWindow = Literal["morning", "afternoon", "evening"]

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# --- Ingredients ---

class IngredientBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    unit: str = Field(..., min_length=1, max_length=20)
    on_hand: Decimal = Field(Decimal("0"), ge=0)
    reorder_threshold: Decimal = Field(Decimal("0"), ge=0)
    cost_per_unit: Optional[Decimal] = Field(None, ge=0)


class IngredientCreate(IngredientBase):
    pass


class IngredientUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    unit: Optional[str] = Field(None, min_length=1, max_length=20)
    on_hand: Optional[Decimal] = Field(None, ge=0)
    reorder_threshold: Optional[Decimal] = Field(None, ge=0)
    cost_per_unit: Optional[Decimal] = Field(None, ge=0)


class IngredientOut(IngredientBase):
    id: str
    is_low: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InventoryAdjustRequest(BaseModel):
    quantity: Decimal  # signed: positive adds, negative removes
    type: AdjustmentType
    reason: Optional[str] = None


class InventoryAdjustmentOut(BaseModel):
    id: str
    ingredient_id: str
    adjustment_type: str
    quantity: Decimal
    previous_quantity: Decimal
    new_quantity: Decimal
    reason: Optional[str]
    adjusted_by: Optional[str]
    ref_type: Optional[str]
    ref_id: Optional[str]
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SeedResponse(BaseModel):
    message: str
    ingredients: list[IngredientOut]


# --- Products / BOM ---

class BomEntryIn(BaseModel):
    ingredient_id: str = Field(..., min_length=1)
    quantity: Decimal = Field(..., ge=0)


class BomEntryOut(BaseModel):
    id: str
    product_id: str
    ingredient_id: str
    quantity: Decimal
    ingredient: Optional[IngredientOut] = None

    class Config:
        from_attributes = True


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0, decimal_places=2)
    image_url: Optional[str] = None
    is_active: bool = True
    bom: Optional[list[BomEntryIn]] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    image_url: Optional[str] = None
    is_active: Optional[bool] = None


class ProductOut(BaseModel):
    id: str
    name: str
    description: Optional[str]
    price: Decimal
    image_url: Optional[str]
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# --- Locations ---

class LocationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: LocationType
    address: Optional[str] = None
    is_active: bool = True


class LocationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    type: Optional[LocationType] = None
    address: Optional[str] = None
    is_active: Optional[bool] = None


class LocationOut(LocationCreate):
    id: str

    class Config:
        from_attributes = True


# --- Batches ---

class StatusUpdate(BaseModel):
    status: str = Field(..., min_length=1)


class BatchItemIn(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=0)


class BatchCreate(BaseModel):
    batch_date: datetime
    shift: str = Field(..., min_length=1, max_length=20)
    notes: Optional[str] = None
    items: list[BatchItemIn] = []


class BatchItemOut(BaseModel):
    id: str
    product_id: str
    quantity: int

    class Config:
        from_attributes = True


class BatchOut(BaseModel):
    id: str
    batch_date: datetime
    shift: Optional[str]
    notes: Optional[str]
    status: str
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    items: list[BatchItemOut] = []

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class BatchListOut(BaseModel):
    batches: list[BatchOut]
    pagination: Pagination


class RequirementOut(BaseModel):
    ingredient_id: str
    name: Optional[str]
    unit: Optional[str]
    required: Decimal
    on_hand: Decimal
    shortfall: Decimal
    sufficient: bool


# --- Freezer ---

class FreezerStockCreate(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)
    batch_id: Optional[str] = None
    notes: Optional[str] = None
    expires_at: Optional[datetime] = None


class FreezerStockUpdate(BaseModel):
    quantity: int = Field(..., ge=0)


class FreezerStockOut(BaseModel):
    id: str
    product_id: str
    batch_id: Optional[str]
    quantity: int
    notes: Optional[str]
    expires_at: Optional[datetime]
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FreezerProductStat(BaseModel):
    product_id: str
    product_name: str
    total_quantity: int
    batches: int


class FreezerStatsOut(BaseModel):
    total_items: int
    unique_products: int
    product_breakdown: list[FreezerProductStat]


# --- Orders ---

class OrderItemIn(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)


class OrderCreate(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: str = Field(..., pattern=EMAIL_PATTERN, max_length=320)
    customer_phone: Optional[str] = Field(None, max_length=40)
    delivery_address: str = Field(..., min_length=5)
    delivery_city: str = Field(..., min_length=2)
    delivery_state: str = Field(..., min_length=2)
    delivery_zip: str = Field(..., min_length=5, max_length=20)
    delivery_instructions: Optional[str] = None
    fulfillment_date: datetime
    fulfillment_window: FulfillmentWindow
    items: list[OrderItemIn] = Field(..., min_length=1)


class OrderCreateOut(BaseModel):
    order_id: str
    payment_handle: str
    client_secret: Optional[str] = None


class OrderUpdate(BaseModel):
    customer_name: Optional[str] = Field(None, min_length=1, max_length=200)
    customer_email: Optional[str] = Field(None, pattern=EMAIL_PATTERN, max_length=320)
    customer_phone: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_city: Optional[str] = None
    delivery_state: Optional[str] = None
    delivery_zip: Optional[str] = None
    delivery_instructions: Optional[str] = None
    notes: Optional[str] = None


class OrderItemOut(BaseModel):
    id: str
    product_id: str
    quantity: int
    unit_price: Decimal
    total: Decimal

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: str
    customer_name: str
    customer_email: str
    customer_phone: Optional[str]
    delivery_address: str
    delivery_city: str
    delivery_state: str
    delivery_zip: str
    delivery_instructions: Optional[str]
    fulfillment_date: datetime
    fulfillment_window: Optional[str]
    status: str
    subtotal: Decimal
    total: Decimal
    stripe_payment_intent_id: Optional[str]
    stripe_payment_status: Optional[str]
    notes: Optional[str]
    created_at: Optional[datetime] = None
    items: list[OrderItemOut] = []

    class Config:
        from_attributes = True


class OrderStatusOut(BaseModel):
    order: OrderOut
    changed: bool
    invoice_number: Optional[str] = None
    warnings: list[str] = []


class PublicOrderItem(BaseModel):
    product_name: str
    quantity: int
    total: Decimal


class PublicOrderOut(BaseModel):
    id: str
    status: str
    total: Decimal
    fulfillment_date: datetime
    fulfillment_window: Optional[str]
    delivery_address: str
    delivery_city: str
    delivery_state: str
    delivery_zip: str
    items: list[PublicOrderItem]


# --- Invoices ---

class InvoiceItemOut(BaseModel):
    id: str
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    total: Decimal

    class Config:
        from_attributes = True


class InvoiceOut(BaseModel):
    id: str
    invoice_number: str
    order_id: str
    customer_name: str
    customer_email: str
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    status: str
    issued_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    items: list[InvoiceItemOut] = []

    class Config:
        from_attributes = True


# --- Activity ---

class ActivityLogOut(BaseModel):
    id: str
    action: str
    entity_type: str
    entity_id: Optional[str]
    details: dict
    actor: Optional[str]
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# --- Dashboard ---

class DashboardStatsOut(BaseModel):
    today_orders: int
    pending_orders: int
    today_revenue: Decimal
    low_stock_count: int


# --- Webhooks ---

class WebhookAck(BaseModel):
    received: bool = True
