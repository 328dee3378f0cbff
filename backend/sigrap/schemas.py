"""Pydantic schemas for API."""
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from .permissions import Action, Resource


# Auth schemas
class LoginRequest(BaseModel):
    email: str
    password: str


class RoleBrief(BaseModel):
    id: UUID
    name: str
    model_config = ConfigDict(from_attributes=True)


class UserResponse(BaseModel):
    id: UUID
    email: str
    name: str
    is_active: bool
    roles: list[RoleBrief] = []
    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class AuthCheckRequest(BaseModel):
    resource: str
    action: str


class AuthCheckResponse(BaseModel):
    resource: str
    action: str
    allowed: bool


class PermissionMatrixResponse(BaseModel):
    """resource -> action -> allowed, for every known resource and action."""
    roles: list[str]
    permissions: dict[str, dict[str, bool]]


# Purchase order schemas
class PurchaseOrderItemCreate(BaseModel):
    product_id: UUID
    quantity: int = Field(gt=0)
    # Defaults to the product's cost price when omitted.
    unit_price: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)


class PurchaseOrderItemUpdate(BaseModel):
    quantity: Optional[int] = Field(default=None, gt=0)
    unit_price: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)


class PurchaseOrderCreate(BaseModel):
    supplier_id: UUID
    order_date: Optional[date] = None
    expected_delivery_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    items: list[PurchaseOrderItemCreate] = []


class PurchaseOrderUpdate(BaseModel):
    supplier_id: Optional[UUID] = None
    expected_delivery_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    expected_version: Optional[int] = None


class PurchaseOrderItemOut(BaseModel):
    id: UUID
    line_number: int
    product_id: UUID
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    received_quantity: int
    status: str
    notes: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class PurchaseOrderOut(BaseModel):
    id: UUID
    order_number: str
    supplier_id: UUID
    order_date: date
    expected_delivery_date: Optional[date] = None
    actual_delivery_date: Optional[date] = None
    status: str
    total_amount: Decimal
    notes: Optional[str] = None
    version: int
    items: list[PurchaseOrderItemOut] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class TransitionRequest(BaseModel):
    target_status: str
    actual_delivery_date: Optional[date] = None
    expected_version: Optional[int] = None
    supplier_acknowledged: bool = False
    received_quantities: Optional[dict[UUID, int]] = None
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("target_status")
    @classmethod
    def _upper_status(cls, value: str) -> str:
        return value.strip().upper()


class TrackingEventOut(BaseModel):
    id: UUID
    purchase_order_id: UUID
    sequence: int
    event_timestamp: datetime
    status: str
    description: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class PaymentOut(BaseModel):
    id: UUID
    purchase_order_id: Optional[UUID] = None
    supplier_id: UUID
    amount: Decimal
    payment_method: str
    status: str
    payment_date: Optional[date] = None
    due_date: Optional[date] = None
    invoice_number: Optional[str] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


# Role / permission administration
class PermissionCreate(BaseModel):
    resource: Resource
    action: Action
    name: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)


class PermissionOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    resource: str
    action: str
    model_config = ConfigDict(from_attributes=True)


class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)
    permission_ids: list[UUID] = []


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)


class RolePermissionsUpdate(BaseModel):
    permission_ids: list[UUID]


class RoleOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    permissions: list[PermissionOut] = []
    model_config = ConfigDict(from_attributes=True)
