"""SQLAlchemy models for access control and purchasing."""
from sqlalchemy import (
    Boolean, Column, String, Integer, Date, DateTime, Text, Numeric, JSON, Uuid,
    ForeignKey, CheckConstraint, Index, UniqueConstraint, Table,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from decimal import Decimal
from .database import Base


PURCHASE_ORDER_STATUSES = ('DRAFT', 'SUBMITTED', 'CONFIRMED', 'SHIPPED', 'DELIVERED', 'CANCELLED')
ITEM_STATUSES = ('PENDING', 'RECEIVED', 'PARTIAL', 'REJECTED')
PAYMENT_STATUSES = ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', 'CANCELLED', 'OVERDUE')
PAYMENT_METHODS = (
    'BANK_TRANSFER', 'CREDIT_CARD', 'CASH', 'CHECK', 'PAYPAL', 'NEQUI', 'DAVIPLATA', 'OTHER',
)
SUPPLIER_STATUSES = ('ACTIVE', 'INACTIVE', 'PROBATION', 'TERMINATED', 'BLACKLISTED')
MONEY = Numeric(14, 2)


role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", Uuid, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Uuid, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)

user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Uuid, ForeignKey("roles.id"), primary_key=True),
)


class Permission(Base):
    """A single grantable (resource, action) pair."""
    __tablename__ = "permissions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(String(500), nullable=True)
    resource = Column(String(50), nullable=False, index=True)
    action = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('resource', 'action', name='uq_permission_resource_action'),
    )

    roles = relationship("Role", secondary=role_permissions, back_populates="permissions")


class Role(Base):
    """Named bundle of permissions assigned to users."""
    __tablename__ = "roles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    permissions = relationship("Permission", secondary=role_permissions, back_populates="roles")
    users = relationship("User", secondary=user_roles, back_populates="roles")


class User(Base):
    """User model."""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    roles = relationship("Role", secondary=user_roles, back_populates="users")


class Supplier(Base):
    """Supplier model (fields read by purchasing)."""
    __tablename__ = "suppliers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    tax_id = Column(String(20), nullable=True)
    contact_person = Column(String(100), nullable=True)
    email = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)
    address = Column(String(255), nullable=True)
    payment_method = Column(String(20), nullable=True)
    payment_terms = Column(String(100), nullable=True)  # e.g. "30 días", "Contado"
    status = Column(String(20), nullable=False, default='ACTIVE')
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(status.in_(SUPPLIER_STATUSES), name='chk_supplier_status'),
        CheckConstraint(payment_method.in_(PAYMENT_METHODS), name='chk_supplier_payment_method'),
    )

    purchase_orders = relationship("PurchaseOrder", back_populates="supplier")


class Product(Base):
    """Catalog product referenced by purchase order items."""
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    sku = Column(String(100), unique=True, nullable=True)
    cost_price = Column(MONEY, nullable=False, default=Decimal("0"))
    sale_price = Column(MONEY, nullable=False, default=Decimal("0"))
    stock = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class PurchaseOrder(Base):
    """Purchase order header; the aggregate root for items, tracking and payment."""
    __tablename__ = "purchase_orders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number = Column(String(50), unique=True, nullable=False, index=True)
    supplier_id = Column(Uuid, ForeignKey("suppliers.id"), nullable=False, index=True)
    order_date = Column(Date, nullable=False)
    expected_delivery_date = Column(Date, nullable=True)
    actual_delivery_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default='DRAFT', index=True)
    total_amount = Column(MONEY, nullable=False, default=Decimal("0"))
    notes = Column(String(1000), nullable=True)
    # Optimistic lock; bumped by SQLAlchemy on every UPDATE of the row.
    version = Column(Integer, nullable=False, default=1)
    created_by_id = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(status.in_(PURCHASE_ORDER_STATUSES), name='chk_purchase_order_status'),
        CheckConstraint(total_amount >= 0, name='chk_purchase_order_total_non_negative'),
    )
    __mapper_args__ = {"version_id_col": version}

    supplier = relationship("Supplier", back_populates="purchase_orders")
    items = relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.line_number",
    )
    tracking_events = relationship(
        "PurchaseOrderTrackingEvent",
        back_populates="purchase_order",
        order_by="PurchaseOrderTrackingEvent.sequence",
    )
    payment = relationship("Payment", back_populates="purchase_order", uselist=False)


class PurchaseOrderItem(Base):
    """Order line; owned exclusively by its purchase order."""
    __tablename__ = "purchase_order_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    purchase_order_id = Column(
        Uuid, ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    line_number = Column(Integer, nullable=False, default=1)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(MONEY, nullable=False)
    total_price = Column(MONEY, nullable=False, default=Decimal("0"))
    received_quantity = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default='PENDING')
    notes = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(quantity > 0, name='chk_po_item_quantity_positive'),
        CheckConstraint(unit_price >= 0, name='chk_po_item_unit_price_non_negative'),
        CheckConstraint(received_quantity >= 0, name='chk_po_item_received_non_negative'),
        CheckConstraint(received_quantity <= quantity, name='chk_po_item_received_le_quantity'),
        CheckConstraint(status.in_(ITEM_STATUSES), name='chk_po_item_status'),
    )

    purchase_order = relationship("PurchaseOrder", back_populates="items")
    product = relationship("Product")


class PurchaseOrderTrackingEvent(Base):
    """Append-only fulfilment history entry."""
    __tablename__ = "purchase_order_tracking_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    purchase_order_id = Column(Uuid, ForeignKey("purchase_orders.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    event_timestamp = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    location = Column(String(255), nullable=True)
    notes = Column(String(1000), nullable=True)

    __table_args__ = (
        UniqueConstraint('purchase_order_id', 'sequence', name='uq_po_tracking_sequence'),
    )

    purchase_order = relationship("PurchaseOrder", back_populates="tracking_events")


class Payment(Base):
    """Supplier payment derived from a confirmed purchase order."""
    __tablename__ = "payments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    purchase_order_id = Column(Uuid, ForeignKey("purchase_orders.id"), nullable=True, unique=True, index=True)
    supplier_id = Column(Uuid, ForeignKey("suppliers.id"), nullable=False, index=True)
    amount = Column(MONEY, nullable=False)
    payment_method = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default='PENDING', index=True)
    payment_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=True)
    invoice_number = Column(String(50), nullable=True)
    transaction_id = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(status.in_(PAYMENT_STATUSES), name='chk_payment_status'),
        CheckConstraint(payment_method.in_(PAYMENT_METHODS), name='chk_payment_method'),
    )

    purchase_order = relationship("PurchaseOrder", back_populates="payment")
    supplier = relationship("Supplier")


class AuditEvent(Base):
    """Audit event model."""
    __tablename__ = "audit_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    action = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(30), nullable=False)
    entity_id = Column(Uuid, nullable=False)
    entity_name = Column(String(255), nullable=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)
    user_name = Column(String(255), nullable=True)
    details = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    __table_args__ = (
        CheckConstraint(
            action.in_([
                'purchase_order_created', 'purchase_order_updated', 'purchase_order_deleted',
                'purchase_order_items_changed', 'purchase_order_status_changed',
                'role_created', 'role_updated', 'role_deleted', 'role_permissions_changed',
                'role_assigned', 'role_unassigned', 'permission_created',
            ]),
            name='chk_audit_action'
        ),
        CheckConstraint(
            entity_type.in_(['purchase_order', 'role', 'permission', 'user']),
            name='chk_audit_entity_type'
        ),
        Index('idx_audit_events_entity', 'entity_type', 'entity_id'),
    )
