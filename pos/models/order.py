"""Order model."""
from sqlalchemy import Column, String, Integer, Numeric, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pos.database import Base, IdType
from pos.utils.money import money_str
import enum


class OrderStatus(str, enum.Enum):
    """Order lifecycle status."""
    PENDING = 'pending'
    SERVED = 'served'
    PAID = 'paid'
    CANCELLED = 'cancelled'


class PaymentStatus(str, enum.Enum):
    """Order payment status."""
    PENDING = 'pending'
    PAID = 'paid'


class Order(Base):
    """Order (a sale in progress or completed)."""

    __tablename__ = 'orders'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'order_number', name='uq_orders_tenant_number'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('tenant.id'), nullable=False)
    order_number = Column(String(40), nullable=False)
    table_id = Column(Integer, nullable=True)
    customer_name = Column(String(200), nullable=True)
    customer_count = Column(Integer, nullable=False, default=1, server_default='1')

    # Operator-entered discount amount (not a percentage)
    discount = Column(Numeric(12, 2), nullable=False, default=0, server_default='0.00')
    subtotal = Column(Numeric(12, 2), nullable=False, default=0, server_default='0.00')
    tax = Column(Numeric(12, 2), nullable=False, default=0, server_default='0.00')
    total = Column(Numeric(12, 2), nullable=False, default=0, server_default='0.00')

    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    payment_method = Column(String(30), nullable=True)
    # Split payments: [{"method": "cash", "amount": "1000"}, ...]
    payment_details = Column(JSON, nullable=True)

    ordered_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan',
                         order_by='OrderItem.id')
    history = relationship('OrderChangeHistory', back_populates='order', cascade='all, delete-orphan')

    @property
    def is_paid(self):
        return self.status == OrderStatus.PAID.value or self.payment_status == PaymentStatus.PAID.value

    def to_dict(self):
        return {
            'id': self.id,
            'order_number': self.order_number,
            'table_id': self.table_id,
            'customer_name': self.customer_name,
            'customer_count': self.customer_count,
            'discount': money_str(self.discount),
            'subtotal': money_str(self.subtotal),
            'tax': money_str(self.tax),
            'total': money_str(self.total),
            'status': self.status,
            'payment_status': self.payment_status,
            'payment_method': self.payment_method,
            'ordered_at': self.ordered_at.isoformat() if self.ordered_at else None,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None,
        }

    def __repr__(self):
        return f"<Order(id={self.id}, number='{self.order_number}', total={self.total})>"


class OrderCounter(Base):
    """Per-tenant order number sequence, locked FOR UPDATE when incremented."""

    __tablename__ = 'order_counter'

    tenant_id = Column(IdType, ForeignKey('tenant.id'), primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
