"""Purchase Receipt model."""
from sqlalchemy import Column, String, Text, Date, Boolean, Numeric, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pos.database import Base, IdType
from pos.utils.money import money_str


class PurchaseReceipt(Base):
    """Purchase Receipt (goods received from a supplier)."""

    __tablename__ = 'purchase_receipts'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'receipt_number', name='uq_purchase_receipts_tenant_number'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('tenant.id'), nullable=False)
    receipt_number = Column(String(50), nullable=False)
    supplier_id = Column(IdType, ForeignKey('supplier.id'), nullable=False)
    purchase_date = Column(Date, nullable=True)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0, server_default='0.00')
    discount = Column(Numeric(12, 2), nullable=False, default=0, server_default='0.00')
    tax = Column(Numeric(12, 2), nullable=False, default=0, server_default='0.00')
    total = Column(Numeric(12, 2), nullable=False, default=0, server_default='0.00')
    is_paid = Column(Boolean, nullable=False, default=False, server_default='false')
    payment_method = Column(String(30), nullable=True)
    payment_amount = Column(Numeric(12, 2), nullable=True)
    payment_details = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')
    supplier = relationship('Supplier', back_populates='receipts')
    items = relationship('PurchaseReceiptItem', back_populates='receipt', cascade='all, delete-orphan',
                         order_by='PurchaseReceiptItem.row_order')

    def to_dict(self):
        return {
            'id': self.id,
            'receipt_number': self.receipt_number,
            'supplier_id': self.supplier_id,
            'purchase_date': self.purchase_date.isoformat() if self.purchase_date else None,
            'subtotal': money_str(self.subtotal),
            'discount': money_str(self.discount),
            'tax': money_str(self.tax),
            'total': money_str(self.total),
            'is_paid': self.is_paid,
            'payment_method': self.payment_method,
            'payment_amount': money_str(self.payment_amount) if self.payment_amount is not None else None,
            'notes': self.notes,
        }

    def __repr__(self):
        return f"<PurchaseReceipt(id={self.id}, receipt_number='{self.receipt_number}')>"
