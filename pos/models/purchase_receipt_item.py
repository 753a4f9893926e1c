"""Purchase Receipt Item model."""
from sqlalchemy import Column, String, Text, Integer, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from pos.database import Base, IdType
from pos.utils.money import money_str, quantity_str


class PurchaseReceiptItem(Base):
    """Purchase Receipt Item (one line of a purchase receipt)."""

    __tablename__ = 'purchase_receipt_items'

    id = Column(IdType, primary_key=True, autoincrement=True)
    purchase_receipt_id = Column(IdType, ForeignKey('purchase_receipts.id', ondelete='CASCADE'),
                                 nullable=False, index=True)
    product_id = Column(IdType, ForeignKey('product.id'), nullable=True)
    product_name = Column(String, nullable=False)
    sku = Column(String, nullable=True)
    quantity = Column(Numeric(12, 3), nullable=False)
    received_quantity = Column(Numeric(12, 3), nullable=False, default=0, server_default='0')
    unit_price = Column(Numeric(12, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0, server_default='0.00')
    discount_percent = Column(Numeric(5, 2), nullable=False, default=0, server_default='0.00')
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0, server_default='0.00')
    total = Column(Numeric(12, 2), nullable=False)
    notes = Column(Text, nullable=True)
    # Display position inside the receipt (1-based)
    row_order = Column(Integer, nullable=False, default=0, server_default='0')

    # Relationships
    receipt = relationship('PurchaseReceipt', back_populates='items')
    product = relationship('Product')

    def to_dict(self):
        return {
            'id': self.id,
            'purchase_receipt_id': self.purchase_receipt_id,
            'product_id': self.product_id,
            'product_name': self.product_name,
            'sku': self.sku,
            'quantity': quantity_str(self.quantity),
            'received_quantity': quantity_str(self.received_quantity),
            'unit_price': money_str(self.unit_price),
            'tax_rate': money_str(self.tax_rate),
            'discount_percent': money_str(self.discount_percent),
            'discount_amount': money_str(self.discount_amount),
            'total': money_str(self.total),
            'notes': self.notes,
            'row_order': self.row_order,
        }

    def __repr__(self):
        return f"<PurchaseReceiptItem(id={self.id}, product_id={self.product_id}, row_order={self.row_order})>"
