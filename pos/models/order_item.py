"""Order Item model."""
from sqlalchemy import Column, String, Text, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from pos.database import Base, IdType
from pos.utils.money import money_str, quantity_str


class OrderItem(Base):
    """Order Item (one product line of an order)."""

    __tablename__ = 'order_items'

    id = Column(IdType, primary_key=True, autoincrement=True)
    order_id = Column(IdType, ForeignKey('orders.id'), nullable=False, index=True)
    product_id = Column(IdType, ForeignKey('product.id'), nullable=False)
    # Snapshot at time of sale
    product_name = Column(String, nullable=False)
    sku = Column(String, nullable=True)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0, server_default='0.00')
    # Share of the order-level discount
    discount = Column(Numeric(12, 2), nullable=False, default=0, server_default='0.00')
    price_before_tax = Column(Numeric(12, 2), nullable=False, default=0, server_default='0.00')
    tax = Column(Numeric(12, 2), nullable=False, default=0, server_default='0.00')
    total = Column(Numeric(12, 2), nullable=False, default=0, server_default='0.00')
    notes = Column(Text, nullable=True)

    # Relationships
    order = relationship('Order', back_populates='items')
    product = relationship('Product')

    def to_pricing_line(self):
        """Line dict as consumed by the pricing engine."""
        return {
            'id': self.id,
            'product_id': self.product_id,
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'tax_rate': self.tax_rate,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'order_id': self.order_id,
            'product_id': self.product_id,
            'product_name': self.product_name,
            'sku': self.sku,
            'quantity': quantity_str(self.quantity),
            'unit_price': money_str(self.unit_price),
            'tax_rate': money_str(self.tax_rate),
            'discount': money_str(self.discount),
            'price_before_tax': money_str(self.price_before_tax),
            'tax': money_str(self.tax),
            'total': money_str(self.total),
            'notes': self.notes,
        }

    def __repr__(self):
        return f"<OrderItem(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"
