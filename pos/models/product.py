"""Product model."""
from sqlalchemy import Column, String, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pos.database import Base, IdType
from pos.utils.money import money_str, quantity_str


class Product(Base):
    """Product model."""

    __tablename__ = 'product'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('tenant.id'), nullable=False)
    sku = Column(String, nullable=True)
    name = Column(String, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    price = Column(Numeric(12, 2), nullable=False)
    # Percent 0-100, belongs to the product, not to the order
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0, server_default='0.00')
    stock = Column(Numeric(12, 3), nullable=False, default=0, server_default='0')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')

    def to_dict(self):
        return {
            'id': self.id,
            'sku': self.sku,
            'name': self.name,
            'active': self.active,
            'price': money_str(self.price),
            'tax_rate': money_str(self.tax_rate),
            'stock': quantity_str(self.stock),
        }

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', sku='{self.sku}')>"
