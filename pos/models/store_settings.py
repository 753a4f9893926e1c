"""Store settings model."""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pos.database import Base, IdType


class StoreSettings(Base):
    """Store-level configuration (one row per tenant)."""

    __tablename__ = 'store_settings'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('tenant.id'), nullable=False, unique=True)
    store_name = Column(String(200), nullable=True)
    # Unit prices already contain tax (tax is extracted, not added)
    price_includes_tax = Column(Boolean, nullable=False, default=False, server_default='false')
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant', back_populates='settings')

    def to_dict(self):
        return {
            'store_name': self.store_name,
            'price_includes_tax': bool(self.price_includes_tax),
        }

    def __repr__(self):
        return f"<StoreSettings(tenant_id={self.tenant_id}, price_includes_tax={self.price_includes_tax})>"
