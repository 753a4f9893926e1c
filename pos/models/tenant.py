"""Tenant model."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pos.database import Base, IdType


class Tenant(Base):
    """Tenant (one store / business)."""

    __tablename__ = 'tenant'

    id = Column(IdType, primary_key=True, autoincrement=True)
    slug = Column(String(80), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    settings = relationship('StoreSettings', uselist=False, back_populates='tenant', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Tenant(id={self.id}, slug='{self.slug}')>"
