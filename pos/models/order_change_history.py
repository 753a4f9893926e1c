"""Order change history model."""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pos.database import Base, IdType


class OrderChangeHistory(Base):
    """Audit trail of edits applied to an order."""

    __tablename__ = 'order_change_history'

    id = Column(IdType, primary_key=True, autoincrement=True)
    order_id = Column(IdType, ForeignKey('orders.id'), nullable=False, index=True)
    tenant_id = Column(IdType, ForeignKey('tenant.id'), nullable=False)
    changed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    user_name = Column(String(255), nullable=False, default='system')
    action = Column(String(50), nullable=False, default='edit')
    detailed_description = Column(Text, nullable=False)

    # Relationships
    order = relationship('Order', back_populates='history')

    def __repr__(self):
        return f"<OrderChangeHistory(order_id={self.order_id}, action='{self.action}')>"
