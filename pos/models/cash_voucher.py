"""Cash voucher model (manual income / expense entries)."""
from sqlalchemy import Column, String, Text, Date, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pos.database import Base, IdType
from pos.utils.money import money_str
import enum


class VoucherType(str, enum.Enum):
    """Voucher direction."""
    INCOME = 'income'
    EXPENSE = 'expense'


class CashVoucher(Base):
    """Cash voucher (income or expense slip entered by hand)."""

    __tablename__ = 'cash_voucher'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('tenant.id'), nullable=False)
    type = Column(String(10), nullable=False)
    voucher_number = Column(String(50), nullable=False)
    date = Column(Date, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    # Payment method the money moved through
    account = Column(String(30), nullable=False, default='cash')
    counterparty = Column(String(255), nullable=False)
    category = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    tenant = relationship('Tenant')

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'voucher_number': self.voucher_number,
            'date': self.date.isoformat(),
            'amount': money_str(self.amount),
            'account': self.account,
            'counterparty': self.counterparty,
            'category': self.category,
            'description': self.description,
        }

    def __repr__(self):
        return f"<CashVoucher(id={self.id}, type={self.type}, amount={self.amount})>"
