"""Models package - exports all SQLAlchemy models."""
from pos.models.tenant import Tenant
from pos.models.store_settings import StoreSettings

# Business Models
from pos.models.product import Product
from pos.models.order import Order, OrderCounter, OrderStatus, PaymentStatus
from pos.models.order_item import OrderItem
from pos.models.order_change_history import OrderChangeHistory
from pos.models.supplier import Supplier
from pos.models.purchase_receipt import PurchaseReceipt
from pos.models.purchase_receipt_item import PurchaseReceiptItem
from pos.models.cash_voucher import CashVoucher, VoucherType

__all__ = [
    'Tenant', 'StoreSettings',
    'Product',
    'Order', 'OrderCounter', 'OrderStatus', 'PaymentStatus', 'OrderItem', 'OrderChangeHistory',
    'Supplier', 'PurchaseReceipt', 'PurchaseReceiptItem',
    'CashVoucher', 'VoucherType',
]
