"""Cash book service - income/expense ledger with running balances.

Income comes from paid orders and income vouchers; expense from paid purchase
receipts and expense vouchers. Amounts are filtered by payment method, using
the split-payment breakdown when a document was paid with several methods.
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pos.models import Order, CashVoucher, VoucherType, PurchaseReceipt, Supplier, OrderStatus, PaymentStatus
from pos.exceptions import ValidationError
from pos.services.pricing_service import ZERO
from pos.utils.money import money_str, to_decimal
from pos.utils.payload import read_money

logger = logging.getLogger(__name__)

INCOME = VoucherType.INCOME.value
EXPENSE = VoucherType.EXPENSE.value


def parse_date(value, field: str) -> Optional[date]:
    """Parse ``YYYY-MM-DD`` (empty -> None)."""
    if value in (None, ''):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f'{field}: fecha inválida (use AAAA-MM-DD)')


def _as_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    return value


def _split_amount(details, method: str) -> Optional[Decimal]:
    """Amount paid with ``method`` inside a split-payment breakdown, if listed."""
    if not isinstance(details, list):
        return None
    for entry in details:
        if isinstance(entry, dict) and entry.get('method') == method:
            return to_decimal(entry.get('amount'), ZERO)
    return None


def _document_amount(full_amount: Decimal, payment_method: Optional[str], details, method: Optional[str]) -> Decimal:
    """
    Amount of a document that moved through ``method``.

    No filter: the full amount. Split payment: the matching part (0 when
    the method is not listed). Single method: full amount when it matches.
    """
    if not method:
        return full_amount
    split = _split_amount(details, method)
    if split is not None:
        return split
    if details:
        return ZERO
    return full_amount if payment_method == method else ZERO


def _order_transactions(session, tenant_id: int, method: Optional[str]) -> List[Dict[str, Any]]:
    orders = session.query(Order).filter(
        Order.tenant_id == tenant_id,
        (Order.status == OrderStatus.PAID.value) | (Order.payment_status == PaymentStatus.PAID.value)
    ).all()

    transactions = []
    for order in orders:
        amount = _document_amount(order.total, order.payment_method, order.payment_details, method)
        if amount <= 0:
            continue
        transactions.append({
            'id': order.order_number,
            'date': _as_date(order.ordered_at or order.paid_at),
            'source': order.customer_name or 'Cliente',
            'type': INCOME,
            'voucher_type': 'sales_order',
            'amount': amount,
        })
    return transactions


def _voucher_transactions(session, tenant_id: int, method: Optional[str]) -> List[Dict[str, Any]]:
    query = session.query(CashVoucher).filter(CashVoucher.tenant_id == tenant_id)
    if method:
        query = query.filter(CashVoucher.account == method)

    # Income vouchers are listed before expense vouchers on the same day
    vouchers = sorted(query.all(), key=lambda v: (v.type != INCOME, v.id))
    return [{
        'id': voucher.voucher_number,
        'date': voucher.date,
        'source': voucher.counterparty,
        'type': voucher.type,
        'voucher_type': f'{voucher.type}_voucher',
        'amount': voucher.amount,
    } for voucher in vouchers]


def _receipt_transactions(session, tenant_id: int, method: Optional[str]) -> List[Dict[str, Any]]:
    rows = session.query(PurchaseReceipt, Supplier.name).outerjoin(
        Supplier, Supplier.id == PurchaseReceipt.supplier_id
    ).filter(
        PurchaseReceipt.tenant_id == tenant_id,
        PurchaseReceipt.is_paid.is_(True)
    ).all()

    transactions = []
    for receipt, supplier_name in rows:
        paid = receipt.payment_amount if receipt.payment_amount is not None else receipt.total
        amount = _document_amount(paid, receipt.payment_method, receipt.payment_details, method)
        if amount <= 0:
            continue
        transactions.append({
            'id': receipt.receipt_number,
            'date': receipt.purchase_date or _as_date(receipt.created_at),
            'source': supplier_name or 'Proveedor',
            'type': EXPENSE,
            'voucher_type': 'purchase_receipt',
            'amount': amount,
        })
    return transactions


def build_cash_book(
    session,
    tenant_id: int,
    start: date,
    end: date,
    method: Optional[str] = None,
    kind: Optional[str] = None
) -> Dict[str, Any]:
    """
    Cash book for ``[start, end]``.

    Args:
        method: Payment method filter (None or 'all' = every method)
        kind: 'income' / 'expense' to list only one direction

    Returns:
        dict with opening_balance, transactions (each with a running
        balance), total_income, total_expense and ending_balance where
        ``ending = opening + income - expense``.
    """
    if start is None or end is None:
        raise ValidationError('start y end son requeridos')
    if start > end:
        raise ValidationError('La fecha de inicio no puede ser posterior a la fecha de fin')
    if method == 'all':
        method = None
    if kind in (None, '', 'all'):
        kind = None
    elif kind not in (INCOME, EXPENSE):
        raise ValidationError(f'type inválido: {kind}')

    transactions = (
        _order_transactions(session, tenant_id, method)
        + _voucher_transactions(session, tenant_id, method)
        + _receipt_transactions(session, tenant_id, method)
    )
    transactions = [t for t in transactions if t['date'] is not None]
    transactions.sort(key=lambda t: t['date'])

    opening_balance = ZERO
    for transaction in transactions:
        if transaction['date'] < start:
            sign = 1 if transaction['type'] == INCOME else -1
            opening_balance += sign * transaction['amount']

    in_range = [t for t in transactions if start <= t['date'] <= end]
    if kind:
        in_range = [t for t in in_range if t['type'] == kind]

    running = opening_balance
    total_income = ZERO
    total_expense = ZERO
    for transaction in in_range:
        if transaction['type'] == INCOME:
            running += transaction['amount']
            total_income += transaction['amount']
        else:
            running -= transaction['amount']
            total_expense += transaction['amount']
        transaction['balance'] = running

    return {
        'opening_balance': opening_balance,
        'transactions': in_range,
        'total_income': total_income,
        'total_expense': total_expense,
        'ending_balance': opening_balance + total_income - total_expense,
    }


def cash_book_to_json(book: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'opening_balance': money_str(book['opening_balance']),
        'total_income': money_str(book['total_income']),
        'total_expense': money_str(book['total_expense']),
        'ending_balance': money_str(book['ending_balance']),
        'transactions': [{
            **t,
            'date': t['date'].isoformat(),
            'amount': money_str(t['amount']),
            'balance': money_str(t['balance']),
        } for t in book['transactions']],
    }


def _next_voucher_number(session, tenant_id: int, voucher_type: str, voucher_date: date) -> str:
    prefix = 'IN' if voucher_type == INCOME else 'EX'
    count = session.query(CashVoucher).filter(
        CashVoucher.tenant_id == tenant_id,
        CashVoucher.type == voucher_type,
        CashVoucher.date == voucher_date
    ).count()
    return f'{prefix}-{voucher_date:%Y%m%d}-{count + 1:03d}'


def create_voucher(session, tenant_id: int, voucher_type: str, data: Dict[str, Any]) -> CashVoucher:
    """Record a manual income or expense entry."""
    if voucher_type not in (INCOME, EXPENSE):
        raise ValidationError(f'Tipo de comprobante inválido: {voucher_type}')

    amount = read_money(data, 'amount')
    if amount <= 0:
        raise ValidationError('El monto debe ser mayor a 0')
    counterparty = (data.get('counterparty') or '').strip()
    if not counterparty:
        raise ValidationError('counterparty es requerido')
    voucher_date = parse_date(data.get('date'), 'date') or date.today()

    try:
        voucher = CashVoucher(
            tenant_id=tenant_id,
            type=voucher_type,
            voucher_number=(data.get('voucher_number') or '').strip()
            or _next_voucher_number(session, tenant_id, voucher_type, voucher_date),
            date=voucher_date,
            amount=amount,
            account=data.get('account') or 'cash',
            counterparty=counterparty,
            category=data.get('category'),
            description=data.get('description'),
        )
        session.add(voucher)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[CASH_BOOK] {voucher_type} voucher {voucher.voucher_number} amount={amount} tenant={tenant_id}")
    return voucher
