"""Purchase receipt service - Multi-Tenant.

Receipt header CRUD, the insert/delete item primitives used by the step-wise
edit flow, and ``replace_receipt_items`` which swaps every line of a receipt
inside one transaction.
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from pos.models import PurchaseReceipt, PurchaseReceiptItem, Supplier
from pos.exceptions import ValidationError, NotFoundError, BusinessLogicError
from pos.services.pricing_service import ZERO
from pos.services.purchase_pricing import compute_purchase_line, price_receipt_lines, receipt_totals
from pos.services.reconciliation import is_submittable
from pos.services.store_config_service import get_products
from pos.utils.money import money_str
from pos.utils.payload import read_money, read_quantity, read_percent, read_int

logger = logging.getLogger(__name__)


def _parse_date(value, field: str) -> Optional[date]:
    if value in (None, ''):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f'{field}: fecha inválida (use AAAA-MM-DD)')


def get_receipt(session, tenant_id: int, receipt_id: int, for_update: bool = False) -> PurchaseReceipt:
    query = session.query(PurchaseReceipt).filter(
        PurchaseReceipt.id == receipt_id,
        PurchaseReceipt.tenant_id == tenant_id
    )
    if for_update:
        query = query.with_for_update()
    receipt = query.first()
    if not receipt:
        raise NotFoundError(f'Comprobante de compra {receipt_id} no encontrado')
    return receipt


def list_items(session, tenant_id: int, receipt_id: int) -> List[PurchaseReceiptItem]:
    """Items of a receipt in display order."""
    get_receipt(session, tenant_id, receipt_id)
    return session.query(PurchaseReceiptItem).filter(
        PurchaseReceiptItem.purchase_receipt_id == receipt_id
    ).order_by(PurchaseReceiptItem.row_order, PurchaseReceiptItem.id).all()


def _get_supplier(session, tenant_id: int, supplier_id) -> Supplier:
    if not supplier_id:
        raise ValidationError('El proveedor es requerido')
    supplier = session.query(Supplier).filter(
        Supplier.id == supplier_id,
        Supplier.tenant_id == tenant_id
    ).first()
    if not supplier:
        raise NotFoundError(f'Proveedor con ID {supplier_id} no encontrado o no pertenece a su negocio')
    return supplier


def _receipt_lines(session, tenant_id: int, items_data) -> List[Dict[str, Any]]:
    """
    Validate request items into purchase lines, in display order.

    Lines without a product or with quantity 0 are skipped.
    """
    if not isinstance(items_data, list):
        raise ValidationError('items debe ser una lista')

    candidates = []
    for item in items_data:
        if not isinstance(item, dict):
            raise ValidationError('Cada línea debe ser un objeto')
        line = {
            'product_id': read_int(item, 'product_id'),
            'quantity': read_quantity(item, 'quantity', ZERO),
        }
        if is_submittable(line):
            candidates.append((item, line))

    products = get_products(session, tenant_id, [line['product_id'] for _, line in candidates])

    lines = []
    for item, line in candidates:
        product = products[line['product_id']]
        discount_amount = item.get('discount_amount')
        line.update({
            'product_name': product.name,
            'sku': product.sku,
            'unit_price': read_money(item, 'unit_price', product.price),
            'tax_rate': read_percent(item, 'tax_rate', product.tax_rate),
            'discount_percent': item.get('discount_percent'),
            'discount_amount': read_money(item, 'discount_amount') if discount_amount not in (None, '') else None,
            'received_quantity': read_quantity(item, 'received_quantity', line['quantity']),
            'notes': item.get('notes'),
        })
        lines.append(line)
    return lines


def _new_item(line: Dict[str, Any], row_order: int) -> PurchaseReceiptItem:
    return PurchaseReceiptItem(
        product_id=line['product_id'],
        product_name=line['product_name'],
        sku=line.get('sku'),
        quantity=line['quantity'],
        received_quantity=line['received_quantity'],
        unit_price=line['unit_price'],
        tax_rate=line['tax_rate'],
        discount_percent=line['discount_percent'],
        discount_amount=line['discount_amount'],
        total=line['total'],
        notes=line.get('notes'),
        row_order=row_order,
    )


def _item_lines(receipt: PurchaseReceipt) -> List[Dict[str, Any]]:
    return [{
        'subtotal': item.quantity * item.unit_price,
        'discount_amount': item.discount_amount,
        'total': item.total,
        'tax_rate': item.tax_rate,
    } for item in receipt.items]


def _apply_totals(receipt: PurchaseReceipt, totals: Dict[str, Any]) -> None:
    receipt.subtotal = totals['subtotal']
    receipt.discount = totals['discount']
    receipt.tax = totals['tax']
    receipt.total = totals['total']


def _apply_header(session, receipt: PurchaseReceipt, data: Dict[str, Any]) -> None:
    if 'receipt_number' in data:
        number = (data.get('receipt_number') or '').strip()
        if not number:
            raise ValidationError('El número de comprobante es requerido')
        receipt.receipt_number = number
    if 'supplier_id' in data:
        receipt.supplier_id = _get_supplier(session, receipt.tenant_id, data.get('supplier_id')).id
    if 'purchase_date' in data:
        receipt.purchase_date = _parse_date(data.get('purchase_date'), 'purchase_date')
    if 'is_paid' in data:
        receipt.is_paid = bool(data.get('is_paid'))
    if 'payment_method' in data:
        receipt.payment_method = data.get('payment_method')
    if 'payment_amount' in data:
        receipt.payment_amount = read_money(data, 'payment_amount') if data.get('payment_amount') is not None else None
    if 'payment_details' in data:
        receipt.payment_details = data.get('payment_details')
    if 'notes' in data:
        receipt.notes = data.get('notes')


def _ensure_unique_number(session, tenant_id: int, receipt_number: str, exclude_id: Optional[int] = None) -> None:
    query = session.query(PurchaseReceipt.id).filter(
        PurchaseReceipt.tenant_id == tenant_id,
        PurchaseReceipt.receipt_number == receipt_number
    )
    if exclude_id is not None:
        query = query.filter(PurchaseReceipt.id != exclude_id)
    if query.first():
        raise BusinessLogicError(f'Ya existe un comprobante con número "{receipt_number}"')


def create_receipt(session, tenant_id: int, data: Dict[str, Any]) -> PurchaseReceipt:
    """
    Create a purchase receipt, optionally with its initial lines.

    Args:
        data: receipt_number, supplier_id, purchase_date, is_paid,
              payment_method, notes, discount (receipt-level, optional),
              items: list of {product_id, quantity, unit_price, discount_percent|discount_amount}
    """
    receipt_number = (data.get('receipt_number') or '').strip()
    if not receipt_number:
        raise ValidationError('El número de comprobante es requerido')
    supplier = _get_supplier(session, tenant_id, data.get('supplier_id'))
    _ensure_unique_number(session, tenant_id, receipt_number)

    lines = _receipt_lines(session, tenant_id, data.get('items') or [])
    receipt_discount = read_money(data, 'discount') if data.get('discount') not in (None, '') else None
    priced = price_receipt_lines(lines, receipt_discount)

    try:
        receipt = PurchaseReceipt(
            tenant_id=tenant_id,
            receipt_number=receipt_number,
            supplier_id=supplier.id,
            is_paid=False,
        )
        _apply_header(session, receipt, {k: v for k, v in data.items() if k not in ('receipt_number', 'supplier_id')})
        for index, line in enumerate(priced):
            receipt.items.append(_new_item(line, index + 1))
        _apply_totals(receipt, receipt_totals(priced))

        session.add(receipt)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[PURCHASES] Created receipt {receipt.receipt_number} tenant={tenant_id} total={receipt.total}")
    return receipt


def update_receipt(session, tenant_id: int, receipt_id: int, data: Dict[str, Any]) -> PurchaseReceipt:
    """
    Patch header fields.

    Totals may be sent by the client after a step-wise save; they must satisfy
    ``total == subtotal - discount + tax``.
    """
    receipt = get_receipt(session, tenant_id, receipt_id, for_update=True)
    if data.get('receipt_number'):
        _ensure_unique_number(session, tenant_id, data['receipt_number'].strip(), exclude_id=receipt.id)
    _apply_header(session, receipt, data)

    if any(key in data for key in ('subtotal', 'discount', 'tax', 'total')):
        subtotal = read_money(data, 'subtotal', receipt.subtotal)
        discount = read_money(data, 'discount', receipt.discount)
        tax = read_money(data, 'tax', receipt.tax)
        expected = max(ZERO, subtotal - discount + tax)
        total = read_money(data, 'total', expected)
        if total != expected:
            raise ValidationError(f'total ({money_str(total)}) debe ser subtotal - discount + tax ({money_str(expected)})')
        _apply_totals(receipt, {'subtotal': subtotal, 'discount': discount, 'tax': tax, 'total': total})

    try:
        session.commit()
    except Exception:
        session.rollback()
        raise
    return receipt


def add_item(session, tenant_id: int, data: Dict[str, Any]) -> PurchaseReceiptItem:
    """
    Insert one line into a receipt (step-wise edit primitive).

    ``row_order`` defaults to the end of the receipt. Header totals are not
    touched; the caller updates them once all lines are written.
    """
    receipt_id = read_int(data, 'purchase_receipt_id')
    if not receipt_id:
        raise ValidationError('purchase_receipt_id es requerido')
    receipt = get_receipt(session, tenant_id, receipt_id, for_update=True)

    lines = _receipt_lines(session, tenant_id, [data])
    if not lines:
        raise ValidationError('La línea necesita un producto y una cantidad mayor a 0')
    line = lines[0]
    line.update(compute_purchase_line(
        line['quantity'], line['unit_price'], line['discount_percent'], line['discount_amount']
    ))

    row_order = read_int(data, 'row_order', minimum=1)
    if row_order is None:
        current_max = session.query(func.max(PurchaseReceiptItem.row_order)).filter(
            PurchaseReceiptItem.purchase_receipt_id == receipt.id
        ).scalar()
        row_order = (current_max or 0) + 1

    try:
        item = _new_item(line, row_order)
        receipt.items.append(item)
        session.commit()
    except Exception:
        session.rollback()
        raise
    return item


def delete_item(session, tenant_id: int, item_id: int) -> None:
    """Delete one receipt line (step-wise edit primitive)."""
    item = session.query(PurchaseReceiptItem).join(
        PurchaseReceipt, PurchaseReceipt.id == PurchaseReceiptItem.purchase_receipt_id
    ).filter(
        PurchaseReceiptItem.id == item_id,
        PurchaseReceipt.tenant_id == tenant_id
    ).first()
    if not item:
        raise NotFoundError(f'Línea de compra {item_id} no encontrada')

    try:
        item.receipt.items.remove(item)
        session.commit()
    except Exception:
        session.rollback()
        raise


def recalculate_receipt(session, tenant_id: int, receipt_id: int) -> PurchaseReceipt:
    """Recompute header totals from the stored lines."""
    receipt = get_receipt(session, tenant_id, receipt_id, for_update=True)
    try:
        _apply_totals(receipt, receipt_totals(_item_lines(receipt)))
        session.commit()
    except Exception:
        session.rollback()
        raise
    return receipt


def replace_receipt_items(session, tenant_id: int, receipt_id: int, payload: Dict[str, Any]) -> PurchaseReceipt:
    """
    Replace every line of a receipt in one transaction.

    Persisted lines are deleted and every valid line of ``payload['items']``
    is inserted with ``row_order = index + 1``, so display order survives a
    reload. An optional ``payload['discount']`` is spread over the lines with
    the order discount allocator. Header totals are recomputed from the new
    lines. Nothing is written if any step fails.
    """
    receipt = get_receipt(session, tenant_id, receipt_id, for_update=True)
    lines = _receipt_lines(session, tenant_id, payload.get('items'))
    if not lines:
        raise ValidationError('Debe agregar al menos un ítem al comprobante')

    receipt_discount = read_money(payload, 'discount') if payload.get('discount') not in (None, '') else None
    priced = price_receipt_lines(lines, receipt_discount)

    try:
        previous = len(receipt.items)
        receipt.items.clear()
        session.flush()
        for index, line in enumerate(priced):
            receipt.items.append(_new_item(line, index + 1))
        _apply_totals(receipt, receipt_totals(priced))
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(
        f"[PURCHASES] Replaced items of receipt {receipt.id}: -{previous} +{len(priced)} total={receipt.total}"
    )
    return receipt


def list_suppliers(session, tenant_id: int) -> List[Supplier]:
    return session.query(Supplier).filter(Supplier.tenant_id == tenant_id).order_by(Supplier.name).all()


def create_supplier(session, tenant_id: int, data: Dict[str, Any]) -> Supplier:
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError('El nombre es obligatorio.')
    supplier = Supplier(
        tenant_id=tenant_id,
        name=name,
        phone=data.get('phone'),
        email=data.get('email'),
        notes=data.get('notes'),
    )
    try:
        session.add(supplier)
        session.commit()
    except Exception:
        session.rollback()
        raise
    return supplier
