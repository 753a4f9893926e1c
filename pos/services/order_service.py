"""
Order service - server side of the Order Storage API (multi-tenant).

Granular primitives (create, append items, patch item, patch header, delete
item) used by the step-by-step edit flow, plus ``reconcile_order`` which
applies a whole edit inside one transaction.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pos.models import Order, OrderCounter, OrderItem, OrderChangeHistory, OrderStatus, PaymentStatus
from pos.exceptions import ValidationError, NotFoundError
from pos.services.pricing_service import ZERO, compute_line, price_order
from pos.services.reconciliation import plan_reconciliation, is_submittable, is_temporary_id
from pos.services.store_config_service import get_store_config, get_products
from pos.utils.money import money_str
from pos.utils.payload import read_money, read_quantity, read_int

logger = logging.getLogger(__name__)

ORDER_NUMBER_PREFIX = 'ORD'
PRICED_FIELDS = ('discount', 'tax', 'price_before_tax')


# =====================================================
# LOOKUPS
# =====================================================

def get_order(session, tenant_id: int, order_id: int, for_update: bool = False) -> Order:
    """Fetch an order of the tenant or raise NotFoundError."""
    query = session.query(Order).filter(
        Order.id == order_id,
        Order.tenant_id == tenant_id
    )
    if for_update:
        query = query.with_for_update()
    order = query.first()
    if not order:
        raise NotFoundError(f'Pedido {order_id} no encontrado')
    return order


def get_order_item(session, tenant_id: int, item_id: int) -> OrderItem:
    """Fetch an order item, checking the owning order belongs to the tenant."""
    item = session.query(OrderItem).join(
        Order, Order.id == OrderItem.order_id
    ).filter(
        OrderItem.id == item_id,
        Order.tenant_id == tenant_id
    ).first()
    if not item:
        raise NotFoundError(f'Línea de pedido {item_id} no encontrada')
    return item


def list_order_items(session, tenant_id: int, order_id: int) -> List[OrderItem]:
    """Persisted items of an order in canonical (id) order."""
    get_order(session, tenant_id, order_id)
    return session.query(OrderItem).filter(
        OrderItem.order_id == order_id
    ).order_by(OrderItem.id).all()


def next_order_number(session, tenant_id: int, now: Optional[datetime] = None) -> str:
    """
    Assign the next human-readable order number for the tenant.

    The per-tenant counter row is locked FOR UPDATE so concurrent checkouts
    never receive the same number.
    """
    counter = session.query(OrderCounter).filter(
        OrderCounter.tenant_id == tenant_id
    ).with_for_update().first()

    if counter is None:
        counter = OrderCounter(tenant_id=tenant_id, last_value=0)
        session.add(counter)

    counter.last_value += 1
    session.flush()

    now = now or datetime.now()
    return f'{ORDER_NUMBER_PREFIX}-{now:%Y%m%d}-{counter.last_value:06d}'


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _read_choice(data: Dict[str, Any], key: str, choices, default: Optional[str]) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return default
    allowed = [c.value for c in choices]
    if value not in allowed:
        raise ValidationError(f'{key} inválido: {value}. Valores permitidos: {", ".join(allowed)}')
    return value


def _read_payment_details(data: Dict[str, Any]) -> Optional[List[Dict[str, str]]]:
    details = data.get('payment_details')
    if details is None:
        return None
    if not isinstance(details, list):
        raise ValidationError('payment_details debe ser una lista')
    normalized = []
    for entry in details:
        if not isinstance(entry, dict) or not entry.get('method'):
            raise ValidationError('Cada pago necesita method y amount')
        normalized.append({
            'method': str(entry['method']),
            'amount': money_str(read_money(entry, 'amount')),
        })
    return normalized


def _cart_lines(session, tenant_id: int, items_data) -> List[Dict[str, Any]]:
    """
    Turn request items into pricing lines, snapshotting product name/sku/tax rate.

    Lines without a product are kept (the validation gate drops them later).
    """
    if not isinstance(items_data, list):
        raise ValidationError('items debe ser una lista')

    product_ids = []
    for item in items_data:
        if not isinstance(item, dict):
            raise ValidationError('Cada línea debe ser un objeto')
        product_id = read_int(item, 'product_id')
        if product_id:
            product_ids.append(product_id)

    products = get_products(session, tenant_id, product_ids)

    lines = []
    for item in items_data:
        product_id = read_int(item, 'product_id')
        line = {
            'id': item.get('id'),
            'product_id': product_id,
            'quantity': read_quantity(item, 'quantity', ZERO),
            'notes': item.get('notes'),
            '_payload': item,
        }
        product = products.get(product_id)
        if product:
            if not product.active:
                raise ValidationError(f'El producto "{product.name}" no está activo')
            line.update({
                'unit_price': read_money(item, 'unit_price', product.price),
                'tax_rate': product.tax_rate,
                'product_name': product.name,
                'sku': product.sku,
            })
        lines.append(line)
    return lines


def _apply_line(item: OrderItem, line: Dict[str, Any]) -> None:
    item.discount = line['discount']
    item.price_before_tax = line['price_before_tax']
    item.tax = line['tax']
    item.total = line['total']


def _new_item(line: Dict[str, Any]) -> OrderItem:
    item = OrderItem(
        product_id=line['product_id'],
        product_name=line['product_name'],
        sku=line.get('sku'),
        quantity=line['quantity'],
        unit_price=line['unit_price'],
        tax_rate=line['tax_rate'],
        notes=line.get('notes'),
    )
    _apply_line(item, line)
    return item


def _apply_totals(order: Order, totals: Dict[str, Any]) -> None:
    order.subtotal = totals['subtotal']
    order.tax = totals['tax']
    order.discount = totals['discount']
    order.total = totals['total']


def _apply_header_fields(order: Order, data: Dict[str, Any]) -> None:
    """Customer / lifecycle fields shared by header patch and reconcile."""
    if 'customer_name' in data:
        order.customer_name = (data.get('customer_name') or '').strip() or None
    if 'customer_count' in data:
        order.customer_count = read_int(data, 'customer_count', 1, minimum=1)
    if 'table_id' in data:
        order.table_id = read_int(data, 'table_id')
    if 'payment_method' in data:
        order.payment_method = data.get('payment_method')
    if 'payment_details' in data:
        order.payment_details = _read_payment_details(data)

    order.status = _read_choice(data, 'status', OrderStatus, order.status)
    order.payment_status = _read_choice(data, 'payment_status', PaymentStatus, order.payment_status)
    if order.is_paid and order.paid_at is None:
        order.paid_at = datetime.now()


def _reprice_order(order: Order, price_includes_tax: bool) -> Dict[str, Any]:
    """Re-run the allocator over the persisted items and write lines + header."""
    items = sorted(order.items, key=lambda i: i.id)
    priced = price_order([i.to_pricing_line() for i in items], order.discount, price_includes_tax)
    for item, line in zip(items, priced['lines']):
        _apply_line(item, line)
    _apply_totals(order, priced['totals'])
    return priced['totals']


def _record_history(session, order: Order, action: str, description: str, user_name: str) -> None:
    session.add(OrderChangeHistory(
        order_id=order.id,
        tenant_id=order.tenant_id,
        action=action,
        detailed_description=description,
        user_name=user_name or 'system'
    ))


# =====================================================
# PUBLIC OPERATIONS
# =====================================================

def preview_order(session, tenant_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Price a cart exactly as a save would, without writing anything."""
    lines = [l for l in _cart_lines(session, tenant_id, payload.get('items') or []) if is_submittable(l)]
    discount = read_money(payload, 'discount', ZERO)
    config = get_store_config(session, tenant_id)
    priced = price_order(lines, discount, config['price_includes_tax'])
    return {
        'price_includes_tax': config['price_includes_tax'],
        'lines': priced['lines'],
        'totals': priced['totals'],
    }


def create_order(session, tenant_id: int, order_data: Dict[str, Any], items_data) -> Order:
    """
    Create an order and its initial items (tenant-scoped).

    Totals are computed here with the pricing engine; totals sent by the
    client are only compared and logged when they disagree.

    Raises:
        ValidationError: no valid lines, or invalid header fields
        NotFoundError: unknown product
    """
    if not isinstance(order_data, dict):
        raise ValidationError('order debe ser un objeto')

    lines = [l for l in _cart_lines(session, tenant_id, items_data) if is_submittable(l)]
    if not lines:
        raise ValidationError('El pedido no tiene productos')

    discount = read_money(order_data, 'discount', ZERO)
    config = get_store_config(session, tenant_id)
    priced = price_order(lines, discount, config['price_includes_tax'])

    try:
        order = Order(
            tenant_id=tenant_id,
            order_number=next_order_number(session, tenant_id),
            customer_count=1,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
        )
        _apply_header_fields(order, order_data)
        _apply_totals(order, priced['totals'])
        for line in priced['lines']:
            order.items.append(_new_item(line))

        session.add(order)
        session.commit()
    except Exception:
        session.rollback()
        raise

    client_total = order_data.get('total')
    if client_total is not None and money_str(client_total) != money_str(order.total):
        logger.warning(
            f"[ORDERS] Client total {client_total} differs from computed {order.total} "
            f"for {order.order_number}"
        )

    logger.info(f"[ORDERS] Created {order.order_number} tenant={tenant_id} total={order.total}")
    return order


def add_items(session, tenant_id: int, order_id: int, items_data) -> List[OrderItem]:
    """
    Append new items to an existing order.

    Items may carry client-allocated discount/tax/price_before_tax (step-wise
    edit flow); otherwise the line is priced on its own with no discount.
    The order header is left untouched; the caller patches it afterwards.
    """
    order = get_order(session, tenant_id, order_id, for_update=True)
    lines = [l for l in _cart_lines(session, tenant_id, items_data) if is_submittable(l)]
    if not lines:
        raise ValidationError('No hay productos para agregar')

    config = get_store_config(session, tenant_id)
    created = []
    try:
        for line in lines:
            payload = line['_payload']
            if all(payload.get(field) is not None for field in PRICED_FIELDS):
                pbt = read_money(payload, 'price_before_tax')
                tax = read_money(payload, 'tax')
                line.update({
                    'discount': read_money(payload, 'discount'),
                    'price_before_tax': pbt,
                    'tax': tax,
                    'total': pbt + tax,
                })
            else:
                line.update({'discount': ZERO})
                line.update(compute_line(
                    line['quantity'], line['unit_price'], line['tax_rate'], ZERO,
                    config['price_includes_tax']
                ))
            item = _new_item(line)
            order.items.append(item)
            created.append(item)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[ORDERS] Added {len(created)} items to order {order_id}")
    return created


def update_item(session, tenant_id: int, item_id: int, data: Dict[str, Any]) -> OrderItem:
    """Patch discount / tax / price_before_tax (and optionally quantity) of one item."""
    item = get_order_item(session, tenant_id, item_id)

    if 'quantity' in data:
        quantity = read_quantity(data, 'quantity')
        if quantity <= 0:
            raise ValidationError('La cantidad debe ser mayor a 0. Para quitar la línea use DELETE.')
        item.quantity = quantity

    item.discount = read_money(data, 'discount', item.discount)
    item.price_before_tax = read_money(data, 'price_before_tax', item.price_before_tax)
    item.tax = read_money(data, 'tax', item.tax)
    item.total = item.price_before_tax + item.tax

    try:
        session.commit()
    except Exception:
        session.rollback()
        raise
    return item


def update_order_header(session, tenant_id: int, order_id: int, data: Dict[str, Any]) -> Order:
    """
    Patch header fields, including the four aggregate totals.

    The totals are stored as sent (they are the cashier's footer values) but
    must satisfy ``total == subtotal + tax``.
    """
    order = get_order(session, tenant_id, order_id, for_update=True)
    _apply_header_fields(order, data)

    if any(key in data for key in ('subtotal', 'tax', 'discount', 'total')):
        subtotal = read_money(data, 'subtotal', order.subtotal)
        tax = read_money(data, 'tax', order.tax)
        total = read_money(data, 'total', subtotal + tax)
        if total != subtotal + tax:
            raise ValidationError(
                f'total ({money_str(total)}) debe ser subtotal + tax ({money_str(subtotal + tax)})'
            )
        order.subtotal = subtotal
        order.tax = tax
        order.discount = read_money(data, 'discount', order.discount)
        order.total = total

    try:
        session.commit()
    except Exception:
        session.rollback()
        raise
    return order


def delete_item(session, tenant_id: int, item_id: int, user_name: str = 'system') -> Order:
    """Remove one item and re-price the remaining lines and the header."""
    item = get_order_item(session, tenant_id, item_id)
    order = get_order(session, tenant_id, item.order_id, for_update=True)
    config = get_store_config(session, tenant_id)

    try:
        description = f'Eliminada línea {item.id} ({item.product_name} x {item.quantity})'
        order.items.remove(item)
        session.flush()
        _reprice_order(order, config['price_includes_tax'])
        _record_history(session, order, 'delete_item', description, user_name)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[ORDERS] Deleted item {item_id} from order {order.id}; total={order.total}")
    return order


def recalculate_order(session, tenant_id: int, order_id: int) -> Order:
    """Re-run the allocator over the persisted items of an order."""
    order = get_order(session, tenant_id, order_id, for_update=True)
    config = get_store_config(session, tenant_id)
    try:
        _reprice_order(order, config['price_includes_tax'])
        session.commit()
    except Exception:
        session.rollback()
        raise
    return order


def reconcile_order(
    session,
    tenant_id: int,
    order_id: int,
    payload: Dict[str, Any],
    user_name: str = 'system'
) -> Order:
    """
    Apply a full edit (header + all lines) in a single transaction.

    ``payload['items']`` lists every line on screen: persisted lines carry
    their id (unit price and tax rate are taken from the stored row), cart
    lines carry no id or a temporary one. Persisted lines that are missing or
    have quantity 0 are deleted. Running it twice with the same screen state
    leaves identical totals.

    Raises:
        ValidationError: empty result, unknown line ids, invalid fields
        NotFoundError: order or product not found
    """
    order = get_order(session, tenant_id, order_id, for_update=True)
    items_payload = payload.get('items')
    if not isinstance(items_payload, list):
        raise ValidationError('items debe ser una lista')

    persisted = {item.id: item for item in order.items}

    existing_lines = []
    cart_payload = []
    for entry in items_payload:
        if not isinstance(entry, dict):
            raise ValidationError('Cada línea debe ser un objeto')
        if is_temporary_id(entry.get('id')):
            cart_payload.append(entry)
            continue
        item = persisted.get(int(entry['id']))
        if item is None:
            raise ValidationError(f'La línea {entry["id"]} no pertenece a este pedido')
        line = item.to_pricing_line()
        line['quantity'] = read_quantity(entry, 'quantity', item.quantity)
        existing_lines.append(line)

    cart = _cart_lines(session, tenant_id, cart_payload)
    discount = read_money(payload, 'discount', order.discount)
    config = get_store_config(session, tenant_id)

    plan = plan_reconciliation(persisted.keys(), existing_lines + cart, discount, config['price_includes_tax'])
    if not plan['updates'] and not plan['inserts']:
        raise ValidationError('El pedido debe tener al menos un producto')

    try:
        for item_id in plan['deletes']:
            order.items.remove(persisted[item_id])
        for line in plan['updates']:
            item = persisted[int(line['id'])]
            item.quantity = line['quantity']
            _apply_line(item, line)
        for line in plan['inserts']:
            order.items.append(_new_item(line))

        _apply_header_fields(order, payload)
        _apply_totals(order, plan['totals'])
        session.flush()

        _record_history(
            session, order, 'edit',
            f"{len(plan['deletes'])} eliminadas, {len(plan['updates'])} actualizadas, "
            f"{len(plan['inserts'])} agregadas; descuento {money_str(order.discount)}, "
            f"total {money_str(order.total)}",
            user_name
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(
        f"[ORDERS] Reconciled order {order.id}: -{len(plan['deletes'])} "
        f"~{len(plan['updates'])} +{len(plan['inserts'])} total={order.total}"
    )
    return order
