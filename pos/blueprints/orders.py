"""Orders blueprint - Order Storage API (JSON, tenant-scoped)."""
from typing import Any, Dict

from flask import Blueprint, request, jsonify, g, current_app
from pos.database import get_session
from pos.exceptions import PosError
from pos.middleware import require_tenant
from pos.services import order_service
from pos.services.pricing_service import totals_to_json
from pos.blueprints.metrics import order_saves_total, reconcile_failures_total
from pos.utils.money import money_str, quantity_str
from pos.utils.payload import json_object


orders_bp = Blueprint('orders', __name__)


def _order_with_items(order) -> Dict[str, Any]:
    return {
        'order': order.to_dict(),
        'items': [item.to_dict() for item in order.items],
    }


def _priced_line_json(line: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'id': line.get('id'),
        'product_id': line.get('product_id'),
        'product_name': line.get('product_name'),
        'sku': line.get('sku'),
        'quantity': quantity_str(line['quantity']),
        'unit_price': money_str(line['unit_price']),
        'tax_rate': money_str(line['tax_rate']),
        'discount': money_str(line['discount']),
        'price_before_tax': money_str(line['price_before_tax']),
        'tax': money_str(line['tax']),
        'total': money_str(line['total']),
    }


@orders_bp.route('/orders/preview', methods=['POST'])
@require_tenant
def preview_order():
    """Price a cart exactly as a save would, without persisting."""
    result = order_service.preview_order(get_session(), g.tenant_id, json_object(request))
    return jsonify({
        'price_includes_tax': result['price_includes_tax'],
        'lines': [_priced_line_json(line) for line in result['lines']],
        'totals': totals_to_json(result['totals']),
    })


@orders_bp.route('/orders', methods=['POST'])
@require_tenant
def create_order():
    """Create an order with its items. Body: {"order": {...}, "items": [...]}."""
    payload = json_object(request)
    order = order_service.create_order(
        get_session(), g.tenant_id, payload.get('order') or {}, payload.get('items')
    )
    order_saves_total.labels(operation='create').inc()
    return jsonify(_order_with_items(order)), 201


@orders_bp.route('/orders/<int:order_id>', methods=['GET'])
@require_tenant
def get_order(order_id: int):
    order = order_service.get_order(get_session(), g.tenant_id, order_id)
    return jsonify(order.to_dict())


@orders_bp.route('/orders/<int:order_id>/items', methods=['GET'])
@require_tenant
def list_order_items(order_id: int):
    items = order_service.list_order_items(get_session(), g.tenant_id, order_id)
    return jsonify([item.to_dict() for item in items])


@orders_bp.route('/orders/<int:order_id>/items', methods=['POST'])
@require_tenant
def add_order_items(order_id: int):
    payload = json_object(request)
    items = order_service.add_items(get_session(), g.tenant_id, order_id, payload.get('items'))
    return jsonify({'items': [item.to_dict() for item in items]}), 201


@orders_bp.route('/order-items/<int:item_id>', methods=['PUT'])
@require_tenant
def update_order_item(item_id: int):
    item = order_service.update_item(get_session(), g.tenant_id, item_id, json_object(request))
    return jsonify(item.to_dict())


@orders_bp.route('/order-items/<int:item_id>', methods=['DELETE'])
@require_tenant
def delete_order_item(item_id: int):
    order = order_service.delete_item(get_session(), g.tenant_id, item_id, user_name=g.user_name)
    return jsonify(_order_with_items(order))


@orders_bp.route('/orders/<int:order_id>', methods=['PUT'])
@require_tenant
def update_order(order_id: int):
    order = order_service.update_order_header(get_session(), g.tenant_id, order_id, json_object(request))
    return jsonify(order.to_dict())


@orders_bp.route('/orders/<int:order_id>/recalculate', methods=['POST'])
@require_tenant
def recalculate_order(order_id: int):
    order = order_service.recalculate_order(get_session(), g.tenant_id, order_id)
    order_saves_total.labels(operation='recalculate').inc()
    return jsonify(_order_with_items(order))


@orders_bp.route('/orders/<int:order_id>/reconcile', methods=['PUT'])
@require_tenant
def reconcile_order(order_id: int):
    """Apply a whole edit (header + all lines) in one transaction."""
    try:
        order = order_service.reconcile_order(
            get_session(), g.tenant_id, order_id, json_object(request), user_name=g.user_name
        )
    except PosError as e:
        reconcile_failures_total.labels(document='order', reason=type(e).__name__).inc()
        current_app.logger.warning(f"[ORDERS] Reconcile of order {order_id} rejected: {e.message}")
        raise

    order_saves_total.labels(operation='reconcile').inc()
    return jsonify(_order_with_items(order))
