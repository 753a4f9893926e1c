"""Purchases blueprint - suppliers, purchase receipts and their items (tenant-scoped)."""
from flask import Blueprint, request, jsonify, g, current_app
from pos.database import get_session
from pos.exceptions import PosError
from pos.middleware import require_tenant
from pos.services import purchase_service
from pos.blueprints.metrics import reconcile_failures_total
from pos.utils.payload import json_object


purchases_bp = Blueprint('purchases', __name__)


def _receipt_with_items(receipt):
    return {
        'receipt': receipt.to_dict(),
        'items': [item.to_dict() for item in receipt.items],
    }


# ============================================================================
# Suppliers
# ============================================================================

@purchases_bp.route('/suppliers', methods=['GET'])
@require_tenant
def list_suppliers():
    suppliers = purchase_service.list_suppliers(get_session(), g.tenant_id)
    return jsonify([s.to_dict() for s in suppliers])


@purchases_bp.route('/suppliers', methods=['POST'])
@require_tenant
def create_supplier():
    supplier = purchase_service.create_supplier(get_session(), g.tenant_id, json_object(request))
    return jsonify(supplier.to_dict()), 201


# ============================================================================
# Purchase receipts
# ============================================================================

@purchases_bp.route('/purchase-receipts', methods=['POST'])
@require_tenant
def create_receipt():
    receipt = purchase_service.create_receipt(get_session(), g.tenant_id, json_object(request))
    return jsonify(_receipt_with_items(receipt)), 201


@purchases_bp.route('/purchase-receipts/<int:receipt_id>', methods=['GET'])
@require_tenant
def get_receipt(receipt_id: int):
    receipt = purchase_service.get_receipt(get_session(), g.tenant_id, receipt_id)
    return jsonify(receipt.to_dict())


@purchases_bp.route('/purchase-receipts/<int:receipt_id>', methods=['PUT'])
@require_tenant
def update_receipt(receipt_id: int):
    receipt = purchase_service.update_receipt(get_session(), g.tenant_id, receipt_id, json_object(request))
    return jsonify(receipt.to_dict())


@purchases_bp.route('/purchase-receipts/<int:receipt_id>/items', methods=['GET'])
@require_tenant
def list_receipt_items(receipt_id: int):
    items = purchase_service.list_items(get_session(), g.tenant_id, receipt_id)
    return jsonify([item.to_dict() for item in items])


@purchases_bp.route('/purchase-receipts/<int:receipt_id>/items', methods=['PUT'])
@require_tenant
def replace_receipt_items(receipt_id: int):
    """Replace every line of the receipt in one transaction."""
    try:
        receipt = purchase_service.replace_receipt_items(
            get_session(), g.tenant_id, receipt_id, json_object(request)
        )
    except PosError as e:
        reconcile_failures_total.labels(document='purchase_receipt', reason=type(e).__name__).inc()
        current_app.logger.warning(f"[PURCHASES] Replace of receipt {receipt_id} rejected: {e.message}")
        raise
    return jsonify(_receipt_with_items(receipt))


@purchases_bp.route('/purchase-receipts/<int:receipt_id>/recalculate', methods=['POST'])
@require_tenant
def recalculate_receipt(receipt_id: int):
    receipt = purchase_service.recalculate_receipt(get_session(), g.tenant_id, receipt_id)
    return jsonify(_receipt_with_items(receipt))


@purchases_bp.route('/purchase-order-items', methods=['POST'])
@require_tenant
def add_receipt_item():
    item = purchase_service.add_item(get_session(), g.tenant_id, json_object(request))
    return jsonify(item.to_dict()), 201


@purchases_bp.route('/purchase-order-items/<int:item_id>', methods=['DELETE'])
@require_tenant
def delete_receipt_item(item_id: int):
    purchase_service.delete_item(get_session(), g.tenant_id, item_id)
    return jsonify({'status': 'success', 'id': item_id})
