"""Catalog blueprint - products (tenant-scoped)."""
from flask import Blueprint, request, jsonify, g
from pos.database import get_session
from pos.middleware import require_tenant
from pos.services import store_config_service
from pos.utils.payload import json_object


catalog_bp = Blueprint('catalog', __name__)


@catalog_bp.route('/products', methods=['GET'])
@require_tenant
def list_products():
    include_inactive = request.args.get('include_inactive') == '1'
    products = store_config_service.list_products(get_session(), g.tenant_id, include_inactive)
    return jsonify([p.to_dict() for p in products])


@catalog_bp.route('/products', methods=['POST'])
@require_tenant
def create_product():
    product = store_config_service.create_product(get_session(), g.tenant_id, json_object(request))
    return jsonify(product.to_dict()), 201


@catalog_bp.route('/products/<int:product_id>', methods=['GET'])
@require_tenant
def get_product(product_id: int):
    product = store_config_service.get_product(get_session(), g.tenant_id, product_id)
    return jsonify(product.to_dict())
