"""Settings blueprint - store configuration (tenant-scoped)."""
from flask import Blueprint, request, jsonify, g
from pos.database import get_session
from pos.middleware import require_tenant
from pos.services import store_config_service
from pos.utils.payload import json_object


settings_bp = Blueprint('settings', __name__)


@settings_bp.route('/store-settings', methods=['GET'])
@require_tenant
def get_store_settings():
    return jsonify(store_config_service.get_store_config(get_session(), g.tenant_id))


@settings_bp.route('/store-settings', methods=['PUT'])
@require_tenant
def update_store_settings():
    settings = store_config_service.update_store_config(get_session(), g.tenant_id, json_object(request))
    return jsonify(settings.to_dict())
