"""Store configuration and product catalog lookups (read-only for pricing)."""
import logging
from typing import Dict, Iterable, Any

from flask import current_app, has_app_context

from pos.models import StoreSettings, Product
from pos.exceptions import NotFoundError, ValidationError
from pos.utils.payload import read_money, read_percent

logger = logging.getLogger(__name__)


def _cache_ttl(name: str, default: int) -> int:
    if has_app_context():
        return current_app.config.get(name, default)
    return default


def _get_cache():
    try:
        from pos.services.cache_service import get_cache
        return get_cache()
    except RuntimeError:
        return None


def _load_store_config(session, tenant_id: int) -> Dict[str, Any]:
    settings = session.query(StoreSettings).filter(StoreSettings.tenant_id == tenant_id).first()
    if not settings:
        return {'store_name': None, 'price_includes_tax': False}
    return settings.to_dict()


def get_store_config(session, tenant_id: int) -> Dict[str, Any]:
    """
    Store configuration for one pricing pass: ``{'price_includes_tax': bool, ...}``.

    Callers read it once and pass ``price_includes_tax`` explicitly down to
    the pricing engine.
    """
    cache = _get_cache()
    if cache is None:
        return _load_store_config(session, tenant_id)
    return cache.memoize(
        tenant_id, 'settings', 'store',
        lambda: _load_store_config(session, tenant_id),
        ttl=_cache_ttl('CACHE_SETTINGS_TTL', 300)
    )


def update_store_config(session, tenant_id: int, data: Dict[str, Any]) -> StoreSettings:
    """Create or update the tenant's settings row and drop the cached copy."""
    settings = session.query(StoreSettings).filter(StoreSettings.tenant_id == tenant_id).first()
    if not settings:
        settings = StoreSettings(tenant_id=tenant_id, price_includes_tax=False)
        session.add(settings)

    if 'price_includes_tax' in data:
        value = data['price_includes_tax']
        if not isinstance(value, bool):
            raise ValidationError('price_includes_tax debe ser true o false')
        settings.price_includes_tax = value
    if 'store_name' in data:
        settings.store_name = data['store_name']

    try:
        session.commit()
    except Exception:
        session.rollback()
        raise

    cache = _get_cache()
    if cache is not None:
        cache.invalidate_module(tenant_id, 'settings')
    logger.info(f"[SETTINGS] tenant={tenant_id} price_includes_tax={settings.price_includes_tax}")
    return settings


def get_product(session, tenant_id: int, product_id: int) -> Product:
    """Catalog lookup by id (tenant-scoped)."""
    product = session.query(Product).filter(
        Product.id == product_id,
        Product.tenant_id == tenant_id
    ).first()
    if not product:
        raise NotFoundError(f'Producto {product_id} no encontrado')
    return product


def get_products(session, tenant_id: int, product_ids: Iterable[int]) -> Dict[int, Product]:
    """Batch catalog lookup; raises if any id is unknown for the tenant."""
    ids = {int(pid) for pid in product_ids}
    if not ids:
        return {}
    products = session.query(Product).filter(
        Product.id.in_(ids),
        Product.tenant_id == tenant_id
    ).all()
    found = {p.id: p for p in products}
    missing = sorted(ids - set(found))
    if missing:
        raise NotFoundError(f'Productos no encontrados: {missing}')
    return found


def list_products(session, tenant_id: int, include_inactive: bool = False):
    query = session.query(Product).filter(Product.tenant_id == tenant_id)
    if not include_inactive:
        query = query.filter(Product.active == True)  # noqa: E712
    return query.order_by(Product.name).all()


def create_product(session, tenant_id: int, data: Dict[str, Any]) -> Product:
    """Add a catalog product (price and tax rate are read by the pricing engine)."""
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError('El nombre es obligatorio.')

    product = Product(
        tenant_id=tenant_id,
        name=name,
        sku=(data.get('sku') or '').strip() or None,
        price=read_money(data, 'price'),
        tax_rate=read_percent(data, 'tax_rate'),
        active=bool(data.get('active', True)),
    )
    try:
        session.add(product)
        session.commit()
    except Exception:
        session.rollback()
        raise
    return product
