"""Middleware for tenant context."""
from functools import wraps
from flask import g, request, current_app
from pos.database import get_session
from pos.exceptions import UnauthorizedError
from pos.models import Tenant


def load_tenant():
    """
    Load the tenant named by the tenant header into g.

    Sets g.tenant_id (None when missing, unknown or inactive) and
    g.user_name, used for order change history.
    """
    g.tenant_id = None
    g.user_name = request.headers.get('X-User-Name') or 'system'

    raw = request.headers.get(current_app.config.get('TENANT_HEADER', 'X-Tenant-ID'))
    if not raw:
        return
    try:
        tenant_id = int(raw)
    except ValueError:
        current_app.logger.warning(f"[TENANT] Invalid tenant header: {raw!r}")
        return

    db_session = get_session()
    tenant = db_session.query(Tenant).filter_by(id=tenant_id, active=True).first()
    if tenant:
        g.tenant_id = tenant.id


def require_tenant(f):
    """Decorator: reject the request with 401 when no tenant context was loaded."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not g.get('tenant_id'):
            raise UnauthorizedError('Falta el encabezado de negocio o no es válido')
        return f(*args, **kwargs)
    return decorated_function
