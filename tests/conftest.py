import uuid
from decimal import Decimal
from io import BytesIO

import pytest
from requests import Session
from requests.adapters import BaseAdapter
from requests.models import Response
from requests.structures import CaseInsensitiveDict
from urllib.parse import urlsplit

from pos import create_app
from pos.database import get_session
from pos.models import Tenant, StoreSettings, Product, Supplier
from pos.services.storage_client import StorageClient


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite, no Redis)."""
    app = create_app('config.TestConfig')
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()
    session.close()


def _create_tenant(session, price_includes_tax=False):
    """Persist a tenant and detach it so later commits in requests do not expire it."""
    suffix = str(uuid.uuid4())[:8]
    tenant = Tenant(
        slug=f'test-tenant-{suffix}',
        name=f'Test Tenant {suffix}',
        active=True
    )
    tenant.settings = StoreSettings(store_name=f'Store {suffix}', price_includes_tax=price_includes_tax)
    session.add(tenant)
    session.commit()
    session.refresh(tenant)
    session.expunge(tenant)
    return tenant


@pytest.fixture(scope='function')
def tenant(session):
    """Tenant whose prices exclude tax."""
    return _create_tenant(session, price_includes_tax=False)


@pytest.fixture(scope='function')
def tenant_inclusive(session):
    """Tenant whose prices already include tax."""
    return _create_tenant(session, price_includes_tax=True)


@pytest.fixture(scope='function')
def other_tenant(session):
    """Second tenant for isolation tests."""
    return _create_tenant(session)


def _create_product(session, tenant_id, name, price, tax_rate, sku=None):
    product = Product(
        tenant_id=tenant_id,
        name=name,
        sku=sku,
        price=Decimal(price),
        tax_rate=Decimal(tax_rate),
        active=True
    )
    session.add(product)
    session.commit()
    session.refresh(product)
    session.expunge(product)
    return product


@pytest.fixture(scope='function')
def products(session, tenant):
    """Catalog: a 10% taxed main course and an untaxed side."""
    return {
        'main': _create_product(session, tenant.id, 'Plato principal', '50000', '10', 'MAIN-001'),
        'side': _create_product(session, tenant.id, 'Guarnición', '30000', '0', 'SIDE-001'),
        'drink': _create_product(session, tenant.id, 'Bebida', '15000', '10', 'DRK-001'),
    }


@pytest.fixture(scope='function')
def inclusive_product(session, tenant_inclusive):
    return _create_product(session, tenant_inclusive.id, 'Café', '110', '10', 'CAF-001')


@pytest.fixture(scope='function')
def supplier(session, tenant):
    supplier = Supplier(tenant_id=tenant.id, name=f'Proveedor {str(uuid.uuid4())[:8]}')
    session.add(supplier)
    session.commit()
    session.refresh(supplier)
    session.expunge(supplier)
    return supplier


@pytest.fixture(scope='function')
def headers(tenant):
    """Request headers scoped to the default tenant."""
    return {'X-Tenant-ID': str(tenant.id), 'X-User-Name': 'cajero'}


class FlaskClientAdapter(BaseAdapter):
    """requests transport adapter that routes calls into the Flask test client."""

    def __init__(self, flask_client):
        super().__init__()
        self.flask_client = flask_client

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        parts = urlsplit(request.url)
        headers = {
            k: v for k, v in request.headers.items()
            if k.lower() not in ('content-length', 'content-type')
        }
        body = request.body
        if isinstance(body, str):
            body = body.encode('utf-8')

        flask_response = self.flask_client.open(
            parts.path,
            method=request.method,
            query_string=parts.query,
            headers=headers,
            data=body,
            content_type=request.headers.get('Content-Type')
        )

        response = Response()
        response.status_code = flask_response.status_code
        response.headers = CaseInsensitiveDict(flask_response.headers)
        response.raw = BytesIO(flask_response.get_data())
        response.url = request.url
        response.request = request
        response.reason = flask_response.status
        response.encoding = 'utf-8'
        return response

    def close(self):
        pass


@pytest.fixture(scope='function')
def http_session(client):
    """requests.Session whose requests are served by the Flask app."""
    http = Session()
    http.mount('http://pos.test', FlaskClientAdapter(client))
    return http


@pytest.fixture(scope='function')
def storage_client(app, tenant, http_session):
    """Storage API client bound to the default tenant."""
    return StorageClient.from_config(app.config, tenant.id, session=http_session)
