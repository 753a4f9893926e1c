"""
Tests for the Flask CLI commands.
"""

import uuid

from pos.database import get_session
from pos.models import Tenant


class TestCreateTenantCommand:
    """flask create-tenant"""

    def test_creates_tenant_with_settings(self, app):
        slug = f'cli-{str(uuid.uuid4())[:8]}'
        runner = app.test_cli_runner()

        result = runner.invoke(args=['create-tenant', '--slug', slug, '--name', 'Café Central',
                                     '--price-includes-tax'])

        assert result.exit_code == 0
        assert slug in result.output
        tenant = get_session().query(Tenant).filter_by(slug=slug).first()
        assert tenant.settings.price_includes_tax is True

    def test_duplicate_slug(self, app, tenant):
        runner = app.test_cli_runner()
        result = runner.invoke(args=['create-tenant', '--slug', tenant.slug, '--name', 'Otro'])
        assert 'Ya existe' in result.output


class TestRecalcOrderCommand:
    """flask recalc-order"""

    def test_prints_totals(self, app, client, headers, products, tenant):
        order_id = client.post('/orders', json={
            'order': {'discount': '10000'},
            'items': [
                {'product_id': products['main'].id, 'quantity': 2},
                {'product_id': products['side'].id, 'quantity': 1},
            ],
        }, headers=headers).get_json()['order']['id']

        result = app.test_cli_runner().invoke(
            args=['recalc-order', '--tenant-id', str(tenant.id), '--order-id', str(order_id)]
        )

        assert result.exit_code == 0
        assert 'total=129231' in result.output

    def test_unknown_order(self, app, tenant):
        result = app.test_cli_runner().invoke(
            args=['recalc-order', '--tenant-id', str(tenant.id), '--order-id', '999999']
        )
        assert result.exit_code == 1
