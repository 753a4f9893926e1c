"""
Flask CLI commands.

Commands:
- flask init-db: Create missing tables
- flask create-tenant: Create a tenant with its store settings
- flask recalc-order: Re-run the pricing engine over a stored order
"""

import click
from pos import database
from pos.models import Tenant, StoreSettings
from pos.services import order_service


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create missing tables (idempotent)."""
        database.create_schema()
        click.echo(click.style('✅ Esquema creado/actualizado', fg='green'))

    @app.cli.command('create-tenant')
    @click.option('--slug', required=True, help='Unique tenant slug')
    @click.option('--name', required=True, help='Store name')
    @click.option('--price-includes-tax/--price-excludes-tax', default=False,
                  help='Whether catalog prices already include tax')
    def create_tenant(slug, name, price_includes_tax):
        """Create a tenant and its store settings."""
        session = database.db_session
        if session.query(Tenant).filter_by(slug=slug).first():
            click.echo(click.style(f'❌ Ya existe un negocio con slug: {slug}', fg='red'))
            return

        try:
            tenant = Tenant(slug=slug, name=name)
            tenant.settings = StoreSettings(store_name=name, price_includes_tax=price_includes_tax)
            session.add(tenant)
            session.commit()
        except Exception as e:
            session.rollback()
            click.echo(click.style(f'❌ Error al crear el negocio: {str(e)}', fg='red'))
            return

        click.echo(click.style(f'✅ Negocio creado: {slug} (ID {tenant.id})', fg='green'))

    @app.cli.command('recalc-order')
    @click.option('--tenant-id', type=int, required=True)
    @click.option('--order-id', type=int, required=True)
    def recalc_order(tenant_id, order_id):
        """Re-run allocator, calculator and aggregator over a stored order."""
        session = database.db_session
        try:
            order = order_service.recalculate_order(session, tenant_id, order_id)
        except Exception as e:
            click.echo(click.style(f'❌ {str(e)}', fg='red'))
            raise SystemExit(1)

        click.echo(f'{order.order_number}: subtotal={order.subtotal} tax={order.tax} '
                   f'discount={order.discount} total={order.total}')
