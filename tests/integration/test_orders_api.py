"""
Integration tests for the Order Storage API.
"""

from unittest.mock import patch

import pytest
from pos.exceptions import BusinessLogicError
from pos.models import Order, OrderChangeHistory


def _create_order(client, headers, products, discount='10000', **order_fields):
    return client.post('/orders', json={
        'order': {'customer_name': 'Mesa 4', 'discount': discount, **order_fields},
        'items': [
            {'product_id': products['main'].id, 'quantity': 2},
            {'product_id': products['side'].id, 'quantity': 1},
        ],
    }, headers=headers)


class TestTenantContext:
    """Every endpoint requires a known tenant."""

    def test_missing_tenant_header(self, client):
        response = client.get('/products')
        assert response.status_code == 401
        assert response.get_json()['status'] == 'error'

    def test_unknown_tenant(self, client):
        response = client.get('/products', headers={'X-Tenant-ID': '987654321'})
        assert response.status_code == 401

    def test_other_tenant_cannot_read_order(self, client, headers, products, other_tenant):
        order_id = _create_order(client, headers, products).get_json()['order']['id']
        response = client.get(f'/orders/{order_id}', headers={'X-Tenant-ID': str(other_tenant.id)})
        assert response.status_code == 404


class TestCreateOrder:
    """Tests for POST /orders and POST /orders/preview."""

    def test_create_order_prices_lines(self, client, headers, products):
        response = _create_order(client, headers, products)
        assert response.status_code == 201

        data = response.get_json()
        order = data['order']
        assert order['subtotal'] == '120000.00'
        assert order['tax'] == '9231.00'
        assert order['discount'] == '10000.00'
        assert order['total'] == '129231.00'
        assert order['order_number'].startswith('ORD-')
        assert order['order_number'].endswith('-000001')
        assert [i['discount'] for i in data['items']] == ['7692.00', '2308.00']
        assert [i['price_before_tax'] for i in data['items']] == ['92308.00', '27692.00']

    def test_order_numbers_are_sequential_per_tenant(self, client, headers, products):
        first = _create_order(client, headers, products).get_json()['order']['order_number']
        second = _create_order(client, headers, products).get_json()['order']['order_number']
        assert first.endswith('-000001')
        assert second.endswith('-000002')

    def test_preview_does_not_persist(self, client, headers, products, session, tenant):
        response = client.post('/orders/preview', json={
            'discount': '10000',
            'items': [
                {'product_id': products['main'].id, 'quantity': 2},
                {'product_id': products['side'].id, 'quantity': 1},
            ],
        }, headers=headers)

        assert response.status_code == 200
        assert response.get_json()['totals'] == {
            'subtotal': '120000.00', 'tax': '9231.00', 'discount': '10000.00', 'total': '129231.00'
        }
        assert session.query(Order).filter(Order.tenant_id == tenant.id).count() == 0

    def test_invalid_lines_are_dropped(self, client, headers, products):
        response = client.post('/orders', json={
            'order': {},
            'items': [
                {'product_id': products['main'].id, 'quantity': 0},
                {'product_id': None, 'quantity': 3},
                {'product_id': products['drink'].id, 'quantity': 1},
            ],
        }, headers=headers)

        assert response.status_code == 201
        items = response.get_json()['items']
        assert [i['product_id'] for i in items] == [products['drink'].id]

    def test_empty_order_is_rejected(self, client, headers, products):
        response = client.post('/orders', json={
            'order': {}, 'items': [{'product_id': products['main'].id, 'quantity': 0}]
        }, headers=headers)
        assert response.status_code == 400

    def test_unknown_product(self, client, headers, products):
        response = client.post('/orders', json={
            'order': {}, 'items': [{'product_id': 999999, 'quantity': 1}]
        }, headers=headers)
        assert response.status_code == 404

    def test_invalid_discount(self, client, headers, products):
        response = _create_order(client, headers, products, discount='-5')
        assert response.status_code == 400

    def test_tax_inclusive_store(self, client, tenant_inclusive, inclusive_product):
        response = client.post('/orders', json={
            'order': {}, 'items': [{'product_id': inclusive_product.id, 'quantity': 1}]
        }, headers={'X-Tenant-ID': str(tenant_inclusive.id)})

        order = response.get_json()['order']
        assert order['subtotal'] == '100.00'
        assert order['tax'] == '10.00'
        assert order['total'] == '110.00'


class TestOrderPrimitives:
    """Tests for the granular item/header endpoints."""

    def test_list_items(self, client, headers, products):
        order_id = _create_order(client, headers, products).get_json()['order']['id']
        items = client.get(f'/orders/{order_id}/items', headers=headers).get_json()
        assert [i['product_id'] for i in items] == [products['main'].id, products['side'].id]

    def test_add_items_with_client_values(self, client, headers, products):
        order_id = _create_order(client, headers, products, discount='0').get_json()['order']['id']
        response = client.post(f'/orders/{order_id}/items', json={'items': [{
            'product_id': products['drink'].id, 'quantity': 1,
            'discount': '500', 'price_before_tax': '14500', 'tax': '1450',
        }]}, headers=headers)

        assert response.status_code == 201
        item = response.get_json()['items'][0]
        assert item['total'] == '15950.00'
        assert item['discount'] == '500.00'

    def test_add_items_priced_standalone(self, client, headers, products):
        order_id = _create_order(client, headers, products, discount='0').get_json()['order']['id']
        response = client.post(f'/orders/{order_id}/items', json={'items': [{
            'product_id': products['drink'].id, 'quantity': 2,
        }]}, headers=headers)

        item = response.get_json()['items'][0]
        assert item['price_before_tax'] == '30000.00'
        assert item['tax'] == '3000.00'

    def test_patch_item(self, client, headers, products):
        items = _create_order(client, headers, products, discount='0').get_json()['items']
        response = client.put(f'/order-items/{items[0]["id"]}', json={
            'discount': '1000', 'price_before_tax': '99000', 'tax': '9900'
        }, headers=headers)

        assert response.status_code == 200
        assert response.get_json()['total'] == '108900.00'

    def test_patch_item_rejects_zero_quantity(self, client, headers, products):
        items = _create_order(client, headers, products).get_json()['items']
        response = client.put(f'/order-items/{items[0]["id"]}', json={'quantity': 0}, headers=headers)
        assert response.status_code == 400

    def test_patch_header_requires_consistent_totals(self, client, headers, products):
        order_id = _create_order(client, headers, products).get_json()['order']['id']
        response = client.put(f'/orders/{order_id}', json={
            'subtotal': '100', 'tax': '10', 'total': '100'
        }, headers=headers)
        assert response.status_code == 400

    def test_patch_header_marks_paid(self, client, headers, products):
        order_id = _create_order(client, headers, products).get_json()['order']['id']
        response = client.put(f'/orders/{order_id}', json={
            'status': 'paid', 'payment_method': 'cash'
        }, headers=headers)

        order = response.get_json()
        assert order['status'] == 'paid'
        assert order['paid_at'] is not None

    def test_patch_header_rejects_unknown_status(self, client, headers, products):
        order_id = _create_order(client, headers, products).get_json()['order']['id']
        response = client.put(f'/orders/{order_id}', json={'status': 'lost'}, headers=headers)
        assert response.status_code == 400

    def test_delete_item_reprices_remaining_lines(self, client, headers, products, session):
        data = _create_order(client, headers, products).get_json()
        side_item = data['items'][1]

        response = client.delete(f'/order-items/{side_item["id"]}', headers=headers)

        assert response.status_code == 200
        body = response.get_json()
        assert len(body['items']) == 1
        assert body['items'][0]['discount'] == '10000.00'
        assert body['order']['subtotal'] == '90000.00'
        assert body['order']['tax'] == '9000.00'
        assert body['order']['total'] == '99000.00'

        history = session.query(OrderChangeHistory).filter_by(order_id=data['order']['id']).all()
        assert [h.action for h in history] == ['delete_item']
        assert history[0].user_name == 'cajero'

    def test_recalculate_restores_allocation(self, client, headers, products):
        data = _create_order(client, headers, products)
        data = data.get_json()
        client.put(f'/order-items/{data["items"][0]["id"]}', json={
            'discount': '0', 'price_before_tax': '1', 'tax': '1'
        }, headers=headers)

        response = client.post(f'/orders/{data["order"]["id"]}/recalculate', headers=headers)

        body = response.get_json()
        assert [i['discount'] for i in body['items']] == ['7692.00', '2308.00']
        assert body['order']['total'] == '129231.00'


class TestReconcileOrder:
    """Tests for the transactional PUT /orders/{id}/reconcile."""

    def test_reconcile_applies_whole_edit(self, client, headers, products, session):
        data = _create_order(client, headers, products, discount='0').get_json()
        order_id = data['order']['id']
        main_item = data['items'][0]

        response = client.put(f'/orders/{order_id}/reconcile', json={
            'discount': '1000',
            'customer_count': 3,
            'items': [
                {'id': main_item['id'], 'quantity': 1},
                {'product_id': products['drink'].id, 'quantity': 2},
            ],
        }, headers=headers)

        assert response.status_code == 200
        body = response.get_json()
        assert [i['discount'] for i in body['items']] == ['625.00', '375.00']
        assert body['items'][0]['id'] == main_item['id']
        assert body['order']['subtotal'] == '79000.00'
        assert body['order']['tax'] == '7901.00'
        assert body['order']['total'] == '86901.00'
        assert body['order']['customer_count'] == 3

        history = session.query(OrderChangeHistory).filter_by(order_id=order_id, action='edit').count()
        assert history == 1

    def test_reconcile_is_idempotent(self, client, headers, products):
        data = _create_order(client, headers, products).get_json()
        order_id = data['order']['id']
        payload = {
            'discount': '10000',
            'items': [{'id': i['id'], 'quantity': i['quantity']} for i in data['items']],
        }

        first = client.put(f'/orders/{order_id}/reconcile', json=payload, headers=headers).get_json()
        second = client.put(f'/orders/{order_id}/reconcile', json=payload, headers=headers).get_json()

        assert first['order'] == second['order']
        assert first['items'] == second['items']
        assert second['order']['total'] == '129231.00'

    def test_reconcile_rejects_foreign_line(self, client, headers, products):
        first = _create_order(client, headers, products).get_json()
        second = _create_order(client, headers, products).get_json()

        response = client.put(f'/orders/{first["order"]["id"]}/reconcile', json={
            'items': [{'id': second['items'][0]['id'], 'quantity': 1}],
        }, headers=headers)

        assert response.status_code == 400

    def test_reconcile_failure_leaves_no_partial_state(self, client, headers, products):
        data = _create_order(client, headers, products).get_json()
        order_id = data['order']['id']

        with patch('pos.services.order_service._record_history',
                   side_effect=BusinessLogicError('fallo simulado')):
            response = client.put(f'/orders/{order_id}/reconcile', json={
                'discount': '0',
                'items': [{'product_id': products['drink'].id, 'quantity': 5}],
            }, headers=headers)

        assert response.status_code == 400

        order = client.get(f'/orders/{order_id}', headers=headers).get_json()
        items = client.get(f'/orders/{order_id}/items', headers=headers).get_json()
        assert order['total'] == '129231.00'
        assert [i['id'] for i in items] == [i['id'] for i in data['items']]
