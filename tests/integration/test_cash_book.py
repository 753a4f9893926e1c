"""
Integration tests for the cash book report and manual vouchers.
"""

from datetime import datetime

import pytest
from pos.models import Order


@pytest.fixture
def ledger(client, headers, products, supplier, session):
    """
    One paid order (split cash/card) on 2024-05-10, an income voucher before
    the period, a paid purchase on 2024-05-11 and an expense voucher on
    2024-05-12 paid by transfer.
    """
    order = client.post('/orders', json={
        'order': {'discount': '10000'},
        'items': [
            {'product_id': products['main'].id, 'quantity': 2},
            {'product_id': products['side'].id, 'quantity': 1},
        ],
    }, headers=headers).get_json()['order']
    client.put(f'/orders/{order["id"]}', json={
        'status': 'paid',
        'payment_method': 'split',
        'payment_details': [
            {'method': 'cash', 'amount': '100000'},
            {'method': 'card', 'amount': '29231'},
        ],
    }, headers=headers)

    stored = session.get(Order, order['id'])
    stored.ordered_at = datetime(2024, 5, 10, 12, 0)
    session.commit()

    client.post('/income-vouchers', json={
        'date': '2024-05-01', 'amount': '5000', 'account': 'cash', 'counterparty': 'Socio'
    }, headers=headers)
    client.post('/expense-vouchers', json={
        'date': '2024-05-12', 'amount': '2000', 'account': 'transfer', 'counterparty': 'Compañía eléctrica'
    }, headers=headers)
    client.post('/purchase-receipts', json={
        'receipt_number': 'FC-0100',
        'supplier_id': supplier.id,
        'purchase_date': '2024-05-11',
        'is_paid': True,
        'payment_method': 'cash',
        'items': [{'product_id': products['main'].id, 'quantity': 1, 'unit_price': '3000', 'tax_rate': '0'}],
    }, headers=headers)
    return order


def _book(client, headers, **params):
    query = {'start': '2024-05-05', 'end': '2024-05-31', **params}
    return client.get('/cash-book', query_string=query, headers=headers)


class TestCashBook:
    """Tests for GET /cash-book."""

    def test_balances_all_methods(self, client, headers, ledger):
        book = _book(client, headers).get_json()

        assert book['opening_balance'] == '5000.00'
        assert [t['voucher_type'] for t in book['transactions']] == [
            'sales_order', 'purchase_receipt', 'expense_voucher'
        ]
        assert [t['balance'] for t in book['transactions']] == ['134231.00', '131231.00', '129231.00']
        assert book['total_income'] == '129231.00'
        assert book['total_expense'] == '5000.00'
        assert book['ending_balance'] == '129231.00'

    def test_cash_uses_split_breakdown(self, client, headers, ledger):
        book = _book(client, headers, method='cash').get_json()

        assert book['opening_balance'] == '5000.00'
        assert [t['amount'] for t in book['transactions']] == ['100000.00', '3000.00']
        assert book['ending_balance'] == '102000.00'

    def test_card_only(self, client, headers, ledger):
        book = _book(client, headers, method='card').get_json()

        assert book['opening_balance'] == '0.00'
        assert [t['amount'] for t in book['transactions']] == ['29231.00']
        assert book['ending_balance'] == '29231.00'

    def test_expense_only(self, client, headers, ledger):
        book = _book(client, headers, type='expense').get_json()

        assert [t['type'] for t in book['transactions']] == ['expense', 'expense']
        assert book['total_income'] == '0.00'
        assert book['ending_balance'] == '0.00'

    def test_inverted_range(self, client, headers):
        response = client.get('/cash-book', query_string={'start': '2024-06-01', 'end': '2024-05-01'},
                              headers=headers)
        assert response.status_code == 400

    def test_invalid_date(self, client, headers):
        response = client.get('/cash-book', query_string={'start': '01/05/2024'}, headers=headers)
        assert response.status_code == 400


class TestVouchers:
    """Tests for the manual voucher endpoints."""

    def test_number_assigned(self, client, headers):
        response = client.post('/income-vouchers', json={
            'date': '2024-05-01', 'amount': '1500', 'counterparty': 'Socio'
        }, headers=headers)

        assert response.status_code == 201
        voucher = response.get_json()
        assert voucher['voucher_number'] == 'IN-20240501-001'
        assert voucher['account'] == 'cash'

    def test_amount_must_be_positive(self, client, headers):
        response = client.post('/expense-vouchers', json={
            'amount': '0', 'counterparty': 'Proveedor'
        }, headers=headers)
        assert response.status_code == 400

    def test_counterparty_required(self, client, headers):
        response = client.post('/expense-vouchers', json={'amount': '10'}, headers=headers)
        assert response.status_code == 400
