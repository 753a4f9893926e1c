"""
Unit tests for the edit session state machine (storage API mocked).
"""

import itertools
from decimal import Decimal
from unittest.mock import Mock

import pytest
from pos.exceptions import (
    ValidationError, BusinessLogicError, StorageAPIError, PartialSaveError, SaveCancelledError
)
from pos.services.order_edit_session import (
    OrderEditSession, PurchaseReceiptEditSession, EditState, CancellationToken
)
from pos.services.reconciliation import TEMP_ID_THRESHOLD
from pos.services.storage_client import StorageClient


SIDE = {'id': 2, 'name': 'Guarnición', 'sku': 'SIDE-001', 'price': '30000.00', 'tax_rate': '0.00'}
SIDE_ITEM = {
    'id': 12, 'order_id': 1, 'product_id': 2, 'product_name': 'Guarnición',
    'quantity': '1', 'unit_price': '30000.00', 'tax_rate': '0.00', 'discount': '2308.00',
    'price_before_tax': '27692.00', 'tax': '0.00', 'total': '27692.00',
}
DRINK_ITEM = {
    'id': 13, 'order_id': 1, 'product_id': 3, 'product_name': 'Bebida',
    'quantity': '1', 'unit_price': '15000.00', 'tax_rate': '10.00', 'discount': '0.00',
    'price_before_tax': '15000.00', 'tax': '1500.00', 'total': '16500.00',
}


@pytest.fixture
def order_client():
    client = Mock(spec=StorageClient)
    client.get_store_config.return_value = {'price_includes_tax': False}
    client.get_order.return_value = {
        'id': 1, 'order_number': 'ORD-20240101-000001',
        'discount': '0.00', 'subtotal': '100000.00', 'tax': '10000.00', 'total': '110000.00',
    }
    client.get_order_items.return_value = [{
        'id': 11, 'order_id': 1, 'product_id': 1, 'product_name': 'Plato principal',
        'quantity': '2', 'unit_price': '50000.00', 'tax_rate': '10.00', 'discount': '0.00',
        'price_before_tax': '100000.00', 'tax': '10000.00', 'total': '110000.00',
    }]
    client.add_order_items.return_value = {'items': [SIDE_ITEM]}
    return client


def _write_calls(client):
    reads = {'get_store_config', 'get_order', 'get_order_items', 'get_receipt', 'get_receipt_items'}
    return [c[0] for c in client.method_calls if c[0] not in reads]


class TestOrderEditSessionState:
    """State transitions of the order edit session."""

    def test_begin_edit_fetches_fresh_items(self, order_client):
        edit = OrderEditSession(order_client, 1)
        assert edit.state == EditState.VIEW

        edit.begin_edit()

        assert edit.state == EditState.EDITING
        order_client.get_order_items.assert_called_once_with(1)
        order_client.get_store_config.assert_called_once_with()
        assert edit.existing[0]['quantity'] == Decimal('2')

    def test_cart_lines_get_temporary_ids(self, order_client):
        edit = OrderEditSession(order_client, 1)
        edit.begin_edit()
        first = edit.add_to_cart(SIDE, 1)
        second = edit.add_to_cart(SIDE, 2)
        assert first['id'] >= TEMP_ID_THRESHOLD
        assert second['id'] != first['id']

    def test_cart_is_rejected_outside_editing(self, order_client):
        edit = OrderEditSession(order_client, 1)
        with pytest.raises(BusinessLogicError):
            edit.add_to_cart(SIDE, 1)
        with pytest.raises(BusinessLogicError):
            edit.save()

    def test_preview_matches_saved_values(self, order_client):
        edit = OrderEditSession(order_client, 1)
        edit.begin_edit()
        edit.add_to_cart(SIDE, 1)
        edit.set_discount('10000')

        preview = edit.preview()

        assert [l['discount'] for l in preview['lines']] == [7692, 2308]
        assert preview['totals']['total'] == 129231


class TestOrderEditSessionSave:
    """Step-wise save of an order edit."""

    def test_save_sequence(self, order_client):
        edit = OrderEditSession(order_client, 1)
        edit.begin_edit()
        edit.add_to_cart(SIDE, 1)
        edit.set_discount(10000)
        edit.set_customer(name='Ana', count=2)

        edit.save()

        assert _write_calls(order_client) == ['add_order_items', 'update_order_item', 'update_order']
        inserted = order_client.add_order_items.call_args[0][1]
        assert inserted[0]['discount'] == 2308
        assert inserted[0]['price_before_tax'] == 27692
        order_client.update_order_item.assert_called_once_with(11, {
            'quantity': Decimal('2'),
            'discount': Decimal('7692'),
            'price_before_tax': Decimal('92308'),
            'tax': Decimal('9231'),
        })
        order_client.update_order.assert_called_once_with(1, {
            'customer_name': 'Ana',
            'customer_count': 2,
            'subtotal': Decimal('120000'),
            'tax': Decimal('9231'),
            'discount': Decimal('10000'),
            'total': Decimal('129231'),
        })
        assert edit.state == EditState.VIEW
        assert edit.completed_steps == ['add_items:1', 'update_item:11', 'update_order']

    def test_removed_line_is_deleted_first(self, order_client):
        edit = OrderEditSession(order_client, 1)
        edit.begin_edit()
        edit.set_quantity(11, 0)
        edit.add_to_cart(SIDE, 1)

        edit.save()

        assert _write_calls(order_client) == ['delete_order_item', 'add_order_items', 'update_order']
        order_client.delete_order_item.assert_called_once_with(11)

    def test_nothing_to_save_is_a_validation_error(self, order_client):
        edit = OrderEditSession(order_client, 1)
        edit.begin_edit()
        edit.set_quantity(11, 0)

        with pytest.raises(ValidationError):
            edit.save()

        assert edit.state == EditState.EDITING
        assert _write_calls(order_client) == []

    def test_failure_after_some_steps_reports_partial_save(self, order_client):
        order_client.update_order.side_effect = StorageAPIError('Servidor no disponible', status_code=503)
        edit = OrderEditSession(order_client, 1)
        edit.begin_edit()
        edit.add_to_cart(SIDE, 1)

        with pytest.raises(PartialSaveError) as exc:
            edit.save()

        assert exc.value.completed_steps == ['add_items:1', 'update_item:11']
        assert isinstance(exc.value.cause, StorageAPIError)
        assert edit.state == EditState.EDITING
        assert edit.last_error == 'Servidor no disponible'

    def test_retry_after_partial_save_resumes_from_stored_state(self, order_client):
        """Rows deleted or inserted before the failure are not deleted or inserted again."""
        order_client.get_order_items.return_value = order_client.get_order_items.return_value + [DRINK_ITEM]
        order_client.add_order_items.return_value = {'items': [{**SIDE_ITEM, 'id': 14}]}
        order_client.update_order.side_effect = [StorageAPIError('Servidor no disponible', status_code=503), {'id': 1}]
        edit = OrderEditSession(order_client, 1)
        edit.begin_edit()
        edit.remove_line(11)
        edit.add_to_cart(SIDE, 1)
        edit.set_discount(10000)

        with pytest.raises(PartialSaveError) as exc:
            edit.save()

        assert exc.value.completed_steps == ['delete_item:11', 'add_items:1', 'update_item:13']
        assert [line['id'] for line in edit.existing] == [13, 14]
        assert edit.cart == []
        first_header = order_client.update_order.call_args

        order_client.reset_mock()
        edit.save()

        assert _write_calls(order_client) == ['update_order_item', 'update_order_item', 'update_order']
        assert [c[0][0] for c in order_client.update_order_item.call_args_list] == [13, 14]
        assert order_client.update_order.call_args == first_header
        assert edit.state == EditState.VIEW

    def test_failure_on_first_step_raises_original_error(self, order_client):
        order_client.add_order_items.side_effect = StorageAPIError('Sin conexión')
        edit = OrderEditSession(order_client, 1)
        edit.begin_edit()
        edit.add_to_cart(SIDE, 1)

        with pytest.raises(StorageAPIError):
            edit.save()

        assert edit.state == EditState.EDITING
        assert edit.completed_steps == []

    def test_cancelled_before_start(self, order_client):
        token = CancellationToken()
        token.cancel()
        edit = OrderEditSession(order_client, 1)
        edit.begin_edit()
        edit.add_to_cart(SIDE, 1)

        with pytest.raises(SaveCancelledError):
            edit.save(token)

        assert _write_calls(order_client) == []
        assert edit.state == EditState.EDITING

    def test_cancelled_between_steps(self, order_client):
        token = CancellationToken()

        def add_items_then_cancel(order_id, items):
            token.cancel()
            return {'items': []}

        order_client.add_order_items.side_effect = add_items_then_cancel
        edit = OrderEditSession(order_client, 1)
        edit.begin_edit()
        edit.add_to_cart(SIDE, 1)

        with pytest.raises(SaveCancelledError) as exc:
            edit.save(token)

        assert exc.value.completed_steps == ['add_items:1']
        assert _write_calls(order_client) == ['add_order_items']

    def test_save_atomic_sends_one_request(self, order_client):
        edit = OrderEditSession(order_client, 1)
        edit.begin_edit()
        cart_line = edit.add_to_cart(SIDE, 1)
        edit.set_discount(500)

        edit.save_atomic()

        assert _write_calls(order_client) == ['reconcile_order']
        payload = order_client.reconcile_order.call_args[0][1]
        assert payload['discount'] == 500
        assert [item['id'] for item in payload['items']] == [11, cart_line['id']]
        assert edit.state == EditState.VIEW

    def test_save_atomic_failure_returns_to_editing(self, order_client):
        order_client.reconcile_order.side_effect = StorageAPIError('Conflicto', status_code=409)
        edit = OrderEditSession(order_client, 1)
        edit.begin_edit()

        with pytest.raises(StorageAPIError):
            edit.save_atomic()

        assert edit.state == EditState.EDITING
        assert edit.last_error == 'Conflicto'


@pytest.fixture
def receipt_client():
    client = Mock(spec=StorageClient)
    client.get_receipt.return_value = {'id': 7, 'receipt_number': 'FC-1', 'total': '0.00'}
    client.get_receipt_items.return_value = [
        {'id': 5, 'product_id': 1, 'quantity': '1', 'unit_price': '300.00', 'tax_rate': '0.00',
         'discount_percent': '0.00', 'discount_amount': '0.00', 'total': '300.00', 'row_order': 1},
        {'id': 6, 'product_id': 2, 'quantity': '1', 'unit_price': '100.00', 'tax_rate': '0.00',
         'discount_percent': '0.00', 'discount_amount': '0.00', 'total': '100.00', 'row_order': 2},
    ]
    new_ids = itertools.count(100)
    client.add_receipt_item.side_effect = lambda item: {**item, 'id': next(new_ids)}
    return client


class TestPurchaseReceiptEditSession:
    """Full-replace save of purchase receipt lines."""

    def test_save_deletes_all_then_inserts_in_display_order(self, receipt_client):
        edit = PurchaseReceiptEditSession(receipt_client, 7)
        edit.begin_edit()
        edit.move_line(6, 0)

        edit.save()

        assert _write_calls(receipt_client) == [
            'delete_receipt_item', 'delete_receipt_item',
            'add_receipt_item', 'add_receipt_item', 'update_receipt',
        ]
        inserted = [c[0][0] for c in receipt_client.add_receipt_item.call_args_list]
        assert [(i['product_id'], i['row_order']) for i in inserted] == [(2, 1), (1, 2)]
        assert edit.state == EditState.VIEW

    def test_retry_after_partial_save_replaces_current_rows(self, receipt_client):
        receipt_client.update_receipt.side_effect = [StorageAPIError('Servidor no disponible', status_code=503), {}]
        edit = PurchaseReceiptEditSession(receipt_client, 7)
        edit.begin_edit()

        with pytest.raises(PartialSaveError):
            edit.save()

        receipt_client.reset_mock()
        edit.save()

        deleted = [c[0][0] for c in receipt_client.delete_receipt_item.call_args_list]
        assert deleted == [100, 101]
        assert _write_calls(receipt_client) == [
            'delete_receipt_item', 'delete_receipt_item',
            'add_receipt_item', 'add_receipt_item', 'update_receipt',
        ]
        assert edit.state == EditState.VIEW

    def test_receipt_discount_is_allocated(self, receipt_client):
        edit = PurchaseReceiptEditSession(receipt_client, 7)
        edit.begin_edit()
        edit.set_discount(100)

        preview = edit.preview()

        assert [l['discount_amount'] for l in preview['lines']] == [75, 25]
        assert preview['totals']['total'] == 300

    def test_lines_without_product_are_skipped(self, receipt_client):
        edit = PurchaseReceiptEditSession(receipt_client, 7)
        edit.begin_edit()
        edit.add_line({'id': None, 'name': 'Sin producto', 'price': '10'}, 1)

        preview = edit.preview()

        assert len(preview['lines']) == 2

    def test_save_atomic_uses_replace_endpoint(self, receipt_client):
        edit = PurchaseReceiptEditSession(receipt_client, 7)
        edit.begin_edit()

        edit.save_atomic()

        assert _write_calls(receipt_client) == ['replace_receipt_items']
        payload = receipt_client.replace_receipt_items.call_args[0][1]
        assert [i['row_order'] for i in payload['items']] == [1, 2]
        assert 'discount' not in payload
