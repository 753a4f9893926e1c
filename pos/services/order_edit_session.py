"""
Edit sessions for orders and purchase receipts (client side).

An edit session holds the persisted lines of a document plus unsaved cart
lines, prices them with the same engine the server uses, and writes the
result back through the storage API.

States: VIEW -> EDITING -> SAVING -> VIEW (success) or EDITING (failure).

``save()`` issues one request per step, strictly in sequence, and checks the
cancellation token between steps. Steps already sent are not rolled back;
they are listed in ``completed_steps`` and reported via PartialSaveError.
``save_atomic()`` sends the whole edit to the transactional endpoint instead.
"""
import enum
import itertools
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from pos.exceptions import (
    PosError, ValidationError, BusinessLogicError, NotFoundError,
    PartialSaveError, SaveCancelledError
)
from pos.services.pricing_service import ZERO
from pos.services.purchase_pricing import price_receipt_lines, receipt_totals
from pos.services.reconciliation import TEMP_ID_THRESHOLD, plan_reconciliation, is_submittable, is_temporary_id
from pos.services.storage_client import StorageClient
from pos.utils.money import to_decimal, parse_money, parse_quantity

logger = logging.getLogger(__name__)


class EditState(str, enum.Enum):
    VIEW = 'view'
    EDITING = 'editing'
    SAVING = 'saving'


class CancellationToken:
    """Cooperative cancellation checked between save steps."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, completed_steps=None):
        if self._event.is_set():
            raise SaveCancelledError(completed_steps=completed_steps)


def _decimal_fields(data: Dict[str, Any], fields) -> Dict[str, Any]:
    result = dict(data)
    for field in fields:
        if field in result and result[field] is not None:
            result[field] = to_decimal(result[field])
    return result


def _read_quantity(value):
    try:
        return parse_quantity(value)
    except ValueError as e:
        raise ValidationError(f'quantity: {e}')


def _read_money(value, field: str):
    try:
        return parse_money(value)
    except ValueError as e:
        raise ValidationError(f'{field}: {e}')


class _EditSession:
    """State machine and step runner shared by order and receipt sessions."""

    def __init__(self, client: StorageClient):
        self.client = client
        self.state = EditState.VIEW
        self.last_error: Optional[str] = None
        self.completed_steps: List[str] = []
        self._temp_ids = itertools.count(TEMP_ID_THRESHOLD)

    def _require_editing(self):
        if self.state != EditState.EDITING:
            raise BusinessLogicError(f'Operación no permitida en estado {self.state.value}')

    def _next_temp_id(self) -> int:
        return next(self._temp_ids)

    def _step(self, token: CancellationToken, label: str, call: Callable, *args):
        token.raise_if_cancelled(self.completed_steps)
        result = call(*args)
        self.completed_steps.append(label)
        return result

    def _fail(self, message: str):
        self.state = EditState.EDITING
        self.last_error = message
        logger.warning(f"[EDIT] Save failed after {len(self.completed_steps)} steps: {message}")

    def _run_save(self, steps: Callable[[CancellationToken], None], token: Optional[CancellationToken]):
        self.state = EditState.SAVING
        self.completed_steps = []
        self.last_error = None
        token = token or CancellationToken()

        try:
            steps(token)
        except SaveCancelledError as e:
            self._fail(e.message)
            raise
        except PosError as e:
            self._fail(e.message)
            if self.completed_steps:
                raise PartialSaveError(
                    f'Guardado incompleto ({len(self.completed_steps)} pasos aplicados): {e.message}',
                    self.completed_steps,
                    cause=e
                ) from e
            raise
        except Exception as e:
            self._fail(str(e))
            raise

        self.state = EditState.VIEW

    def _run_atomic(self, call: Callable[[], Any]):
        self.state = EditState.SAVING
        self.completed_steps = []
        self.last_error = None
        try:
            result = call()
        except Exception as e:
            self._fail(getattr(e, 'message', str(e)))
            raise
        self.state = EditState.VIEW
        return result


class OrderEditSession(_EditSession):
    """
    Edit an existing order: persisted lines first, cart lines after.

    Persisted lines keep their stored unit price and tax rate; only their
    quantity can change (0 removes the line on save).
    """

    ITEM_FIELDS = ('quantity', 'unit_price', 'tax_rate', 'discount', 'price_before_tax', 'tax', 'total')
    ORDER_FIELDS = ('discount', 'subtotal', 'tax', 'total')

    def __init__(self, client: StorageClient, order_id: int):
        super().__init__(client)
        self.order_id = order_id
        self.order: Optional[Dict[str, Any]] = None
        self.existing: List[Dict[str, Any]] = []
        self.cart: List[Dict[str, Any]] = []
        self.discount = ZERO
        self.customer: Dict[str, Any] = {}
        self.price_includes_tax = False

    def load(self):
        """Fetch header and items from storage (never from a cache)."""
        order = self.client.get_order(self.order_id)
        items = self.client.get_order_items(self.order_id)
        self.order = _decimal_fields(order, self.ORDER_FIELDS)
        self.existing = [_decimal_fields(item, self.ITEM_FIELDS) for item in items]
        self.existing.sort(key=lambda item: int(item['id']))
        self.discount = self.order.get('discount') or ZERO
        return self.order

    def begin_edit(self):
        if self.state == EditState.SAVING:
            raise BusinessLogicError('Hay un guardado en curso')
        config = self.client.get_store_config()
        self.price_includes_tax = bool(config.get('price_includes_tax'))
        self.load()
        self.cart = []
        self.customer = {}
        self.last_error = None
        self.completed_steps = []
        self.state = EditState.EDITING

    def lines(self) -> List[Dict[str, Any]]:
        """Canonical sequence: persisted lines, then cart lines."""
        return self.existing + self.cart

    def _find_line(self, line_id) -> Dict[str, Any]:
        for line in self.lines():
            if line['id'] == line_id:
                return line
        raise NotFoundError(f'Línea {line_id} no encontrada')

    def add_to_cart(self, product: Dict[str, Any], quantity=1) -> Dict[str, Any]:
        self._require_editing()
        line = {
            'id': self._next_temp_id(),
            'product_id': product.get('id'),
            'product_name': product.get('name'),
            'sku': product.get('sku'),
            'quantity': _read_quantity(quantity),
            'unit_price': to_decimal(product.get('price'), ZERO),
            'tax_rate': to_decimal(product.get('tax_rate'), ZERO),
        }
        self.cart.append(line)
        return line

    def set_quantity(self, line_id, quantity):
        """Change a line's quantity; 0 on a persisted line deletes it on save."""
        self._require_editing()
        self._find_line(line_id)['quantity'] = _read_quantity(quantity)

    def remove_line(self, line_id):
        self._require_editing()
        line = self._find_line(line_id)
        if is_temporary_id(line_id):
            self.cart.remove(line)
        else:
            line['quantity'] = ZERO

    def set_discount(self, amount):
        self._require_editing()
        self.discount = _read_money(amount, 'discount')

    def set_customer(self, name: Optional[str] = None, count: Optional[int] = None):
        self._require_editing()
        if name is not None:
            self.customer['customer_name'] = name
        if count is not None:
            if int(count) < 1:
                raise ValidationError('customer_count: debe ser mayor o igual a 1')
            self.customer['customer_count'] = int(count)

    def _plan(self) -> Dict[str, Any]:
        plan = plan_reconciliation(
            [line['id'] for line in self.existing],
            self.lines(),
            self.discount,
            self.price_includes_tax
        )
        if not plan['updates'] and not plan['inserts']:
            raise ValidationError('El pedido debe tener al menos un producto')
        return plan

    def preview(self) -> Dict[str, Any]:
        """Totals and per-line values exactly as ``save()`` would write them."""
        plan = self._plan()
        return {
            'lines': plan['updates'] + plan['inserts'],
            'totals': plan['totals'],
            'deletes': plan['deletes'],
        }

    def _forget_line(self, item_id):
        """A delete went through: the row is no longer persisted."""
        self.existing = [line for line in self.existing if int(line['id']) != int(item_id)]

    def _adopt_inserted(self, sent: List[Dict[str, Any]], created: List[Dict[str, Any]]):
        """
        Cart lines the server accepted become persisted lines.

        Keeps the session in step with storage after a partial failure, so a
        retry neither deletes missing rows nor inserts the same lines twice.
        """
        for line, item in zip(sent, created):
            self.cart = [c for c in self.cart if c['id'] != line['id']]
            self.existing.append(_decimal_fields(item, self.ITEM_FIELDS))

    @staticmethod
    def _insert_payload(line: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'product_id': line['product_id'],
            'quantity': line['quantity'],
            'unit_price': line['unit_price'],
            'discount': line['discount'],
            'price_before_tax': line['price_before_tax'],
            'tax': line['tax'],
            'notes': line.get('notes'),
        }

    def _header_payload(self, totals: Dict[str, Any]) -> Dict[str, Any]:
        return {**self.customer, **totals}

    def save(self, cancel_token: Optional[CancellationToken] = None) -> Dict[str, Any]:
        """
        Step-wise save: delete removed lines, insert cart lines, patch
        surviving lines, then patch the header totals.

        Raises:
            ValidationError: nothing valid to save (state stays EDITING)
            SaveCancelledError: token cancelled between two steps
            PartialSaveError: a step failed after earlier steps succeeded
            StorageAPIError: the first step failed (nothing was written)
        """
        self._require_editing()
        plan = self._plan()

        def steps(token):
            for item_id in plan['deletes']:
                self._step(token, f'delete_item:{item_id}', self.client.delete_order_item, item_id)
                self._forget_line(item_id)
            if plan['inserts']:
                created = self._step(
                    token, f'add_items:{len(plan["inserts"])}', self.client.add_order_items,
                    self.order_id, [self._insert_payload(line) for line in plan['inserts']]
                )
                self._adopt_inserted(plan['inserts'], (created or {}).get('items') or [])
            for line in plan['updates']:
                self._step(token, f'update_item:{line["id"]}', self.client.update_order_item, line['id'], {
                    'quantity': line['quantity'],
                    'discount': line['discount'],
                    'price_before_tax': line['price_before_tax'],
                    'tax': line['tax'],
                })
            self._step(token, 'update_order', self.client.update_order,
                       self.order_id, self._header_payload(plan['totals']))

        self._run_save(steps, cancel_token)
        self.cart = []
        self.load()
        logger.info(f"[EDIT] Order {self.order_id} saved in {len(self.completed_steps)} steps")
        return self.order

    def save_atomic(self) -> Dict[str, Any]:
        """Send the whole edit to the transactional reconcile endpoint."""
        self._require_editing()
        self._plan()

        payload = {
            **self.customer,
            'discount': self.discount,
            'items': [{
                'id': line['id'],
                'product_id': line['product_id'],
                'quantity': line['quantity'],
                'unit_price': line['unit_price'],
            } for line in self.lines() if not is_temporary_id(line['id']) or is_submittable(line)],
        }
        self._run_atomic(lambda: self.client.reconcile_order(self.order_id, payload))
        self.cart = []
        self.load()
        return self.order


class PurchaseReceiptEditSession(_EditSession):
    """
    Edit the lines of a purchase receipt.

    Saving replaces every stored line: all persisted items are deleted and
    each valid line is inserted again with ``row_order = index + 1``.
    """

    ITEM_FIELDS = ('quantity', 'received_quantity', 'unit_price', 'tax_rate',
                   'discount_percent', 'discount_amount', 'total')

    def __init__(self, client: StorageClient, receipt_id: int):
        super().__init__(client)
        self.receipt_id = receipt_id
        self.receipt: Optional[Dict[str, Any]] = None
        self.lines: List[Dict[str, Any]] = []
        self.receipt_discount = None
        self._persisted_ids: List[int] = []

    def load(self):
        self.receipt = self.client.get_receipt(self.receipt_id)
        items = self.client.get_receipt_items(self.receipt_id)
        self.lines = [_decimal_fields(item, self.ITEM_FIELDS) for item in items]
        self._persisted_ids = [int(item['id']) for item in items]
        return self.receipt

    def begin_edit(self):
        if self.state == EditState.SAVING:
            raise BusinessLogicError('Hay un guardado en curso')
        self.load()
        self.receipt_discount = None
        self.last_error = None
        self.completed_steps = []
        self.state = EditState.EDITING

    def _find_line(self, line_id) -> Dict[str, Any]:
        for line in self.lines:
            if line['id'] == line_id:
                return line
        raise NotFoundError(f'Línea {line_id} no encontrada')

    def add_line(self, product: Dict[str, Any], quantity=1, unit_price=None,
                 discount_percent=None, discount_amount=None) -> Dict[str, Any]:
        self._require_editing()
        line = {
            'id': self._next_temp_id(),
            'product_id': product.get('id'),
            'product_name': product.get('name'),
            'sku': product.get('sku'),
            'quantity': _read_quantity(quantity),
            'unit_price': to_decimal(unit_price if unit_price is not None else product.get('price'), ZERO),
            'tax_rate': to_decimal(product.get('tax_rate'), ZERO),
            'discount_percent': discount_percent,
            'discount_amount': discount_amount,
        }
        self.lines.append(line)
        return line

    def update_line(self, line_id, **fields):
        self._require_editing()
        line = self._find_line(line_id)
        if 'quantity' in fields:
            fields['quantity'] = _read_quantity(fields['quantity'])
        line.update(fields)

    def remove_line(self, line_id):
        self._require_editing()
        self.lines.remove(self._find_line(line_id))

    def move_line(self, line_id, new_index: int):
        """Reorder a line; the display order is what gets persisted."""
        self._require_editing()
        line = self._find_line(line_id)
        self.lines.remove(line)
        self.lines.insert(new_index, line)

    def set_discount(self, amount):
        """Receipt-level discount spread over the lines (None = per-line discounts)."""
        self._require_editing()
        self.receipt_discount = None if amount is None else _read_money(amount, 'discount')

    def _priced(self) -> List[Dict[str, Any]]:
        valid = [line for line in self.lines if is_submittable(line)]
        if not valid:
            raise ValidationError('Debe agregar al menos un ítem al comprobante')
        return price_receipt_lines(valid, self.receipt_discount)

    def preview(self) -> Dict[str, Any]:
        priced = self._priced()
        return {'lines': priced, 'totals': receipt_totals(priced)}

    def _item_payload(self, line: Dict[str, Any], row_order: int) -> Dict[str, Any]:
        return {
            'purchase_receipt_id': self.receipt_id,
            'product_id': line['product_id'],
            'quantity': line['quantity'],
            'received_quantity': line.get('received_quantity', line['quantity']),
            'unit_price': line['unit_price'],
            'tax_rate': line['tax_rate'],
            'discount_percent': line['discount_percent'],
            'discount_amount': line['discount_amount'],
            'notes': line.get('notes'),
            'row_order': row_order,
        }

    def save(self, cancel_token: Optional[CancellationToken] = None) -> Dict[str, Any]:
        """Delete every persisted line, insert lines in display order, patch totals."""
        self._require_editing()
        priced = self._priced()
        totals = receipt_totals(priced)

        def steps(token):
            # Tracked per step so a retry after a partial failure replaces what is stored now
            for item_id in list(self._persisted_ids):
                self._step(token, f'delete_item:{item_id}', self.client.delete_receipt_item, item_id)
                self._persisted_ids.remove(item_id)
            for index, line in enumerate(priced):
                created = self._step(token, f'add_item:{index + 1}', self.client.add_receipt_item,
                                     self._item_payload(line, index + 1))
                self._persisted_ids.append(int(created['id']))
            self._step(token, 'update_receipt', self.client.update_receipt, self.receipt_id, totals)

        self._run_save(steps, cancel_token)
        self.load()
        return self.receipt

    def save_atomic(self) -> Dict[str, Any]:
        """Replace all lines through the transactional endpoint."""
        self._require_editing()
        priced = self._priced()
        payload = {
            'items': [self._item_payload(line, index + 1) for index, line in enumerate(priced)],
        }
        if self.receipt_discount is not None:
            payload['discount'] = self.receipt_discount
        self._run_atomic(lambda: self.client.replace_receipt_items(self.receipt_id, payload))
        self.load()
        return self.receipt
