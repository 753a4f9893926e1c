"""
Reconciliation planning for order edits.

Given the ids persisted for an order and the lines currently on screen
(persisted lines first, then cart additions), works out which rows to delete,
which to patch and which to insert, with discount and tax already allocated
over the single canonical sequence ``existing ++ new``.

Shared by the edit session (client) and the transactional reconcile endpoint
(server) so both compute identical values.
"""
from typing import Any, Dict, Iterable, List, Tuple

from pos.exceptions import ValidationError
from pos.services.pricing_service import ZERO, price_order
from pos.utils.money import to_decimal

# Unsaved rows get a timestamp-like id; real rows are small integers
TEMP_ID_THRESHOLD = 1_000_000_000


def is_temporary_id(line_id) -> bool:
    """True for unsaved (cart) lines."""
    if line_id is None or line_id == '':
        return True
    try:
        return int(line_id) >= TEMP_ID_THRESHOLD
    except (TypeError, ValueError):
        return True


def is_submittable(line: Dict[str, Any]) -> bool:
    """Validation gate: a line needs a product and a positive quantity."""
    if not line.get('product_id'):
        return False
    try:
        return to_decimal(line.get('quantity'), ZERO) > 0
    except ValueError:
        return False


def partition_lines(lines: Iterable[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Split lines into (existing, new) preserving relative order."""
    existing = []
    new = []
    for line in lines:
        if is_temporary_id(line.get('id')):
            new.append(line)
        else:
            existing.append(line)
    return existing, new


def plan_reconciliation(
    persisted_ids: Iterable[int],
    lines: Iterable[Dict[str, Any]],
    discount,
    price_includes_tax: bool
) -> Dict[str, Any]:
    """
    Build the storage operations that bring persisted state in line with the screen.

    Args:
        persisted_ids: Ids of the rows currently stored for the order
        lines: Lines on screen (existing rows carry their persisted id)
        discount: Order-level discount amount
        price_includes_tax: Store pricing mode for this pass

    Returns:
        dict with:
        - deletes: persisted ids that are gone (removed or quantity 0)
        - updates: priced existing lines, in canonical order
        - inserts: priced new lines, in canonical order
        - dropped: lines rejected by the validation gate
        - totals: aggregator output for the whole order

    Raises:
        ValidationError: a line claims a persisted id that the order does not own
    """
    lines = list(lines)
    persisted = [int(pid) for pid in persisted_ids]

    submittable = [line for line in lines if is_submittable(line)]
    dropped = [line for line in lines if not is_submittable(line)]

    existing, new = partition_lines(submittable)
    existing_ids = [int(line['id']) for line in existing]

    unknown = [line_id for line_id in existing_ids if line_id not in persisted]
    if unknown:
        raise ValidationError(f'Las líneas {unknown} no pertenecen a este pedido')
    if len(set(existing_ids)) != len(existing_ids):
        raise ValidationError('Hay líneas duplicadas en el pedido')

    priced = price_order(existing + new, discount, price_includes_tax)
    split = len(existing)

    return {
        'deletes': [pid for pid in persisted if pid not in existing_ids],
        'updates': priced['lines'][:split],
        'inserts': priced['lines'][split:],
        'dropped': dropped,
        'totals': priced['totals'],
    }
