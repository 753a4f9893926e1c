"""Purchase receipt line arithmetic.

Purchase lines carry their own discount, either as an explicit amount or as a
percentage of the line subtotal. An explicitly typed amount always wins and is
kept to the cent; an amount derived from a percentage follows the shared
rounding policy (``round_money``).
"""
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from pos.services.pricing_service import ZERO, HUNDRED, allocate_discount, round_money
from pos.utils.money import CENTS, to_decimal


def normalize_discount_percent(value) -> Decimal:
    """Percent in 0-100. Legacy rows stored fractions (0.05 for 5%)."""
    pct = to_decimal(value, ZERO)
    if 0 < pct < 1:
        pct = pct * HUNDRED
    return min(max(ZERO, pct), HUNDRED)


def compute_purchase_line(
    quantity,
    unit_price,
    discount_percent=None,
    discount_amount=None
) -> Dict[str, Decimal]:
    """
    Compute subtotal, discount and total of one purchase line.

    Args:
        quantity: Units received
        unit_price: Cost per unit
        discount_percent: Percent discount (ignored when an amount is given)
        discount_amount: Explicit discount amount

    Returns:
        dict with subtotal, discount_percent, discount_amount, total
    """
    qty = to_decimal(quantity, ZERO)
    price = to_decimal(unit_price, ZERO)
    subtotal = qty * price
    percent = normalize_discount_percent(discount_percent)

    explicit = discount_amount is not None and discount_amount != ''
    if explicit:
        amount = to_decimal(discount_amount, ZERO).quantize(CENTS)
    elif percent > 0:
        amount = round_money(subtotal * percent / HUNDRED)
    else:
        amount = ZERO

    amount = min(max(ZERO, amount), max(ZERO, subtotal))
    if explicit:
        # Percent shown next to a typed amount is derived from it, never rescaled
        percent = (amount / subtotal * HUNDRED) if subtotal > 0 else ZERO

    return {
        'subtotal': subtotal.quantize(CENTS),
        'discount_percent': percent.quantize(CENTS),
        'discount_amount': amount,
        'total': max(ZERO, subtotal - amount).quantize(CENTS),
    }


def price_receipt_lines(
    lines: Iterable[Dict[str, Any]],
    receipt_discount: Optional[Any] = None
) -> List[Dict[str, Any]]:
    """
    Compute every line of a receipt in display order.

    When ``receipt_discount`` is given it replaces the per-line discounts: it
    is spread with the order discount allocator and each line's percent is
    derived from its share.
    """
    lines = list(lines)
    shares = None
    if receipt_discount is not None:
        shares = allocate_discount(receipt_discount, lines)

    priced = []
    for index, line in enumerate(lines):
        if shares is not None:
            result = compute_purchase_line(line.get('quantity'), line.get('unit_price'), None, shares[index])
        else:
            result = compute_purchase_line(
                line.get('quantity'),
                line.get('unit_price'),
                line.get('discount_percent'),
                line.get('discount_amount')
            )
        priced.append({**line, **result})
    return priced


def receipt_totals(priced_lines: Iterable[Dict[str, Any]]) -> Dict[str, Decimal]:
    """Receipt header totals; tax is added on top of each discounted line."""
    subtotal = ZERO
    discount = ZERO
    tax = ZERO
    for line in priced_lines:
        subtotal += line['subtotal']
        discount += line['discount_amount']
        rate = to_decimal(line.get('tax_rate'), ZERO)
        if rate > 0:
            tax += round_money(line['total'] * rate / HUNDRED)

    return {
        'subtotal': subtotal.quantize(CENTS),
        'discount': discount.quantize(CENTS),
        'tax': tax.quantize(CENTS),
        'total': max(ZERO, subtotal - discount + tax).quantize(CENTS),
    }
