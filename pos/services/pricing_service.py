"""
Order pricing engine.

Pure functions over line dicts ``{'quantity', 'unit_price', 'tax_rate', ...}``:

- compute_line: pre-tax subtotal / tax / total of one line
- allocate_discount: spread one order-level discount amount across lines
- aggregate: order footer totals (floored, as shown to the cashier)
- price_order: allocator + calculator + aggregator in one pass

Rounding policy: every per-line monetary rounding goes through
``round_money`` (ROUND_HALF_UP to the integer currency unit). ``floor_money``
is used only by ``aggregate`` for the footer. ``price_includes_tax`` is an
explicit argument everywhere; nothing here reads store configuration.
"""
from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR
from typing import Any, Dict, Iterable, List

from pos.utils.money import to_decimal, money_str

ZERO = Decimal('0')
ONE = Decimal('1')
HUNDRED = Decimal('100')
UNIT = Decimal('1')


def round_money(value) -> Decimal:
    """Round half-up to the integer currency unit (2.5 -> 3, -2.5 -> -3)."""
    return to_decimal(value, ZERO).quantize(UNIT, rounding=ROUND_HALF_UP)


def floor_money(value) -> Decimal:
    """Floor to the integer currency unit (footer display only)."""
    return to_decimal(value, ZERO).quantize(UNIT, rounding=ROUND_FLOOR)


def line_gross(line: Dict[str, Any]) -> Decimal:
    """Pre-discount value of a line: quantity * unit_price."""
    quantity = to_decimal(line.get('quantity'), ZERO)
    unit_price = to_decimal(line.get('unit_price'), ZERO)
    return quantity * unit_price


def compute_line(
    quantity,
    unit_price,
    tax_rate_percent,
    discount_for_line=ZERO,
    price_includes_tax: bool = False
) -> Dict[str, Decimal]:
    """
    Compute a line's pre-tax subtotal, tax and total after its discount share.

    Args:
        quantity: Units sold (fractional allowed)
        unit_price: Price per unit (tax included when price_includes_tax)
        tax_rate_percent: Product tax rate, 0-100
        discount_for_line: This line's share of the order discount
        price_includes_tax: Store mode; tax is extracted instead of added

    Returns:
        dict with price_before_tax, tax and total (Decimal, integer units)

    Tax-inclusive lines take tax as the remainder of the rounded gross, so
    ``price_before_tax + tax == round_money(gross_with_tax)`` exactly.
    """
    qty = to_decimal(quantity, ZERO)
    price = to_decimal(unit_price, ZERO)
    rate = to_decimal(tax_rate_percent, ZERO)
    discount = to_decimal(discount_for_line, ZERO)

    if rate == 0:
        price_before_tax = max(ZERO, round_money(qty * price - discount))
        tax = ZERO
    elif not price_includes_tax:
        price_before_tax = max(ZERO, round_money(qty * price - discount))
        tax = round_money(price_before_tax * rate / HUNDRED)
    else:
        discount_per_unit = discount / qty if qty != 0 else ZERO
        adjusted_price = max(ZERO, price - discount_per_unit)
        gross_with_tax = adjusted_price * qty
        price_before_tax = round_money(gross_with_tax / (ONE + rate / HUNDRED))
        tax = round_money(gross_with_tax) - price_before_tax

    return {
        'price_before_tax': price_before_tax,
        'tax': tax,
        'total': price_before_tax + tax,
    }


def allocate_discount(total_discount, lines: Iterable[Dict[str, Any]]) -> List[Decimal]:
    """
    Distribute an order-level discount proportionally to each line's gross.

    ``lines`` must already be in canonical order (persisted lines first, then
    cart lines). Every line but the last gets ``round_money(D * gross / T)``;
    the last line takes the remainder so the shares sum to the discount
    exactly. A discount larger than the order's gross is capped at the gross.

    No share may exceed its own line's gross: when the remainder does not fit
    on the last line, the overflow is handed back to the preceding lines,
    last first, up to their gross.

    Returns all zeros when the discount is zero or the order has no value.
    """
    lines = list(lines)
    if not lines:
        return []

    discount = to_decimal(total_discount, ZERO)
    grosses = [line_gross(line) for line in lines]
    total_before_discount = sum(grosses, ZERO)

    # Guard: nothing to spread, or nothing to spread it over
    if discount <= 0 or total_before_discount <= 0:
        return [ZERO for _ in lines]

    discount = min(discount, total_before_discount)

    shares = []
    allocated = ZERO
    last_index = len(lines) - 1
    for index, gross in enumerate(grosses):
        if index == last_index:
            share = max(ZERO, discount - allocated)
        else:
            share = round_money(discount * gross / total_before_discount)
            # Rounding up must never eat past the total or the line itself
            share = min(max(ZERO, share), discount - allocated, gross)
            allocated += share
        shares.append(share)

    overflow = shares[last_index] - grosses[last_index]
    if overflow > 0:
        shares[last_index] = grosses[last_index]
        for index in range(last_index - 1, -1, -1):
            room = grosses[index] - shares[index]
            if room <= 0:
                continue
            moved = min(room, overflow)
            shares[index] += moved
            overflow -= moved
            if overflow <= 0:
                break

    return shares


def price_lines(
    lines: Iterable[Dict[str, Any]],
    total_discount,
    price_includes_tax: bool
) -> List[Dict[str, Any]]:
    """Allocate the discount and compute every line; returns enriched copies."""
    lines = list(lines)
    shares = allocate_discount(total_discount, lines)

    priced = []
    for line, share in zip(lines, shares):
        result = compute_line(
            line.get('quantity'),
            line.get('unit_price'),
            line.get('tax_rate'),
            share,
            price_includes_tax
        )
        priced.append({**line, 'discount': share, **result})
    return priced


def aggregate(priced_lines: Iterable[Dict[str, Any]], total_discount) -> Dict[str, Decimal]:
    """
    Order footer totals.

    The discount is already inside each line's price_before_tax/tax, so it is
    reported but never subtracted again: ``total == subtotal + tax``.
    """
    priced_lines = list(priced_lines)
    subtotal = floor_money(sum((to_decimal(l['price_before_tax'], ZERO) for l in priced_lines), ZERO))
    tax = floor_money(sum((to_decimal(l['tax'], ZERO) for l in priced_lines), ZERO))
    discount = floor_money(to_decimal(total_discount, ZERO))

    return {
        'subtotal': subtotal,
        'tax': tax,
        'discount': discount,
        'total': max(ZERO, subtotal + tax),
    }


def order_gross(lines: Iterable[Dict[str, Any]]) -> Decimal:
    """Sum of quantity * unit_price over all lines."""
    return sum((line_gross(line) for line in lines), ZERO)


def effective_discount(total_discount, lines: Iterable[Dict[str, Any]]) -> Decimal:
    """Entered discount capped to the order's gross value (never negative)."""
    discount = max(ZERO, to_decimal(total_discount, ZERO))
    return min(discount, max(ZERO, order_gross(lines)))


def price_order(
    lines: Iterable[Dict[str, Any]],
    total_discount,
    price_includes_tax: bool
) -> Dict[str, Any]:
    """Run allocator, calculator and aggregator over the canonical line order."""
    lines = list(lines)
    discount = effective_discount(total_discount, lines)
    priced = price_lines(lines, discount, price_includes_tax)
    return {
        'lines': priced,
        'totals': aggregate(priced, discount),
    }


def totals_to_json(totals: Dict[str, Decimal]) -> Dict[str, str]:
    """Totals dict with money rendered as decimal strings."""
    return {key: money_str(value) for key, value in totals.items()}
