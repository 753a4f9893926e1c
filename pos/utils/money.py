"""Money and quantity helpers.

Money crosses the wire as decimal strings ("92308.00") and lives in memory as
``Decimal``. Binary floats are accepted on input only through ``str()`` so
that ``0.1`` arrives as ``Decimal('0.1')``.
"""
from decimal import Decimal, InvalidOperation

CENTS = Decimal('0.01')
MILLI = Decimal('0.001')


def to_decimal(value, default=None) -> Decimal:
    """
    Coerce a JSON/DB value into Decimal.

    Raises:
        ValueError: if the value cannot be read as a number.
    """
    if value is None or value == '':
        if default is not None:
            return default
        raise ValueError('Valor numérico requerido')

    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f'Valor numérico inválido: {value}')
    if isinstance(value, (int, float)):
        value = str(value)

    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f'Valor numérico inválido: {value}')

    if not result.is_finite():
        raise ValueError(f'Valor numérico inválido: {value}')
    return result


def parse_money(value, default=None) -> Decimal:
    """Parse a non-negative money amount quantized to cents."""
    amount = to_decimal(value, default)
    if amount < 0:
        raise ValueError('El monto no puede ser negativo')
    return amount.quantize(CENTS)


def parse_quantity(value, default=None) -> Decimal:
    """Parse a non-negative quantity (fractional quantities allowed)."""
    qty = to_decimal(value, default)
    if qty < 0:
        raise ValueError('La cantidad no puede ser negativa')
    return qty


def parse_percent(value, default=Decimal('0')) -> Decimal:
    """Parse a percentage in the 0-100 range."""
    pct = to_decimal(value, default)
    if pct < 0 or pct > 100:
        raise ValueError('El porcentaje debe estar entre 0 y 100')
    return pct


def money_str(value) -> str:
    """Serialize money as a decimal string with two places."""
    if value is None:
        value = Decimal('0')
    return str(to_decimal(value).quantize(CENTS))


def quantity_str(value) -> str:
    """Serialize a quantity without trailing zeros ("2", "1.5", "0.125")."""
    if value is None:
        value = Decimal('0')
    normalized = to_decimal(value).quantize(MILLI).normalize()
    return format(normalized, 'f')
