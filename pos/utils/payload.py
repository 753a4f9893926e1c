"""Field readers for JSON payloads; turn parse errors into ValidationError."""
from decimal import Decimal
from typing import Any, Dict, Optional

from pos.exceptions import ValidationError
from pos.utils.money import parse_money, parse_quantity, parse_percent


def read_money(data: Dict[str, Any], key: str, default: Optional[Decimal] = None) -> Decimal:
    try:
        return parse_money(data.get(key), default)
    except ValueError as e:
        raise ValidationError(f'{key}: {e}')


def read_quantity(data: Dict[str, Any], key: str, default: Optional[Decimal] = None) -> Decimal:
    try:
        return parse_quantity(data.get(key), default)
    except ValueError as e:
        raise ValidationError(f'{key}: {e}')


def read_percent(data: Dict[str, Any], key: str, default: Decimal = Decimal('0')) -> Decimal:
    try:
        return parse_percent(data.get(key), default)
    except ValueError as e:
        raise ValidationError(f'{key}: {e}')


def read_int(data: Dict[str, Any], key: str, default: Optional[int] = None, minimum: Optional[int] = None) -> Optional[int]:
    value = data.get(key)
    if value is None or value == '':
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{key}: debe ser un número entero')
    if minimum is not None and number < minimum:
        raise ValidationError(f'{key}: debe ser mayor o igual a {minimum}')
    return number


def json_object(req) -> Dict[str, Any]:
    """Request body as a JSON object (400 otherwise)."""
    data = req.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('El cuerpo de la solicitud debe ser un objeto JSON')
    return data
