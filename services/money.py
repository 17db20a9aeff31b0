"""
Modelo de dinero: IVA chileno, redondeo, límites y parseo de montos.

Reglas:
1. IVA = 19% del neto, redondeado al peso (mitades se alejan de cero)
2. neto desde total = total / 1.19, redondeado al peso
3. Todo monto se guarda como Decimal con 2 decimales (DECIMAL(15,2))
4. En cada gasto: amount == net_amount + tax_amount, exacto
"""

import math
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, Optional, Tuple

from services.base import ValidationException


TAX_RATE = Decimal('0.19')
CENTS = Decimal('0.01')
PESO = Decimal('1')
MAX_AMOUNT = Decimal('9999999999999.99')

NOT_A_NUMBER = 'not a number'

_NUMERIC_RE = re.compile(r'^[+-]?\d+(\.\d+)?$')


def to_money(value) -> Decimal:
    """Cuantiza a centavos con ROUND_HALF_UP."""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def compute_tax(net) -> Decimal:
    """IVA de un monto neto: round(net * 0.19)."""
    return (Decimal(net) * TAX_RATE).quantize(PESO, rounding=ROUND_HALF_UP)


def compute_net(total) -> Decimal:
    """Neto de un total con IVA: round(total / 1.19)."""
    return (Decimal(total) / (1 + TAX_RATE)).quantize(PESO, rounding=ROUND_HALF_UP)


def split_total(total) -> Tuple[Decimal, Decimal]:
    """Descompone un total con IVA en (neto, iva) de modo que sumen el total."""
    total = Decimal(total)
    net = compute_net(total)
    return net, total - net


def _normalize_separators(text: str) -> str:
    text = text.replace(' ', '').replace('$', '')
    has_dot = '.' in text
    has_comma = ',' in text

    if has_dot and has_comma:
        # El separador más a la derecha es el decimal
        if text.rfind(',') > text.rfind('.'):
            return text.replace('.', '').replace(',', '.')
        return text.replace(',', '')

    if has_comma:
        if text.count(',') == 1:
            return text.replace(',', '.')
        return text.replace(',', '')

    if has_dot and text.count('.') > 1:
        return text.replace('.', '')

    return text


def parse_amount(value, field: str) -> Decimal:
    """
    Convierte un valor de entrada (número o texto) a Decimal con 2 decimales.

    Acepta "1.234,56", "1,234.56", "1234,5", "1.000.000", 1234.5, Decimal.
    Lanza ``ValidationException(field, reason='not a number')`` para
    booleanos, NaN, infinitos o texto no numérico.
    """
    if value is None or isinstance(value, bool):
        raise ValidationException(f"{field} debe ser un número válido", field=field, reason=NOT_A_NUMBER)

    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValidationException(f"{field} debe ser un número válido", field=field, reason=NOT_A_NUMBER)
        return to_money(repr(value))

    if isinstance(value, (int, Decimal)):
        if isinstance(value, Decimal) and not value.is_finite():
            raise ValidationException(f"{field} debe ser un número válido", field=field, reason=NOT_A_NUMBER)
        return to_money(value)

    if not isinstance(value, str):
        raise ValidationException(f"{field} debe ser un número válido", field=field, reason=NOT_A_NUMBER)

    normalized = _normalize_separators(value.strip())
    if not _NUMERIC_RE.match(normalized):
        raise ValidationException(f"{field} debe ser un número válido", field=field, reason=NOT_A_NUMBER)

    try:
        return to_money(normalized)
    except InvalidOperation as e:
        raise ValidationException(
            f"{field} debe ser un número válido", field=field, reason=NOT_A_NUMBER
        ) from e


def bound_error(value: Decimal, field: str, allow_zero: bool = False) -> Optional[dict]:
    """Devuelve el error de rango para ``value`` o None si es válido."""
    if allow_zero and value < 0:
        return {'field': field, 'reason': 'must be >= 0', 'message': f"{field} no puede ser negativo"}
    if not allow_zero and value <= 0:
        return {'field': field, 'reason': 'must be > 0', 'message': f"{field} debe ser mayor a cero"}
    if value > MAX_AMOUNT:
        return {
            'field': field,
            'reason': 'exceeds maximum',
            'message': f"{field} excede el límite máximo permitido",
        }
    return None


def amount_triple_errors(net: Decimal, tax: Decimal, amount: Decimal) -> List[dict]:
    """Errores de rango y de consistencia del trío neto/IVA/total."""
    errors = []
    for value, field, allow_zero in ((net, 'net_amount', False),
                                     (tax, 'tax_amount', True),
                                     (amount, 'amount', False)):
        error = bound_error(value, field, allow_zero)
        if error:
            errors.append(error)

    if not errors and amount != net + tax:
        errors.append({
            'field': 'amount',
            'reason': 'amount must equal net_amount + tax_amount',
            'message': f"El total ({amount}) no coincide con neto + IVA ({net + tax})",
        })
    return errors


def validate_amount_triple(net, tax, amount=None) -> Tuple[Decimal, Decimal, Decimal]:
    """
    Valida el trío de montos de un gasto.

    Si ``amount`` es None se deriva como neto + IVA.
    """
    net = parse_amount(net, 'net_amount')
    tax = parse_amount(tax, 'tax_amount')
    amount = net + tax if amount is None else parse_amount(amount, 'amount')

    errors = amount_triple_errors(net, tax, amount)
    if errors:
        first = errors[0]
        raise ValidationException(first['message'], field=first['field'], reason=first['reason'], errors=errors)
    return net, tax, amount
