"""
Validador de gastos.

Valida y normaliza el payload de un gasto antes de tocar la base de datos o
el almacenamiento. Reúne todos los errores de campo y lanza una única
``ValidationException`` cuyo ``field`` es el primero en fallar.
"""

import re
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from models.enums import DocumentType, ExpenseCategory, ExpenseStatus
from services.base import ValidationException
from services.money import amount_triple_errors, parse_amount
from utils.validators import normalize_tags, sanitize_string, validate_string_length


_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}(T.*)?$')

REQUIRED_FIELDS = (
    'project_id', 'description', 'category', 'date', 'status',
    'document_type', 'net_amount', 'tax_amount',
)

OPTIONAL_TEXT_FIELDS = {
    'document_number': 100,
    'supplier': 200,
    'notes': 5000,
}

ENUM_FIELDS = {
    'category': ExpenseCategory,
    'status': ExpenseStatus,
    'document_type': DocumentType,
}

MONEY_FIELDS = ('net_amount', 'tax_amount', 'amount')


@dataclass
class ExpenseData:
    """Gasto validado y normalizado, listo para persistir."""
    project_id: str
    description: str
    category: ExpenseCategory
    date: date
    status: ExpenseStatus
    document_type: DocumentType
    net_amount: Decimal
    tax_amount: Decimal
    amount: Decimal
    document_number: Optional[str] = None
    supplier: Optional[str] = None
    notes: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['date'] = self.date.isoformat()
        for key in ENUM_FIELDS:
            data[key] = str(data[key])
        return data


def _error(field_name: str, reason: str, message: str) -> dict:
    return {'field': field_name, 'reason': reason, 'message': message}


def parse_date(value) -> date:
    """Acepta ``date``, ``datetime`` o texto ISO ``YYYY-MM-DD``."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and _DATE_RE.match(value.strip()):
        return datetime.strptime(value.strip()[:10], '%Y-%m-%d').date()
    raise ValueError(f"{value!r} no es una fecha válida")


def _is_missing(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _current_value(current, key):
    if current is None:
        return None
    if isinstance(current, Mapping):
        return current.get(key)
    return getattr(current, key, None)


def _validate_fields(data: Mapping, keys, errors: List[dict]) -> Dict[str, Any]:
    """Valida cada clave presente en ``keys`` y devuelve los valores normalizados."""
    clean: Dict[str, Any] = {}

    for key in keys:
        value = data.get(key)

        if key in REQUIRED_FIELDS and _is_missing(value):
            errors.append(_error(key, 'required', f"{key} es requerido"))
            continue

        if key == 'project_id':
            clean[key] = str(value).strip()

        elif key == 'description':
            ok, message = validate_string_length(value, 'La descripción', max_length=500)
            if not ok:
                errors.append(_error(key, 'invalid length', message))
            else:
                clean[key] = value.strip()

        elif key in ENUM_FIELDS:
            try:
                clean[key] = ENUM_FIELDS[key].coerce(value)
            except ValueError:
                errors.append(_error(key, 'invalid value', f"{key} '{value}' no es válido"))

        elif key == 'date':
            try:
                clean[key] = parse_date(value)
            except ValueError:
                errors.append(_error(key, 'invalid date', f"La fecha '{value}' no es válida"))

        elif key in MONEY_FIELDS:
            if key == 'amount' and _is_missing(value):
                clean[key] = None
                continue
            try:
                clean[key] = parse_amount(value, key)
            except ValidationException as e:
                errors.extend(e.errors)

        elif key in OPTIONAL_TEXT_FIELDS:
            if value is not None and not isinstance(value, str):
                errors.append(_error(key, 'not a string', f"{key} debe ser texto"))
                continue
            clean[key] = sanitize_string(value, max_length=OPTIONAL_TEXT_FIELDS[key])

        elif key == 'tags':
            clean[key] = normalize_tags(value)

    return clean


def _raise_if_errors(errors: List[dict]):
    if errors:
        first = errors[0]
        raise ValidationException(first['message'], field=first['field'], reason=first['reason'], errors=errors)


def validate_expense(data: Mapping, partial: bool = False, current=None):
    """
    Valida un payload de gasto.

    Args:
        data: Campos recibidos (dict)
        partial: True para actualizaciones; solo se validan los campos presentes
        current: Gasto actual (modelo o dict) contra el cual se re-verifica el
            trío de montos en actualizaciones parciales

    Returns:
        ``ExpenseData`` en modo completo, o un dict con los campos normalizados
        que cambian en modo parcial.
    """
    if data is None or not isinstance(data, Mapping):
        raise ValidationException('Datos de gasto inválidos', field='payload', reason='not an object')

    errors: List[dict] = []
    known = REQUIRED_FIELDS + ('amount', 'tags') + tuple(OPTIONAL_TEXT_FIELDS)

    if not partial:
        clean = _validate_fields(data, known, errors)
        _raise_if_errors(errors)

        amount = clean.get('amount')
        if amount is None:
            amount = clean['net_amount'] + clean['tax_amount']
        errors.extend(amount_triple_errors(clean['net_amount'], clean['tax_amount'], amount))
        _raise_if_errors(errors)

        clean['amount'] = amount
        clean.setdefault('tags', [])
        return ExpenseData(**clean)

    present = [key for key in known if key in data]
    clean = _validate_fields(data, present, errors)
    _raise_if_errors(errors)

    if any(key in clean for key in MONEY_FIELDS):
        net = clean.get('net_amount', _current_value(current, 'net_amount'))
        tax = clean.get('tax_amount', _current_value(current, 'tax_amount'))
        if net is None or tax is None:
            raise ValidationException(
                'Se requieren neto e IVA para validar el total',
                field='net_amount' if net is None else 'tax_amount',
                reason='required',
            )
        net, tax = Decimal(net), Decimal(tax)
        amount = clean.get('amount')
        if amount is None:
            # Total omitido: se deriva del neto + IVA resultantes
            amount = net + tax
        errors.extend(amount_triple_errors(net, tax, amount))
        _raise_if_errors(errors)
        clean['net_amount'], clean['tax_amount'], clean['amount'] = net, tax, amount

    return clean
