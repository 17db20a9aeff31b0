"""Helpers comunes de los endpoints JSON."""

from flask import jsonify, request

from services.base import ValidationException


def get_json_payload() -> dict:
    """Cuerpo JSON del request; debe ser un objeto."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationException('El cuerpo debe ser un objeto JSON', field='payload', reason='not an object')
    return data


def ok(status: int = 200, **payload):
    return jsonify({'ok': True, **payload}), status
