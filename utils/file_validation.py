"""
File Validation Utilities
=========================

Validación de comprobantes subidos (boletas y facturas escaneadas).
Incluye verificación de nombre, extensión, tipo declarado, MIME type real
del contenido (python-magic) y tamaño.

Uso:
    from utils.file_validation import validate_receipt

    ok, error = validate_receipt(filename, content, content_type, max_bytes)
"""

import re
from typing import Optional, Tuple

import magic  # python-magic para detección de MIME type real
from werkzeug.utils import secure_filename

from utils.validators import validate_file_extension, validate_file_size


# Comprobantes: JPG, PNG, PDF
RECEIPT_EXTENSIONS = {'jpg', 'jpeg', 'png', 'pdf'}

MIME_TYPE_MAP = {
    'jpg': ['image/jpeg'],
    'jpeg': ['image/jpeg'],
    'png': ['image/png'],
    'pdf': ['application/pdf'],
}

DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # 5 MB

# Patrones peligrosos en nombres de archivo
DANGEROUS_PATTERNS = [
    r'\.\./',           # Path traversal
    r'\.\.\\',          # Path traversal Windows
    r'^/',              # Absolute path Unix
    r'^[A-Za-z]:',      # Absolute path Windows
    r'\x00',            # Null byte
    r'<script',         # XSS attempt
]


def get_file_extension(filename: str) -> str:
    """Obtiene la extensión del archivo en minúsculas."""
    if not filename or '.' not in filename:
        return ''
    return filename.rsplit('.', 1)[1].lower()


def is_safe_filename(filename: str) -> Tuple[bool, str]:
    """
    Verifica si el nombre de archivo es seguro.

    Returns:
        Tuple[bool, str]: (es_seguro, mensaje_error)
    """
    if not filename:
        return False, "Nombre de archivo vacío"

    for pattern in DANGEROUS_PATTERNS:
        if re.search(pattern, filename, re.IGNORECASE):
            return False, "Nombre de archivo contiene patrón peligroso"

    if len(filename) > 255:
        return False, "Nombre de archivo demasiado largo"

    if not secure_filename(filename):
        return False, "Nombre de archivo contiene caracteres no válidos"

    return True, ""


def detect_mime_type(file_content: bytes) -> str:
    """Detecta el MIME type real del archivo a partir de su contenido."""
    return magic.Magic(mime=True).from_buffer(file_content)


def validate_mime_type(filename: str, file_content: bytes) -> Tuple[bool, str]:
    """
    Valida que el MIME type real coincida con la extensión.

    Returns:
        Tuple[bool, str]: (es_válido, mensaje_error)
    """
    ext = get_file_extension(filename)
    expected_mimes = MIME_TYPE_MAP.get(ext, [])
    if not expected_mimes:
        return False, "Archivo sin extensión válida"

    detected = detect_mime_type(file_content)
    if detected not in expected_mimes:
        return False, f"Tipo de archivo no coincide con extensión (detectado: {detected})"

    return True, ""


def validate_receipt(filename: str, content: bytes, content_type: Optional[str] = None,
                     max_bytes: int = DEFAULT_MAX_BYTES) -> Tuple[bool, str]:
    """
    Validación completa de un comprobante.

    Args:
        filename: Nombre original del archivo
        content: Contenido completo en bytes
        content_type: MIME type declarado por el cliente (opcional)
        max_bytes: Tamaño máximo permitido

    Returns:
        Tuple[bool, str]: (es_válido, mensaje_error)
    """
    is_safe, error = is_safe_filename(filename)
    if not is_safe:
        return False, error

    ok, error = validate_file_extension(filename, RECEIPT_EXTENSIONS)
    if not ok:
        return False, error

    ok, error = validate_file_size(len(content or b''), max_bytes)
    if not ok:
        return False, error

    ext = get_file_extension(filename)
    if content_type:
        declared = content_type.split(';', 1)[0].strip().lower()
        if declared not in MIME_TYPE_MAP[ext]:
            return False, f"Tipo de archivo no coincide con extensión (declarado: {declared})"

    ok, error = validate_mime_type(filename, content)
    if not ok:
        return False, error

    return True, ""
