"""
Utilidades de validación para inputs de usuario
"""
import re
from typing import Optional, Tuple


EMAIL_REGEX = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
CUSTOM_ID_REGEX = re.compile(r'^[A-Za-z0-9.\-]+$')
MIN_PASSWORD_LENGTH = 6


def validate_email(email: str) -> Tuple[bool, Optional[str]]:
    """
    Valida formato de email

    Returns:
        (is_valid, error_message)
    """
    if not email or not email.strip():
        return False, "El email es requerido"

    email = email.strip()

    if len(email) > 254:
        return False, "El email es demasiado largo"

    if not EMAIL_REGEX.match(email):
        return False, "Formato de email inválido"

    return True, None


def validate_password(password: str) -> Tuple[bool, Optional[str]]:
    if not password:
        return False, "La contraseña es requerida"
    if len(password) < MIN_PASSWORD_LENGTH:
        return False, f"La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres"
    return True, None


def validate_string_length(value: str, field_name: str, min_length: int = 1, max_length: int = 255) -> Tuple[bool, Optional[str]]:
    """
    Valida longitud de string

    Args:
        value: Valor a validar
        field_name: Nombre del campo (para mensaje de error)
        min_length: Longitud mínima
        max_length: Longitud máxima

    Returns:
        (is_valid, error_message)
    """
    if value is not None and not isinstance(value, str):
        return False, f"{field_name} debe ser texto"

    if not value or not value.strip():
        if min_length > 0:
            return False, f"{field_name} es requerido"
        return True, None

    length = len(value.strip())

    if length < min_length:
        return False, f"{field_name} debe tener al menos {min_length} caracteres"

    if length > max_length:
        return False, f"{field_name} no puede exceder {max_length} caracteres"

    return True, None


def validate_custom_id(custom_id: str) -> Tuple[bool, Optional[str]]:
    """
    Valida el identificador visible de un proyecto (ej. ``P-2024-001``).

    Solo letras, números, guiones y puntos.
    """
    ok, error = validate_string_length(custom_id, "El ID del proyecto", max_length=50)
    if not ok:
        return ok, error
    if not CUSTOM_ID_REGEX.match(custom_id.strip()):
        return False, "El ID solo puede contener letras, números, guiones y puntos"
    return True, None


def sanitize_string(value: Optional[str], max_length: int = 255) -> Optional[str]:
    """
    Sanitiza un string opcional: recorta espacios y limita longitud.
    Un string vacío se convierte en ``None``.
    """
    if value is None:
        return None
    sanitized = str(value).strip()
    if not sanitized:
        return None
    return sanitized[:max_length]


def normalize_tags(tags) -> list:
    """Lista de etiquetas sin vacíos ni duplicados, en el orden recibido."""
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(',')
    seen = []
    for tag in tags:
        clean = sanitize_string(str(tag), max_length=50)
        if clean and clean not in seen:
            seen.append(clean)
    return seen


def validate_file_extension(filename: str, allowed_extensions: set) -> Tuple[bool, Optional[str]]:
    """
    Valida la extensión de un archivo

    Args:
        filename: Nombre del archivo
        allowed_extensions: Set de extensiones permitidas (sin punto)

    Returns:
        (is_valid, error_message)
    """
    if not filename or '.' not in filename:
        return False, "El archivo debe tener una extensión válida"

    extension = filename.rsplit('.', 1)[1].lower()

    if extension not in allowed_extensions:
        allowed_str = ', '.join(sorted(allowed_extensions))
        return False, f"Extensión de archivo no permitida. Extensiones válidas: {allowed_str}"

    return True, None


def validate_file_size(file_size: int, max_size_bytes: int) -> Tuple[bool, Optional[str]]:
    """
    Valida el tamaño de un archivo

    Returns:
        (is_valid, error_message)
    """
    if file_size == 0:
        return False, "El archivo está vacío"

    if file_size > max_size_bytes:
        max_size_mb = max_size_bytes / (1024 * 1024)
        return False, f"El archivo excede el tamaño máximo permitido de {max_size_mb:g}MB"

    return True, None
