"""
Almacenamiento de comprobantes en disco.

Los archivos se guardan bajo ``RECEIPTS_STORAGE_DIR`` con la clave
``receipts/{project_id}/{expense_id}_{epoch_ms}.{ext}`` y se publican en
``RECEIPTS_PUBLIC_URL/receipts/{project_id}/{archivo}``.
"""

import os
import shutil
import time
from dataclasses import dataclass
from typing import Optional

from flask import current_app
from werkzeug.utils import secure_filename

from services.base import BaseService, DependencyException, ValidationException
from utils.file_validation import DEFAULT_MAX_BYTES, get_file_extension, validate_receipt


RECEIPTS_PREFIX = 'receipts'


@dataclass
class ReceiptUpload:
    """Archivo recibido desde la API, ya leído en memoria."""
    filename: str
    content: bytes
    content_type: Optional[str] = None

    @classmethod
    def from_file_storage(cls, file_storage):
        return cls(
            filename=file_storage.filename or '',
            content=file_storage.read(),
            content_type=file_storage.mimetype or None,
        )


@dataclass
class StoredReceipt:
    path: str
    url: str
    filename: str


class ReceiptStorage(BaseService):

    def __init__(self, root_dir: str, public_url: str = '', max_bytes: int = DEFAULT_MAX_BYTES):
        self.root_dir = os.path.abspath(root_dir)
        self.public_url = (public_url or '').rstrip('/')
        self.max_bytes = max_bytes

    @classmethod
    def from_app(cls, app=None):
        app = app or current_app
        return cls(
            app.config['RECEIPTS_STORAGE_DIR'],
            app.config.get('RECEIPTS_PUBLIC_URL', ''),
            app.config.get('RECEIPT_MAX_BYTES', DEFAULT_MAX_BYTES),
        )

    # ===== Paths =====

    def build_path(self, project_id: str, expense_id: str, filename: str) -> str:
        ext = get_file_extension(filename)
        epoch_ms = int(time.time() * 1000)
        return f"{RECEIPTS_PREFIX}/{project_id}/{expense_id}_{epoch_ms}.{ext}"

    def url_for_path(self, path: str) -> str:
        return f"{self.public_url}/{path}"

    def path_from_url(self, url: Optional[str]) -> Optional[str]:
        """Clave de un comprobante publicado por este almacenamiento.

        La URL debe comenzar con ``RECEIPTS_PUBLIC_URL`` y apuntar a
        ``receipts/{project_id}/{archivo}``; cualquier otra da ``None``.
        """
        if not url:
            return None
        url = url.split('?', 1)[0]
        prefix = f"{self.public_url}/"
        if not url.startswith(prefix):
            return None
        segments = url[len(prefix):].split('/')
        if len(segments) != 3 or segments[0] != RECEIPTS_PREFIX or not all(segments):
            return None
        return '/'.join(segments)

    def owned_path(self, url: Optional[str], project_id: str, expense_id: str) -> Optional[str]:
        """Clave del comprobante solo si pertenece a ese gasto y proyecto."""
        path = self.path_from_url(url)
        if path is None:
            return None
        _, folder, filename = path.split('/')
        if folder != project_id or not filename.startswith(f"{expense_id}_"):
            self._log_warning(f"Comprobante {path} no pertenece al gasto {expense_id}")
            return None
        return path

    def absolute_path(self, path: str) -> str:
        """Ruta en disco de una clave, sin permitir salir de la raíz."""
        parts = [secure_filename(part) for part in path.split('/') if part]
        if not parts or any(not part for part in parts):
            raise ValidationException('Ruta de comprobante inválida', field='receipt', reason='invalid path')
        full = os.path.abspath(os.path.join(self.root_dir, *parts))
        if os.path.commonpath([full, self.root_dir]) != self.root_dir:
            raise ValidationException('Ruta de comprobante inválida', field='receipt', reason='invalid path')
        return full

    # ===== Operations =====

    def validate(self, upload: ReceiptUpload):
        ok, error = validate_receipt(upload.filename, upload.content, upload.content_type, self.max_bytes)
        if not ok:
            raise ValidationException(error, field='receipt', reason='invalid file')

    def upload(self, project_id: str, expense_id: str, upload: ReceiptUpload) -> StoredReceipt:
        self.validate(upload)
        path = self.build_path(project_id, expense_id, upload.filename)
        full = self.absolute_path(path)
        try:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            with open(full, 'wb') as fh:
                fh.write(upload.content)
        except OSError as e:
            self._log_error(f"Error al guardar comprobante {path}: {e}")
            raise DependencyException('storage', e) from e

        self._log_info(f"Comprobante guardado: {path}")
        return StoredReceipt(path=path, url=self.url_for_path(path), filename=upload.filename)

    def delete(self, path: Optional[str]) -> bool:
        """Elimina un comprobante. Best-effort: los errores solo se registran."""
        if not path:
            return False
        try:
            full = self.absolute_path(path)
            if os.path.exists(full):
                os.remove(full)
                self._log_info(f"Comprobante eliminado: {path}")
                return True
        except (OSError, ValidationException) as e:
            self._log_warning(f"No se pudo eliminar comprobante {path}: {e}")
        return False

    def delete_receipt(self, url: Optional[str], project_id: str, expense_id: str) -> bool:
        return self.delete(self.owned_path(url, project_id, expense_id))

    def relocate(self, url: Optional[str], from_project_id: str, to_project_id: str,
                 expense_id: str, filename: Optional[str] = None) -> Optional[StoredReceipt]:
        """Copia el comprobante de un gasto a la carpeta de otro proyecto.

        El original no se toca; el llamador lo elimina después del commit.
        Devuelve ``None`` si el gasto no tiene un comprobante propio en disco.
        """
        source = self.owned_path(url, from_project_id, expense_id)
        if source is None or not self.exists(source):
            return None
        path = self.build_path(to_project_id, expense_id, source)
        full = self.absolute_path(path)
        try:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            shutil.copyfile(self.absolute_path(source), full)
        except OSError as e:
            self._log_error(f"Error al mover comprobante {source}: {e}")
            raise DependencyException('storage', e) from e

        self._log_info(f"Comprobante movido: {source} -> {path}")
        return StoredReceipt(path=path, url=self.url_for_path(path), filename=filename or os.path.basename(path))

    def remove_project_folder(self, project_id: str) -> None:
        """Elimina la carpeta del proyecto si quedó vacía (best-effort)."""
        try:
            folder = self.absolute_path(f"{RECEIPTS_PREFIX}/{project_id}")
            if os.path.isdir(folder) and not os.listdir(folder):
                os.rmdir(folder)
        except (OSError, ValidationException) as e:
            self._log_warning(f"No se pudo eliminar la carpeta del proyecto {project_id}: {e}")

    def delete_project_receipts(self, project_id: str) -> None:
        """Elimina la carpeta de comprobantes de un proyecto (best-effort)."""
        try:
            folder = self.absolute_path(f"{RECEIPTS_PREFIX}/{project_id}")
            if os.path.isdir(folder):
                shutil.rmtree(folder)
                self._log_info(f"Comprobantes del proyecto {project_id} eliminados")
        except (OSError, ValidationException) as e:
            self._log_warning(f"No se pudieron eliminar comprobantes del proyecto {project_id}: {e}")

    def exists(self, path: str) -> bool:
        return os.path.isfile(self.absolute_path(path))
