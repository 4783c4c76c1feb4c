"""Almacenamiento de imágenes de perfil en un directorio local servido como estático.

El servicio de cuentas solo consume la URL pública resultante.
"""

import uuid
from pathlib import Path
from config import get_settings
from errors import ValidationError

settings = get_settings()


class PictureStorage:
    def __init__(self, directory: Path = None, base_url: str = None, max_bytes: int = None):
        self.directory = Path(directory or settings.upload_dir)
        self.base_url = (base_url or f"{settings.public_base_url}/uploads").rstrip('/')
        self.max_bytes = max_bytes or settings.max_picture_bytes

    # save: Escribe el archivo con prefijo uuid y retorna su URL pública.
    def save(self, filename: str, data: bytes) -> str:
        if not data:
            raise ValidationError('profilePicture', 'file is empty')
        if len(data) > self.max_bytes:
            raise ValidationError('profilePicture', f"file exceeds {self.max_bytes} bytes")
        safe_name = Path(filename or 'picture').name.replace(' ', '_')
        name = f"{uuid.uuid4()}-{safe_name}"
        self.directory.mkdir(parents=True, exist_ok=True)
        (self.directory / name).write_bytes(data)
        return f"{self.base_url}/{name}"

    # discard: Borra un archivo previamente guardado a partir de su URL pública.
    def discard(self, url: str) -> None:
        if not url or not url.startswith(f"{self.base_url}/"):
            return
        name = Path(url[len(self.base_url) + 1:]).name
        (self.directory / name).unlink(missing_ok=True)
