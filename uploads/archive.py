# uploads/archive.py
"""
Expansión de archivos ZIP a pares (path, bytes).
"""

import io
import zipfile
from typing import Iterator

from common import config
from common.logging_config import get_logger
from uploads.errors import ExtractionError, ValidationError
from uploads.models import PendingFile
from uploads.paths import normalize_path

logger = get_logger(__name__)

ARCHIVE_EXTENSIONS = (".zip",)


def is_archive(name: str) -> bool:
    return (name or "").lower().endswith(ARCHIVE_EXTENSIONS)


def expand_archive(blob: bytes, max_entry_bytes: int | None = None) -> Iterator[tuple[str, bytes]]:
    """
    Generador lazy: una entrada por archivo del ZIP (los directorios se saltean),
    con el path tal cual está guardado y el contenido en bytes crudos.
    Input inválido -> ExtractionError en la primera iteración.
    Una entrada que descomprimida supera `max_entry_bytes` (default
    MAX_UPLOAD_BYTES) también es ExtractionError, antes de leerla.
    """
    limit = config.MAX_UPLOAD_BYTES if max_entry_bytes is None else max_entry_bytes
    try:
        zf = zipfile.ZipFile(io.BytesIO(blob))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as e:
        raise ExtractionError() from e

    with zf:
        for info in zf.infolist():
            if info.is_dir():
                continue
            if info.file_size > limit:
                raise ExtractionError() from ValueError(
                    f"{info.filename}: {info.file_size} bytes descomprimidos (límite {limit})"
                )
            try:
                # ZipExtFile no lee más de file_size; un header mentiroso falla por CRC
                data = zf.read(info)
            except (zipfile.BadZipFile, RuntimeError, NotImplementedError, OSError) as e:
                # CRC corrupto, encriptado o compresión no soportada
                raise ExtractionError() from e
            yield info.filename, data


def expand_archive_safely(
    name: str, blob: bytes, notices: list[dict], max_entry_bytes: int | None = None,
) -> list[PendingFile]:
    """
    Expande el ZIP a PendingFile con paths normalizados. Si falla (ZIP roto,
    entrada enorme o un nombre con '..'), agrega UNA notice y devuelve []:
    el resto del upload sigue.
    """
    try:
        files = []
        for path, data in expand_archive(blob, max_entry_bytes):
            try:
                files.append(PendingFile(source=data, relative_path=normalize_path(path)))
            except ValidationError as e:
                raise ExtractionError() from e
        return files
    except ExtractionError as e:
        logger.warning("No se pudo extraer %s: %s", name, e.__cause__ or e)
        notices.append({"file": name, "error": e.message})
        return []
