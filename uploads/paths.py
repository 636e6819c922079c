# uploads/paths.py
"""
Normalizador de paths: convierte las distintas fuentes de archivos en una lista
plana de PendingFile (path relativo con '/', bytes).

Fuentes soportadas:
- selección plana de archivos      -> from_file_list()
- carpeta local                    -> from_folder()
- árbol de entradas (drop / CLI)   -> collect_tree()  (async, fan-out/fan-in)
"""

import asyncio
from pathlib import Path
from typing import Iterable, Protocol

from uploads.errors import ValidationError
from uploads.models import PendingFile


def normalize_path(raw: str) -> str:
    """
    Path relativo al repo, separado por '/', sin '/' inicial ni segmentos vacíos.
    '..' no se acepta (saldría de la raíz del repo).
    """
    parts = []
    for seg in (raw or "").replace("\\", "/").split("/"):
        if seg in ("", "."):
            continue
        if seg == "..":
            raise ValidationError(f"Ruta inválida: {raw!r}")
        parts.append(seg)
    if not parts:
        raise ValidationError(f"Ruta inválida: {raw!r}")
    return "/".join(parts)


def join_path(prefix: str, name: str) -> str:
    return f"{prefix}/{name}" if prefix else name


def from_file_list(files: Iterable[tuple[str, bytes]]) -> list[PendingFile]:
    """
    Selección plana: el path es el nombre del archivo. Si el navegador manda el
    path relativo a la carpeta elegida (folder picker), se conserva normalizado.
    """
    return [
        PendingFile(source=content, relative_path=normalize_path(name))
        for name, content in files
    ]


def from_folder(root: Path) -> list[PendingFile]:
    """Todos los archivos bajo root, con path relativo a root (incluye subcarpetas)."""
    root = Path(root)
    if not root.is_dir():
        raise ValidationError(f"No es una carpeta: {root}")
    out: list[PendingFile] = []
    for p in sorted(root.rglob("*")):
        if p.is_file():
            rel = p.relative_to(root).as_posix()
            out.append(PendingFile(source=p.read_bytes(), relative_path=rel))
    return out


class Entry(Protocol):
    """Entrada de un árbol soltado: archivo o directorio."""
    name: str
    is_dir: bool

    async def children(self) -> list["Entry"]: ...

    async def read(self) -> bytes: ...


class LocalEntry:
    """Entry sobre el filesystem local; la E/S corre en un thread."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.name = self.path.name
        self.is_dir = self.path.is_dir()

    async def children(self) -> list["LocalEntry"]:
        paths = await asyncio.to_thread(lambda: sorted(self.path.iterdir()))
        return [LocalEntry(p) for p in paths]

    async def read(self) -> bytes:
        return await asyncio.to_thread(self.path.read_bytes)

    def __repr__(self) -> str:
        return f"LocalEntry({str(self.path)!r})"


async def _walk(entry: Entry, prefix: str) -> list[PendingFile]:
    path = join_path(prefix, entry.name)
    if not entry.is_dir:
        return [PendingFile(source=await entry.read(), relative_path=path)]

    children = await entry.children()
    # fan-out sobre hermanos; gather espera a que terminen todos los subárboles
    nested = await asyncio.gather(*(_walk(child, path) for child in children))
    return [pf for group in nested for pf in group]


async def collect_tree(entries: Iterable[Entry], prefix: str = "") -> list[PendingFile]:
    """
    Recorre un árbol de entradas (lo que llega en un drop) y devuelve todos los
    archivos. Cada entrada se visita una sola vez; el orden entre hermanos no
    está garantizado. Un drop vacío devuelve [].
    """
    nested = await asyncio.gather(*(_walk(e, prefix) for e in entries))
    return [pf for group in nested for pf in group]
