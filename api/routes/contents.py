# api/routes/contents.py
"""
Escritura de contenidos en un repo (cada operación intentada queda en el ledger).
- PUT    /api/repositories/{owner}/{repo}/contents/{path}  : crea/actualiza un archivo
- DELETE /api/repositories/{owner}/{repo}/contents/{path}  : borra un archivo (requiere sha)
- POST   /api/repositories/{owner}/{repo}/folders          : crea carpeta (<path>/.gitkeep)
- POST   /api/repositories/{owner}/{repo}/upload-batch     : lote JSON [{path, content(base64)}]
- POST   /api/repositories/{owner}/{repo}/upload           : multipart (archivos sueltos, carpeta, ZIP)
"""

from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.concurrency import run_in_threadpool

from api.auth import get_auth_context
from api.deps import get_content_store, get_ledger, get_storage
from api.domain.models import BatchUploadIn, CreateFolderIn, DeleteFileIn, PutFileIn
from api.services.github_client import GitHubContentStore
from api.services.repositories import resolve_repository
from api.services.storage import Storage
from common import config
from common.logging_config import get_logger
from uploads.archive import expand_archive_safely, is_archive
from uploads.batch import BatchUploader, decoded_size, strip_data_uri, to_payloads
from uploads.errors import RemoteStoreError, UploadTooLargeError, ValidationError
from uploads.ledger import ActivityLedger, Operation
from uploads.models import AuthContext, FilePayload, OperationRecord, OperationStatus, PendingFile, UploadTarget
from uploads.paths import from_file_list, normalize_path

logger = get_logger(__name__)

router = APIRouter(prefix="/api/repositories", tags=["contents"])

CHUNK = 1 * 1024 * 1024  # 1 MB
GITKEEP = ".gitkeep"


async def _logged(
    storage: Storage,
    ledger: ActivityLedger,
    gh: GitHubContentStore,
    ctx: AuthContext,
    owner: str,
    repo: str,
    record: OperationRecord,
    call: Callable[[], Awaitable],
):
    """
    Ejecuta una operación de un solo archivo: resolver repo -> registro pending
    -> llamada -> completed/failed. El error de GitHub se propaga al caller.
    Si el repo no se puede resolver (404, token sin permisos, timeout) igual
    queda un registro failed, sin repository_id.
    """
    try:
        ref = await resolve_repository(storage, gh, ctx, owner, repo)
    except RemoteStoreError as e:
        failed = record.model_copy(update={
            "status": OperationStatus.FAILED,
            "metadata": {**(record.metadata or {}), "error": e.message},
        })
        await run_in_threadpool(ledger.append, failed)
        logger.warning("%s %s/%s:%s sin repo (%s): %s",
                       record.operation, owner, repo, record.file_path, e.status, e.message)
        raise

    saved = await run_in_threadpool(ledger.append, record.model_copy(update={"repository_id": ref.id}))
    try:
        result = await call()
    except Exception as e:
        await run_in_threadpool(ledger.mark, saved.id, OperationStatus.FAILED)
        logger.warning("%s %s falló: %s", record.operation, record.file_path, e)
        raise
    await run_in_threadpool(ledger.mark, saved.id, OperationStatus.COMPLETED)
    return result


@router.put("/{owner}/{repo}/contents/{file_path:path}")
async def put_file(
    owner: str,
    repo: str,
    file_path: str,
    body: PutFileIn,
    ctx: AuthContext = Depends(get_auth_context),
    storage: Storage = Depends(get_storage),
    ledger: ActivityLedger = Depends(get_ledger),
    gh: GitHubContentStore = Depends(get_content_store),
):
    path = normalize_path(file_path)
    content = strip_data_uri(body.content)
    record = OperationRecord(
        user_id=ctx.user_id, repository_id=None, operation=Operation.UPLOAD.value,
        file_path=path, branch=body.branch,
        metadata={"message": body.message, "size": decoded_size(content)},
    )
    return await _logged(storage, ledger, gh, ctx, owner, repo, record, lambda: gh.put_file(
        owner, repo, path, content, body.message or f"Upload {path}", branch=body.branch, sha=body.sha,
    ))


@router.delete("/{owner}/{repo}/contents/{file_path:path}")
async def delete_file(
    owner: str,
    repo: str,
    file_path: str,
    body: DeleteFileIn | None = None,
    ctx: AuthContext = Depends(get_auth_context),
    storage: Storage = Depends(get_storage),
    ledger: ActivityLedger = Depends(get_ledger),
    gh: GitHubContentStore = Depends(get_content_store),
):
    body = body or DeleteFileIn()
    path = normalize_path(file_path)
    record = OperationRecord(
        user_id=ctx.user_id, repository_id=None, operation=Operation.DELETE.value,
        file_path=path, branch=body.branch, metadata={"message": body.message},
    )
    # sin sha GitHub lo rechaza; acá no se adivina
    return await _logged(storage, ledger, gh, ctx, owner, repo, record, lambda: gh.delete_file(
        owner, repo, path, body.message or f"Delete {path}", body.sha, branch=body.branch,
    ))


@router.post("/{owner}/{repo}/folders")
async def create_folder(
    owner: str,
    repo: str,
    body: CreateFolderIn,
    ctx: AuthContext = Depends(get_auth_context),
    storage: Storage = Depends(get_storage),
    ledger: ActivityLedger = Depends(get_ledger),
    gh: GitHubContentStore = Depends(get_content_store),
):
    """Git no versiona carpetas vacías: se crea <path>/.gitkeep."""
    folder = normalize_path(body.path)
    record = OperationRecord(
        user_id=ctx.user_id, repository_id=None, operation=Operation.CREATE_FOLDER.value,
        file_path=folder, branch=body.branch, metadata={"message": body.message},
    )
    return await _logged(storage, ledger, gh, ctx, owner, repo, record, lambda: gh.put_file(
        owner, repo, f"{folder}/{GITKEEP}", "", body.message or f"Create folder {folder}", branch=body.branch,
    ))


@router.post("/{owner}/{repo}/upload-batch")
async def upload_batch(
    owner: str,
    repo: str,
    body: BatchUploadIn,
    ctx: AuthContext = Depends(get_auth_context),
    storage: Storage = Depends(get_storage),
    ledger: ActivityLedger = Depends(get_ledger),
    gh: GitHubContentStore = Depends(get_content_store),
):
    """
    Sube un lote de archivos (uno por commit). Los fallos individuales NO cortan
    el lote: se devuelven en `errors` junto con los exitosos.
    """
    if not body.files:
        raise ValidationError("Files array is required")
    payloads = [FilePayload(path=normalize_path(f.path), content=f.content, sha=f.sha) for f in body.files]

    ref = await resolve_repository(storage, gh, ctx, owner, repo)
    target = UploadTarget(owner=owner, repo=repo, branch=body.branch, message=body.message, repository_id=ref.id)
    result = await BatchUploader(gh, ledger).upload(ctx, target, payloads, concurrency=config.BATCH_CONCURRENCY)
    return result.model_dump()


async def _read_upload(file: UploadFile) -> bytes:
    """Lee el archivo por chunks, cortando en MAX_UPLOAD_MB."""
    chunks = []
    total = 0
    while True:
        chunk = await file.read(CHUNK)
        if not chunk:
            break
        total += len(chunk)
        if total > config.MAX_UPLOAD_BYTES:
            raise UploadTooLargeError(f"{file.filename}: supera {config.MAX_UPLOAD_MB} MB.")
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/{owner}/{repo}/upload")
async def upload_files(
    owner: str,
    repo: str,
    files: list[UploadFile] = File(..., description="Uno o varios archivos (campo 'files'); ZIPs incluidos"),
    branch: str = Form(config.DEFAULT_BRANCH),
    message: str | None = Form(None),
    extract_archives: bool = Form(True, description="Expandir los .zip en vez de subirlos tal cual"),
    ctx: AuthContext = Depends(get_auth_context),
    storage: Storage = Depends(get_storage),
    ledger: ActivityLedger = Depends(get_ledger),
    gh: GitHubContentStore = Depends(get_content_store),
):
    """
    Upload multipart: normaliza paths (el nombre puede traer la ruta relativa de
    la carpeta elegida), expande ZIPs si corresponde y sube todo en un lote.
    Un ZIP corrupto sólo genera una notice; el resto se sube igual.
    """
    pending: list[PendingFile] = []
    notices: list[dict] = []
    for file in files:
        try:
            data = await _read_upload(file)
        finally:
            await file.close()
        if extract_archives and is_archive(file.filename):
            # descomprimir es CPU: fuera del event loop
            pending.extend(await run_in_threadpool(expand_archive_safely, file.filename, data, notices))
        else:
            pending.extend(from_file_list([(file.filename, data)]))

    if not pending:
        if notices:
            return {"success": False, "uploaded": 0, "failed": 0, "results": [], "errors": [], "notices": notices}
        raise ValidationError("Files array is required")

    ref = await resolve_repository(storage, gh, ctx, owner, repo)
    target = UploadTarget(owner=owner, repo=repo, branch=branch, message=message, repository_id=ref.id)
    result = await BatchUploader(gh, ledger).upload(
        ctx, target, to_payloads(pending), concurrency=config.BATCH_CONCURRENCY,
    )
    return {**result.model_dump(), "notices": notices}
