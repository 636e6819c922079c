# uploads/batch.py
"""
Orquestador de commits en lote.

- Un PUT por archivo contra el store remoto (secuencial, o con concurrencia acotada).
- El fallo de un archivo NO corta el lote: se registra y se sigue.
- Al final, un registro en el ledger por archivo intentado (completed / failed).
"""

import asyncio
import base64
from typing import Any, Protocol, Sequence

from pydantic import BaseModel

from common.logging_config import get_logger
from uploads.errors import RemoteStoreError, ValidationError
from uploads.ledger import ActivityLedger, Operation
from uploads.models import (
    AuthContext, FilePayload, OperationRecord, OperationStatus, PendingFile, UploadTarget,
)

logger = get_logger(__name__)


class ContentStore(Protocol):
    async def put_file(
        self, owner: str, repo: str, path: str, content: str, message: str,
        branch: str = "main", sha: str | None = None,
    ) -> dict: ...


def strip_data_uri(content: str) -> str:
    """'data:image/png;base64,AAAA' -> 'AAAA'. Sin prefijo, se devuelve igual."""
    if content.startswith("data:") and "," in content:
        return content.split(",", 1)[1]
    return content


def encode_content(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def to_payloads(files: Sequence[PendingFile]) -> list[FilePayload]:
    return [FilePayload(path=f.relative_path, content=encode_content(f.source)) for f in files]


def decoded_size(content: str) -> int:
    # tamaño aproximado de los bytes originales a partir del base64
    return len(content) * 3 // 4 - content[-2:].count("=") if content else 0


class FileResult(BaseModel):
    path: str
    success: bool = True
    result: Any = None


class FileError(BaseModel):
    path: str
    error: str
    status: int | None = None


class BatchResult(BaseModel):
    success: bool
    uploaded: int
    failed: int
    results: list[FileResult]
    errors: list[FileError]


class BatchUploader:
    def __init__(self, store: ContentStore, ledger: ActivityLedger):
        self.store = store
        self.ledger = ledger

    async def _put_one(self, target: UploadTarget, payload: FilePayload) -> FileResult | FileError:
        message = target.message or f"Upload {payload.path}"
        try:
            result = await self.store.put_file(
                target.owner, target.repo, payload.path,
                strip_data_uri(payload.content), message,
                branch=target.branch, sha=payload.sha,
            )
            return FileResult(path=payload.path, result=result)
        except RemoteStoreError as e:
            logger.warning("Upload %s/%s:%s falló (%s): %s",
                           target.owner, target.repo, payload.path, e.status, e.message)
            return FileError(path=payload.path, error=e.message or "Upload failed", status=e.status)
        except Exception as e:
            # cualquier otro fallo también queda contra ese archivo; el lote sigue
            logger.exception("Upload %s/%s:%s falló", target.owner, target.repo, payload.path)
            return FileError(path=payload.path, error=str(e) or "Unknown error")

    async def _run(self, target: UploadTarget, payloads: Sequence[FilePayload],
                   concurrency: int) -> list[FileResult | FileError]:
        if concurrency <= 1:
            outcomes = []
            for p in payloads:
                outcomes.append(await self._put_one(target, p))
            return outcomes

        sem = asyncio.Semaphore(concurrency)

        async def bounded(p: FilePayload):
            async with sem:
                return await self._put_one(target, p)

        # gather conserva el orden de entrada en el resultado
        return list(await asyncio.gather(*(bounded(p) for p in payloads)))

    async def upload(
        self,
        ctx: AuthContext,
        target: UploadTarget,
        payloads: Sequence[FilePayload],
        concurrency: int = 1,
    ) -> BatchResult:
        """
        Sube todos los payloads y devuelve el agregado.
        Lista vacía -> ValidationError (antes de cualquier llamada remota).
        """
        if not payloads:
            raise ValidationError("Files array is required")

        logger.info("Batch %s/%s@%s: %d archivo(s), concurrency=%d",
                    target.owner, target.repo, target.branch, len(payloads), concurrency)
        outcomes = await self._run(target, payloads, concurrency)

        results: list[FileResult] = []
        errors: list[FileError] = []
        for payload, outcome in zip(payloads, outcomes):
            ok = isinstance(outcome, FileResult)
            metadata = {"message": target.message, "size": decoded_size(strip_data_uri(payload.content))}
            if ok:
                results.append(outcome)
            else:
                errors.append(outcome)
                metadata["error"] = outcome.error
            # el storage es sync (SQLAlchemy): fuera del event loop
            await asyncio.to_thread(self.ledger.append, OperationRecord(
                user_id=ctx.user_id,
                repository_id=target.repository_id,
                operation=Operation.UPLOAD.value,
                file_path=payload.path,
                branch=target.branch,
                status=OperationStatus.COMPLETED if ok else OperationStatus.FAILED,
                metadata=metadata,
            ))

        batch = BatchResult(
            success=not errors,
            uploaded=len(results),
            failed=len(errors),
            results=results,
            errors=errors,
        )
        logger.info("Batch %s/%s terminado: %d ok, %d fallidos",
                    target.owner, target.repo, batch.uploaded, batch.failed)
        return batch
