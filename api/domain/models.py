"""
Modelos Pydantic de request/response de la API.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from common import config
from uploads.models import OperationRecord


class TokenLoginIn(BaseModel):
    token: str = Field(..., description="Personal Access Token de GitHub")


class PutFileIn(BaseModel):
    content: str = Field(..., description="Contenido en base64 (se acepta prefijo data:...;base64,)")
    message: str | None = None
    branch: str = config.DEFAULT_BRANCH
    sha: str | None = Field(None, description="sha actual del archivo; obligatorio para sobrescribir")


class DeleteFileIn(BaseModel):
    message: str | None = None
    sha: str | None = Field(None, description="sha actual del archivo (lo exige GitHub)")
    branch: str = config.DEFAULT_BRANCH


class CreateFolderIn(BaseModel):
    path: str
    branch: str = config.DEFAULT_BRANCH
    message: str | None = None


class BatchFileIn(BaseModel):
    path: str = Field(..., min_length=1)
    content: str
    sha: str | None = None


class BatchUploadIn(BaseModel):
    files: list[BatchFileIn] = Field(default_factory=list)
    branch: str = config.DEFAULT_BRANCH
    message: str | None = None


class PullRequestIn(BaseModel):
    title: str
    head: str
    base: str
    body: str | None = None


class ActivityOut(BaseModel):
    id: int
    repository_id: int | None
    operation: str
    file_path: str
    branch: str
    status: str
    metadata: dict[str, Any] | None
    created_at: datetime
    message: str

    @classmethod
    def from_record(cls, record: OperationRecord, message: str) -> "ActivityOut":
        return cls(
            id=record.id,
            repository_id=record.repository_id,
            operation=record.operation,
            file_path=record.file_path,
            branch=record.branch,
            status=record.status.value,
            metadata=record.metadata,
            created_at=record.created_at,
            message=message,
        )
