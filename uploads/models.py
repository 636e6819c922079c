"""
Modelos Pydantic del core: archivos pendientes, payloads, registros del ledger,
repositorios y usuarios.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class OperationStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PendingFile(BaseModel):
    """Archivo elegido/soltado/extraído, todavía no enviado. Nunca se persiste."""
    source: bytes
    relative_path: str
    progress: int = Field(0, ge=0, le=100)


class FilePayload(BaseModel):
    """Path relativo al repo (con '/') + contenido en base64."""
    path: str
    content: str
    sha: str | None = None


class UploadTarget(BaseModel):
    owner: str
    repo: str
    branch: str = "main"
    message: str | None = None
    repository_id: int | None = None


class OperationRecord(BaseModel):
    id: int | None = None
    user_id: int
    repository_id: int | None
    operation: str
    file_path: str
    branch: str
    status: OperationStatus = OperationStatus.PENDING
    metadata: dict[str, Any] | None = None
    created_at: datetime | None = None


class RepositoryRef(BaseModel):
    id: int | None = None
    user_id: int
    github_id: str
    name: str
    full_name: str
    private: bool = False
    default_branch: str = "main"
    last_sync_at: datetime | None = None


class UserRecord(BaseModel):
    id: int | None = None
    github_id: str
    username: str
    email: str | None = None
    avatar_url: str | None = None
    access_token: str
    created_at: datetime | None = None

    def public(self) -> dict:
        """Datos del usuario sin el token."""
        return self.model_dump(exclude={"access_token"})


class AuthContext(BaseModel):
    """Contexto autenticado explícito que recibe cada operación."""
    user_id: int
    username: str
    access_token: str
