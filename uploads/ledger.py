# uploads/ledger.py
"""
Ledger de actividad: registro append-only de cada operación intentada
(upload / delete / create_folder) con su resultado.

El ledger no sabe dónde persiste: recibe cualquier backend que cumpla
OperationStore (memoria para tests, SQL en prod).
"""

from enum import Enum
from typing import Callable, Protocol

from common.logging_config import get_logger
from uploads.models import OperationRecord, OperationStatus

logger = get_logger(__name__)

DEFAULT_ACTIVITY_LIMIT = 10


def _describe_upload(r: OperationRecord) -> str:
    return f"uploaded {r.file_path} to {r.branch}"


def _describe_delete(r: OperationRecord) -> str:
    return f"deleted {r.file_path} from {r.branch}"


def _describe_create_folder(r: OperationRecord) -> str:
    return f"created folder {r.file_path}"


class Operation(str, Enum):
    """Tipo de operación; cada uno sabe cómo describirse en el feed de actividad."""

    UPLOAD = "upload"
    DELETE = "delete"
    CREATE_FOLDER = "create_folder"

    @property
    def describe(self) -> Callable[[OperationRecord], str]:
        return _DESCRIBERS[self]


_DESCRIBERS: dict[Operation, Callable[[OperationRecord], str]] = {
    Operation.UPLOAD: _describe_upload,
    Operation.DELETE: _describe_delete,
    Operation.CREATE_FOLDER: _describe_create_folder,
}


def activity_message(record: OperationRecord) -> str:
    try:
        return Operation(record.operation).describe(record)
    except ValueError:
        return f"performed {record.operation} on {record.file_path}"


class InvalidTransition(Exception):
    """Sólo se permite pending -> completed | failed."""


class OperationStore(Protocol):
    def create_operation(self, record: OperationRecord) -> OperationRecord: ...

    def list_operations(self, user_id: int, limit: int) -> list[OperationRecord]: ...

    def get_operation(self, record_id: int) -> OperationRecord | None: ...

    def update_operation_status(self, record_id: int, status: OperationStatus) -> OperationRecord | None: ...


class ActivityLedger:
    def __init__(self, store: OperationStore):
        self.store = store

    def append(self, record: OperationRecord) -> OperationRecord:
        """Agrega un registro nuevo. id y created_at los asigna el backend."""
        saved = self.store.create_operation(record)
        logger.debug("ledger += #%s %s %s [%s]", saved.id, saved.operation, saved.file_path, saved.status.value)
        return saved

    def query(self, user_id: int, limit: int = DEFAULT_ACTIVITY_LIMIT) -> list[OperationRecord]:
        """Últimos `limit` registros del usuario, más nuevo primero."""
        return self.store.list_operations(user_id, limit)

    def mark(self, record_id: int, status: OperationStatus) -> OperationRecord:
        """Única mutación permitida: pending -> completed | failed."""
        status = OperationStatus(status)
        current = self.store.get_operation(record_id)
        if current is None:
            raise KeyError(record_id)
        if current.status is not OperationStatus.PENDING or status is OperationStatus.PENDING:
            raise InvalidTransition(f"#{record_id}: {current.status.value} -> {status.value}")
        return self.store.update_operation_status(record_id, status)
