"""
Persistencia con patrón repositorio: misma interfaz (Storage), dos backends.

- MemoryStorage: dicts en memoria (tests / dev).
- SqlStorage:    SQLAlchemy sobre get_engine() (prod).

El backend se elige UNA vez al arrancar (build_storage); la lógica de negocio
nunca pregunta cuál es.
"""

import itertools
import threading
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from api.services.db import FileOperationRow, RepositoryRow, UserRow, get_engine, init_db
from common import config
from common.logging_config import get_logger
from uploads.models import OperationRecord, OperationStatus, RepositoryRef, UserRecord

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _later(current: datetime | None, candidate: datetime) -> datetime:
    """last_sync_at nunca retrocede."""
    if current is None:
        return candidate
    a = current if current.tzinfo else current.replace(tzinfo=timezone.utc)
    return max(a, candidate)


class Storage(Protocol):
    # usuarios
    def get_user(self, user_id: int) -> UserRecord | None: ...
    def get_user_by_github_id(self, github_id: str) -> UserRecord | None: ...
    def create_user(self, user: UserRecord) -> UserRecord: ...
    def update_user_token(self, user_id: int, access_token: str) -> UserRecord | None: ...

    # repositorios
    def list_repositories(self, user_id: int) -> list[RepositoryRef]: ...
    def get_repository_by_full_name(self, user_id: int, full_name: str) -> RepositoryRef | None: ...
    def create_repository(self, repo: RepositoryRef) -> RepositoryRef: ...
    def touch_repository_sync(self, repo_id: int) -> RepositoryRef | None: ...

    # operaciones (ledger)
    def create_operation(self, record: OperationRecord) -> OperationRecord: ...
    def get_operation(self, record_id: int) -> OperationRecord | None: ...
    def list_operations(self, user_id: int, limit: int) -> list[OperationRecord]: ...
    def update_operation_status(self, record_id: int, status: OperationStatus) -> OperationRecord | None: ...


class MemoryStorage:
    """Dicts en memoria; lecturas y escrituras bajo el mismo lock (se llama desde el threadpool)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._users: dict[int, UserRecord] = {}
        self._repos: dict[int, RepositoryRef] = {}
        self._ops: dict[int, OperationRecord] = {}
        self._user_ids = itertools.count(1)
        self._repo_ids = itertools.count(1)
        self._op_ids = itertools.count(1)

    # --- usuarios ---
    def get_user(self, user_id: int) -> UserRecord | None:
        with self._lock:
            return self._users.get(user_id)

    def get_user_by_github_id(self, github_id: str) -> UserRecord | None:
        with self._lock:
            return next((u for u in self._users.values() if u.github_id == github_id), None)

    def create_user(self, user: UserRecord) -> UserRecord:
        with self._lock:
            saved = user.model_copy(update={"id": next(self._user_ids), "created_at": _utcnow()})
            self._users[saved.id] = saved
        return saved

    def update_user_token(self, user_id: int, access_token: str) -> UserRecord | None:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            user = user.model_copy(update={"access_token": access_token})
            self._users[user_id] = user
        return user

    # --- repositorios ---
    def list_repositories(self, user_id: int) -> list[RepositoryRef]:
        with self._lock:
            return [r for r in self._repos.values() if r.user_id == user_id]

    def get_repository_by_full_name(self, user_id: int, full_name: str) -> RepositoryRef | None:
        with self._lock:
            return next(
                (r for r in self._repos.values()
                 if r.user_id == user_id and r.full_name.lower() == full_name.lower()),
                None,
            )

    def create_repository(self, repo: RepositoryRef) -> RepositoryRef:
        with self._lock:
            saved = repo.model_copy(update={"id": next(self._repo_ids), "last_sync_at": None})
            self._repos[saved.id] = saved
        return saved

    def touch_repository_sync(self, repo_id: int) -> RepositoryRef | None:
        with self._lock:
            repo = self._repos.get(repo_id)
            if repo is None:
                return None
            repo = repo.model_copy(update={"last_sync_at": _later(repo.last_sync_at, _utcnow())})
            self._repos[repo_id] = repo
        return repo

    # --- operaciones ---
    def create_operation(self, record: OperationRecord) -> OperationRecord:
        with self._lock:
            saved = record.model_copy(update={"id": next(self._op_ids), "created_at": _utcnow()})
            self._ops[saved.id] = saved
        return saved

    def get_operation(self, record_id: int) -> OperationRecord | None:
        with self._lock:
            return self._ops.get(record_id)

    def list_operations(self, user_id: int, limit: int) -> list[OperationRecord]:
        with self._lock:
            ops = [o for o in self._ops.values() if o.user_id == user_id]
        ops.sort(key=lambda o: (o.created_at, o.id), reverse=True)
        return ops[:limit]

    def update_operation_status(self, record_id: int, status: OperationStatus) -> OperationRecord | None:
        with self._lock:
            op = self._ops.get(record_id)
            if op is None:
                return None
            op = op.model_copy(update={"status": OperationStatus(status)})
            self._ops[record_id] = op
        return op


def _user_out(row: UserRow) -> UserRecord:
    return UserRecord(
        id=row.id, github_id=row.github_id, username=row.username, email=row.email,
        avatar_url=row.avatar_url, access_token=row.access_token, created_at=row.created_at,
    )


def _repo_out(row: RepositoryRow) -> RepositoryRef:
    return RepositoryRef(
        id=row.id, user_id=row.user_id, github_id=row.github_id, name=row.name,
        full_name=row.full_name, private=row.private, default_branch=row.default_branch,
        last_sync_at=row.last_sync_at,
    )


def _op_out(row: FileOperationRow) -> OperationRecord:
    return OperationRecord(
        id=row.id, user_id=row.user_id, repository_id=row.repository_id,
        operation=row.operation, file_path=row.file_path, branch=row.branch,
        status=OperationStatus(row.status), metadata=row.metadata_, created_at=row.created_at,
    )


class SqlStorage:
    def __init__(self, engine: Engine):
        self.engine = engine
        self._session = sessionmaker(bind=engine, expire_on_commit=False)
        init_db(engine)

    def _s(self) -> Session:
        return self._session()

    # --- usuarios ---
    def get_user(self, user_id: int) -> UserRecord | None:
        with self._s() as s:
            row = s.get(UserRow, user_id)
            return _user_out(row) if row else None

    def get_user_by_github_id(self, github_id: str) -> UserRecord | None:
        with self._s() as s:
            row = s.scalars(select(UserRow).where(UserRow.github_id == github_id)).first()
            return _user_out(row) if row else None

    def create_user(self, user: UserRecord) -> UserRecord:
        with self._s() as s, s.begin():
            row = UserRow(**user.model_dump(exclude={"id", "created_at"}))
            s.add(row)
            s.flush()
            return _user_out(row)

    def update_user_token(self, user_id: int, access_token: str) -> UserRecord | None:
        with self._s() as s, s.begin():
            row = s.get(UserRow, user_id)
            if row is None:
                return None
            row.access_token = access_token
            return _user_out(row)

    # --- repositorios ---
    def list_repositories(self, user_id: int) -> list[RepositoryRef]:
        with self._s() as s:
            rows = s.scalars(select(RepositoryRow).where(RepositoryRow.user_id == user_id)).all()
            return [_repo_out(r) for r in rows]

    def get_repository_by_full_name(self, user_id: int, full_name: str) -> RepositoryRef | None:
        with self._s() as s:
            rows = s.scalars(select(RepositoryRow).where(RepositoryRow.user_id == user_id)).all()
            row = next((r for r in rows if r.full_name.lower() == full_name.lower()), None)
            return _repo_out(row) if row else None

    def create_repository(self, repo: RepositoryRef) -> RepositoryRef:
        with self._s() as s, s.begin():
            row = RepositoryRow(**repo.model_dump(exclude={"id", "last_sync_at"}))
            s.add(row)
            s.flush()
            return _repo_out(row)

    def touch_repository_sync(self, repo_id: int) -> RepositoryRef | None:
        with self._s() as s, s.begin():
            row = s.get(RepositoryRow, repo_id)
            if row is None:
                return None
            row.last_sync_at = _later(row.last_sync_at, _utcnow())
            return _repo_out(row)

    # --- operaciones ---
    def create_operation(self, record: OperationRecord) -> OperationRecord:
        with self._s() as s, s.begin():
            row = FileOperationRow(
                user_id=record.user_id,
                repository_id=record.repository_id,
                operation=record.operation,
                file_path=record.file_path,
                branch=record.branch,
                status=OperationStatus(record.status).value,
                metadata_=record.metadata,
            )
            s.add(row)
            s.flush()
            return _op_out(row)

    def get_operation(self, record_id: int) -> OperationRecord | None:
        with self._s() as s:
            row = s.get(FileOperationRow, record_id)
            return _op_out(row) if row else None

    def list_operations(self, user_id: int, limit: int) -> list[OperationRecord]:
        with self._s() as s:
            rows = s.scalars(
                select(FileOperationRow)
                .where(FileOperationRow.user_id == user_id)
                .order_by(FileOperationRow.created_at.desc(), FileOperationRow.id.desc())
                .limit(limit)
            ).all()
            return [_op_out(r) for r in rows]

    def update_operation_status(self, record_id: int, status: OperationStatus) -> OperationRecord | None:
        with self._s() as s, s.begin():
            row = s.get(FileOperationRow, record_id)
            if row is None:
                return None
            row.status = OperationStatus(status).value
            return _op_out(row)


def build_storage(backend: str | None = None, db_url: str | None = None) -> Storage:
    """Elige el backend según STORAGE_BACKEND (memory | sql)."""
    backend = (backend or config.STORAGE_BACKEND).lower()
    if backend == "memory":
        logger.info("Storage: memoria")
        return MemoryStorage()
    if backend == "sql":
        engine = get_engine(db_url)
        logger.info("Storage: SQL (%s)", engine.url.render_as_string(hide_password=True))
        return SqlStorage(engine)
    raise RuntimeError(f"STORAGE_BACKEND desconocido: {backend!r} (memory | sql)")
