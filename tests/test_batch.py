"""
Tests para el orquestador de lotes.
Finalidad: fallos parciales no cortan el lote, un registro por archivo en el
ledger, y el agregado siempre cuadra (uploaded + failed == len(files)).
"""

import asyncio
import threading

import pytest

from api.services.storage import MemoryStorage
from uploads.batch import BatchUploader, decoded_size, encode_content, strip_data_uri, to_payloads
from uploads.errors import RemoteStoreError, ValidationError
from uploads.ledger import ActivityLedger
from uploads.models import AuthContext, FilePayload, OperationStatus, PendingFile, UploadTarget

CTX = AuthContext(user_id=1, username="octocat", access_token="t")
TARGET = UploadTarget(owner="octocat", repo="hello", branch="main", message="batch", repository_id=9)


class FakeStore:
    def __init__(self, fail=(), delay=0.0):
        self.fail = set(fail)
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def put_file(self, owner, repo, path, content, message, branch="main", sha=None):
        self.calls.append({"path": path, "content": content, "message": message, "branch": branch, "sha": sha})
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if path in self.fail:
                raise RemoteStoreError(409, f"{path} does not match")
            return {"content": {"path": path}}
        finally:
            self.in_flight -= 1


def _payloads(*paths):
    return [FilePayload(path=p, content=encode_content(p.encode())) for p in paths]


@pytest.fixture
def ledger():
    return ActivityLedger(MemoryStorage())


@pytest.mark.asyncio
async def test_all_succeed(ledger):
    store = FakeStore()
    result = await BatchUploader(store, ledger).upload(CTX, TARGET, _payloads("readme.md", "src/index.ts"))

    assert (result.success, result.uploaded, result.failed) == (True, 2, 0)
    assert [c["path"] for c in store.calls] == ["readme.md", "src/index.ts"]
    assert {c["message"] for c in store.calls} == {"batch"}

    records = ledger.query(CTX.user_id)
    assert [r.file_path for r in records] == ["src/index.ts", "readme.md"]
    assert all(r.status is OperationStatus.COMPLETED for r in records)
    assert all(r.repository_id == 9 and r.branch == "main" for r in records)


@pytest.mark.asyncio
@pytest.mark.parametrize("failing", [set(), {"b"}, {"a", "c"}, {"a", "b", "c", "d"}])
async def test_counts_always_add_up(ledger, failing):
    paths = ["a", "b", "c", "d"]
    result = await BatchUploader(FakeStore(fail=failing), ledger).upload(CTX, TARGET, _payloads(*paths))

    assert result.uploaded + result.failed == len(paths)
    assert result.failed == len(failing)
    assert result.success is (not failing)
    records = ledger.query(CTX.user_id, limit=100)
    assert len(records) == len(paths)
    assert {r.file_path for r in records if r.status is OperationStatus.FAILED} == failing


@pytest.mark.asyncio
async def test_single_failure(ledger):
    result = await BatchUploader(FakeStore(fail={"x.bin"}), ledger).upload(CTX, TARGET, _payloads("x.bin"))
    assert (result.success, result.uploaded, result.failed) == (False, 0, 1)
    assert result.errors[0].status == 409
    [rec] = ledger.query(CTX.user_id)
    assert rec.status is OperationStatus.FAILED
    assert rec.metadata["error"] == "x.bin does not match"


@pytest.mark.asyncio
async def test_sequential_ledger_order_matches_input(ledger):
    storage = ledger.store
    await BatchUploader(FakeStore(fail={"2"}), ledger).upload(CTX, TARGET, _payloads("1", "2", "3"))
    ids_in_insert_order = sorted(storage.list_operations(CTX.user_id, 10), key=lambda r: r.id)
    assert [r.file_path for r in ids_in_insert_order] == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_empty_batch_is_rejected_before_any_call(ledger):
    store = FakeStore()
    with pytest.raises(ValidationError):
        await BatchUploader(store, ledger).upload(CTX, TARGET, [])
    assert store.calls == []
    assert ledger.query(CTX.user_id) == []


@pytest.mark.asyncio
async def test_sha_and_data_uri_forwarded(ledger):
    store = FakeStore()
    payloads = [
        FilePayload(path="new.txt", content="data:text/plain;base64,aGk="),
        FilePayload(path="old.txt", content="aGk=", sha="abc123"),
    ]
    await BatchUploader(store, ledger).upload(CTX, TARGET.model_copy(update={"message": None}), payloads)
    assert store.calls[0]["content"] == "aGk="
    assert store.calls[0]["sha"] is None
    assert store.calls[0]["message"] == "Upload new.txt"
    assert store.calls[1]["sha"] == "abc123"


@pytest.mark.asyncio
async def test_bounded_concurrency_keeps_result_order(ledger):
    store = FakeStore(fail={"f3"}, delay=0.01)
    paths = [f"f{i}" for i in range(8)]
    result = await BatchUploader(store, ledger).upload(CTX, TARGET, _payloads(*paths), concurrency=3)

    assert 1 < store.max_in_flight <= 3
    assert [r.path for r in result.results] == [p for p in paths if p != "f3"]
    assert [e.path for e in result.errors] == ["f3"]
    assert len(ledger.query(CTX.user_id, limit=100)) == len(paths)


def test_helpers():
    assert strip_data_uri("data:image/png;base64,AAAA") == "AAAA"
    assert strip_data_uri("AAAA") == "AAAA"
    assert decoded_size(encode_content(b"hello")) == 5
    assert decoded_size("") == 0
    payloads = to_payloads([PendingFile(source=b"\x00\xff", relative_path="bin/x")])
    assert payloads[0].path == "bin/x"
    assert payloads[0].content == "AP8="


class BrokenStore(FakeStore):
    """Falla con un error que no es de GitHub (p.ej. respuesta inválida)."""

    async def put_file(self, owner, repo, path, content, message, branch="main", sha=None):
        if path in self.fail:
            self.calls.append({"path": path})
            raise ValueError(f"unexpected body for {path}")
        return await super().put_file(owner, repo, path, content, message, branch=branch, sha=sha)


@pytest.mark.asyncio
@pytest.mark.parametrize("concurrency", [1, 3])
async def test_unexpected_error_is_captured_per_file(ledger, concurrency):
    store = BrokenStore(fail={"b"})
    result = await BatchUploader(store, ledger).upload(CTX, TARGET, _payloads("a", "b", "c"), concurrency=concurrency)

    assert sorted(c["path"] for c in store.calls) == ["a", "b", "c"]
    assert (result.success, result.uploaded, result.failed) == (False, 2, 1)
    assert result.errors[0].path == "b"
    assert result.errors[0].error == "unexpected body for b"
    assert result.errors[0].status is None

    records = {r.file_path: r for r in ledger.query(CTX.user_id, limit=100)}
    assert set(records) == {"a", "b", "c"}
    assert records["b"].status is OperationStatus.FAILED
    assert records["b"].metadata["error"] == "unexpected body for b"


class ThreadRecordingStorage(MemoryStorage):
    def __init__(self):
        super().__init__()
        self.threads = set()

    def create_operation(self, record):
        self.threads.add(threading.get_ident())
        return super().create_operation(record)


@pytest.mark.asyncio
async def test_ledger_writes_run_off_the_event_loop():
    storage = ThreadRecordingStorage()
    await BatchUploader(FakeStore(), ActivityLedger(storage)).upload(CTX, TARGET, _payloads("a", "b"))
    assert storage.threads
    assert threading.get_ident() not in storage.threads
