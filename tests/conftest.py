"""
Fixtures compartidas: GitHub falso (httpx.MockTransport), storage en memoria,
app FastAPI y clientes con/sin sesión.
"""

import hashlib
import json
import re

import httpx
import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from api.services.storage import MemoryStorage

GOOD_TOKEN = "ghp_good"
GH_USER = {"id": 4242, "login": "octocat", "email": "octo@example.com", "avatar_url": "https://a/octo.png"}
GH_REPO = {
    "id": 1296269, "name": "hello", "full_name": "octocat/hello",
    "private": False, "default_branch": "main",
}


def _sha(content: str) -> str:
    return hashlib.sha1(content.encode()).hexdigest()


class FakeGitHub:
    """
    GitHub en memoria, suficiente para la API de contenidos:
    - PUT sobre un path existente sin el sha correcto -> 409/422
    - DELETE sin sha -> 422
    - paths en `fail_paths` -> 500 ; en `timeout_paths` -> timeout
    """

    def __init__(self):
        self.repos = {GH_REPO["full_name"]: dict(GH_REPO)}
        self.files: dict[tuple[str, str, str], dict] = {}  # (full_name, branch, path) -> {content, sha}
        self.fail_paths: set[str] = set()
        self.timeout_paths: set[str] = set()
        self.calls: list[tuple[str, str, dict | None]] = []

    def seed(self, path: str, content: str = "aGVsbG8=", branch: str = "main", full_name: str = "octocat/hello"):
        self.files[(full_name, branch, path)] = {"content": content, "sha": _sha(content)}
        return _sha(content)

    # --- transport ---
    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        path = request.url.path
        self.calls.append((request.method, path, body))

        if request.headers.get("Authorization") != f"Bearer {GOOD_TOKEN}":
            return httpx.Response(401, json={"message": "Bad credentials"})

        if path == "/user":
            return httpx.Response(200, json=GH_USER)
        if path == "/user/repos":
            return httpx.Response(200, json=list(self.repos.values()))

        m = re.match(r"^/repos/([^/]+)/([^/]+)(/.*)?$", path)
        if not m:
            return httpx.Response(404, json={"message": "Not Found"})
        full_name = f"{m.group(1)}/{m.group(2)}"
        rest = m.group(3) or ""
        if full_name not in self.repos:
            return httpx.Response(404, json={"message": "Not Found"})

        if rest == "":
            return httpx.Response(200, json=self.repos[full_name])
        if rest == "/branches":
            return httpx.Response(200, json=[
                {"name": "main", "commit": {"sha": "a" * 40}},
                {"name": "dev", "commit": {"sha": "b" * 40}},
            ])
        if rest == "/pulls" and request.method == "POST":
            return httpx.Response(201, json={"number": 7, "title": body["title"], "head": body["head"]})
        if rest.startswith("/contents"):
            file_path = rest[len("/contents"):].strip("/")
            return self._contents(request, full_name, file_path, body)
        return httpx.Response(404, json={"message": "Not Found"})

    def _contents(self, request, full_name, file_path, body):
        if file_path in self.timeout_paths:
            raise httpx.ReadTimeout("timed out", request=request)
        if file_path in self.fail_paths:
            return httpx.Response(500, json={"message": "Server Error"})

        if request.method == "GET":
            ref = request.url.params.get("ref", "main")
            prefix = f"{file_path}/" if file_path else ""
            listing = []
            for (fn, branch, p), meta in self.files.items():
                if fn == full_name and branch == ref and p.startswith(prefix) and "/" not in p[len(prefix):]:
                    listing.append({"name": p.rsplit("/", 1)[-1], "path": p, "sha": meta["sha"],
                                    "size": len(meta["content"]), "type": "file", "download_url": None})
            return httpx.Response(200, json=sorted(listing, key=lambda x: x["path"]))

        key = (full_name, body.get("branch", "main"), file_path)
        existing = self.files.get(key)

        if request.method == "PUT":
            if existing is not None:
                if "sha" not in body:
                    return httpx.Response(422, json={"message": "Invalid request.\n\n\"sha\" wasn't supplied."})
                if body["sha"] != existing["sha"]:
                    return httpx.Response(409, json={"message": f"{file_path} does not match {body['sha']}"})
            self.files[key] = {"content": body["content"], "sha": _sha(body["content"])}
            status = 200 if existing else 201
            return httpx.Response(status, json={"content": {"path": file_path, "sha": _sha(body["content"])},
                                                "commit": {"message": body["message"]}})

        if request.method == "DELETE":
            if "sha" not in body:
                return httpx.Response(422, json={"message": "Invalid request.\n\n\"sha\" wasn't supplied."})
            if existing is None:
                return httpx.Response(404, json={"message": "Not Found"})
            if body["sha"] != existing["sha"]:
                return httpx.Response(409, json={"message": f"{file_path} does not match {body['sha']}"})
            del self.files[key]
            return httpx.Response(200, json={"content": None, "commit": {"message": body["message"]}})

        return httpx.Response(405, json={"message": "Method Not Allowed"})

    def puts(self) -> list[str]:
        return [p for (m, p, _) in self.calls if m == "PUT"]


@pytest.fixture
def github():
    return FakeGitHub()


@pytest.fixture
def transport(github):
    return httpx.MockTransport(github.handler)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def app(storage, transport):
    return create_app(storage=storage, github_transport=transport)


@pytest.fixture
def client(app):
    """Cliente sin sesión."""
    return TestClient(app)


@pytest.fixture
def auth_client(app):
    """Cliente con sesión abierta (login por token)."""
    c = TestClient(app)
    r = c.post("/api/auth/token", json={"token": GOOD_TOKEN})
    assert r.status_code == 200, r.text
    return c
