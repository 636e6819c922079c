# api/routes/repositories.py
"""
/api/repositories: listado y navegación de repos (proxy a GitHub).
- GET  /api/repositories                              : repos del usuario (+ alta local de los nuevos)
- POST /api/repositories/{owner}/{repo}/sync          : refresca el repo local y su last_sync_at
- GET  /api/repositories/{owner}/{repo}/branches      : ramas + sha del head
- GET  /api/repositories/{owner}/{repo}/contents      : listado en path/ref
- POST /api/repositories/{owner}/{repo}/pulls         : crea un pull request
"""

from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool

from api.auth import get_auth_context
from api.deps import get_content_store, get_storage
from api.domain.models import PullRequestIn
from api.services.github_client import GitHubContentStore
from api.services.repositories import resolve_repository, upsert_repositories
from api.services.storage import Storage
from common import config
from common.logging_config import get_logger
from uploads.models import AuthContext

logger = get_logger(__name__)

router = APIRouter(prefix="/api/repositories", tags=["repositories"])


@router.get("")
async def list_repositories(
    ctx: AuthContext = Depends(get_auth_context),
    storage: Storage = Depends(get_storage),
    gh: GitHubContentStore = Depends(get_content_store),
):
    repos = await gh.list_repositories()
    created = await run_in_threadpool(upsert_repositories, storage, ctx, repos)
    if created:
        logger.info("%s: %d repo(s) nuevos registrados", ctx.username, created)
    return repos


@router.post("/{owner}/{repo}/sync")
async def sync_repository(
    owner: str,
    repo: str,
    ctx: AuthContext = Depends(get_auth_context),
    storage: Storage = Depends(get_storage),
    gh: GitHubContentStore = Depends(get_content_store),
):
    ref = await resolve_repository(storage, gh, ctx, owner, repo)
    ref = await run_in_threadpool(storage.touch_repository_sync, ref.id)
    return ref.model_dump()


@router.get("/{owner}/{repo}/branches")
async def list_branches(owner: str, repo: str, gh: GitHubContentStore = Depends(get_content_store)):
    return await gh.list_branches(owner, repo)


@router.get("/{owner}/{repo}/contents")
async def list_contents(
    owner: str,
    repo: str,
    path: str = Query("", description="Path dentro del repo (vacío = raíz)"),
    ref: str = Query(config.DEFAULT_BRANCH, description="Rama o sha"),
    gh: GitHubContentStore = Depends(get_content_store),
):
    return await gh.list_directory(owner, repo, path, ref)


@router.post("/{owner}/{repo}/pulls")
async def create_pull_request(
    owner: str, repo: str, body: PullRequestIn, gh: GitHubContentStore = Depends(get_content_store),
):
    return await gh.create_pull_request(owner, repo, body.title, body.head, body.base, body.body)
