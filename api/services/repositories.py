"""
Alta / resolución de RepositoryRef a partir de la metadata de GitHub.
"""

from fastapi.concurrency import run_in_threadpool

from api.services.github_client import GitHubContentStore
from api.services.storage import Storage
from uploads.models import AuthContext, RepositoryRef


def _ref_from_github(user_id: int, data: dict) -> RepositoryRef:
    return RepositoryRef(
        user_id=user_id,
        github_id=str(data["id"]),
        name=data["name"],
        full_name=data["full_name"],
        private=bool(data.get("private", False)),
        default_branch=data.get("default_branch") or "main",
    )


def upsert_repositories(storage: Storage, ctx: AuthContext, github_repos: list[dict]) -> int:
    """Da de alta los repos que todavía no conocemos. Devuelve cuántos se crearon."""
    known = {r.github_id for r in storage.list_repositories(ctx.user_id)}
    created = 0
    for data in github_repos:
        if str(data.get("id")) in known:
            continue
        storage.create_repository(_ref_from_github(ctx.user_id, data))
        known.add(str(data["id"]))
        created += 1
    return created


async def resolve_repository(
    storage: Storage, store: GitHubContentStore, ctx: AuthContext, owner: str, repo: str,
) -> RepositoryRef:
    """
    RepositoryRef local para owner/repo. Si no existe, se pide la metadata a
    GitHub y se registra (así el ledger guarda el id real del repo).
    El storage es sync: sus llamadas van al threadpool.
    """
    found = await run_in_threadpool(storage.get_repository_by_full_name, ctx.user_id, f"{owner}/{repo}")
    if found is not None:
        return found
    data = await store.get_repository(owner, repo)
    return await run_in_threadpool(storage.create_repository, _ref_from_github(ctx.user_id, data))
