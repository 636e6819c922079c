"""
Sube una carpeta local a un repo de GitHub en un solo lote (mismo orquestador
que la API, mismo ledger).

Uso:
    GITHUB_TOKEN=... python -m orchestration.push_folder ./site --repo octo/web \
        --branch main --message "Deploy" [--extract-archives] [--concurrency 4]
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from api.services.github_client import GitHubContentStore
from api.services.repositories import resolve_repository
from api.services.storage import Storage, build_storage
from common import config
from common.logging_config import get_logger, setup_logging
from uploads.archive import expand_archive_safely, is_archive
from uploads.batch import BatchUploader, to_payloads
from uploads.errors import GitSyncError, ValidationError
from uploads.ledger import ActivityLedger
from uploads.models import AuthContext, PendingFile, UploadTarget, UserRecord
from uploads.paths import LocalEntry, collect_tree

logger = get_logger("push_folder")


def _ensure_user(storage: Storage, gh_user: dict, token: str) -> UserRecord:
    github_id = str(gh_user["id"])
    user = storage.get_user_by_github_id(github_id)
    if user is None:
        return storage.create_user(UserRecord(
            github_id=github_id, username=gh_user["login"],
            email=gh_user.get("email"), avatar_url=gh_user.get("avatar_url"),
            access_token=token,
        ))
    return storage.update_user_token(user.id, token)


async def gather_folder(folder: Path, extract_archives: bool, notices: list) -> list[PendingFile]:
    """Archivos de la carpeta (paths relativos a ella); los .zip se expanden si se pide."""
    entries = [LocalEntry(p) for p in sorted(folder.iterdir())]
    files = await collect_tree(entries)
    if not extract_archives:
        return files

    out: list[PendingFile] = []
    for f in files:
        if is_archive(f.relative_path):
            out.extend(expand_archive_safely(f.relative_path, f.source, notices))
        else:
            out.append(f)
    return out


async def push_folder(
    folder: Path,
    full_name: str,
    token: str,
    branch: str = config.DEFAULT_BRANCH,
    message: Optional[str] = None,
    extract_archives: bool = False,
    concurrency: int = 1,
    storage: Optional[Storage] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Ejecuta el push y retorna un dict resumen (el mismo agregado que la API + notices)."""
    if "/" not in full_name:
        raise ValidationError(f"--repo debe ser owner/name (recibido: {full_name})")
    owner, repo = full_name.split("/", 1)
    folder = Path(folder)
    if not folder.is_dir():
        raise ValidationError(f"No es una carpeta: {folder}")

    storage = storage if storage is not None else build_storage()
    notices: list = []
    pending = await gather_folder(folder, extract_archives, notices)
    logger.info("[push] %d archivo(s) en %s", len(pending), folder)
    if not pending:
        return {"success": not notices, "uploaded": 0, "failed": 0, "results": [], "errors": [], "notices": notices}

    async with GitHubContentStore(token, transport=transport) as gh:
        gh_user = await gh.get_user()
        user = await asyncio.to_thread(_ensure_user, storage, gh_user, token)
        ctx = AuthContext(user_id=user.id, username=user.username, access_token=token)
        ref = await resolve_repository(storage, gh, ctx, owner, repo)
        target = UploadTarget(
            owner=owner, repo=repo, branch=branch,
            message=message or f"Upload {len(pending)} file{'s' if len(pending) > 1 else ''}",
            repository_id=ref.id,
        )
        result = await BatchUploader(gh, ActivityLedger(storage)).upload(
            ctx, target, to_payloads(pending), concurrency=concurrency,
        )
    return {**result.model_dump(exclude={"results"}), "notices": notices}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Sube una carpeta local a un repo de GitHub.")
    parser.add_argument("folder", type=Path)
    parser.add_argument("--repo", required=True, help="owner/name")
    parser.add_argument("--branch", default=config.DEFAULT_BRANCH)
    parser.add_argument("--message", default=None)
    parser.add_argument("--extract-archives", action="store_true", help="Expandir los .zip de la carpeta")
    parser.add_argument("--concurrency", type=int, default=config.BATCH_CONCURRENCY)
    args = parser.parse_args(argv)

    setup_logging(config.LOG_LEVEL)
    token = os.getenv("GITHUB_TOKEN")
    if not token:
        logger.error("Falta GITHUB_TOKEN en el entorno.")
        return 2

    try:
        summary = asyncio.run(push_folder(
            args.folder, args.repo, token, branch=args.branch, message=args.message,
            extract_archives=args.extract_archives, concurrency=max(1, args.concurrency),
        ))
    except GitSyncError as e:
        logger.error("[push] %s", e)
        return 1

    print(json.dumps(summary, indent=2, ensure_ascii=False))
    return 0 if summary["success"] else 1


if __name__ == "__main__":
    sys.exit(main())
