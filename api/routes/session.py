# api/routes/session.py
"""
Login con Personal Access Token, usuario actual y logout.
- POST /api/auth/token   : valida el token contra GitHub y abre sesión
- POST /api/auth/logout  : cierra sesión
- GET  /api/user         : usuario de la sesión (sin token)
"""

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from api.auth import get_auth_context, login, logout
from api.deps import get_storage, open_store
from api.domain.models import TokenLoginIn
from api.services.storage import Storage
from common.logging_config import get_logger
from uploads.errors import RemoteStoreError
from uploads.models import AuthContext, UserRecord

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


def _save_user(storage: Storage, gh_user: dict, token: str) -> UserRecord:
    github_id = str(gh_user["id"])
    user = storage.get_user_by_github_id(github_id)
    if user is None:
        user = storage.create_user(UserRecord(
            github_id=github_id,
            username=gh_user["login"],
            email=gh_user.get("email"),
            avatar_url=gh_user.get("avatar_url"),
            access_token=token,
        ))
        logger.info("Usuario nuevo: %s (#%s)", user.username, user.id)
        return user
    return storage.update_user_token(user.id, token)


@router.post("/auth/token")
async def login_with_token(body: TokenLoginIn, request: Request, storage: Storage = Depends(get_storage)):
    """Valida el token con GET /user; crea el usuario o le actualiza el token."""
    try:
        async with open_store(request, body.token) as gh:
            gh_user = await gh.get_user()
    except RemoteStoreError as e:
        if e.status in (401, 403):
            return JSONResponse(status_code=401, content={"error": "Invalid token"})
        raise

    user = await run_in_threadpool(_save_user, storage, gh_user, body.token)
    login(request, user.id)
    return {"success": True, "user": user.public()}


@router.post("/auth/logout")
def logout_session(request: Request):
    logout(request)
    return {"success": True}


@router.get("/user")
def current_user(ctx: AuthContext = Depends(get_auth_context), storage: Storage = Depends(get_storage)):
    user = storage.get_user(ctx.user_id)
    if user is None:
        return JSONResponse(status_code=404, content={"error": "User not found"})
    return user.public()
