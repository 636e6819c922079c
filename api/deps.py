"""
Dependencias compartidas por los routers: storage, ledger y cliente de GitHub.
Todo sale de app.state (se arma una sola vez en create_app).
"""

from typing import AsyncIterator

from fastapi import Depends, Request

from api.auth import get_auth_context
from api.services.github_client import GitHubContentStore
from api.services.storage import Storage
from uploads.ledger import ActivityLedger
from uploads.models import AuthContext


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_ledger(request: Request) -> ActivityLedger:
    return ActivityLedger(request.app.state.storage)


def open_store(request: Request, token: str) -> GitHubContentStore:
    """Cliente de GitHub con el token indicado (transport inyectable en tests)."""
    return GitHubContentStore(token, transport=request.app.state.github_transport)


async def get_content_store(
    request: Request, ctx: AuthContext = Depends(get_auth_context),
) -> AsyncIterator[GitHubContentStore]:
    """Cliente con el token del usuario autenticado; se cierra al terminar el request."""
    async with open_store(request, ctx.access_token) as store:
        yield store
