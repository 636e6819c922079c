"""
Auth por sesión: el login guarda `user_id` en la cookie de sesión
(SessionMiddleware) y cada ruta recibe un AuthContext explícito.
"""
# api/auth.py
from fastapi import Request

from uploads.errors import AuthenticationError
from uploads.models import AuthContext

SESSION_USER_KEY = "user_id"


def get_auth_context(request: Request) -> AuthContext:
    """
    AuthContext del usuario de la sesión. Sin sesión válida -> AuthenticationError
    (401), antes de cualquier llamada a GitHub.
    """
    user_id = request.session.get(SESSION_USER_KEY)
    if not user_id:
        raise AuthenticationError()

    user = request.app.state.storage.get_user(int(user_id))
    if user is None:
        # la sesión apunta a un usuario que ya no existe
        request.session.pop(SESSION_USER_KEY, None)
        raise AuthenticationError()

    return AuthContext(user_id=user.id, username=user.username, access_token=user.access_token)


def login(request: Request, user_id: int) -> None:
    request.session[SESSION_USER_KEY] = user_id


def logout(request: Request) -> None:
    request.session.clear()
