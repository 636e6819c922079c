"""
Cliente async de la API de contenidos de GitHub (httpx).

Reglas:
- Cada request lleva el token del usuario (Bearer). El cliente no maneja su ciclo de vida.
- Respuesta no-2xx -> RemoteStoreError(status, message de GitHub). Nunca se traga.
- Timeout -> 504, error de red -> 502 (mismo camino de fallo por archivo).
- Para sobrescribir/borrar hace falta el sha actual; acá sólo se reenvía el que
  manda el caller, no se busca ni se cachea.
"""

from urllib.parse import quote

import httpx

from common import config
from common.logging_config import get_logger
from uploads.errors import RemoteStoreError

logger = get_logger(__name__)

ACCEPT = "application/vnd.github.v3+json"


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return resp.text or resp.reason_phrase


def _quote_path(path: str) -> str:
    return quote(path.strip("/"), safe="/")


class GitHubContentStore:
    """
    Uso:
        async with GitHubContentStore(token) as gh:
            await gh.put_file("octo", "repo", "README.md", b64, "msg")
    """

    def __init__(
        self,
        token: str,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or config.GITHUB_API_URL).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {token}", "Accept": ACCEPT},
            timeout=config.GITHUB_TIMEOUT_SECONDS if timeout is None else timeout,
            verify=config.VERIFY_SSL,
            transport=transport,
        )

    async def __aenter__(self) -> "GitHubContentStore":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs):
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("%s %s: timeout", method, url)
            raise RemoteStoreError(504, f"Timeout llamando a GitHub: {e}") from e
        except httpx.HTTPError as e:
            logger.warning("%s %s: %s", method, url, e)
            raise RemoteStoreError(502, f"Error de red llamando a GitHub: {e}") from e

        if resp.is_error:
            raise RemoteStoreError(resp.status_code, _error_message(resp))
        if resp.status_code == 204 or not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            logger.warning("%s %s: respuesta %s no es JSON", method, url, resp.status_code)
            raise RemoteStoreError(502, f"Respuesta inválida de GitHub: {e}") from e

    # --- usuario / repos ---
    async def get_user(self) -> dict:
        return await self._request("GET", "/user")

    async def list_repositories(self) -> list[dict]:
        return await self._request("GET", "/user/repos", params={"per_page": 100})

    async def get_repository(self, owner: str, repo: str) -> dict:
        return await self._request("GET", f"/repos/{owner}/{repo}")

    async def list_branches(self, owner: str, repo: str) -> list[dict]:
        return await self._request("GET", f"/repos/{owner}/{repo}/branches")

    # --- contenidos ---
    async def list_directory(self, owner: str, repo: str, path: str = "", ref: str = "main"):
        """Listado de un directorio (lista) o metadata de un archivo (dict) en `ref`."""
        return await self._request(
            "GET", f"/repos/{owner}/{repo}/contents/{_quote_path(path)}", params={"ref": ref},
        )

    async def put_file(
        self, owner: str, repo: str, path: str, content: str, message: str,
        branch: str = "main", sha: str | None = None,
    ) -> dict:
        """Crea o actualiza un archivo. `content` ya viene en base64."""
        body = {"message": message, "content": content, "branch": branch}
        if sha:
            body["sha"] = sha
        return await self._request("PUT", f"/repos/{owner}/{repo}/contents/{_quote_path(path)}", json=body)

    async def delete_file(
        self, owner: str, repo: str, path: str, message: str,
        sha: str | None, branch: str = "main",
    ) -> dict:
        body = {"message": message, "branch": branch}
        if sha:
            body["sha"] = sha
        return await self._request("DELETE", f"/repos/{owner}/{repo}/contents/{_quote_path(path)}", json=body)

    # --- PRs ---
    async def create_pull_request(
        self, owner: str, repo: str, title: str, head: str, base: str, body: str | None = None,
    ) -> dict:
        payload = {"title": title, "head": head, "base": base}
        if body is not None:
            payload["body"] = body
        return await self._request("POST", f"/repos/{owner}/{repo}/pulls", json=payload)
