"""
Taxonomía de errores del core de uploads.

- AuthenticationError / ValidationError: fallan antes de tocar GitHub; nunca van al ledger.
- RemoteStoreError: respuesta no-2xx de GitHub (o timeout / red).
- ExtractionError: el ZIP no se pudo leer; sólo aborta esa extracción.
- UploadTooLargeError: un archivo del multipart supera el límite (413).
"""


class GitSyncError(Exception):
    """Base de todos los errores de dominio."""


class AuthenticationError(GitSyncError):
    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)
        self.message = message


class ValidationError(GitSyncError):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RemoteStoreError(GitSyncError):
    """Error reportado por el store remoto, con su status HTTP y mensaje."""

    def __init__(self, status: int, message: str):
        super().__init__(f"GitHub API error: {status} {message}")
        self.status = status
        self.message = message


class ExtractionError(GitSyncError):
    def __init__(self, message: str = "extraction failed"):
        super().__init__(message)
        self.message = message


class UploadTooLargeError(GitSyncError):
    """Un archivo subido supera MAX_UPLOAD_MB."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
