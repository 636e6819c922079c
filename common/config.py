# common/config.py
"""
Configuración leída desde variables de entorno (.env / docker-compose).
Todo tiene default razonable para dev; en prod se setea por env.
"""

import os

# --- GitHub ---
GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip("/")
GITHUB_TIMEOUT_SECONDS = float(os.getenv("GITHUB_TIMEOUT_SECONDS", "30"))
VERIFY_SSL = os.getenv("HTTPX_VERIFY", "1") != "0"  # HTTPX_VERIFY=0 para PoC sin cert
DEFAULT_BRANCH = os.getenv("DEFAULT_BRANCH", "main")

# --- Persistencia ---
DATABASE_URL = os.getenv("DATABASE_URL")
# memory | sql. Si hay DATABASE_URL, por defecto sql.
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "sql" if DATABASE_URL else "memory").lower()

# --- Sesión / CORS ---
SESSION_SECRET = os.getenv("SESSION_SECRET", "dev-secret-change-me")
CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:5000,http://127.0.0.1:5000").split(",")
    if o.strip()
]

# --- Uploads ---
BATCH_CONCURRENCY = max(1, int(os.getenv("BATCH_CONCURRENCY", "1")))
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "100"))
MAX_UPLOAD_BYTES = MAX_UPLOAD_MB * 1024 * 1024

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
