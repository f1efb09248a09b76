"""
Runtime configuration for the HTTP surface.

Values come from the environment (optionally a .env file). The engine itself
takes no configuration: every behavioral choice is a field on ContractTerms.
"""

import os
from typing import List

from dotenv import load_dotenv

load_dotenv()

API_TITLE = os.getenv("API_TITLE", "Royalty Engine API")
API_VERSION = "0.1.0"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Port shown in the startup log; may differ from the bind port under Docker
HOST_PORT = os.getenv("HOST_PORT", "8000")

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:3001",
]


def get_cors_origins() -> List[str]:
    """
    Build the list of allowed CORS origins.

    The localhost dev origins are always included. Additional origins are
    read from CORS_ORIGINS as a comma-separated list, e.g.:
        CORS_ORIGINS=https://statements.example.com,https://preview.example.com

    Duplicates are removed while preserving order.
    """
    extra_origins: List[str] = []
    cors_env = os.getenv("CORS_ORIGINS", "").strip()
    if cors_env:
        extra_origins = [o.strip() for o in cors_env.split(",") if o.strip()]

    seen: set = set()
    origins: List[str] = []
    for origin in DEFAULT_CORS_ORIGINS + extra_origins:
        if origin not in seen:
            seen.add(origin)
            origins.append(origin)

    return origins
