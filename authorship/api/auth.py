"""
API key for claim submission over HTTP.

The key lives beside the registry it guards: <root>/api_key, where root is
the registry directory given to `authorship --root` (default
~/.authorship). AUTHORSHIP_API_KEY overrides the file. Read endpoints are
open; only POST /claims needs the key, since a claim is permanent.
"""

from __future__ import annotations

import hmac
import os
from pathlib import Path

from authorship import DEFAULT_HOME

API_KEY_ENV = "AUTHORSHIP_API_KEY"
API_KEY_FILENAME = "api_key"


def api_key_path(root: str | Path | None = None) -> Path:
    return (Path(root) if root else DEFAULT_HOME) / API_KEY_FILENAME


def load_api_key(root: str | Path | None = None) -> str:
    """The configured key for the registry at root, or '' if there is none."""
    key = os.environ.get(API_KEY_ENV, "").strip()
    if key:
        return key
    try:
        return api_key_path(root).read_text(encoding="utf-8").strip()
    except (FileNotFoundError, NotADirectoryError):
        return ""


def bearer_token(auth_header: str | None) -> str:
    """Token from an 'Authorization: Bearer <token>' header, or ''."""
    scheme, _, token = (auth_header or "").partition(" ")
    return token.strip() if scheme == "Bearer" else ""


def check_auth(auth_header: str | None, api_key: str) -> bool:
    """True if the header carries api_key. An unset key refuses every claim."""
    token = bearer_token(auth_header)
    if not api_key or not token:
        return False
    return hmac.compare_digest(token.encode("utf-8"), api_key.encode("utf-8"))
