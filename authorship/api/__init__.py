"""
Authorship registry API — claim submission, lookup, and verification over HTTP.

Stdlib http.server only; submission requires a Bearer API key.
"""

from authorship.api.server import run_api

__all__ = ["run_api"]
