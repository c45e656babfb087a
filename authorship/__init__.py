"""
Authorship — timestamped, tamper-evident claims of authorship over files.

Architecture:
    Fingerprint:  0x12 (SHA2-256) + 0x20 (32) + SHA-256(file) = 34 bytes, base-58 text
    Registry:     storage key (32-byte digest) -> claim record, one claim per file
    Event log:    hash-chained record of accepted claims, Merkle proofs on demand
"""

import os
from pathlib import Path

__version__ = "0.1.0"

# Multihash layout
MULTIHASH_SHA2_256 = 0x12
DIGEST_SIZE = 32
FINGERPRINT_SIZE = 34  # 1 (tag) + 1 (length) + 32 (digest)

# Claim acceptance window, relative to authoritative time at submission
CLAIM_WINDOW_PAST_SECS = 5 * 60
CLAIM_WINDOW_FUTURE_SECS = 30

# Local data root (registry.json, api_key)
DEFAULT_HOME = Path(os.environ.get("AUTHORSHIP_HOME", "") or Path.home() / ".authorship")

# API constants
API_DEFAULT_PORT = 8080
API_DEFAULT_HOST = "127.0.0.1"
API_MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10 MB
API_POLL_INTERVAL_SECS = 2
