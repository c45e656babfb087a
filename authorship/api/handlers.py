"""
Request handlers for the registry API.

Each handler is a pure function: (request_data, registry) → (status_code, response_dict).
No HTTP plumbing — that lives in server.py.
"""

from __future__ import annotations

import json
from typing import Any

from authorship import API_MAX_UPLOAD_BYTES, __version__
from authorship.fingerprint import MalformedIdentifierError, compute_fingerprint, decode_from_text
from authorship.registry import DUPLICATE_CLAIM, ClaimError
from authorship.store import ClaimStoreError


def _parse_json(body: bytes) -> dict[str, Any] | None:
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _is_uint(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _malformed(e: MalformedIdentifierError) -> tuple[int, dict]:
    return 400, {"error": str(e), "code": e.code}


def handle_fingerprint(body: bytes) -> tuple[int, dict]:
    """POST /fingerprint — fingerprint the raw request body."""
    if not body:
        return 400, {"error": "Empty request body"}
    if len(body) > API_MAX_UPLOAD_BYTES:
        return 413, {"error": f"Payload too large (max {API_MAX_UPLOAD_BYTES} bytes)"}

    fp = compute_fingerprint(body)
    return 200, {
        "fingerprint": fp.text,
        "digest": fp.hex_digest,
        "size": len(body),
    }


def handle_submit_claim(body: bytes, registry: Any, now: int) -> tuple[int, dict]:
    """POST /claims — submit a claim.

    Body: JSON {"fingerprint": "Qm...", "timestamp": 1700000000,
                "name": "Alice", "claimant": "0xabc..."}
    ``now`` is the server's own clock, never taken from the request.
    """
    if not body:
        return 400, {"error": "Empty request body"}
    data = _parse_json(body)
    if data is None:
        return 400, {"error": "Invalid JSON object"}

    fp_text = data.get("fingerprint")
    timestamp = data.get("timestamp")
    name = data.get("name", "")
    claimant = data.get("claimant")

    if not isinstance(fp_text, str):
        return 400, {"error": "Missing 'fingerprint'"}
    if not _is_uint(timestamp):
        return 400, {"error": "'timestamp' must be a non-negative integer (unix seconds)"}
    if not isinstance(name, str):
        return 400, {"error": "'name' must be a string"}
    if not isinstance(claimant, str) or not claimant:
        return 400, {"error": "Missing 'claimant'"}

    try:
        fp = decode_from_text(fp_text)
    except MalformedIdentifierError as e:
        return _malformed(e)

    try:
        receipt = registry.submit_claim(fp, timestamp, name, claimant, now)
    except ClaimError as e:
        status = 409 if e.code == DUPLICATE_CLAIM else 422
        return status, {"error": str(e), "code": e.code}
    except ClaimStoreError as e:
        return 500, {"error": f"Failed to store claim: {e}"}

    return 201, {"receipt": receipt.to_dict()}


def handle_lookup(fp_text: str, registry: Any) -> tuple[int, dict]:
    """GET /claims/<fingerprint> — the claim, or the absent record."""
    try:
        fp = decode_from_text(fp_text)
    except MalformedIdentifierError as e:
        return _malformed(e)

    record = registry.lookup_claim(fp)
    result = {"fingerprint": fp.text}
    result.update(record.to_dict())
    return 200, result


def handle_verify(body: bytes, registry: Any) -> tuple[int, dict]:
    """POST /verify — exact-match check of all claim fields.

    Body: JSON {"fingerprint", "timestamp", "claimant", "name"}
    """
    data = _parse_json(body) if body else None
    if data is None:
        return 400, {"error": "Invalid JSON object"}

    fp_text = data.get("fingerprint")
    timestamp = data.get("timestamp")
    claimant = data.get("claimant")
    name = data.get("name")

    if not isinstance(fp_text, str):
        return 400, {"error": "Missing 'fingerprint'"}
    if not _is_uint(timestamp):
        return 400, {"error": "'timestamp' must be a non-negative integer (unix seconds)"}
    if not isinstance(claimant, str) or not isinstance(name, str):
        return 400, {"error": "'claimant' and 'name' must be strings"}

    try:
        fp = decode_from_text(fp_text)
    except MalformedIdentifierError as e:
        return _malformed(e)

    return 200, {
        "fingerprint": fp.text,
        "valid": registry.verify_claim(fp, timestamp, claimant, name),
    }


def handle_events(since: str | None, registry: Any) -> tuple[int, dict]:
    """GET /events?since=N — accepted claims, oldest first."""
    start = 0
    if since:
        if not since.isdecimal():
            return 400, {"error": "'since' must be a non-negative integer"}
        start = int(since)

    events = registry.events.events_since(start)
    return 200, {
        "since": start,
        "count": len(events),
        "events": [e.to_dict() for e in events],
    }


def handle_event_proof(sequence: int, registry: Any) -> tuple[int, dict]:
    """GET /events/<seq>/proof — Merkle inclusion proof for one event."""
    try:
        proof = registry.events.get_proof(sequence)
    except (ValueError, IndexError):
        return 404, {"error": f"No event with sequence {sequence}"}

    from authorship.merkle import verify_proof

    result = proof.to_dict()
    result["verified"] = verify_proof(proof)
    return 200, result


def handle_status(registry: Any) -> tuple[int, dict]:
    """GET /status — service health check."""
    chain_valid = registry.events.verify_chain()
    return 200, {
        "service": "authorship-registry",
        "version": __version__,
        "healthy": chain_valid,
        "claim_count": registry.get_claim_count(),
        "events": len(registry.events),
        "chain_valid": chain_valid,
        "merkle_root": registry.events.root_hex,
    }
