"""
Claim registry — at most one authorship claim per fingerprint.

States per fingerprint:
    ABSENT → CLAIMED   (terminal — claims are never amended or revoked)

A claim is accepted only when its user-supplied timestamp lies within
[now - 300s, now + 30s] of the authoritative time passed in by the caller.
The claimed timestamp, not "now", is what gets stored and later verified.

Writers hold the store's lock() and reload the snapshot before checking, so
the duplicate check, the window check, and the persisted write are one
critical section even across processes sharing a registry file. Readers
never lock: each write publishes a fresh immutable _ClaimState, and lookups
read whichever state is current.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from typing import Any, Callable, Mapping

from authorship import CLAIM_WINDOW_FUTURE_SECS, CLAIM_WINDOW_PAST_SECS
from authorship.events import ClaimEvent, ClaimEventLog, EventLogView
from authorship.fingerprint import (
    Fingerprint,
    decode_from_text,
    from_storage_key,
    to_storage_key,
)
from authorship.store import SNAPSHOT_VERSION, ClaimStoreError, MemoryClaimStore

logger = logging.getLogger(__name__)

DUPLICATE_CLAIM = "DUPLICATE_CLAIM"
TIMESTAMP_OUT_OF_RANGE = "TIMESTAMP_OUT_OF_RANGE"


class ClaimError(Exception):
    """A claim submission was rejected. No state was changed."""

    code = ""


class DuplicateClaimError(ClaimError):
    """The fingerprint already has a claim."""

    code = DUPLICATE_CLAIM


class TimestampOutOfRangeError(ClaimError):
    """The claimed timestamp is outside the acceptance window."""

    code = TIMESTAMP_OUT_OF_RANGE


@dataclass(frozen=True)
class ClaimRecord:
    """A stored claim, or the absent record (exists=False, zero fields)."""

    exists: bool
    timestamp: int
    claimant: str
    name: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


ABSENT_CLAIM = ClaimRecord(exists=False, timestamp=0, claimant="", name="")


@dataclass(frozen=True)
class ClaimReceipt:
    """Returned by a successful submit_claim()."""

    fingerprint: str
    timestamp: int
    claimant: str
    name: str
    sequence: int
    claim_count: int
    event_hash: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _require_uint(value: Any, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{label} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{label} must be non-negative, got {value}")
    return value


def in_claim_window(claimed_timestamp: int, now: int) -> bool:
    """True if claimed_timestamp is within [now - 300, now + 30], inclusive."""
    return now - CLAIM_WINDOW_PAST_SECS <= claimed_timestamp <= now + CLAIM_WINDOW_FUTURE_SECS


@dataclass(frozen=True)
class _ClaimState:
    """Claims as of one committed write. Never mutated once published."""

    claims: Mapping[bytes, ClaimRecord]
    count: int


def _parse_snapshot(snapshot: dict[str, Any]) -> tuple[dict[bytes, ClaimRecord], list[ClaimEvent]]:
    """Rebuild claims and events from a stored snapshot and check that they agree.

    Every claim must equal, field for field, the hash-chained event that
    recorded it. An edited claim, event, or count raises ClaimStoreError.
    """
    claims: dict[bytes, ClaimRecord] = {}
    try:
        for key_hex, rec in snapshot["claims"].items():
            key = to_storage_key(from_storage_key(bytes.fromhex(key_hex)))
            claims[key] = ClaimRecord(
                exists=True,
                timestamp=rec["timestamp"],
                claimant=rec["claimant"],
                name=rec["name"],
            )
        events = [ClaimEvent.from_dict(e) for e in snapshot["events"]]
        event_keys = [to_storage_key(decode_from_text(e.fingerprint)) for e in events]
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ClaimStoreError(f"Corrupt registry snapshot: {e}") from e

    count = snapshot["claim_count"]
    if count != len(claims):
        raise ClaimStoreError(
            f"Registry claim_count {count} does not match {len(claims)} stored claims"
        )
    if len(events) != len(claims) or len(set(event_keys)) != len(events):
        raise ClaimStoreError(
            f"Registry events ({len(events)}) do not match its {len(claims)} claims"
        )
    for event, key in zip(events, event_keys):
        record = claims.get(key)
        if record is None or (record.timestamp, record.claimant, record.name) != (
            event.timestamp, event.submitter, event.name,
        ):
            raise ClaimStoreError(
                f"Registry claim for {event.fingerprint} does not match event {event.sequence}"
            )

    if not ClaimEventLog(events).verify_chain():
        raise ClaimStoreError("Registry event chain is broken")
    return claims, events


def _build_snapshot(claims: Mapping[bytes, ClaimRecord], events: list[ClaimEvent]) -> dict[str, Any]:
    return {
        "version": SNAPSHOT_VERSION,
        "claim_count": len(claims),
        "claims": {
            k.hex(): {"timestamp": r.timestamp, "claimant": r.claimant, "name": r.name}
            for k, r in claims.items()
        },
        "events": [e.to_dict() for e in events],
    }


class ClaimRegistry:
    """Fingerprint → claim record store with insertion-time validation.

    Several registries may share one store (threads, or processes sharing a
    JsonClaimStore). Each sees the others' claims from its next submission
    on; ClaimWatcher follows them live.

    Usage:
        registry = ClaimRegistry()                       # in-memory
        registry = ClaimRegistry(JsonClaimStore())       # ~/.authorship
        receipt = registry.submit_claim(fp, ts, "Alice", "0xabc...", now=unix_now())
        registry.verify_claim(fp, ts, "0xabc...", "Alice")  # True
    """

    def __init__(self, store: Any = None) -> None:
        self._store = store if store is not None else MemoryClaimStore()
        self._write_lock = threading.Lock()
        self._events = ClaimEventLog()
        self._events_view = EventLogView(self._events)
        self._state = _ClaimState(claims={}, count=0)
        self._reload()

    def _reload(self) -> None:
        """Adopt the store's current snapshot. Raises ClaimStoreError if it is bad."""
        claims, events = _parse_snapshot(self._store.load())
        self._events.replace(events)
        self._state = _ClaimState(claims=claims, count=len(claims))

    def submit_claim(
        self,
        fingerprint: Fingerprint,
        claimed_timestamp: int,
        name: str,
        submitter: str,
        now: int,
    ) -> ClaimReceipt:
        """Record a claim of authorship.

        Args:
            fingerprint: Fingerprint of the claimed file.
            claimed_timestamp: The submitter's own unix timestamp; stored verbatim.
            name: Free-form author name (may be empty).
            submitter: Caller address, as authenticated by the caller's environment.
            now: Authoritative unix time at submission.

        Raises:
            DuplicateClaimError: The fingerprint is already claimed.
            TimestampOutOfRangeError: claimed_timestamp is outside the window.
            ClaimStoreError: The store could not be read, locked, or written.
        """
        key = to_storage_key(fingerprint)
        _require_uint(claimed_timestamp, "claimed_timestamp")
        _require_uint(now, "now")
        if not isinstance(name, str):
            raise TypeError(f"name must be a str, got {type(name).__name__}")
        if not isinstance(submitter, str):
            raise TypeError(f"submitter must be a str, got {type(submitter).__name__}")

        with self._write_lock, self._store.lock():
            # Another writer may have committed since our last look
            self._reload()
            state = self._state

            if key in state.claims:
                logger.debug("Rejected duplicate claim for %s", fingerprint.text)
                raise DuplicateClaimError(
                    f"Fingerprint {fingerprint.text} is already claimed"
                )
            if not in_claim_window(claimed_timestamp, now):
                logger.debug(
                    "Rejected claim for %s: timestamp %d outside window of %d",
                    fingerprint.text, claimed_timestamp, now,
                )
                raise TimestampOutOfRangeError(
                    f"Timestamp {claimed_timestamp} must be within "
                    f"[{now - CLAIM_WINDOW_PAST_SECS}, {now + CLAIM_WINDOW_FUTURE_SECS}]"
                )

            record = ClaimRecord(
                exists=True, timestamp=claimed_timestamp, claimant=submitter, name=name,
            )
            event = self._events.build_next(
                fingerprint.text, claimed_timestamp, submitter, name
            )
            claims = dict(state.claims)
            claims[key] = record

            # Persist first; nothing is published until the snapshot is durable
            self._store.save(_build_snapshot(claims, self._events.entries + [event]))

            self._events.commit(event)
            self._state = _ClaimState(claims=claims, count=state.count + 1)
            count = state.count + 1

        logger.info(
            "Claim %d accepted for %s by %s", event.sequence, fingerprint.text, submitter
        )
        self._events.notify(event)

        return ClaimReceipt(
            fingerprint=fingerprint.text,
            timestamp=claimed_timestamp,
            claimant=submitter,
            name=name,
            sequence=event.sequence,
            claim_count=count,
            event_hash=event.event_hash,
        )

    def find(self, fingerprint: Fingerprint) -> ClaimRecord | None:
        """The stored claim, or None if the fingerprint is unclaimed."""
        return self._state.claims.get(to_storage_key(fingerprint))

    def lookup_claim(self, fingerprint: Fingerprint) -> ClaimRecord:
        """The stored claim, or ABSENT_CLAIM."""
        record = self.find(fingerprint)
        return record if record is not None else ABSENT_CLAIM

    def verify_claim(
        self, fingerprint: Fingerprint, timestamp: int, address: str, name: str,
    ) -> bool:
        """True iff a claim exists and timestamp, address, and name all match exactly."""
        record = self.find(fingerprint)
        if record is None:
            return False
        return (
            type(timestamp) is int
            and record.timestamp == timestamp
            and record.claimant == address
            and record.name == name
        )

    def get_claim_count(self) -> int:
        return self._state.count

    @property
    def events(self) -> EventLogView:
        return self._events_view

    def subscribe(self, callback: Callable[[ClaimEvent], None]) -> Callable[[], None]:
        """Receive each accepted claim's event. Returns an unsubscribe function."""
        return self._events.subscribe(callback)

    def __contains__(self, fingerprint: object) -> bool:
        if not isinstance(fingerprint, Fingerprint):
            return False
        return self.find(fingerprint) is not None

    def __len__(self) -> int:
        return self.get_claim_count()
