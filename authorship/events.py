"""
Claim event log — ordered, append-only record of accepted claims.

Each event includes:
    - sequence, fingerprint (base-58 text), timestamp, submitter, name
    - prev_hash: hash of the previous event (chain linkage)
    - event_hash: SHA-256(prev_hash | sequence | fingerprint | timestamp | submitter | name)

The log is owned by a ClaimRegistry, which persists it together with the
claims so that a claim and its event are written in one step. Observers
register callbacks with subscribe() and receive each event once it is
committed. Merkle proofs are generated on demand over event hashes.
Outside the registry the log is seen through EventLogView, which has no
way to append.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from dataclasses import asdict, dataclass
from typing import Callable

from authorship.merkle import MerkleProof, MerkleTree

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64

EventCallback = Callable[["ClaimEvent"], None]


@dataclass(frozen=True)
class ClaimEvent:
    """A single accepted claim, as seen by observers."""

    sequence: int
    fingerprint: str
    timestamp: int
    submitter: str
    name: str
    prev_hash: str
    event_hash: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> ClaimEvent:
        return cls(
            sequence=int(d["sequence"]),
            fingerprint=d["fingerprint"],
            timestamp=int(d["timestamp"]),
            submitter=d["submitter"],
            name=d["name"],
            prev_hash=d["prev_hash"],
            event_hash=d["event_hash"],
        )


def compute_event_hash(
    prev_hash: str,
    sequence: int,
    fingerprint: str,
    timestamp: int,
    submitter: str,
    name: str,
) -> str:
    # name and submitter are free-form, so they are JSON-quoted to keep the
    # "|" separator unambiguous
    payload = "|".join([
        prev_hash,
        str(sequence),
        fingerprint,
        str(timestamp),
        json.dumps(submitter),
        json.dumps(name),
    ])
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ClaimEventLog:
    """Hash-chained log of claim events with subscriber notification.

    Usage:
        log = ClaimEventLog()
        log.commit(log.build_next(fp.text, ts, "0xabc...", "Alice"))
        unsubscribe = log.subscribe(lambda ev: print(ev.fingerprint))
        assert log.verify_chain()
        proof = log.get_proof(0)
    """

    def __init__(self, entries: list[ClaimEvent] | None = None) -> None:
        self._lock = threading.Lock()
        self._entries: list[ClaimEvent] = list(entries or [])
        self._subscribers: list[EventCallback] = []

    def build_next(
        self, fingerprint: str, timestamp: int, submitter: str, name: str,
    ) -> ClaimEvent:
        """Build (but do not append) the event that would come next."""
        with self._lock:
            sequence = len(self._entries)
            prev_hash = self._entries[-1].event_hash if self._entries else GENESIS_HASH
        return ClaimEvent(
            sequence=sequence,
            fingerprint=fingerprint,
            timestamp=timestamp,
            submitter=submitter,
            name=name,
            prev_hash=prev_hash,
            event_hash=compute_event_hash(
                prev_hash, sequence, fingerprint, timestamp, submitter, name
            ),
        )

    def commit(self, event: ClaimEvent) -> None:
        """Append an event produced by build_next().

        Raises ValueError if another event was appended in between.
        """
        with self._lock:
            expected_prev = self._entries[-1].event_hash if self._entries else GENESIS_HASH
            if event.sequence != len(self._entries) or event.prev_hash != expected_prev:
                raise ValueError(
                    f"Event {event.sequence} does not extend the log "
                    f"(length {len(self._entries)})"
                )
            self._entries.append(event)

    def replace(self, entries: list[ClaimEvent]) -> None:
        """Adopt entries reloaded from the store. Subscribers are kept."""
        with self._lock:
            self._entries = list(entries)

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Register a callback for new events. Returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def notify(self, event: ClaimEvent) -> None:
        """Deliver an event to every subscriber. Subscriber errors are logged."""
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Claim event subscriber failed on event %d", event.sequence
                )

    def events_since(self, sequence: int = 0) -> list[ClaimEvent]:
        """Events with sequence >= the given number, oldest first."""
        with self._lock:
            return self._entries[max(sequence, 0):]

    @property
    def entries(self) -> list[ClaimEvent]:
        with self._lock:
            return list(self._entries)

    @property
    def latest(self) -> ClaimEvent | None:
        with self._lock:
            return self._entries[-1] if self._entries else None

    def verify_chain(self) -> bool:
        """Recompute every link of the chain. Fail-closed: False on any error."""
        try:
            with self._lock:
                prev = GENESIS_HASH
                for i, ev in enumerate(self._entries):
                    if ev.sequence != i or ev.prev_hash != prev:
                        return False
                    expected = compute_event_hash(
                        ev.prev_hash, ev.sequence, ev.fingerprint,
                        ev.timestamp, ev.submitter, ev.name,
                    )
                    if ev.event_hash != expected:
                        return False
                    prev = ev.event_hash
                return True
        except Exception:
            return False

    def get_proof(self, sequence: int) -> MerkleProof:
        """Merkle inclusion proof for an event.

        Raises:
            ValueError: If the log is empty.
            IndexError: If sequence is out of range.
        """
        with self._lock:
            if not self._entries:
                raise ValueError("Event log is empty")
            if sequence < 0 or sequence >= len(self._entries):
                raise IndexError(
                    f"Sequence {sequence} out of range [0, {len(self._entries)})"
                )
            tree = MerkleTree.from_event_hashes([e.event_hash for e in self._entries])
        return tree.get_proof(sequence)

    @property
    def root_hex(self) -> str:
        """Merkle root over all event hashes ('' when empty)."""
        with self._lock:
            if not self._entries:
                return ""
            return MerkleTree.from_event_hashes(
                [e.event_hash for e in self._entries]
            ).root_hex

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class EventLogView:
    """Read-only face of a ClaimEventLog, handed out by ClaimRegistry.events.

    Only the registry appends events; everyone else reads, proves, and
    subscribes.
    """

    def __init__(self, log: ClaimEventLog) -> None:
        self._log = log

    def events_since(self, sequence: int = 0) -> list[ClaimEvent]:
        return self._log.events_since(sequence)

    @property
    def entries(self) -> list[ClaimEvent]:
        return self._log.entries

    @property
    def latest(self) -> ClaimEvent | None:
        return self._log.latest

    def verify_chain(self) -> bool:
        return self._log.verify_chain()

    def get_proof(self, sequence: int) -> MerkleProof:
        return self._log.get_proof(sequence)

    @property
    def root_hex(self) -> str:
        return self._log.root_hex

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        return self._log.subscribe(callback)

    def __len__(self) -> int:
        return len(self._log)
