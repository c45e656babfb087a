"""
Tests for the claim registry — registry.py + store.py.

Covers submission, the acceptance window, uniqueness, exact-match
verification, counter consistency, persistence, and atomicity on failure.
"""

from __future__ import annotations

import json
import threading
from unittest.mock import MagicMock

import pytest

from authorship.fingerprint import compute_fingerprint
from authorship.registry import (
    ABSENT_CLAIM,
    DUPLICATE_CLAIM,
    TIMESTAMP_OUT_OF_RANGE,
    ClaimError,
    ClaimRecord,
    ClaimRegistry,
    DuplicateClaimError,
    TimestampOutOfRangeError,
    in_claim_window,
)
from authorship.store import ClaimStoreError, JsonClaimStore, MemoryClaimStore, empty_snapshot

ALICE = "0x1111111111111111111111111111111111111111"
BOB = "0x2222222222222222222222222222222222222222"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def registry():
    """In-memory registry."""
    return ClaimRegistry()


@pytest.fixture
def fp():
    return compute_fingerprint(b"hello")


@pytest.fixture
def other_fp():
    return compute_fingerprint(b"world")


@pytest.fixture
def tmp_store(tmp_path):
    """JsonClaimStore rooted in a temp directory."""
    return JsonClaimStore(root=tmp_path / "authorship")


# ---------------------------------------------------------------------------
# TestInitialState
# ---------------------------------------------------------------------------

class TestInitialState:

    def test_no_claims(self, registry, fp):
        assert registry.get_claim_count() == 0
        assert len(registry) == 0
        assert registry.lookup_claim(fp) == ABSENT_CLAIM
        assert registry.find(fp) is None
        assert fp not in registry

    def test_absent_record_shape(self):
        assert ABSENT_CLAIM == ClaimRecord(exists=False, timestamp=0, claimant="", name="")
        assert ABSENT_CLAIM.to_dict() == {
            "exists": False, "timestamp": 0, "claimant": "", "name": "",
        }


# ---------------------------------------------------------------------------
# TestSubmitClaim
# ---------------------------------------------------------------------------

class TestSubmitClaim:

    def test_success(self, registry, fp):
        receipt = registry.submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        assert receipt.fingerprint == fp.text
        assert receipt.timestamp == 1000
        assert receipt.claimant == ALICE
        assert receipt.name == "Alice"
        assert receipt.sequence == 0
        assert receipt.claim_count == 1
        assert len(receipt.event_hash) == 64

        record = registry.lookup_claim(fp)
        assert record == ClaimRecord(exists=True, timestamp=1000, claimant=ALICE, name="Alice")
        assert registry.get_claim_count() == 1
        assert fp in registry

    def test_stores_claimed_timestamp_not_now(self, registry, fp):
        registry.submit_claim(fp, 950, "Alice", ALICE, now=1000)
        assert registry.lookup_claim(fp).timestamp == 950

    def test_empty_name_is_valid(self, registry, fp):
        registry.submit_claim(fp, 1000, "", ALICE, now=1000)
        assert registry.lookup_claim(fp).name == ""

    def test_name_is_pass_through(self, registry, fp):
        name = "  Zoë «quoted» | with pipes\n" * 50
        registry.submit_claim(fp, 1000, name, ALICE, now=1000)
        assert registry.lookup_claim(fp).name == name

    def test_appends_event(self, registry, fp):
        registry.submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        events = registry.events.entries
        assert len(events) == 1
        assert events[0].fingerprint == fp.text
        assert events[0].timestamp == 1000
        assert events[0].submitter == ALICE
        assert events[0].name == "Alice"

    def test_sequence_increments(self, registry, fp, other_fp):
        r1 = registry.submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        r2 = registry.submit_claim(other_fp, 1000, "Bob", BOB, now=1000)
        assert (r1.sequence, r2.sequence) == (0, 1)
        assert r2.claim_count == 2

    @pytest.mark.parametrize("bad", [1000.0, "1000", None, True])
    def test_rejects_non_int_timestamp(self, registry, fp, bad):
        with pytest.raises(TypeError):
            registry.submit_claim(fp, bad, "Alice", ALICE, now=1000)
        assert registry.get_claim_count() == 0

    def test_rejects_negative_timestamp(self, registry, fp):
        with pytest.raises(ValueError):
            registry.submit_claim(fp, -1, "Alice", ALICE, now=0)

    def test_rejects_non_string_submitter(self, registry, fp):
        with pytest.raises(TypeError):
            registry.submit_claim(fp, 1000, "Alice", None, now=1000)

    def test_rejects_raw_bytes_fingerprint(self, registry, fp):
        with pytest.raises(TypeError):
            registry.submit_claim(fp.multihash, 1000, "Alice", ALICE, now=1000)


# ---------------------------------------------------------------------------
# TestTimestampWindow
# ---------------------------------------------------------------------------

class TestTimestampWindow:
    """Window is [now - 300, now + 30], inclusive."""

    @pytest.mark.parametrize("claimed", [700, 999, 1000, 1001, 1030])
    def test_inside_window(self, registry, fp, claimed):
        registry.submit_claim(fp, claimed, "Alice", ALICE, now=1000)
        assert registry.lookup_claim(fp).timestamp == claimed

    @pytest.mark.parametrize("claimed", [699, 0, 1031, 5000])
    def test_outside_window(self, registry, fp, claimed):
        with pytest.raises(TimestampOutOfRangeError) as exc_info:
            registry.submit_claim(fp, claimed, "Alice", ALICE, now=1000)
        assert exc_info.value.code == TIMESTAMP_OUT_OF_RANGE
        assert registry.get_claim_count() == 0
        assert registry.lookup_claim(fp) == ABSENT_CLAIM
        assert len(registry.events) == 0

    def test_boundaries(self):
        assert in_claim_window(1000 - 300, 1000)
        assert not in_claim_window(1000 - 301, 1000)
        assert in_claim_window(1000 + 30, 1000)
        assert not in_claim_window(1000 + 31, 1000)

    def test_small_now(self, registry, fp):
        """Near the epoch the past side of the window just clips at zero."""
        registry.submit_claim(fp, 0, "Alice", ALICE, now=10)
        assert registry.lookup_claim(fp).timestamp == 0

    def test_rejected_then_accepted(self, registry, fp):
        with pytest.raises(TimestampOutOfRangeError):
            registry.submit_claim(fp, 2000, "Alice", ALICE, now=1000)
        registry.submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        assert registry.get_claim_count() == 1


# ---------------------------------------------------------------------------
# TestUniqueness
# ---------------------------------------------------------------------------

class TestUniqueness:

    def test_second_claim_rejected(self, registry, fp):
        registry.submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        with pytest.raises(DuplicateClaimError) as exc_info:
            registry.submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        assert exc_info.value.code == DUPLICATE_CLAIM
        assert isinstance(exc_info.value, ClaimError)

    @pytest.mark.parametrize("ts,name,addr,now", [
        (1000, "Alice", ALICE, 1000),
        (2000, "Bob", BOB, 2000),
        (99999, "", BOB, 1000),   # also out of window: duplicate wins
    ])
    def test_rejected_regardless_of_arguments(self, registry, fp, ts, name, addr, now):
        registry.submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        with pytest.raises(DuplicateClaimError):
            registry.submit_claim(fp, ts, name, addr, now=now)

    def test_original_record_unchanged(self, registry, fp):
        registry.submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        with pytest.raises(DuplicateClaimError):
            registry.submit_claim(fp, 1005, "Mallory", BOB, now=1005)
        assert registry.lookup_claim(fp) == ClaimRecord(True, 1000, ALICE, "Alice")
        assert registry.get_claim_count() == 1
        assert len(registry.events) == 1

    def test_concurrent_submissions_one_winner(self, fp):
        registry = ClaimRegistry()
        results: list[str] = []
        lock = threading.Lock()
        barrier = threading.Barrier(16)

        def submit(i):
            barrier.wait()
            try:
                registry.submit_claim(fp, 1000, f"user{i}", f"0x{i:040x}", now=1000)
                outcome = "ok"
            except DuplicateClaimError:
                outcome = "dup"
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=submit, args=(i,)) for i in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("ok") == 1
        assert results.count("dup") == 15
        assert registry.get_claim_count() == 1
        assert len(registry.events) == 1

    def test_concurrent_distinct_claims_all_counted(self):
        registry = ClaimRegistry()
        fps = [compute_fingerprint(f"file-{i}".encode()) for i in range(40)]

        def submit(f):
            registry.submit_claim(f, 1000, "", ALICE, now=1000)

        threads = [threading.Thread(target=submit, args=(f,)) for f in fps]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert registry.get_claim_count() == 40
        assert len(registry.events) == 40
        assert registry.events.verify_chain()


# ---------------------------------------------------------------------------
# TestVerifyClaim
# ---------------------------------------------------------------------------

class TestVerifyClaim:

    @pytest.fixture
    def claimed(self, registry, fp):
        registry.submit_claim(fp, 500, "Alice", ALICE, now=500)
        return registry

    def test_exact_match(self, claimed, fp):
        assert claimed.verify_claim(fp, 500, ALICE, "Alice") is True

    def test_wrong_fingerprint(self, claimed, other_fp):
        assert claimed.verify_claim(other_fp, 500, ALICE, "Alice") is False

    def test_wrong_timestamp(self, claimed, fp):
        assert claimed.verify_claim(fp, 501, ALICE, "Alice") is False

    def test_wrong_address(self, claimed, fp):
        assert claimed.verify_claim(fp, 500, BOB, "Alice") is False

    def test_wrong_name(self, claimed, fp):
        assert claimed.verify_claim(fp, 500, ALICE, "alice") is False

    def test_address_case_matters(self, claimed, fp):
        assert claimed.verify_claim(fp, 500, ALICE.upper(), "Alice") is False

    def test_unclaimed(self, registry, fp):
        assert registry.verify_claim(fp, 0, "", "") is False

    def test_non_int_timestamp_does_not_match(self, claimed, fp):
        assert claimed.verify_claim(fp, "500", ALICE, "Alice") is False
        assert claimed.verify_claim(fp, 500.0, ALICE, "Alice") is False

    def test_read_only(self, claimed, fp):
        before = claimed.get_claim_count()
        claimed.verify_claim(fp, 500, ALICE, "Alice")
        claimed.lookup_claim(fp)
        assert claimed.get_claim_count() == before
        assert len(claimed.events) == before


# ---------------------------------------------------------------------------
# TestCounterConsistency
# ---------------------------------------------------------------------------

class TestCounterConsistency:

    def test_count_matches_existing_records(self, registry):
        fps = [compute_fingerprint(f"doc {i}".encode()) for i in range(6)]
        attempts = [
            (fps[0], 1000, 1000),
            (fps[1], 1000, 1000),
            (fps[0], 1000, 1000),   # duplicate
            (fps[2], 500, 1000),    # too early
            (fps[2], 1000, 1000),
            (fps[3], 1031, 1000),   # too late
            (fps[1], 1000, 1000),   # duplicate
            (fps[4], 1030, 1000),
        ]
        for f, ts, now in attempts:
            try:
                registry.submit_claim(f, ts, "", ALICE, now=now)
            except ClaimError:
                pass

        existing = [f for f in fps if registry.lookup_claim(f).exists]
        assert registry.get_claim_count() == len(existing) == 4
        assert len(registry.events) == 4


# ---------------------------------------------------------------------------
# TestEndToEnd
# ---------------------------------------------------------------------------

class TestEndToEnd:

    def test_hello_bob(self, registry):
        fp = compute_fingerprint(b"hello")
        now = 1_700_000_000

        registry.submit_claim(fp, now, "Bob", BOB, now=now)
        record = registry.lookup_claim(fp)
        assert record.exists is True
        assert record.timestamp == now
        assert record.claimant == BOB
        assert record.name == "Bob"
        assert registry.get_claim_count() == 1

        for later in (now + 1, now + 3600, now + 10**6):
            with pytest.raises(DuplicateClaimError):
                registry.submit_claim(fp, later, "Bob", BOB, now=later)
        assert registry.get_claim_count() == 1


# ---------------------------------------------------------------------------
# TestSubscribers
# ---------------------------------------------------------------------------

class TestSubscribers:

    def test_subscriber_receives_event(self, registry, fp):
        received = []
        registry.subscribe(received.append)
        registry.submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        assert len(received) == 1
        assert received[0].fingerprint == fp.text
        assert received[0].submitter == ALICE

    def test_no_event_on_failure(self, registry, fp):
        received = []
        registry.subscribe(received.append)
        with pytest.raises(TimestampOutOfRangeError):
            registry.submit_claim(fp, 0, "Alice", ALICE, now=1000)
        assert received == []

    def test_unsubscribe(self, registry, fp, other_fp):
        received = []
        unsubscribe = registry.subscribe(received.append)
        registry.submit_claim(fp, 1000, "", ALICE, now=1000)
        unsubscribe()
        registry.submit_claim(other_fp, 1000, "", ALICE, now=1000)
        assert len(received) == 1

    def test_failing_subscriber_does_not_break_submit(self, registry, fp):
        received = []
        registry.subscribe(MagicMock(side_effect=RuntimeError("boom")))
        registry.subscribe(received.append)
        receipt = registry.submit_claim(fp, 1000, "", ALICE, now=1000)
        assert receipt.claim_count == 1
        assert len(received) == 1


# ---------------------------------------------------------------------------
# TestPersistence
# ---------------------------------------------------------------------------

class TestPersistence:

    def test_survives_restart(self, tmp_store, fp):
        r1 = ClaimRegistry(tmp_store)
        r1.submit_claim(fp, 1000, "Alice", ALICE, now=1000)

        r2 = ClaimRegistry(JsonClaimStore(root=tmp_store.root))
        assert r2.get_claim_count() == 1
        assert r2.verify_claim(fp, 1000, ALICE, "Alice")
        assert r2.events.verify_chain()
        with pytest.raises(DuplicateClaimError):
            r2.submit_claim(fp, 1000, "Alice", ALICE, now=1000)

    def test_file_layout(self, tmp_store, fp):
        ClaimRegistry(tmp_store).submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        data = json.loads(tmp_store.path.read_text())
        assert data["version"] == 1
        assert data["claim_count"] == 1
        assert data["claims"] == {
            fp.hex_digest: {"timestamp": 1000, "claimant": ALICE, "name": "Alice"},
        }
        assert data["events"][0]["fingerprint"] == fp.text

    def test_no_temp_files_left(self, tmp_store, fp):
        ClaimRegistry(tmp_store).submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        assert sorted(p.name for p in tmp_store.root.iterdir()) == ["registry.json", "registry.lock"]

    def test_missing_file_is_empty(self, tmp_store):
        assert ClaimRegistry(tmp_store).get_claim_count() == 0

    def test_corrupt_json_raises(self, tmp_store):
        tmp_store.root.mkdir(parents=True)
        tmp_store.path.write_text("{not json")
        with pytest.raises(ClaimStoreError, match="Cannot read"):
            ClaimRegistry(tmp_store)

    def test_count_mismatch_raises(self, tmp_store, fp):
        ClaimRegistry(tmp_store).submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        data = json.loads(tmp_store.path.read_text())
        data["claim_count"] = 2
        tmp_store.path.write_text(json.dumps(data))
        with pytest.raises(ClaimStoreError, match="claim_count"):
            ClaimRegistry(tmp_store)

    def test_tampered_event_raises(self, tmp_store, fp):
        """Editing claim and event together still breaks the hash chain."""
        ClaimRegistry(tmp_store).submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        data = json.loads(tmp_store.path.read_text())
        data["events"][0]["name"] = "Mallory"
        data["claims"][fp.hex_digest]["name"] = "Mallory"
        tmp_store.path.write_text(json.dumps(data))
        with pytest.raises(ClaimStoreError, match="chain"):
            ClaimRegistry(tmp_store)

    def test_event_for_unknown_claim_raises(self, tmp_store, fp, other_fp):
        ClaimRegistry(tmp_store).submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        data = json.loads(tmp_store.path.read_text())
        data["claims"] = {other_fp.hex_digest: data["claims"][fp.hex_digest]}
        tmp_store.path.write_text(json.dumps(data))
        with pytest.raises(ClaimStoreError, match="does not match"):
            ClaimRegistry(tmp_store)

    def test_unsupported_version_raises(self, tmp_store):
        tmp_store.root.mkdir(parents=True)
        snapshot = empty_snapshot()
        snapshot["version"] = 99
        tmp_store.path.write_text(json.dumps(snapshot))
        with pytest.raises(ClaimStoreError, match="version"):
            ClaimRegistry(tmp_store)


# ---------------------------------------------------------------------------
# TestAtomicity
# ---------------------------------------------------------------------------

class TestAtomicity:
    """A failed write must leave the registry unchanged."""

    def test_store_failure_leaves_state_unchanged(self, fp):
        store = MemoryClaimStore()
        registry = ClaimRegistry(store)
        received = []
        registry.subscribe(received.append)

        store.save = MagicMock(side_effect=ClaimStoreError("disk full"))
        with pytest.raises(ClaimStoreError, match="disk full"):
            registry.submit_claim(fp, 1000, "Alice", ALICE, now=1000)

        assert registry.get_claim_count() == 0
        assert registry.lookup_claim(fp) == ABSENT_CLAIM
        assert len(registry.events) == 0
        assert received == []

    def test_retry_after_store_recovers(self, fp):
        store = MemoryClaimStore()
        registry = ClaimRegistry(store)
        real_save = store.save
        store.save = MagicMock(side_effect=[ClaimStoreError("disk full"), None])
        with pytest.raises(ClaimStoreError):
            registry.submit_claim(fp, 1000, "Alice", ALICE, now=1000)

        store.save = real_save
        receipt = registry.submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        assert receipt.sequence == 0
        assert registry.get_claim_count() == 1

    def test_unwritable_root(self, tmp_path, fp):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        registry = ClaimRegistry(JsonClaimStore(root=blocker / "sub"))
        with pytest.raises(ClaimStoreError, match="Cannot lock"):
            registry.submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        assert registry.get_claim_count() == 0

    def test_failed_claim_leaves_file_untouched(self, tmp_store, fp, other_fp):
        registry = ClaimRegistry(tmp_store)
        registry.submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        before = tmp_store.path.read_bytes()

        with pytest.raises(DuplicateClaimError):
            registry.submit_claim(fp, 1000, "Bob", BOB, now=1000)
        with pytest.raises(TimestampOutOfRangeError):
            registry.submit_claim(other_fp, 1, "Bob", BOB, now=1000)

        assert tmp_store.path.read_bytes() == before


# ---------------------------------------------------------------------------
# TestClaimEventConsistency
# ---------------------------------------------------------------------------

class TestClaimEventConsistency:
    """Every stored claim must equal the chained event that recorded it."""

    @pytest.mark.parametrize("field,value", [
        ("name", "Mallory"),
        ("claimant", "0xmallory"),
        ("timestamp", 999),
    ])
    def test_edited_claim_field_raises(self, tmp_store, fp, field, value):
        ClaimRegistry(tmp_store).submit_claim(fp, 1000, "Bob", BOB, now=1000)
        data = json.loads(tmp_store.path.read_text())
        data["claims"][fp.hex_digest][field] = value
        tmp_store.path.write_text(json.dumps(data))

        with pytest.raises(ClaimStoreError, match="does not match event 0"):
            ClaimRegistry(tmp_store)

    def test_edited_claim_rejected_on_next_submit(self, tmp_store, fp, other_fp):
        registry = ClaimRegistry(tmp_store)
        registry.submit_claim(fp, 1000, "Bob", BOB, now=1000)
        data = json.loads(tmp_store.path.read_text())
        data["claims"][fp.hex_digest]["name"] = "Mallory"
        tmp_store.path.write_text(json.dumps(data))

        with pytest.raises(ClaimStoreError):
            registry.submit_claim(other_fp, 1000, "Alice", ALICE, now=1000)
        assert registry.verify_claim(fp, 1000, BOB, "Bob")
        assert registry.get_claim_count() == 1

    def test_string_timestamp_in_claim_raises(self, tmp_store, fp):
        ClaimRegistry(tmp_store).submit_claim(fp, 1000, "Bob", BOB, now=1000)
        data = json.loads(tmp_store.path.read_text())
        data["claims"][fp.hex_digest]["timestamp"] = "1000"
        tmp_store.path.write_text(json.dumps(data))
        with pytest.raises(ClaimStoreError):
            ClaimRegistry(tmp_store)


# ---------------------------------------------------------------------------
# TestSharedStore
# ---------------------------------------------------------------------------

class TestSharedStore:
    """Several registries writing one store, as the CLI and the API server do."""

    def test_no_lost_update(self, tmp_path, fp, other_fp):
        cli = ClaimRegistry(JsonClaimStore(tmp_path))
        server = ClaimRegistry(JsonClaimStore(tmp_path))

        cli.submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        receipt = server.submit_claim(other_fp, 1000, "Bob", BOB, now=1000)
        assert receipt.sequence == 1
        assert receipt.claim_count == 2

        reloaded = ClaimRegistry(JsonClaimStore(tmp_path))
        assert reloaded.verify_claim(fp, 1000, ALICE, "Alice")
        assert reloaded.verify_claim(other_fp, 1000, BOB, "Bob")
        assert reloaded.get_claim_count() == 2
        assert reloaded.events.verify_chain()

    def test_duplicate_across_registries(self, tmp_path, fp):
        first = ClaimRegistry(JsonClaimStore(tmp_path))
        second = ClaimRegistry(JsonClaimStore(tmp_path))

        first.submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        with pytest.raises(DuplicateClaimError):
            second.submit_claim(fp, 1000, "Mallory", BOB, now=1000)

        reloaded = ClaimRegistry(JsonClaimStore(tmp_path))
        assert reloaded.lookup_claim(fp) == ClaimRecord(True, 1000, ALICE, "Alice")
        assert reloaded.get_claim_count() == 1
        assert second.lookup_claim(fp).claimant == ALICE

    def test_duplicate_across_registries_in_memory(self, fp):
        store = MemoryClaimStore()
        ClaimRegistry(store).submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        with pytest.raises(DuplicateClaimError):
            ClaimRegistry(store).submit_claim(fp, 1000, "Mallory", BOB, now=1000)

    def test_concurrent_registries_one_winner(self, tmp_path, fp):
        registries = [ClaimRegistry(JsonClaimStore(tmp_path)) for _ in range(8)]
        outcomes: list[str] = []
        lock = threading.Lock()
        barrier = threading.Barrier(len(registries))

        def submit(i, registry):
            own = compute_fingerprint(f"own-{i}".encode())
            barrier.wait()
            registry.submit_claim(own, 1000, "", ALICE, now=1000)
            try:
                registry.submit_claim(fp, 1000, f"user{i}", ALICE, now=1000)
                outcome = "ok"
            except DuplicateClaimError:
                outcome = "dup"
            with lock:
                outcomes.append(outcome)

        threads = [
            threading.Thread(target=submit, args=(i, r)) for i, r in enumerate(registries)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        reloaded = ClaimRegistry(JsonClaimStore(tmp_path))
        assert reloaded.get_claim_count() == len(registries) + 1
        assert reloaded.events.verify_chain()

    def test_subscribers_survive_reload(self, tmp_path, fp, other_fp):
        watcher_side = ClaimRegistry(JsonClaimStore(tmp_path))
        received = []
        watcher_side.subscribe(received.append)

        ClaimRegistry(JsonClaimStore(tmp_path)).submit_claim(fp, 1000, "", ALICE, now=1000)
        watcher_side.submit_claim(other_fp, 1000, "", BOB, now=1000)

        assert [e.sequence for e in received] == [1]


# ---------------------------------------------------------------------------
# TestReadsDuringWrite
# ---------------------------------------------------------------------------

class _SlowStore(MemoryClaimStore):
    """Blocks inside save() until released."""

    def __init__(self):
        super().__init__()
        self.saving = threading.Event()
        self.release = threading.Event()

    def save(self, snapshot):
        self.saving.set()
        self.release.wait(5)
        super().save(snapshot)


class TestReadsDuringWrite:

    def test_reads_do_not_wait_for_save(self, fp, other_fp):
        store = _SlowStore()
        registry = ClaimRegistry(store)
        store.release.set()
        registry.submit_claim(other_fp, 1000, "Alice", ALICE, now=1000)

        store.release.clear()
        store.saving.clear()
        writer = threading.Thread(
            target=registry.submit_claim, args=(fp, 1000, "Bob", BOB, 1000)
        )
        writer.start()
        assert store.saving.wait(5)

        # The write is parked in save(); reads answer from the last published state
        assert registry.get_claim_count() == 1
        assert registry.verify_claim(other_fp, 1000, ALICE, "Alice")
        assert registry.lookup_claim(fp) == ABSENT_CLAIM
        assert len(registry.events) == 1

        store.release.set()
        writer.join(5)
        assert registry.get_claim_count() == 2
        assert registry.lookup_claim(fp).claimant == BOB


# ---------------------------------------------------------------------------
# TestEventsView
# ---------------------------------------------------------------------------

class TestEventsView:

    def test_view_cannot_append(self, registry, fp):
        registry.submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        view = registry.events
        assert not hasattr(view, "commit")
        assert not hasattr(view, "build_next")
        assert not hasattr(view, "replace")

    def test_view_reads(self, registry, fp):
        registry.submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        view = registry.events
        assert len(view) == 1
        assert view.latest.fingerprint == fp.text
        assert view.events_since(1) == []
        assert view.verify_chain()
        assert view.get_proof(0).root_hex == view.root_hex

    def test_view_subscribe(self, registry, fp):
        received = []
        unsubscribe = registry.events.subscribe(received.append)
        registry.submit_claim(fp, 1000, "Alice", ALICE, now=1000)
        unsubscribe()
        assert len(received) == 1
