"""
Authorship CLI — claim, verify, and look up authorship of files.

Commands:
  authorship fingerprint   - Print the fingerprint of one or more files
  authorship decode        - Show the layout of a text fingerprint
  authorship claim         - Claim authorship of a file (local registry)
  authorship verify        - Check that a claim matches exactly
  authorship lookup        - Show the claim recorded for a file
  authorship count         - Number of claims in the registry
  authorship events        - List accepted claims; verify the chain; Merkle proofs
  authorship watch         - Follow new claims as they are accepted
  authorship api start     - Start the registry HTTP API
  authorship api status    - Show registry API status
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time


def _get_store(args: argparse.Namespace):
    from authorship.store import JsonClaimStore

    return JsonClaimStore(getattr(args, "root", None))


def _get_registry(args: argparse.Namespace):
    from authorship.registry import ClaimRegistry
    from authorship.store import ClaimStoreError

    try:
        return ClaimRegistry(_get_store(args))
    except ClaimStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _resolve_fingerprint(args: argparse.Namespace):
    """Fingerprint from --fingerprint, or computed from the file argument."""
    from authorship.fingerprint import MalformedIdentifierError, decode_from_text, fingerprint_file

    if getattr(args, "fingerprint", None):
        try:
            return decode_from_text(args.fingerprint)
        except MalformedIdentifierError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    if not getattr(args, "path", None):
        print("Error: Give a file or --fingerprint", file=sys.stderr)
        sys.exit(1)
    try:
        return fingerprint_file(args.path)
    except OSError as e:
        print(f"Error: Cannot read {args.path}: {e}", file=sys.stderr)
        sys.exit(1)


def _add_target_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("path", nargs="?", help="File to fingerprint")
    parser.add_argument("--fingerprint", help="Base-58 fingerprint instead of a file")


def cmd_fingerprint(args: argparse.Namespace) -> None:
    """Print the fingerprint of each file."""
    from authorship.fingerprint import fingerprint_file

    failed = False
    for path in args.paths:
        try:
            fp = fingerprint_file(path)
        except OSError as e:
            print(f"Error: Cannot read {path}: {e}", file=sys.stderr)
            failed = True
            continue
        print(f"{fp.text}  {path}")
    if failed:
        sys.exit(1)


def cmd_decode(args: argparse.Namespace) -> None:
    """Show the tag, length, and digest of a text fingerprint."""
    from authorship.fingerprint import MalformedIdentifierError, decode_from_text

    try:
        fp = decode_from_text(args.fingerprint)
    except MalformedIdentifierError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"fingerprint: {fp.text}")
    print(f"  tag:    0x{fp.multihash[0]:02x} (sha2-256)")
    print(f"  length: {fp.multihash[1]}")
    print(f"  digest: {fp.hex_digest}")


def cmd_claim(args: argparse.Namespace) -> None:
    """Claim authorship of a file in the local registry."""
    from authorship.clock import format_timestamp, unix_now
    from authorship.registry import ClaimError
    from authorship.store import ClaimStoreError

    fp = _resolve_fingerprint(args)
    registry = _get_registry(args)
    now = unix_now()
    timestamp = args.timestamp if args.timestamp is not None else now

    try:
        receipt = registry.submit_claim(fp, timestamp, args.name, args.address, now)
    except ClaimError as e:
        print(f"Error: {e.code}: {e}", file=sys.stderr)
        sys.exit(1)
    except (ClaimStoreError, TypeError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Claimed {args.path or receipt.fingerprint}")
    print(f"  fingerprint: {receipt.fingerprint}")
    print(f"  timestamp:   {receipt.timestamp} ({format_timestamp(receipt.timestamp)})")
    print(f"  claimant:    {receipt.claimant}")
    print(f"  name:        {receipt.name}")
    print(f"  sequence:    {receipt.sequence}")
    print(f"  event hash:  {receipt.event_hash}")


def cmd_verify(args: argparse.Namespace) -> None:
    """Verify that a claim matches timestamp, address, and name exactly."""
    fp = _resolve_fingerprint(args)
    registry = _get_registry(args)

    if registry.verify_claim(fp, args.timestamp, args.address, args.name):
        print(f"OK: {fp.text} claimed by {args.address} at {args.timestamp}")
    else:
        print(f"FAIL: no matching claim for {fp.text}")
        sys.exit(1)


def cmd_lookup(args: argparse.Namespace) -> None:
    """Show the claim recorded for a file or fingerprint."""
    from authorship.clock import format_timestamp

    fp = _resolve_fingerprint(args)
    registry = _get_registry(args)
    record = registry.lookup_claim(fp)

    if args.json:
        out = {"fingerprint": fp.text}
        out.update(record.to_dict())
        print(json.dumps(out, indent=2))
        return

    if not record.exists:
        print(f"{fp.text}: not claimed")
        return
    print(f"{fp.text}: claimed")
    print(f"  timestamp: {record.timestamp} ({format_timestamp(record.timestamp)})")
    print(f"  claimant:  {record.claimant}")
    print(f"  name:      {record.name}")


def cmd_count(args: argparse.Namespace) -> None:
    registry = _get_registry(args)
    print(registry.get_claim_count())


def cmd_events_list(args: argparse.Namespace) -> None:
    """List accepted claims, oldest first."""
    from authorship.clock import format_timestamp

    registry = _get_registry(args)
    events = registry.events.events_since(args.since)
    if not events:
        print("No claims.")
        return
    for ev in events:
        line = f"  #{ev.sequence:<4} {ev.fingerprint}  {format_timestamp(ev.timestamp)[:19]}"
        line += f"  {ev.submitter}"
        if ev.name:
            line += f"  ({ev.name})"
        print(line)


def cmd_events_verify(args: argparse.Namespace) -> None:
    """Recompute the event hash chain."""
    registry = _get_registry(args)
    n = len(registry.events)
    if registry.events.verify_chain():
        print(f"OK: event chain intact ({n} events)")
        if n:
            print(f"  merkle root: {registry.events.root_hex}")
    else:
        print("FAIL: event chain broken")
        sys.exit(1)


def cmd_events_proof(args: argparse.Namespace) -> None:
    """Print a Merkle inclusion proof for one event."""
    registry = _get_registry(args)
    try:
        proof = registry.events.get_proof(args.sequence)
    except (ValueError, IndexError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    print(json.dumps(proof.to_dict(), indent=2))


def cmd_watch(args: argparse.Namespace) -> None:
    """Print claims as they are accepted (Ctrl-C to stop)."""
    from authorship.api.watcher import ClaimWatcher
    from authorship.clock import format_timestamp
    from authorship.store import ClaimStoreError

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(message)s")
    store = _get_store(args)
    start = args.since
    if start is None:
        try:
            start = len(store.load()["events"])
        except ClaimStoreError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

    def _print(ev) -> None:
        print(
            f"#{ev.sequence} {ev.fingerprint} {format_timestamp(ev.timestamp)} "
            f"{ev.submitter} {ev.name}",
            flush=True,
        )

    watcher = ClaimWatcher(store, _print, poll_interval=args.interval, start_sequence=start)
    watcher.start()
    print(f"Watching {store.path} for new claims...")
    try:
        while watcher.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        watcher.stop()


def cmd_api_start(args: argparse.Namespace) -> None:
    """Start the registry HTTP API."""
    from authorship.api import run_api

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(message)s")
    registry = _get_registry(args)
    try:
        run_api(registry, host=args.host, port=args.port, root=args.root)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def cmd_api_status(args: argparse.Namespace) -> None:
    """Show registry API status."""
    import urllib.error
    import urllib.request

    url = f"http://{args.host}:{args.port}/status"
    try:
        req = urllib.request.Request(url, method="GET")
        with urllib.request.urlopen(req, timeout=5) as resp:
            data = json.loads(resp.read().decode())
    except urllib.error.URLError as e:
        print(f"Error: Cannot reach API at {url}: {e.reason}", file=sys.stderr)
        sys.exit(1)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Authorship registry API — {url}")
    print(f"  healthy: {'yes' if data.get('healthy') else 'NO'}")
    print(f"  claims:  {data.get('claim_count', '?')}")
    print(f"  chain:   {'intact' if data.get('chain_valid') else 'BROKEN'}")
    root = data.get("merkle_root")
    if root:
        print(f"  root:    {root}")


def main(argv: list[str] | None = None) -> None:
    from authorship import API_DEFAULT_HOST, API_DEFAULT_PORT, API_POLL_INTERVAL_SECS, __version__

    parser = argparse.ArgumentParser(
        prog="authorship",
        description="Timestamped, tamper-evident claims of authorship over files.",
    )
    parser.add_argument("--version", action="version", version=f"authorship {__version__}")
    parser.add_argument("--root", help="Registry directory (default ~/.authorship)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    p_fp = sub.add_parser("fingerprint", help="Print file fingerprints")
    p_fp.add_argument("paths", nargs="+", help="Files to fingerprint")

    p_dec = sub.add_parser("decode", help="Show the layout of a fingerprint")
    p_dec.add_argument("fingerprint", help="Base-58 fingerprint")

    p_claim = sub.add_parser("claim", help="Claim authorship of a file")
    _add_target_args(p_claim)
    p_claim.add_argument("--name", default="", help="Author name")
    p_claim.add_argument("--address", required=True, help="Claimant address")
    p_claim.add_argument("--timestamp", type=int, help="Claimed unix time (default: now)")

    p_verify = sub.add_parser("verify", help="Verify a claim matches exactly")
    _add_target_args(p_verify)
    p_verify.add_argument("--timestamp", type=int, required=True, help="Claimed unix time")
    p_verify.add_argument("--address", required=True, help="Claimant address")
    p_verify.add_argument("--name", default="", help="Author name")

    p_lookup = sub.add_parser("lookup", help="Show the claim for a file")
    _add_target_args(p_lookup)
    p_lookup.add_argument("--json", action="store_true", help="Print the record as JSON")

    sub.add_parser("count", help="Number of claims")

    p_events = sub.add_parser("events", help="Claim event log")
    p_events.add_argument("--since", type=int, default=0, help="First sequence to list")
    events_sub = p_events.add_subparsers(dest="events_command")
    events_sub.add_parser("verify", help="Verify the event hash chain")
    p_ep = events_sub.add_parser("proof", help="Merkle proof for an event")
    p_ep.add_argument("sequence", type=int, help="Event sequence number")

    p_watch = sub.add_parser("watch", help="Follow new claims")
    p_watch.add_argument("--interval", type=float, default=API_POLL_INTERVAL_SECS,
                         help="Poll interval in seconds")
    p_watch.add_argument("--since", type=int, help="Replay from this sequence")

    p_api = sub.add_parser("api", help="Registry HTTP API")
    api_sub = p_api.add_subparsers(dest="api_command")
    for name, help_text in (("start", "Start the API server"), ("status", "Show API status")):
        p = api_sub.add_parser(name, help=help_text)
        p.add_argument("--host", default=API_DEFAULT_HOST, help="Bind/connect address")
        p.add_argument("--port", type=int, default=API_DEFAULT_PORT, help="Port")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(message)s")

    if not args.command:
        print("Authorship — timestamped claims of authorship over files")
        print()
        print("Usage:")
        print("  authorship fingerprint file.pdf")
        print("  authorship claim file.pdf --address 0xabc... --name 'Alice'")
        print("  authorship verify file.pdf --timestamp 1700000000 --address 0xabc... --name 'Alice'")
        print("  authorship lookup file.pdf")
        print("  authorship count")
        print("  authorship events [verify|proof N]")
        print("  authorship watch")
        print("  authorship api {start|status}")
        print()
        print("Run 'authorship <command> --help' for details on any command.")
        sys.exit(0)

    if args.command == "events":
        events_commands = {
            None: cmd_events_list,
            "verify": cmd_events_verify,
            "proof": cmd_events_proof,
        }
        events_commands[args.events_command](args)
        return

    if args.command == "api":
        api_commands = {
            "start": cmd_api_start,
            "status": cmd_api_status,
        }
        ac = getattr(args, "api_command", None)
        if not ac:
            print("Usage: authorship api {start|status}")
            sys.exit(0)
        api_commands[ac](args)
        return

    commands = {
        "fingerprint": cmd_fingerprint,
        "decode": cmd_decode,
        "claim": cmd_claim,
        "verify": cmd_verify,
        "lookup": cmd_lookup,
        "count": cmd_count,
        "watch": cmd_watch,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
