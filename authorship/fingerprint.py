"""
Content fingerprints — SHA-256 multihashes with a base-58 text form.

Layout (34 bytes):
    0x12        multihash code for SHA2-256
    0x20        digest length (32)
    <32 bytes>  SHA-256 of the exact file content

Text form is base-58 (Bitcoin alphabet) over all 34 bytes, the same
identifier IPFS prints for a raw SHA-256 multihash ("Qm..."). The registry
keys claims by the 32 trailing digest bytes.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from authorship import DIGEST_SIZE, FINGERPRINT_SIZE, MULTIHASH_SHA2_256

MALFORMED_IDENTIFIER = "MALFORMED_IDENTIFIER"

_B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_B58_INDEX = {c: i for i, c in enumerate(_B58_ALPHABET)}

_PREFIX = bytes([MULTIHASH_SHA2_256, DIGEST_SIZE])

_CHUNK_SIZE = 64 * 1024


class MalformedIdentifierError(ValueError):
    """Text or binary identifier does not decode to a SHA2-256 multihash."""

    code = MALFORMED_IDENTIFIER


def b58encode(data: bytes) -> str:
    """Base-58 encode. Each leading zero byte becomes a leading '1'."""
    n_pad = len(data) - len(data.lstrip(b"\x00"))
    num = int.from_bytes(data, "big")
    out = []
    while num > 0:
        num, rem = divmod(num, 58)
        out.append(_B58_ALPHABET[rem])
    out.extend("1" * n_pad)
    return "".join(reversed(out))


def b58decode(text: str) -> bytes:
    """Base-58 decode. Raises MalformedIdentifierError on foreign characters."""
    if not isinstance(text, str):
        raise MalformedIdentifierError(
            f"Identifier must be a string, got {type(text).__name__}"
        )
    num = 0
    for ch in text:
        try:
            num = num * 58 + _B58_INDEX[ch]
        except KeyError:
            raise MalformedIdentifierError(
                f"Invalid base-58 character {ch!r} in {text!r}"
            ) from None
    n_pad = len(text) - len(text.lstrip("1"))
    body = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    return b"\x00" * n_pad + body


def _check_layout(raw: bytes) -> None:
    if len(raw) != FINGERPRINT_SIZE:
        raise MalformedIdentifierError(
            f"Fingerprint must be {FINGERPRINT_SIZE} bytes, got {len(raw)}"
        )
    if raw[0] != MULTIHASH_SHA2_256:
        raise MalformedIdentifierError(
            f"Unsupported hash tag 0x{raw[0]:02x} (expected 0x{MULTIHASH_SHA2_256:02x})"
        )
    if raw[1] != DIGEST_SIZE:
        raise MalformedIdentifierError(
            f"Unexpected digest length 0x{raw[1]:02x} (expected 0x{DIGEST_SIZE:02x})"
        )


@dataclass(frozen=True)
class Fingerprint:
    """A validated 34-byte SHA2-256 multihash.

    Usage:
        fp = compute_fingerprint(b"hello")
        fp.text    # 'QmRN6wdp1S2A5EtjW9A3M1vKSBuQQGcgvuhoMUoEz4iiT5'
        Fingerprint.from_text(fp.text) == fp
    """

    multihash: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.multihash, (bytes, bytearray)):
            raise MalformedIdentifierError(
                f"Fingerprint must be bytes, got {type(self.multihash).__name__}"
            )
        object.__setattr__(self, "multihash", bytes(self.multihash))
        _check_layout(self.multihash)

    @classmethod
    def from_text(cls, text: str) -> Fingerprint:
        return decode_from_text(text)

    @property
    def digest(self) -> bytes:
        return self.multihash[2:]

    @property
    def hex_digest(self) -> str:
        return self.digest.hex()

    @property
    def text(self) -> str:
        return encode_to_text(self)

    def __str__(self) -> str:
        return self.text


def compute_fingerprint(data: bytes) -> Fingerprint:
    """Fingerprint the exact bytes of a file. Empty input is valid."""
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError(f"Expected bytes, got {type(data).__name__}")
    return Fingerprint(_PREFIX + hashlib.sha256(data).digest())


def fingerprint_stream(stream: BinaryIO, chunk_size: int = _CHUNK_SIZE) -> Fingerprint:
    """Fingerprint a binary stream without loading it into memory."""
    h = hashlib.sha256()
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        h.update(chunk)
    return Fingerprint(_PREFIX + h.digest())


def fingerprint_file(path: str | Path) -> Fingerprint:
    with open(path, "rb") as f:
        return fingerprint_stream(f)


def encode_to_text(fingerprint: Fingerprint) -> str:
    return b58encode(fingerprint.multihash)


def decode_from_text(text: str) -> Fingerprint:
    """Parse the base-58 text form back into a Fingerprint.

    Raises MalformedIdentifierError if the text has characters outside the
    base-58 alphabet or does not decode to a 34-byte 0x12/0x20 multihash.
    """
    if not text:
        raise MalformedIdentifierError("Empty identifier")
    return Fingerprint(b58decode(text))


def to_storage_key(fingerprint: Fingerprint) -> bytes:
    """Return the 32-byte digest used as the registry key.

    The constant 0x12/0x20 prefix is checked before it is stripped.
    """
    if not isinstance(fingerprint, Fingerprint):
        raise TypeError(f"Expected Fingerprint, got {type(fingerprint).__name__}")
    _check_layout(fingerprint.multihash)
    return fingerprint.digest


def from_storage_key(key: bytes) -> Fingerprint:
    """Rebuild a Fingerprint from a 32-byte storage key."""
    if len(key) != DIGEST_SIZE:
        raise MalformedIdentifierError(
            f"Storage key must be {DIGEST_SIZE} bytes, got {len(key)}"
        )
    return Fingerprint(_PREFIX + bytes(key))
