"""HMAC-SHA256 signing of request and response bodies."""

import base64
import binascii
import hashlib
import hmac

from ycmlink.errors import HmacMismatch, SigningFailure

BLOCK_SIZE = 64
DIGEST_SIZE = 32
HMAC_HEADER = "X-Ycm-Hmac"

_OPAD = bytes(0x5C for _ in range(BLOCK_SIZE))
_IPAD = bytes(0x36 for _ in range(BLOCK_SIZE))


def _xor(left: bytes, right: bytes) -> bytes:
    return bytes(a ^ b for a, b in zip(left, right))


def sign(key: bytes, message: bytes) -> bytes:
    """Return the raw 32-byte HMAC-SHA256 of message under key."""
    if not isinstance(key, (bytes, bytearray)) or not isinstance(
        message, (bytes, bytearray)
    ):
        raise SigningFailure("HMAC key and message must be bytes")

    key = bytes(key)
    if len(key) > BLOCK_SIZE:
        key = hashlib.sha256(key).digest()
    key = key.ljust(BLOCK_SIZE, b"\x00")

    inner = hashlib.sha256(_xor(key, _IPAD) + bytes(message)).digest()
    return hashlib.sha256(_xor(key, _OPAD) + inner).digest()


def encode_signature(digest: bytes) -> str:
    return base64.b64encode(digest).decode("ascii")


def decode_signature(value: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise HmacMismatch("Signature header is not valid base64")


def verify(key: bytes, message: bytes, signature: str | None) -> None:
    """Check a base64 signature header against message. Raises HmacMismatch."""
    if not signature:
        raise HmacMismatch(f"Missing {HMAC_HEADER} header")
    expected = sign(key, message)
    if not hmac.compare_digest(expected, decode_signature(signature)):
        raise HmacMismatch("Signature does not match body")
