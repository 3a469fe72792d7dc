import base64
import hashlib
import hmac

import pytest

from ycmlink.errors import HmacMismatch, SigningFailure
from ycmlink.signing import (
    BLOCK_SIZE,
    decode_signature,
    encode_signature,
    sign,
    verify,
)

# RFC 4231 HMAC-SHA256 test cases
RFC4231_VECTORS = [
    pytest.param(
        b"\x0b" * 20,
        b"Hi There",
        "b0344c61d8db38535ca8afceaf0bf12b881dc200c9833da726e9376c2e32cff7",
        id="case1-short-key",
    ),
    pytest.param(
        b"Jefe",
        b"what do ya want for nothing?",
        "5bdcc146bf60754e6a042426089575c75a003f089d2739839dec58b964ec3843",
        id="case2-tiny-key",
    ),
    pytest.param(
        b"\xaa" * 20,
        b"\xdd" * 50,
        "773ea91e36800e46854db8ebd09181a72959098b3ef8c122d9635514ced565fe",
        id="case3-binary-data",
    ),
    pytest.param(
        b"\xaa" * 131,
        b"Test Using Larger Than Block-Size Key - Hash Key First",
        "60e431591ee0b67f0d8a26aacbf5b77f8e0bc6213728c5140546040f0ee37f54",
        id="case6-long-key",
    ),
    pytest.param(
        b"\xaa" * 131,
        b"This is a test using a larger than block-size key and a larger "
        b"than block-size data. The key needs to be hashed before being "
        b"used by the HMAC algorithm.",
        "9b09ffa71b942fcb27635fbcd5b0e944bfdc63644f0713938a7f51535c3a35e2",
        id="case7-long-key-long-data",
    ),
]


class TestSign:
    @pytest.mark.parametrize("key,message,expected", RFC4231_VECTORS)
    def test_rfc4231_vectors(self, key, message, expected):
        assert sign(key, message).hex() == expected

    def test_block_size_key_matches_stdlib(self):
        key = bytes(range(BLOCK_SIZE))
        message = b'{"filepath": "/tmp/a.cpp"}'
        assert len(key) == BLOCK_SIZE
        assert sign(key, message) == hmac.new(key, message, hashlib.sha256).digest()

    def test_empty_message(self):
        key = b"k" * 32
        assert sign(key, b"") == hmac.new(key, b"", hashlib.sha256).digest()

    def test_output_is_32_bytes(self):
        assert len(sign(b"key", b"x" * 1000)) == 32

    def test_accepts_bytearray_key(self):
        key = bytearray(b"secret")
        assert sign(key, b"body") == sign(b"secret", b"body")

    def test_rejects_text_key(self):
        with pytest.raises(SigningFailure):
            sign("secret", b"body")

    def test_rejects_text_message(self):
        with pytest.raises(SigningFailure):
            sign(b"secret", "body")


class TestSignatureHeader:
    def test_encode_is_base64_of_digest(self):
        digest = sign(b"key", b"body")
        assert base64.b64decode(encode_signature(digest)) == digest

    def test_decode_rejects_garbage(self):
        with pytest.raises(HmacMismatch, match="base64"):
            decode_signature("not base64!!")

    def test_verify_accepts_matching_signature(self):
        header = encode_signature(sign(b"key", b"body"))
        verify(b"key", b"body", header)

    def test_verify_rejects_tampered_body(self):
        header = encode_signature(sign(b"key", b"body"))
        with pytest.raises(HmacMismatch, match="does not match"):
            verify(b"key", b"b0dy", header)

    def test_verify_rejects_wrong_key(self):
        header = encode_signature(sign(b"other", b"body"))
        with pytest.raises(HmacMismatch):
            verify(b"key", b"body", header)

    def test_verify_rejects_missing_header(self):
        with pytest.raises(HmacMismatch, match="Missing"):
            verify(b"key", b"body", None)
