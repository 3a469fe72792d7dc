import base64
import hashlib
import secrets

from ycmlink.errors import NoActiveSecret

SECRET_SIZE = 32


class SecretStore:
    """Holds the HMAC secret shared with one daemon session."""

    def __init__(self):
        self._secret: bytearray | None = None

    def __repr__(self) -> str:
        return f"SecretStore(active={self.active})"

    @property
    def active(self) -> bool:
        return self._secret is not None

    def generate(self) -> bytes:
        """Replace the held secret with SHA-256 of a fresh random seed."""
        self.clear()
        seed = secrets.token_bytes(SECRET_SIZE)
        self._secret = bytearray(hashlib.sha256(seed).digest())
        return bytes(self._secret)

    def current(self) -> bytes:
        if self._secret is None:
            raise NoActiveSecret("No active session secret")
        return bytes(self._secret)

    def encoded(self) -> str:
        """Base64 form of the secret, as the daemon reads it from its options."""
        return base64.b64encode(self.current()).decode("ascii")

    def clear(self) -> None:
        if self._secret is None:
            return
        for i in range(len(self._secret)):
            self._secret[i] = 0
        self._secret = None
