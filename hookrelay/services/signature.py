"""HMAC-SHA256 signing for outbound webhook payloads."""
import hashlib
import hmac
import secrets
import string
import time
from typing import Callable, Dict, Optional

from hookrelay.core.config import settings

SIGNATURE_HEADER = "X-Webhook-Signature"


class SignatureGenerator:
    """
    Builds and verifies ``t=<unix>,v1=<hex>`` signature headers.

    The signed material is ``"{timestamp}.{payload}"``, never the bare
    payload, so a captured header cannot be replayed outside the tolerance
    window.
    """

    algorithm = "sha256"
    version = "v1"

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        """
        Args:
            clock: Returns the current unix time; defaults to ``time.time``
        """
        self.clock = clock or time.time

    def sign(self, payload: str, secret: str) -> str:
        """Lowercase hex HMAC-SHA256 of ``payload`` keyed by ``secret``."""
        return hmac.new(
            secret.encode("utf-8"),
            payload.encode("utf-8"),
            hashlib.sha256
        ).hexdigest()

    def header(self, payload: str, secret: str) -> str:
        timestamp = int(self.clock())
        signature = self.sign(f"{timestamp}.{payload}", secret)
        return f"t={timestamp},{self.version}={signature}"

    def verify(
        self,
        payload: str,
        secret: str,
        header: Optional[str],
        tolerance: int = settings.signature_tolerance_seconds
    ) -> bool:
        """
        Verify a signature header against a payload.

        Args:
            payload: Raw payload exactly as received
            secret: Shared secret
            header: ``X-Webhook-Signature`` value
            tolerance: Maximum clock skew in seconds, in either direction

        Returns:
            True if the header is well formed, fresh and matches
        """
        parts = self._parse(header or "")
        if "t" not in parts or self.version not in parts:
            return False

        try:
            timestamp = int(parts["t"])
        except ValueError:
            return False

        if abs(int(self.clock()) - timestamp) > tolerance:
            return False

        expected = self.sign(f"{timestamp}.{payload}", secret)
        return hmac.compare_digest(
            expected.encode("utf-8"),
            parts[self.version].encode("utf-8", "replace")
        )

    @staticmethod
    def _parse(header: str) -> Dict[str, str]:
        parts = {}
        for token in header.split(","):
            key, sep, value = token.partition("=")
            if sep:
                parts[key.strip()] = value.strip()
        return parts

    @staticmethod
    def generate_secret(length: int = 32) -> str:
        alphabet = string.ascii_letters + string.digits
        return "".join(secrets.choice(alphabet) for _ in range(length))
