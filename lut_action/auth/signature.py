"""HMAC-SHA256 verification of webhook triggers.

Two signing schemes are accepted, selected by the prefix of the signature
header value:

- ``sha256=<hex>`` signs ``"{timestamp}.{body}"``
- ``v0=<hex>`` (Frame.io) signs ``"v0:{timestamp}:{body}"``

A request is accepted only when its timestamp lies within the allowed skew of
the local clock and the recomputed digest matches in constant time.
"""

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple, Union

logger = logging.getLogger(__name__)

MAX_AGE_SECONDS = 300

FRAMEIO_SIGNATURE_HEADER = "X-Frameio-Signature"
FRAMEIO_TIMESTAMP_HEADER = "X-Frameio-Request-Timestamp"
GENERIC_SIGNATURE_HEADER = "X-Archon-Signature"
GENERIC_TIMESTAMP_HEADER = "X-Archon-Timestamp"


@dataclass(frozen=True)
class GenericScheme:
    tag: str = "sha256"

    def canonicalize(self, timestamp: int, body: bytes) -> bytes:
        return f"{timestamp}.".encode() + body


@dataclass(frozen=True)
class FrameioScheme:
    tag: str = "v0"

    def canonicalize(self, timestamp: int, body: bytes) -> bytes:
        return f"v0:{timestamp}:".encode() + body


SignatureScheme = Union[GenericScheme, FrameioScheme]

SCHEMES: Dict[str, SignatureScheme] = {
    scheme.tag: scheme for scheme in (GenericScheme(), FrameioScheme())
}


@dataclass(frozen=True)
class Verified:
    timestamp: int
    scheme: str


@dataclass(frozen=True)
class Rejected:
    reason: str


VerificationResult = Union[Verified, Rejected]


def _digest(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify(
    signature_header: Optional[str],
    timestamp_header: Optional[str],
    raw_body: bytes,
    secret: str,
    now: Optional[float] = None,
    max_age: int = MAX_AGE_SECONDS,
) -> VerificationResult:
    """Check a signed request. Never raises; failures come back as Rejected."""
    if not signature_header or not timestamp_header:
        return Rejected("Missing signature or timestamp header")

    try:
        timestamp = int(timestamp_header.strip())
    except ValueError:
        return Rejected("Invalid timestamp header")

    current = int(now if now is not None else time.time())
    skew = abs(current - timestamp)
    if skew > max_age:
        logger.warning("Rejected signature: timestamp skew %ds exceeds %ds", skew, max_age)
        return Rejected("Request timestamp outside allowed window")

    tag, sep, provided = signature_header.strip().partition("=")
    scheme = SCHEMES.get(tag)
    if not sep or scheme is None:
        return Rejected(f"Unsupported signature scheme: {tag!r}")

    expected = _digest(secret, scheme.canonicalize(timestamp, raw_body))
    if not hmac.compare_digest(expected.encode(), provided.encode()):
        logger.warning(
            "Rejected signature: digest mismatch (provided %s...)", provided[:8]
        )
        return Rejected("Invalid signature")

    return Verified(timestamp=timestamp, scheme=scheme.tag)


def headers_from(headers: Mapping[str, str]) -> Tuple[Optional[str], Optional[str]]:
    """Pick (signature, timestamp), preferring the Frame.io header pair.

    ``headers`` must do case-insensitive lookup, as Starlette's Headers does.
    """
    signature = headers.get(FRAMEIO_SIGNATURE_HEADER) or headers.get(GENERIC_SIGNATURE_HEADER)
    timestamp = headers.get(FRAMEIO_TIMESTAMP_HEADER) or headers.get(GENERIC_TIMESTAMP_HEADER)
    return signature, timestamp


def sign(
    body: bytes,
    secret: str,
    scheme: str = "v0",
    timestamp: Optional[int] = None,
) -> Dict[str, str]:
    """Produce headers that ``verify`` accepts for ``body``."""
    ts = int(timestamp if timestamp is not None else time.time())
    chosen = SCHEMES[scheme]
    signature = f"{chosen.tag}={_digest(secret, chosen.canonicalize(ts, body))}"
    if isinstance(chosen, FrameioScheme):
        return {FRAMEIO_SIGNATURE_HEADER: signature, FRAMEIO_TIMESTAMP_HEADER: str(ts)}
    return {GENERIC_SIGNATURE_HEADER: signature, GENERIC_TIMESTAMP_HEADER: str(ts)}
