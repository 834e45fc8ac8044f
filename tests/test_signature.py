"""Tests for webhook signature verification."""

import hashlib
import hmac

import httpx
import pytest

from lut_action.auth import signature
from lut_action.auth.signature import Rejected, Verified

SECRET = "whsec-test"
BODY = b'{"account_id":"acc","interaction_id":"int-1"}'
TS = 1_700_000_000


def _check(headers, body=BODY, now=TS, secret=SECRET):
    sig, ts = signature.headers_from(httpx.Headers(headers))
    return signature.verify(sig, ts, body, secret, now=now)


class TestVerify:

    @pytest.mark.parametrize("scheme", ["v0", "sha256"])
    def test_round_trip(self, scheme):
        result = _check(signature.sign(BODY, SECRET, scheme=scheme, timestamp=TS))
        assert result == Verified(timestamp=TS, scheme=scheme)

    def test_frameio_canonical_form(self):
        digest = hmac.new(SECRET.encode(), f"v0:{TS}:".encode() + BODY, hashlib.sha256).hexdigest()
        result = signature.verify(f"v0={digest}", str(TS), BODY, SECRET, now=TS)
        assert isinstance(result, Verified)

    def test_generic_canonical_form(self):
        digest = hmac.new(SECRET.encode(), f"{TS}.".encode() + BODY, hashlib.sha256).hexdigest()
        result = signature.verify(f"sha256={digest}", str(TS), BODY, SECRET, now=TS)
        assert isinstance(result, Verified)

    def test_299_seconds_old_accepted(self):
        assert isinstance(_check(signature.sign(BODY, SECRET, timestamp=TS), now=TS + 299), Verified)

    @pytest.mark.parametrize("offset", [301, -301])
    def test_301_seconds_skew_rejected(self, offset):
        result = _check(signature.sign(BODY, SECRET, timestamp=TS), now=TS + offset)
        assert isinstance(result, Rejected)
        assert "window" in result.reason

    def test_tampered_body(self):
        result = _check(signature.sign(BODY, SECRET, timestamp=TS), body=BODY + b" ")
        assert result == Rejected("Invalid signature")

    def test_wrong_secret(self):
        result = _check(signature.sign(BODY, "other", timestamp=TS))
        assert isinstance(result, Rejected)

    def test_missing_headers(self):
        assert isinstance(signature.verify(None, str(TS), BODY, SECRET, now=TS), Rejected)
        assert isinstance(signature.verify("v0=abc", None, BODY, SECRET, now=TS), Rejected)

    def test_non_integer_timestamp(self):
        result = signature.verify("v0=abc", "yesterday", BODY, SECRET, now=TS)
        assert result == Rejected("Invalid timestamp header")

    @pytest.mark.parametrize("header", ["md5=abc", "abc"])
    def test_unknown_scheme(self, header):
        result = signature.verify(header, str(TS), BODY, SECRET, now=TS)
        assert isinstance(result, Rejected)
        assert "scheme" in result.reason


class TestHeaders:

    def test_frameio_headers_preferred(self):
        headers = httpx.Headers({
            "x-frameio-signature": "v0=aaa",
            "x-frameio-request-timestamp": "1",
            "x-archon-signature": "sha256=bbb",
            "x-archon-timestamp": "2",
        })
        assert signature.headers_from(headers) == ("v0=aaa", "1")

    def test_generic_fallback(self):
        headers = httpx.Headers({"X-Archon-Signature": "sha256=bbb", "X-Archon-Timestamp": "2"})
        assert signature.headers_from(headers) == ("sha256=bbb", "2")
