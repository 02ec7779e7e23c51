"""Tests for webhook payload signing."""

from __future__ import annotations

import hashlib
import hmac
import json

from event_relay.features.webhooks.signing import (
    build_envelope,
    generate_secret,
    sign,
    verify_signature,
)


class TestSign:
    def test_matches_hmac_over_timestamp_dot_body(self) -> None:
        secret = "s" * 32
        timestamp = "2026-01-01T12:00:00.000Z"
        body = '{"data":{"id":1},"event":"wo.created"}'

        expected = hmac.new(
            secret.encode(), f"{timestamp}.{body}".encode(), hashlib.sha256
        ).hexdigest()

        assert sign(secret, timestamp, body) == expected

    def test_is_64_lowercase_hex(self) -> None:
        signature = sign("secret-secret-secret", "t", "{}")
        assert len(signature) == 64
        assert signature == signature.lower()
        int(signature, 16)

    def test_different_timestamp_changes_signature(self) -> None:
        body = '{"event":"x"}'
        assert sign("k" * 20, "t1", body) != sign("k" * 20, "t2", body)

    def test_different_secret_changes_signature(self) -> None:
        assert sign("a" * 20, "t", "{}") != sign("b" * 20, "t", "{}")


class TestVerifySignature:
    def test_accepts_valid_signature(self) -> None:
        signature = sign("k" * 20, "t", '{"a":1}')
        assert verify_signature("k" * 20, "t", '{"a":1}', signature)

    def test_accepts_bytes_payload(self) -> None:
        signature = sign("k" * 20, "t", '{"a":1}')
        assert verify_signature("k" * 20, "t", b'{"a":1}', signature)

    def test_rejects_tampered_body(self) -> None:
        signature = sign("k" * 20, "t", '{"a":1}')
        assert not verify_signature("k" * 20, "t", '{"a":2}', signature)


class TestGenerateSecret:
    def test_is_64_hex_chars(self) -> None:
        secret = generate_secret()
        assert len(secret) == 64
        int(secret, 16)

    def test_is_random(self) -> None:
        assert generate_secret() != generate_secret()


class TestBuildEnvelope:
    def test_wraps_event_and_data(self) -> None:
        body = build_envelope("wo.created", {"id": 7})
        assert json.loads(body) == {"event": "wo.created", "data": {"id": 7}}

    def test_is_canonical(self) -> None:
        assert build_envelope("e", {"b": 1, "a": 2}) == '{"data":{"a":2,"b":1},"event":"e"}'
