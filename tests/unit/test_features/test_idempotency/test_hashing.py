"""Tests for idempotency request fingerprints."""

from __future__ import annotations

from event_relay.features.idempotency.hashing import (
    canonical_body,
    canonical_query,
    compute_request_hash,
)


class TestCanonicalBody:
    def test_json_key_order_and_whitespace_ignored(self) -> None:
        assert canonical_body(b'{ "b": 1, "a": [1, 2] }') == canonical_body(b'{"a":[1,2],"b":1}')

    def test_non_json_kept_verbatim(self) -> None:
        assert canonical_body(b"plain text") == b"plain text"

    def test_empty(self) -> None:
        assert canonical_body(b"") == b""


class TestCanonicalQuery:
    def test_sorted(self) -> None:
        assert canonical_query("b=2&a=1&a=0") == "a=0&a=1&b=2"

    def test_accepts_bytes(self) -> None:
        assert canonical_query(b"z=1&y=") == "y=&z=1"


class TestComputeRequestHash:
    def test_equivalent_json_bodies_match(self) -> None:
        first = compute_request_hash("POST", "/orders", b'{"qty": 1, "sku": "A"}')
        second = compute_request_hash("post", "/orders", b'{"sku":"A","qty":1}')
        assert first == second

    def test_body_change_differs(self) -> None:
        assert compute_request_hash("POST", "/orders", b'{"qty":1}') != compute_request_hash(
            "POST", "/orders", b'{"qty":2}'
        )

    def test_path_and_method_take_part(self) -> None:
        base = compute_request_hash("POST", "/orders", b"{}")
        assert base != compute_request_hash("POST", "/invoices", b"{}")
        assert base != compute_request_hash("PUT", "/orders", b"{}")

    def test_query_only_counts_when_given(self) -> None:
        plain = compute_request_hash("POST", "/orders", b"{}")
        with_query = compute_request_hash("POST", "/orders", b"{}", query_string="a=1")
        reordered = compute_request_hash("POST", "/orders", b"{}", query_string=b"b=2&a=1")

        assert plain != with_query
        assert reordered == compute_request_hash("POST", "/orders", b"{}", query_string="a=1&b=2")

    def test_is_sha256_hex(self) -> None:
        digest = compute_request_hash("POST", "/", b"")
        assert len(digest) == 64
