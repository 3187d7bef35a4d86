"""Tests for webhook body signatures."""

from app.core.signature import compute_signature, extract_signature, verify_signature

SECRET = "webhook-secret"
BODY = b'{"event":"message","session":"default","payload":{}}'


def test_valid_signature():
    signature = compute_signature(SECRET, BODY)
    assert verify_signature(SECRET, BODY, {"X-Webhook-Signature": signature})


def test_prefixed_uppercase_signature():
    signature = compute_signature(SECRET, BODY).upper()
    assert verify_signature(SECRET, BODY, {"X-Hub-Signature-256": f"sha256={signature}"})


def test_alternate_headers():
    signature = compute_signature(SECRET, BODY)
    assert verify_signature(SECRET, BODY, {"x-signature": signature})
    assert verify_signature(SECRET, BODY, {"X-WAHA-Signature": signature})


def test_tampered_body():
    signature = compute_signature(SECRET, BODY)
    assert not verify_signature(SECRET, BODY + b" ", {"X-Webhook-Signature": signature})


def test_wrong_secret():
    signature = compute_signature("other-secret", BODY)
    assert not verify_signature(SECRET, BODY, {"X-Webhook-Signature": signature})


def test_missing_signature():
    assert extract_signature({"Content-Type": "application/json"}) is None
    assert not verify_signature(SECRET, BODY, {})


def test_non_ascii_signature_is_rejected():
    assert not verify_signature(SECRET, BODY, {"x-signature": "café"})
    assert not verify_signature(SECRET, BODY, {"X-Webhook-Signature": "sha256=ünïcode"})
