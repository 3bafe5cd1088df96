"""Signed verification tokens (QR content) and the 6-digit manual fallback code.

Token wire format: URL-safe base64 of {"data": payload, "signature": sig}, where
sig = sha256(json(payload, sorted keys) + secret). Verification reports one of
three distinct failure kinds so the caller can offer the manual code on
tamper/expiry but not on garbage input.
"""
import base64
import binascii
import hashlib
import hmac
import json
import logging
import time
import uuid

from app.config import get_settings

log = logging.getLogger("uvicorn.error")

FAILURE_MALFORMED = "malformed"
FAILURE_TAMPERED = "tampered"
FAILURE_EXPIRED = "expired"

# Failure kinds for which the manual code is offered instead
MANUAL_CODE_FALLBACK_KINDS = frozenset({FAILURE_TAMPERED, FAILURE_EXPIRED})

PAYLOAD_FIELDS = ("jti", "ride_session_id", "origin_label", "destination_label", "fare_amount", "iat", "exp")


def _secret() -> str:
    return get_settings().verification_token_secret


def crypto_available() -> bool:
    return "sha256" in hashlib.algorithms_available


def _canonical(payload: dict) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def sign_payload(payload: dict) -> str:
    return hashlib.sha256((_canonical(payload) + _secret()).encode("utf-8")).hexdigest()


def build_payload(
    ride_session_id: int,
    origin_label: str,
    destination_label: str,
    fare_amount: float,
    now: float | None = None,
) -> dict:
    issued_at = int(now if now is not None else time.time())
    window = get_settings().verification_token_expire_minutes * 60
    return {
        "jti": str(uuid.uuid4()),
        "ride_session_id": ride_session_id,
        "origin_label": origin_label,
        "destination_label": destination_label,
        "fare_amount": fare_amount,
        "iat": issued_at,
        "exp": issued_at + window,
    }


def encode_token(payload: dict) -> str:
    envelope = {"data": payload, "signature": sign_payload(payload)}
    raw = json.dumps(envelope, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def issue_token(
    ride_session_id: int,
    origin_label: str,
    destination_label: str,
    fare_amount: float,
    now: float | None = None,
) -> tuple[str, dict]:
    """Returns (encoded_token, payload)."""
    payload = build_payload(ride_session_id, origin_label, destination_label, fare_amount, now=now)
    return encode_token(payload), payload


def _decode_envelope(encoded: str) -> tuple[dict, str] | None:
    try:
        text = (encoded or "").strip()
        raw = base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))
        envelope = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError):
        return None
    if not isinstance(envelope, dict):
        return None
    payload = envelope.get("data")
    signature = envelope.get("signature")
    if not isinstance(payload, dict) or not isinstance(signature, str):
        return None
    if any(field not in payload for field in PAYLOAD_FIELDS):
        return None
    if not isinstance(payload.get("exp"), int) or not isinstance(payload.get("iat"), int):
        return None
    return payload, signature


def verify_token_with_error(encoded: str, now: float | None = None) -> tuple[dict | None, str | None]:
    """Decode and check a token; returns (payload, failure_kind)."""
    decoded = _decode_envelope(encoded)
    if decoded is None:
        return None, FAILURE_MALFORMED
    payload, signature = decoded
    if not hmac.compare_digest(sign_payload(payload), signature):
        log.warning("[Verification] signature mismatch for jti=%s", payload.get("jti"))
        return None, FAILURE_TAMPERED
    current = int(now if now is not None else time.time())
    if current >= payload["exp"]:
        return None, FAILURE_EXPIRED
    return payload, None


def _simple_hash_code(value: str) -> str:
    """Order-dependent 32-bit string hash; only for deployments without SHA-256."""
    h = 0
    for ch in value:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return str(abs(h) % 1_000_000).zfill(6)


def manual_code(ride_session_id: int | str) -> str:
    """Deterministic 6-digit code for a ride: same id and secret, same code."""
    value = str(ride_session_id)
    if not crypto_available():
        log.warning("[Verification] sha256 unavailable, using simple manual code hash")
        return _simple_hash_code(value)
    digest = hashlib.sha256((value + _secret()).encode("utf-8")).hexdigest()
    return str(int(digest[:8], 16) % 1_000_000).zfill(6)


def verify_manual_code(ride_session_id: int | str, code: str) -> bool:
    return hmac.compare_digest(manual_code(ride_session_id), (code or "").strip())
