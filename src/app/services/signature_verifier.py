"""
Stripe 웹훅 서명 검증

헤더 형식: t=<unix-seconds>,v1=<hex-hmac-sha256>
서명 대상: f"{t}.{raw_body}" (HMAC-SHA256, 소문자 hex)
"""
import hashlib
import hmac
import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from core.config import WebhookConfig
from core.responses import InvalidSignatureException

logger = logging.getLogger(__name__)


def parse_signature_header(header: Optional[str]) -> Tuple[Optional[str], List[str]]:
    """서명 헤더에서 타임스탬프와 v1 서명 목록을 추출"""
    timestamp: Optional[str] = None
    signatures: List[str] = []

    for chunk in (header or "").split(","):
        chunk = chunk.strip()
        if not chunk or "=" not in chunk:
            continue
        key, value = chunk.split("=", 1)
        key = key.strip()
        value = value.strip()
        if key == "t":
            timestamp = value
        elif key == "v1" and value:
            signatures.append(value)

    return timestamp, signatures


def compute_signature(secret: str, timestamp: str, raw: bytes) -> str:
    """HMAC_SHA256(secret, f"{timestamp}.{raw}")"""
    payload = timestamp.encode("utf-8") + b"." + raw
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def build_signature_header(secret: str, raw: bytes, timestamp: Optional[int] = None) -> str:
    """발신 측 헤더 생성 (테스트 및 로컬 재전송용)"""
    ts = str(int(time.time()) if timestamp is None else int(timestamp))
    return f"t={ts},v1={compute_signature(secret, ts, raw)}"


class StripeSignatureVerifier:
    """서명을 검증하고 이벤트 봉투를 파싱한다. 실패하면 InvalidSignatureException"""

    def __init__(self, config: WebhookConfig):
        self.config = config

    def verify(self, raw: bytes, signature: Optional[str], now: Optional[float] = None) -> Dict[str, Any]:
        secret = self.config.signing_secret
        if not secret:
            logger.error("[STRIPE] webhook secret not configured; rejecting event")
            raise InvalidSignatureException("webhook secret not configured")

        if not signature:
            logger.warning("[STRIPE] missing stripe-signature header")
            raise InvalidSignatureException("missing signature header")

        timestamp, candidates = parse_signature_header(signature)
        if not timestamp or not candidates:
            logger.warning("[STRIPE] signature header missing t/v1 component")
            raise InvalidSignatureException("malformed signature header")

        try:
            signed_at = int(timestamp)
        except ValueError:
            logger.warning("[STRIPE] signature timestamp is not an integer: %r", timestamp)
            raise InvalidSignatureException("malformed signature timestamp")

        current = time.time() if now is None else now
        if abs(current - signed_at) > self.config.tolerance_seconds:
            logger.warning(
                "[STRIPE] signature timestamp outside tolerance: t=%s now=%s tolerance=%ss",
                signed_at,
                int(current),
                self.config.tolerance_seconds,
            )
            raise InvalidSignatureException("timestamp outside tolerance")

        expected = compute_signature(secret, timestamp, raw)
        if not any(hmac.compare_digest(expected, candidate) for candidate in candidates):
            logger.error("[STRIPE] signature mismatch")
            raise InvalidSignatureException("signature mismatch")

        try:
            envelope = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise InvalidSignatureException("invalid json")

        if not isinstance(envelope, dict):
            raise InvalidSignatureException("invalid json")

        return envelope
