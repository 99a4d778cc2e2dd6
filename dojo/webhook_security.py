"""
Webhook signature helpers shared by the payment providers
"""

import base64
import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class WebhookSignatureError(Exception):
    """Raised when webhook signature verification fails"""


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256_base64(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload and return base64 encoded"""
    signature = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()
    return base64.b64encode(signature).decode("utf-8")


def verify_square_signature(
    body: bytes, signature: Optional[str], notification_url: str, signature_key: Optional[str]
) -> bool:
    """
    Verify Square webhook signature

    Square generates the signature using: HMAC-SHA256(signature_key, notification_url + request_body)
    and sends it base64 encoded in the x-square-hmacsha256-signature header.
    """
    if not signature_key:
        logger.error("❌ SQUARE_WEBHOOK_SIGNATURE_KEY not configured, rejecting webhook")
        return False

    if not signature:
        logger.warning("🚫 Square webhook missing signature header")
        return False

    message = notification_url.encode("utf-8") + body
    computed = compute_hmac_sha256_base64(signature_key, message)
    is_valid = constant_time_compare(computed, signature)

    if not is_valid:
        logger.warning(f"⚠️ Signature mismatch - Expected: {computed[:20]}..., Got: {signature[:20]}...")

    return is_valid
