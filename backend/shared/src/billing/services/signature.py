"""HMAC-SHA256 signatures for gateway redirects and webhook bodies."""

import hashlib
import hmac


def _matches(expected: str, supplied: str) -> bool:
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8", "replace"))


def compute_payment_signature(order_id: str, payment_id: str, secret: str) -> str:
    """Hex HMAC-SHA256 of ``order_id|payment_id`` keyed with ``secret``."""
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(
    order_id: str, payment_id: str, signature: str, secret: str
) -> bool:
    """Check a gateway redirect signature.

    Malformed input (missing or non-string fields) is not valid; this
    never raises.

    Args:
        order_id: Gateway order ID
        payment_id: Gateway payment ID
        signature: Hex signature supplied by the client
        secret: Gateway key secret

    Returns:
        True if the signature matches
    """
    if not all(isinstance(v, str) and v for v in (order_id, payment_id, signature, secret)):
        return False
    expected = compute_payment_signature(order_id, payment_id, secret)
    return _matches(expected, signature)


def compute_webhook_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of a raw webhook body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_webhook_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """Check a webhook body signature; never raises."""
    if not signature or not isinstance(body, (bytes, bytearray)) or not secret:
        return False
    expected = compute_webhook_signature(bytes(body), secret)
    return _matches(expected, signature)
