"""Shopify signature checks for webhooks and the storefront widget."""

import base64
import hashlib
import hmac


def verify_webhook_hmac(secret: str, body: bytes, signature: str | None) -> bool:
    """Check ``X-Shopify-Hmac-Sha256``: base64 HMAC-SHA256 of the raw body."""
    if not secret or not signature:
        return False
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode()
    return hmac.compare_digest(expected.encode(), signature.encode())


def widget_signature_payload(params: dict[str, str]) -> str:
    """``key=value`` pairs sorted by key and joined with ``&``."""
    return "&".join(f"{key}={params[key]}" for key in sorted(params))


def verify_widget_signature(secret: str, params: dict[str, str], signature: str | None) -> bool:
    """Check a widget request signed with hex HMAC-SHA256 over its sorted params."""
    if not secret or not signature:
        return False
    expected = hmac.new(
        secret.encode(), widget_signature_payload(params).encode(), hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(expected.encode(), signature.encode())
