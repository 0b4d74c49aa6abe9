import base64, hashlib, hmac
from typing import Optional

from flask import request, abort

from .logger import warn


def webhook_signature(secret: str, raw: bytes) -> str:
    digest = hmac.new(secret.encode(), raw, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_webhook_hmac(secret: Optional[str]) -> bytes:
    raw = request.get_data()
    their_hmac = request.headers.get("X-Shopify-Hmac-Sha256", "")
    if not secret or not their_hmac:
        warn("[webhook] rejected: missing secret or signature header")
        abort(401)
    if not hmac.compare_digest(webhook_signature(secret, raw), their_hmac):
        warn("[webhook] rejected: invalid HMAC signature")
        abort(401)
    return raw
