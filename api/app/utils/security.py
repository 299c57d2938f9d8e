"""Security utilities for authentication and webhook verification."""

import base64
import binascii
import hashlib
import hmac

from jose import JWTError, jwt
from pydantic import BaseModel

from app.config import settings
from app.exceptions import WebhookSignatureError

SIGNATURE_PREFIX = "sha256="


class TokenData(BaseModel):
    """Schema for decoded JWT token data."""

    user_id: int
    username: str | None = None
    role: str | None = None


def decode_access_token(token: str) -> TokenData | None:
    """
    Decode and verify a JWT access token.

    Tokens are issued by the identity service; ``sub`` carries the numeric
    user id.

    Args:
        token: The JWT token string to decode

    Returns:
        TokenData with user information, or None if invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
        )
    except JWTError:
        return None

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        return None

    return TokenData(
        user_id=user_id,
        username=payload.get("username"),
        role=payload.get("role"),
    )


def compute_webhook_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of a webhook body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_webhook_signature(body: bytes, signature: str | None, secret: str) -> None:
    """
    Check the ``X-Grafana-Signature`` header of a webhook delivery.

    Accepts ``sha256=<hex>``, bare hex, or a base64-encoded digest. Nothing is
    checked when no secret is configured.

    Raises:
        WebhookSignatureError: If a secret is configured and the signature is
            missing or does not match
    """
    if not secret:
        return
    if not signature:
        raise WebhookSignatureError("Missing webhook signature")

    signature = signature.strip()
    if signature.lower().startswith(SIGNATURE_PREFIX):
        signature = signature[len(SIGNATURE_PREFIX):]

    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()

    candidates = []
    try:
        candidates.append(bytes.fromhex(signature))
    except ValueError:
        pass
    try:
        candidates.append(base64.b64decode(signature, validate=True))
    except (binascii.Error, ValueError):
        pass

    if not any(hmac.compare_digest(candidate, expected) for candidate in candidates):
        raise WebhookSignatureError("Invalid webhook signature")
