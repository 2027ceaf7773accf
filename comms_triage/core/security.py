"""Security utilities: OAuth state binding, webhook verification, token encryption."""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import time

from cryptography.fernet import Fernet, InvalidToken

from .config import get_settings
from .errors import AuthenticationFailure, InvalidOAuthState

logger = logging.getLogger(__name__)

SIGNATURE_VERSION = "v0"


# =============================================================================
# OAUTH STATE
# =============================================================================


def encode_oauth_state(user_id: str) -> str:
    """Encode the initiating user into the OAuth ``state`` parameter.

    This is reversible routing data, not a capability: anyone holding the
    callback URL can read it. The provider-issued ``code`` is what
    authorizes the exchange.
    """
    raw = json.dumps({"user_id": user_id}).encode()
    return base64.urlsafe_b64encode(raw).decode()


def decode_oauth_state(state: str | None) -> str:
    """Return the ``user_id`` carried by an OAuth ``state`` parameter."""
    if not state:
        raise InvalidOAuthState("Missing state parameter")
    try:
        padded = state + "=" * (-len(state) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode()))
    except (binascii.Error, ValueError) as e:
        raise InvalidOAuthState("Invalid state parameter") from e

    user_id = payload.get("user_id") if isinstance(payload, dict) else None
    if not user_id or not isinstance(user_id, str):
        raise InvalidOAuthState("State parameter does not carry a user_id")
    return user_id


# =============================================================================
# WEBHOOK SIGNATURES
# =============================================================================


def compute_webhook_signature(signing_secret: str, timestamp: str, body: bytes) -> str:
    """Signature over ``"v0:{timestamp}:{raw body}"`` (Slack request signing)."""
    basestring = f"{SIGNATURE_VERSION}:{timestamp}:".encode() + body
    digest = hmac.new(signing_secret.encode(), basestring, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def verify_webhook_signature(
    body: bytes,
    timestamp: str | None,
    signature: str | None,
    signing_secret: str | None,
    tolerance_seconds: int | None = None,
    now: float | None = None,
) -> bool:
    """
    Verify an inbound webhook using HMAC-SHA256.

    Returns False only when verification was skipped because no signing
    secret is configured; raises ``AuthenticationFailure`` on rejection.

    See: https://api.slack.com/authentication/verifying-requests-from-slack
    """
    settings = get_settings()

    if not signing_secret:
        if settings.environment == "production":
            logger.error("Webhook signing secret not configured in production - rejecting request")
            raise AuthenticationFailure("Signing secret not configured")
        logger.warning("Webhook signing secret not configured - skipping signature verification")
        return False

    if not timestamp or not signature:
        raise AuthenticationFailure("Missing signature headers")

    # Check timestamp to prevent replay attacks
    tolerance = tolerance_seconds if tolerance_seconds is not None else settings.signature_tolerance_seconds
    try:
        request_timestamp = int(timestamp)
    except ValueError as e:
        raise AuthenticationFailure("Invalid request timestamp") from e

    current = time.time() if now is None else now
    if abs(current - request_timestamp) > tolerance:
        logger.warning("Webhook request timestamp too old")
        raise AuthenticationFailure("Stale request timestamp")

    expected = compute_webhook_signature(signing_secret, timestamp, body)
    if not hmac.compare_digest(expected.encode(), signature.encode()):
        logger.warning("Invalid webhook signature")
        raise AuthenticationFailure("Invalid signature")

    return True


def verify_push_token(provided: str | None, expected: str | None) -> bool:
    """Check the shared token a Pub/Sub push subscription sends with each call.

    Same contract as ``verify_webhook_signature``: False means skipped.
    """
    if not expected:
        logger.warning("Pub/Sub verification token not configured - accepting unauthenticated push")
        return False
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise AuthenticationFailure("Invalid push verification token")
    return True


# =============================================================================
# TOKEN ENCRYPTION
# =============================================================================


def encrypt_token(token: str) -> str:
    """Encrypt a provider token for storage."""
    settings = get_settings()
    if not settings.encryption_enabled:
        logger.warning("Encryption not configured - storing token in plaintext")
        return token

    f = Fernet(settings.encryption_key.encode())
    return f.encrypt(token.encode()).decode()


def decrypt_token(stored: str) -> str:
    """Decrypt a stored provider token."""
    settings = get_settings()
    if not settings.encryption_enabled:
        return stored

    f = Fernet(settings.encryption_key.encode())
    try:
        return f.decrypt(stored.encode()).decode()
    except InvalidToken:
        logger.error("Failed to decrypt stored token - was ENCRYPTION_KEY rotated?")
        raise
