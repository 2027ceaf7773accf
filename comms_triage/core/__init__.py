"""Core application utilities."""

from .config import Settings, get_settings
from .database import (
    async_session_factory,
    close_db,
    engine,
    get_session,
    init_db,
)
from .errors import (
    AuthenticationFailure,
    IngestionError,
    InvalidOAuthState,
    MalformedEnvelope,
    OAuthExchangeError,
    PersistenceFailure,
    UnknownTenant,
    UpstreamProviderError,
)
from .logging_config import configure_logging
from .security import (
    decode_oauth_state,
    decrypt_token,
    encode_oauth_state,
    encrypt_token,
    verify_push_token,
    verify_webhook_signature,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "configure_logging",
    # Database
    "engine",
    "async_session_factory",
    "get_session",
    "init_db",
    "close_db",
    # Errors
    "IngestionError",
    "AuthenticationFailure",
    "InvalidOAuthState",
    "OAuthExchangeError",
    "UnknownTenant",
    "MalformedEnvelope",
    "UpstreamProviderError",
    "PersistenceFailure",
    # Security
    "encode_oauth_state",
    "decode_oauth_state",
    "verify_webhook_signature",
    "verify_push_token",
    "encrypt_token",
    "decrypt_token",
]
