"""Exceptions raised along the ingestion pipeline.

Filtered and duplicate events are not errors; they are reported as
outcomes by the coordinator (see ``IngestStatus``).
"""


class IngestionError(Exception):
    """Base exception for ingestion operations."""
    pass


class AuthenticationFailure(IngestionError):
    """Inbound request failed signature, token or freshness checks."""
    pass


class InvalidOAuthState(IngestionError):
    """OAuth ``state`` parameter could not be decoded to a user."""
    pass


class OAuthExchangeError(IngestionError):
    """Provider rejected the authorization-code exchange."""
    pass


class UnknownTenant(IngestionError):
    """No stored credential maps to the inbound identifier."""

    def __init__(self, provider: str, identifier: str):
        self.provider = provider
        self.identifier = identifier
        super().__init__(f"No {provider} credential found for {identifier}")


class MalformedEnvelope(IngestionError):
    """Inbound payload does not have the expected shape."""
    pass


class UpstreamProviderError(IngestionError):
    """Provider API call failed (rate limit, network, auth)."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class PersistenceFailure(IngestionError):
    """Storage unavailable, or a constraint other than the dedup index failed."""
    pass
