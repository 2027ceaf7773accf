"""FastAPI dependencies shared by the route modules."""

from collections.abc import AsyncGenerator
from typing import Annotated

import httpx
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..services import IngestionCoordinator, OAuthService
from .config import get_settings
from .database import get_session

settings = get_settings()


async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Outbound HTTP client for provider APIs, one per request."""
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
        yield client


SessionDep = Annotated[AsyncSession, Depends(get_session)]
HttpClientDep = Annotated[httpx.AsyncClient, Depends(get_http_client)]


def get_coordinator(session: SessionDep, http_client: HttpClientDep) -> IngestionCoordinator:
    return IngestionCoordinator(session, http_client)


def get_oauth_service(session: SessionDep, http_client: HttpClientDep) -> OAuthService:
    return OAuthService(session, http_client)


CoordinatorDep = Annotated[IngestionCoordinator, Depends(get_coordinator)]
OAuthServiceDep = Annotated[OAuthService, Depends(get_oauth_service)]
